"""Security headers middleware.

Learn: Two things decide the extra headers here, and the cookie code in
api/auth.py asks the same question through served_over_tls():

- Is the client on TLS? Either the socket is https or a proxy in front
  terminated TLS and said so in X-Forwarded-Proto. Only then is HSTS
  sent (and token cookies marked secure).
- Is this an auth route? Login, register and "me" responses carry
  tokens or principal data, so they must never sit in a shared cache.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

STATIC_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

HSTS = "max-age=31536000; includeSubDomains"


def served_over_tls(request: Request) -> bool:
    if request.url.scheme == "https":
        return True
    return request.headers.get("x-forwarded-proto", "").lower() == "https"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(STATIC_HEADERS)
        if "/auth/" in request.url.path:
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"
        if served_over_tls(request):
            response.headers["Strict-Transport-Security"] = HSTS
        return response
