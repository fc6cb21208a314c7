"""Authentication.

Learn: Two principal kinds share one pipeline:
1. Users → self-register, email/password → session-bound JWT
2. Admins → created by other admins, email/password → session-bound JWT

Both resolve to an AuthenticatedPrincipal whose snapshot drives every
permission check for the rest of the request.
"""
