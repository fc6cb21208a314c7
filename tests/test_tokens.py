"""Token issuance and verification tests."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from warden.auth.jwt import (
    PrincipalKind,
    TokenBadSignature,
    TokenExpired,
    TokenIssuer,
    TokenMalformed,
    new_session_id,
)

SECRET = "unit-test-secret"


def test_issue_and_verify_roundtrip():
    issuer = TokenIssuer(SECRET)
    issued = issuer.issue("abc-123", PrincipalKind.ADMIN)
    claims = issuer.verify(issued.token)

    assert claims.principal_id == "abc-123"
    assert claims.kind == PrincipalKind.ADMIN
    assert claims.session_id == issued.session_id
    assert claims.expires_at > datetime.now(timezone.utc)


def test_default_expiry_is_one_day():
    issued = TokenIssuer(SECRET).issue("u1", PrincipalKind.USER)
    payload = jwt.decode(issued.token, SECRET, algorithms=["HS256"])
    assert payload["exp"] - payload["iat"] == 24 * 60 * 60


def test_every_issue_gets_fresh_session_id():
    issuer = TokenIssuer(SECRET)
    a = issuer.issue("u1", PrincipalKind.USER)
    b = issuer.issue("u1", PrincipalKind.USER)
    assert a.session_id != b.session_id
    assert len(a.session_id) == 32  # 128 bits, hex


def test_new_session_id_is_hex():
    sid = new_session_id()
    int(sid, 16)
    assert len(sid) == 32


def test_wrong_secret_rejected():
    token = TokenIssuer(SECRET).issue("u1", PrincipalKind.USER).token
    with pytest.raises(TokenBadSignature):
        TokenIssuer("rotated-secret").verify(token)


def test_expired_token_rejected():
    issuer = TokenIssuer(SECRET)
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = jwt.encode(
        {"sub": "u1", "kind": "user", "sid": "x" * 32, "iat": past, "exp": past + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenExpired):
        issuer.verify(token)


def test_garbage_rejected():
    with pytest.raises(TokenMalformed):
        TokenIssuer(SECRET).verify("not-a-jwt")


def test_missing_session_claim_rejected():
    exp = datetime.now(timezone.utc) + timedelta(hours=1)
    token = jwt.encode({"sub": "u1", "kind": "user", "exp": exp}, SECRET, algorithm="HS256")
    with pytest.raises(TokenMalformed):
        TokenIssuer(SECRET).verify(token)


def test_unknown_kind_rejected():
    exp = datetime.now(timezone.utc) + timedelta(hours=1)
    token = jwt.encode(
        {"sub": "u1", "kind": "robot", "sid": "s" * 32, "exp": exp}, SECRET, algorithm="HS256"
    )
    with pytest.raises(TokenMalformed):
        TokenIssuer(SECRET).verify(token)
