"""
auth/tokens.py -- Session token issuance (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Each token is signed with the secret of the
       application the user logged in to, so a token minted for one
       application does not verify under another application's key.

  Claim layout (interoperating services decode these names verbatim):
       uid     int  user id
       email   str  user email
       app_id  int  application id
       exp     int  expiry, Unix seconds (issuance time + ttl)
       Serialized as the compact JWS form: base64url(header).base64url(payload).base64url(signature)

  Tokens are stateless. Nothing here stores, refreshes or revokes them.

  Signing failures (e.g. a PEM-looking or non-string secret, which jose
  refuses as an HMAC key) raise TokenSigningError. The caller treats that as
  an internal error, never as a credential problem.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JOSEError, jwt

from auth.errors import TokenSigningError
from auth.models import Application, User

ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mints signed session tokens scoped to one application.

    now is injectable so tests can pin issuance time.
    """

    def __init__(self, now: Callable[[], datetime] = _utcnow) -> None:
        self._now = now

    def issue(self, user: User, app: Application, ttl: timedelta) -> str:
        expire = self._now() + ttl
        payload = {
            "uid": user.id,
            "email": user.email,
            "app_id": app.id,
            "exp": int(expire.timestamp()),
        }
        try:
            return jwt.encode(payload, app.secret, algorithm=ALGORITHM)
        except JOSEError as err:
            raise TokenSigningError(f"failed to sign token for app {app.id}: {err}") from err


def decode_token(token: str, secret: str) -> dict:
    """Verify and decode a token issued by TokenIssuer.

    Not used by AuthService. Provided for callers that accept tokens (and for
    tests). Raises TokenSigningError on a bad signature, malformed token, or
    expired token.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JOSEError as err:
        raise TokenSigningError(f"invalid token: {err}") from err
    if "uid" not in payload or "app_id" not in payload:
        raise TokenSigningError("invalid token: missing uid/app_id claims")
    return payload
