"""Signed auth tokens (JWT) shared by the REST API and the real-time handshake.

Contract:
- Payload carries: sub/userId, email, name, teamId, and ``role``, the
  team-scoped role resolved when the token is issued
- Signed with HS256 by default; lifetime JWT_EXPIRES_DAYS (default 7 days)
- Read from the ``auth-token`` cookie first, then ``Authorization: Bearer``

The role claim is informational for clients; server-side authorization always
re-resolves the team-scoped role from the database.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TypedDict

from flask import current_app
from jose import JWTError, jwt

from videoflow.errors import AuthenticationError


@dataclass(frozen=True)
class TokenSettings:
    secret: str
    algorithm: str = "HS256"
    ttl: timedelta = timedelta(days=7)
    issuer: str = "videoflow"

    @classmethod
    def from_app(cls, app=None) -> TokenSettings:
        cfg = (app or current_app).config
        return cls(
            secret=cfg.get("JWT_SECRET") or cfg["SECRET_KEY"],
            algorithm=cfg.get("JWT_ALGORITHM", "HS256"),
            ttl=timedelta(days=int(cfg.get("JWT_EXPIRES_DAYS", 7))),
        )


class DecodedToken(TypedDict, total=False):
    iss: str
    sub: str
    userId: int
    email: str
    name: str
    role: str
    teamId: int | None
    iat: int
    exp: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


def issue_token(user, team_role=None, settings: TokenSettings | None = None) -> str:
    """Create a signed token for ``user``.

    ``team_role`` is the user's team-scoped role; users without a team fall
    back to their individual default role.
    """
    settings = settings or TokenSettings.from_app()
    now = _now()
    role = team_role or user.role
    payload: DecodedToken = {
        "iss": settings.issuer,
        "sub": str(user.id),
        "userId": user.id,
        "email": user.email,
        "name": user.name,
        "role": role.value,
        "teamId": user.team_id,
        "iat": int(now.timestamp()),
        "exp": int((now + settings.ttl).timestamp()),
    }
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


def decode_token(token: str, settings: TokenSettings | None = None) -> DecodedToken:
    """Verify signature and expiry and return the payload.

    Raises:
        AuthenticationError: token is malformed, forged, or expired
    """
    settings = settings or TokenSettings.from_app()
    try:
        decoded = jwt.decode(
            token,
            settings.secret,
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
            issuer=settings.issuer,
        )
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e
    if not decoded.get("sub"):
        raise AuthenticationError("Invalid or expired token")
    return decoded  # type: ignore[return-value]


def extract_request_token(req) -> str | None:
    """Return the raw token from the auth cookie or a Bearer header, if any."""
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth-token")
    token = req.cookies.get(cookie_name)
    if token:
        return token

    auth_header = req.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None
