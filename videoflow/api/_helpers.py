"""Small helper utilities for API modules.

Keep lightweight helpers here so route modules can import useful helpers
without pulling in heavy app state (avoid circular imports).
"""
import re

from flask import current_app, request

from videoflow.errors import ValidationError
from videoflow.models import Role

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def json_body() -> dict:
    """Return the JSON request body, or an empty dict for a missing/invalid one."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data: dict, *fields: str) -> None:
    """Raise ValidationError listing every missing or blank field."""
    errors = [
        {"field": f, "message": f"{f} is required"}
        for f in fields
        if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
    ]
    if errors:
        raise ValidationError("Validation errors", errors=errors)


def normalize_email(value) -> str:
    email = (value or "").strip().lower() if isinstance(value, str) else ""
    if not _EMAIL_RE.match(email):
        raise ValidationError(
            "Validation errors",
            errors=[{"field": "email", "message": "Please provide a valid email"}],
        )
    return email


def parse_role(value, field: str = "role") -> Role:
    try:
        return Role(value)
    except ValueError as e:
        raise ValidationError(
            "Validation errors",
            errors=[
                {"field": field, "message": "Role must be creator, editor, or manager"}
            ],
        ) from e


def int_arg(name: str, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    """Read a positive integer query argument, clamped to ``maximum``."""
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def set_auth_cookie(response, token: str):
    cfg = current_app.config
    response.set_cookie(
        cfg.get("AUTH_COOKIE_NAME", "auth-token"),
        token,
        max_age=int(cfg.get("JWT_EXPIRES_DAYS", 7)) * 24 * 60 * 60,
        httponly=True,
        secure=bool(cfg.get("AUTH_COOKIE_SECURE", False)),
        samesite=cfg.get("AUTH_COOKIE_SAMESITE", "Lax"),
    )
    return response


def clear_auth_cookie(response):
    cfg = current_app.config
    response.delete_cookie(
        cfg.get("AUTH_COOKIE_NAME", "auth-token"),
        httponly=True,
        secure=bool(cfg.get("AUTH_COOKIE_SECURE", False)),
        samesite=cfg.get("AUTH_COOKIE_SAMESITE", "Lax"),
    )
    return response
