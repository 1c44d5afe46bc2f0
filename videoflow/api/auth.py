"""
Authentication endpoints: register, login, logout, and the caller's profile.

Tokens are returned in the body and set as the HTTP-only ``auth-token``
cookie; either one authenticates later requests.
"""

import structlog
from flask import jsonify
from flask_login import current_user, login_required
from sqlalchemy import select

from videoflow.api import api_bp
from videoflow.api._helpers import (
    clear_auth_cookie,
    json_body,
    normalize_email,
    parse_role,
    require_fields,
    set_auth_cookie,
)
from videoflow.errors import AuthenticationError, ValidationError
from videoflow.membership import create_team_for_creator
from videoflow.models import Role, User, db
from videoflow.permissions import current_effective_role, resolve_effective_role
from videoflow.security import issue_token

logger = structlog.get_logger(__name__)

NAME_MAX = 50
PASSWORD_MIN = 6


def _session_payload(user: User, status: int = 200):
    effective = resolve_effective_role(user)
    token = issue_token(user, team_role=effective.role)
    response = jsonify({"user": user.to_dict(team_role=effective.role), "token": token})
    response.status_code = status
    return set_auth_cookie(response, token)


def _validate_name(value) -> str:
    name = value.strip() if isinstance(value, str) else ""
    if not name or len(name) > NAME_MAX:
        raise ValidationError(
            "Validation errors",
            errors=[
                {
                    "field": "name",
                    "message": f"Name must be between 1 and {NAME_MAX} characters",
                }
            ],
        )
    return name


@api_bp.route("/auth/register", methods=["POST"])
def register():
    """
    Create an account. Creators also get their own team.

    Request body:
        {"name": "...", "email": "...", "password": "...", "role": "creator"}
    """
    data = json_body()
    require_fields(data, "name", "email", "password")

    name = _validate_name(data["name"])
    email = normalize_email(data["email"])
    password = data["password"]
    if not isinstance(password, str) or len(password) < PASSWORD_MIN:
        raise ValidationError(
            "Validation errors",
            errors=[
                {
                    "field": "password",
                    "message": f"Password must be at least {PASSWORD_MIN} characters",
                }
            ],
        )
    role = parse_role(data.get("role") or Role.CREATOR.value)

    if db.session.execute(select(User).where(User.email == email)).scalar_one_or_none():
        raise ValidationError("User already exists with this email")

    user = User(name=name, email=email, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    if role == Role.CREATOR:
        create_team_for_creator(user)
    db.session.commit()

    logger.info("user_registered", user_id=user.id, role=role.value)
    return _session_payload(user, status=201)


@api_bp.route("/auth/login", methods=["POST"])
def login():
    data = json_body()
    require_fields(data, "email", "password")
    email = data["email"].strip().lower() if isinstance(data["email"], str) else ""

    user = db.session.execute(
        select(User).where(User.email == email, User.is_active.is_(True))
    ).scalar_one_or_none()
    if user is None or not user.check_password(str(data["password"])):
        logger.info("login_failed", email=email)
        raise AuthenticationError("Invalid email or password")

    logger.info("user_logged_in", user_id=user.id)
    return _session_payload(user)


@api_bp.route("/auth/logout", methods=["POST"])
def logout():
    response = jsonify({"message": "Logged out successfully"})
    return clear_auth_cookie(response)


@api_bp.route("/auth/profile", methods=["GET"])
@api_bp.route("/user/profile", methods=["GET"])
@login_required
def get_profile():
    effective = current_effective_role()
    return jsonify({"user": current_user.to_dict(team_role=effective.role)})


@api_bp.route("/auth/profile", methods=["PUT"])
@api_bp.route("/user/profile", methods=["PUT"])
@login_required
def update_profile():
    """Update ``name`` and/or ``avatar``; other fields are ignored."""
    data = json_body()
    if "name" in data:
        current_user.name = _validate_name(data["name"])
    if "avatar" in data:
        avatar = data["avatar"]
        current_user.avatar = avatar.strip() if isinstance(avatar, str) and avatar.strip() else None
    db.session.commit()

    effective = current_effective_role()
    return jsonify({"user": current_user.to_dict(team_role=effective.role)})
