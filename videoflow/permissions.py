"""
Team permission checking utilities.

The team-scoped role on ``TeamMembership`` is the single source of truth for
in-team authorization. It is resolved once per request into an
``EffectiveRole`` and cached on ``flask.g``; handlers and services receive that
value instead of re-deriving roles from ``User.role``.
"""

from dataclasses import dataclass
from functools import wraps

from flask import g, has_request_context
from flask_login import current_user
from sqlalchemy import select

from videoflow.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from videoflow.models import MemberStatus, Role, TeamMembership, Video, db


@dataclass(frozen=True)
class EffectiveRole:
    """The caller's standing inside their team for the current request."""

    user_id: int
    team_id: int | None
    role: Role | None
    status: MemberStatus | None = None

    @property
    def in_team(self) -> bool:
        return self.team_id is not None and self.status == MemberStatus.ACTIVE

    @property
    def is_creator(self) -> bool:
        return self.in_team and self.role == Role.CREATOR

    @property
    def can_manage_team(self) -> bool:
        return self.in_team and self.role in (Role.CREATOR, Role.MANAGER)

    def has_role(self, *roles: Role) -> bool:
        return self.in_team and self.role in roles


def resolve_effective_role(user) -> EffectiveRole:
    """Look up ``user``'s membership in their current team.

    A user whose ``team_id`` points at a team they have no active membership
    in gets an ``EffectiveRole`` with ``role=None``.
    """
    if user.team_id is None:
        return EffectiveRole(user_id=user.id, team_id=None, role=None)

    membership = db.session.execute(
        select(TeamMembership).where(
            TeamMembership.team_id == user.team_id,
            TeamMembership.user_id == user.id,
        )
    ).scalar_one_or_none()

    if membership is None:
        return EffectiveRole(user_id=user.id, team_id=user.team_id, role=None)

    return EffectiveRole(
        user_id=user.id,
        team_id=user.team_id,
        role=membership.role,
        status=membership.status,
    )


def current_effective_role() -> EffectiveRole:
    """Return the current request's EffectiveRole, resolving it on first use."""
    if not current_user or not current_user.is_authenticated:
        raise AuthenticationError()

    cached = getattr(g, "effective_role", None) if has_request_context() else None
    if cached is not None and cached.user_id == current_user.id:
        return cached

    effective = resolve_effective_role(current_user)
    if has_request_context():
        g.effective_role = effective
    return effective


def forget_effective_role() -> None:
    """Drop the cached role after the caller's own membership changed."""
    if has_request_context():
        g.pop("effective_role", None)


def require_team(f):
    """
    Decorator requiring the caller to be an active member of a team.

    Usage:
        @api_bp.route("/videos")
        @login_required
        @require_team
        def list_videos(): ...
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_effective_role().in_team:
            raise ValidationError("User not part of any team")
        return f(*args, **kwargs)

    return decorated_function


def require_team_role(*roles: Role, message: str = "Insufficient permissions"):
    """
    Decorator to enforce a minimum team-scoped role.

    Usage:
        @require_team_role(Role.CREATOR)
        def get_youtube_status(): ...

    Args:
        roles: Team roles allowed to call the endpoint
        message: 403 message when the caller's role is not allowed
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            effective = current_effective_role()
            if not effective.in_team:
                raise ValidationError("User not part of any team")
            if not effective.has_role(*roles):
                raise AuthorizationError(message)
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def get_team_video(video_id: int, effective: EffectiveRole) -> Video:
    """
    Load a video the caller's team owns.

    Raises:
        NotFoundError: video does not exist
        AuthorizationError: video belongs to another team
    """
    video = db.session.get(Video, video_id)
    if video is None:
        raise NotFoundError("Video not found")
    if video.team_id != effective.team_id:
        raise AuthorizationError("Access denied")
    return video


def can_delete_video(video: Video, effective: EffectiveRole) -> bool:
    """Uploader or the team creator may delete a video."""
    if video.team_id != effective.team_id:
        return False
    return video.uploaded_by == effective.user_id or effective.is_creator


def can_edit_comment(comment, effective: EffectiveRole) -> bool:
    return comment.user_id == effective.user_id


def can_delete_comment(comment, effective: EffectiveRole) -> bool:
    """Comment author or the team creator may delete a comment."""
    if comment.user_id == effective.user_id:
        return True
    return effective.is_creator and comment.video.team_id == effective.team_id
