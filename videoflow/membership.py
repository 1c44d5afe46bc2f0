"""
Team membership operations.

Memberships are rows keyed by (team_id, user_id). Every change here is a
single keyed INSERT, UPDATE, or DELETE; the unique constraint guards against
duplicate members under concurrent invites.
"""

import secrets
from datetime import datetime

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from videoflow.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from videoflow.models import (
    MemberStatus,
    Role,
    SubscriptionPlan,
    SubscriptionStatus,
    Team,
    TeamMembership,
    User,
    db,
)

logger = structlog.get_logger(__name__)


def create_team_for_creator(user: User) -> Team:
    """Create "<name>'s Team" owned by ``user`` with them as its creator.

    The caller commits.
    """
    team = Team(
        name=f"{user.name}'s Team"[:100],
        owner_id=user.id,
        subscription_plan=SubscriptionPlan.STARTER,
        subscription_status=SubscriptionStatus.ACTIVE,
    )
    db.session.add(team)
    db.session.flush()

    db.session.add(
        TeamMembership(
            team_id=team.id,
            user_id=user.id,
            role=Role.CREATOR,
            status=MemberStatus.ACTIVE,
        )
    )
    user.team_id = team.id
    logger.info("team_created", team_id=team.id, owner_id=user.id)
    return team


def add_member(
    team_id: int,
    user_id: int,
    role: Role,
    status: MemberStatus = MemberStatus.ACTIVE,
) -> TeamMembership:
    """Insert a membership; a duplicate (team_id, user_id) is a ConflictError."""
    if get_membership(team_id, user_id) is not None:
        raise ConflictError("User is already a member of this team")

    membership = TeamMembership(
        team_id=team_id, user_id=user_id, role=role, status=status
    )
    db.session.add(membership)
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError("User is already a member of this team") from e
    return membership


def get_membership(team_id: int, user_id: int) -> TeamMembership | None:
    return db.session.execute(
        select(TeamMembership).where(
            TeamMembership.team_id == team_id, TeamMembership.user_id == user_id
        )
    ).scalar_one_or_none()


def list_members(team_id: int) -> list[TeamMembership]:
    return list(
        db.session.execute(
            select(TeamMembership)
            .where(TeamMembership.team_id == team_id)
            .order_by(TeamMembership.joined_at, TeamMembership.id)
        ).scalars()
    )


def active_member_users(team_id: int, exclude_user_ids=()) -> list[User]:
    """Users with an active membership in the team, minus the excluded ids."""
    stmt = (
        select(User)
        .join(TeamMembership, TeamMembership.user_id == User.id)
        .where(
            TeamMembership.team_id == team_id,
            TeamMembership.status == MemberStatus.ACTIVE,
            User.is_active.is_(True),
        )
        .order_by(User.id)
    )
    excluded = [uid for uid in exclude_user_ids if uid is not None]
    if excluded:
        stmt = stmt.where(User.id.not_in(excluded))
    return list(db.session.execute(stmt).scalars())


def team_creator_ids(team_id: int) -> list[int]:
    return list(
        db.session.execute(
            select(TeamMembership.user_id).where(
                TeamMembership.team_id == team_id,
                TeamMembership.role == Role.CREATOR,
                TeamMembership.status == MemberStatus.ACTIVE,
            )
        ).scalars()
    )


def _count_creators(team_id: int) -> int:
    return len(team_creator_ids(team_id))


def _hand_over_ownership(team_id: int, leaving_user_id: int) -> int | None:
    """Move ``Team.owner_id`` to another active creator when the owner leaves.

    Publishing uses the owner's YouTube connection, so the owner must always
    be an active creator of the team. The caller commits.

    Returns:
        The new owner id, or None if ownership did not change
    """
    team = db.session.get(Team, team_id)
    if team is None or team.owner_id != leaving_user_id:
        return None

    successor = db.session.execute(
        select(TeamMembership.user_id)
        .where(
            TeamMembership.team_id == team_id,
            TeamMembership.role == Role.CREATOR,
            TeamMembership.status == MemberStatus.ACTIVE,
            TeamMembership.user_id != leaving_user_id,
        )
        .order_by(TeamMembership.joined_at, TeamMembership.id)
        .limit(1)
    ).scalar_one_or_none()
    if successor is None:
        db.session.rollback()
        raise ConflictError("Team must keep at least one creator")

    db.session.execute(
        update(Team)
        .where(Team.id == team_id, Team.owner_id == leaving_user_id)
        .values(owner_id=successor)
    )
    return successor


def _email_taken(email: str) -> bool:
    return (
        db.session.execute(select(User.id).where(User.email == email)).first()
        is not None
    )


def invite_member(
    team: Team, inviter: User, email: str, name: str, role: Role, notifier=None
):
    """
    Create a user account for ``email`` and add it to ``team``.

    The new account gets a random temporary password that is sent in the
    invitation email. Email delivery failure does not undo the invitation.

    Returns:
        Tuple of (new User, temporary password)
    """
    email = email.strip().lower()
    if _email_taken(email):
        raise ValidationError("User with this email already exists")

    temp_password = secrets.token_urlsafe(12)
    user = User(name=name.strip(), email=email, role=role, team_id=team.id)
    user.set_password(temp_password)
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent invite or registration for this email
        db.session.rollback()
        raise ValidationError("User with this email already exists") from e

    add_member(team.id, user.id, role)
    db.session.commit()

    logger.info(
        "member_invited",
        team_id=team.id,
        user_id=user.id,
        role=role.value,
        inviter_id=inviter.id,
    )

    if notifier is not None:
        notifier.send_invitation(
            user, team=team, inviter=inviter, temp_password=temp_password
        )

    return user, temp_password


def update_member_role(team_id: int, member_id: int, new_role: Role, actor) -> TeamMembership:
    """
    Change a member's team-scoped role.

    Only the team creator may grant or revoke ``creator``; the last creator
    cannot be demoted.
    """
    if not actor.can_manage_team:
        raise AuthorizationError("Only creators and managers can update member roles")

    membership = get_membership(team_id, member_id)
    if membership is None:
        raise NotFoundError("Team member not found")

    touches_creator = Role.CREATOR in (membership.role, new_role)
    if touches_creator and not actor.is_creator:
        raise AuthorizationError("Only the team creator can change creator roles")

    if (
        membership.role == Role.CREATOR
        and new_role != Role.CREATOR
        and _count_creators(team_id) <= 1
    ):
        raise ConflictError("Team must keep at least one creator")

    result = db.session.execute(
        update(TeamMembership)
        .where(
            TeamMembership.team_id == team_id,
            TeamMembership.user_id == member_id,
        )
        .values(role=new_role, updated_at=datetime.utcnow())
    )
    if result.rowcount == 0:
        raise NotFoundError("Team member not found")
    new_owner = None
    if new_role != Role.CREATOR:
        new_owner = _hand_over_ownership(team_id, member_id)
    db.session.commit()
    db.session.refresh(membership)

    logger.info(
        "member_role_changed",
        team_id=team_id,
        user_id=member_id,
        new_role=new_role.value,
        actor_id=actor.user_id,
    )
    if new_owner is not None:
        logger.info(
            "team_ownership_transferred",
            team_id=team_id,
            from_user_id=member_id,
            to_user_id=new_owner,
        )
    return membership


def remove_member(team_id: int, member_id: int, actor) -> None:
    """Delete the membership row and detach the user from the team."""
    if not actor.can_manage_team:
        raise AuthorizationError("Only creators and managers can remove team members")
    if member_id == actor.user_id:
        raise ValidationError("You cannot remove yourself from the team")

    membership = get_membership(team_id, member_id)
    if membership is None:
        raise NotFoundError("Team member not found")
    if membership.role == Role.CREATOR:
        if not actor.is_creator:
            raise AuthorizationError("Only the team creator can remove a creator")
        if _count_creators(team_id) <= 1:
            raise ConflictError("Team must keep at least one creator")

    result = db.session.execute(
        delete(TeamMembership).where(
            TeamMembership.team_id == team_id,
            TeamMembership.user_id == member_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundError("Team member not found")
    db.session.execute(
        update(User)
        .where(User.id == member_id, User.team_id == team_id)
        .values(team_id=None)
    )
    new_owner = _hand_over_ownership(team_id, member_id)
    db.session.commit()
    db.session.expire_all()

    logger.info(
        "member_removed", team_id=team_id, user_id=member_id, actor_id=actor.user_id
    )
    if new_owner is not None:
        logger.info(
            "team_ownership_transferred",
            team_id=team_id,
            from_user_id=member_id,
            to_user_id=new_owner,
        )


def promote_sole_member_to_creator(team_id: int) -> TeamMembership:
    """
    Promote the only active member of a creator-less team to ``creator``.

    This is the one sanctioned way a team gains a creator after creation.

    Raises:
        ConflictError: the team has a creator or not exactly one active member
    """
    active = list(
        db.session.execute(
            select(TeamMembership).where(
                TeamMembership.team_id == team_id,
                TeamMembership.status == MemberStatus.ACTIVE,
            )
        ).scalars()
    )
    if len(active) != 1:
        raise ConflictError("Team must have exactly one active member")
    if _count_creators(team_id) > 0:
        raise ConflictError("Team already has a creator")

    sole = active[0]
    # Conditional update: only fires if nobody became creator meanwhile
    result = db.session.execute(
        update(TeamMembership)
        .where(
            TeamMembership.id == sole.id,
            TeamMembership.role != Role.CREATOR,
            TeamMembership.status == MemberStatus.ACTIVE,
        )
        .values(role=Role.CREATOR, updated_at=datetime.utcnow())
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise ConflictError("Team membership changed, try again")

    db.session.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(owner_id=sole.user_id, updated_at=datetime.utcnow())
    )
    db.session.commit()
    db.session.refresh(sole)

    logger.info("sole_member_promoted", team_id=team_id, user_id=sole.user_id)
    return sole


def team_stats(team_id: int) -> dict:
    """Active member totals, overall and per team-scoped role."""
    rows = db.session.execute(
        select(TeamMembership.role, func.count(TeamMembership.id))
        .where(
            TeamMembership.team_id == team_id,
            TeamMembership.status == MemberStatus.ACTIVE,
        )
        .group_by(TeamMembership.role)
    ).all()
    by_role = {role.value: count for role, count in rows}
    return {"totalMembers": sum(by_role.values()), "membersByRole": by_role}
