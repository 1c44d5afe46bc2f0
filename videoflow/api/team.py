"""
API endpoints for team management.

This module provides REST API endpoints for listing the caller's team,
inviting members, and changing or removing memberships. All rules about who
may do what live in ``videoflow.membership``; handlers pass it the caller's
``EffectiveRole``.
"""

from flask import jsonify
from flask_login import current_user, login_required

from videoflow import membership
from videoflow.api import api_bp
from videoflow.api._helpers import json_body, normalize_email, parse_role, require_fields
from videoflow.errors import AuthorizationError, NotFoundError, ValidationError
from videoflow.models import Role, Team, db
from videoflow.permissions import (
    current_effective_role,
    forget_effective_role,
    require_team,
    require_team_role,
)
from videoflow.services import get_services


def _current_team(effective) -> Team:
    team = db.session.get(Team, effective.team_id)
    if team is None:
        raise NotFoundError("Team not found")
    return team


@api_bp.route("/team", methods=["GET"])
@login_required
@require_team
def get_team_members():
    """
    List the caller's team and its members.

    Returns:
        JSON object with team details and a members array
    """
    effective = current_effective_role()
    team = _current_team(effective)
    return jsonify(
        {
            "team": team.to_dict(),
            "members": [m.to_dict() for m in membership.list_members(team.id)],
        }
    )


@api_bp.route("/team/stats", methods=["GET"])
@login_required
@require_team
def get_team_stats():
    return jsonify(membership.team_stats(current_effective_role().team_id))


@api_bp.route("/team/invite", methods=["POST"])
@login_required
@require_team_role(
    Role.CREATOR, Role.MANAGER, message="Only creators and managers can invite team members"
)
def invite_member():
    """
    Invite a new member.

    Request body:
        {"email": "...", "name": "...", "role": "editor"}

    The account is created with a temporary password that is emailed to the
    invitee. A failed email does not undo the invitation.
    """
    data = json_body()
    require_fields(data, "email", "name", "role")
    email = normalize_email(data["email"])
    role = parse_role(data["role"])
    name = data["name"].strip() if isinstance(data["name"], str) else ""
    if len(name) > 50:
        raise ValidationError("Name cannot exceed 50 characters")

    effective = current_effective_role()
    if role == Role.CREATOR and not effective.is_creator:
        raise AuthorizationError("Only the team creator can invite another creator")

    team = _current_team(effective)
    user, _ = membership.invite_member(
        team,
        current_user,
        email=email,
        name=name,
        role=role,
        notifier=get_services().notifier,
    )
    member = membership.get_membership(team.id, user.id)
    return (
        jsonify(
            {"message": "Team member invited successfully", "member": member.to_dict()}
        ),
        201,
    )


@api_bp.route("/team/members/<int:member_id>/role", methods=["PUT"])
@api_bp.route("/team/<int:member_id>/role", methods=["PUT"])
@login_required
@require_team
def update_member_role(member_id):
    """
    Request body:
        {"role": "creator" | "editor" | "manager"}
    """
    data = json_body()
    require_fields(data, "role")
    role = parse_role(data["role"])

    effective = current_effective_role()
    updated = membership.update_member_role(effective.team_id, member_id, role, effective)
    if member_id == effective.user_id:
        forget_effective_role()
    return jsonify(
        {"message": "Member role updated successfully", "member": updated.to_dict()}
    )


@api_bp.route("/team/members/<int:member_id>", methods=["DELETE"])
@api_bp.route("/team/<int:member_id>", methods=["DELETE"])
@login_required
@require_team
def remove_member(member_id):
    effective = current_effective_role()
    membership.remove_member(effective.team_id, member_id, effective)
    return jsonify({"message": "Team member removed successfully"})


@api_bp.route("/team/promote-sole-member", methods=["POST"])
@login_required
@require_team
def promote_sole_member():
    """Make the only active member of a creator-less team its creator."""
    effective = current_effective_role()
    promoted = membership.promote_sole_member_to_creator(effective.team_id)
    forget_effective_role()
    return jsonify(
        {"message": "Member promoted to creator", "member": promoted.to_dict()}
    )
