"""
YouTube channel connection endpoints (team creator only).

Tokens are stored on the creator who completes the OAuth flow; publishing
uses the tokens of the team owner.
"""

import structlog
from flask import jsonify
from flask_login import current_user, login_required

from videoflow.api import api_bp
from videoflow.api._helpers import json_body
from videoflow.errors import ValidationError, YouTubeNotConnectedError
from videoflow.integrations import YouTubeTokens
from videoflow.models import Role, db
from videoflow.permissions import require_team_role
from videoflow.services import get_services

logger = structlog.get_logger(__name__)

CREATOR_ONLY = "Only creators can manage the YouTube connection"


def _live_channel_info() -> dict:
    """Fetch channel info with the caller's tokens, refreshing them if stale."""
    if not current_user.youtube_connected:
        raise YouTubeNotConnectedError("YouTube not connected")

    youtube = get_services().youtube
    tokens, refreshed = youtube.ensure_fresh(YouTubeTokens.from_user(current_user))
    if refreshed:
        current_user.set_youtube_tokens(tokens)

    channel = youtube.get_channel_info(tokens.access_token)
    current_user.youtube_channel_id = channel["id"]
    current_user.youtube_channel_name = channel["title"]
    db.session.commit()
    return channel


@api_bp.route("/youtube/auth-url", methods=["GET"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_auth_url():
    return jsonify({"authUrl": get_services().youtube.get_auth_url()})


@api_bp.route("/youtube/callback", methods=["POST"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_callback():
    """
    Finish the OAuth flow.

    Request body:
        {"code": "<authorization code from Google>"}
    """
    code = json_body().get("code")
    if not code or not isinstance(code, str):
        raise ValidationError("Authorization code is required")

    youtube = get_services().youtube
    tokens = youtube.exchange_code(code)
    channel = youtube.get_channel_info(tokens.access_token)

    current_user.set_youtube_tokens(tokens)
    current_user.youtube_channel_id = channel["id"]
    current_user.youtube_channel_name = channel["title"]
    db.session.commit()

    logger.info("youtube_connected", user_id=current_user.id, channel_id=channel["id"])
    return jsonify(
        {
            "success": True,
            "message": "YouTube connected successfully",
            "channel": channel,
        }
    )


@api_bp.route("/youtube/status", methods=["GET"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_status():
    return jsonify(
        {
            "connected": bool(
                current_user.youtube_connected and current_user.youtube_channel_id
            ),
            "channelId": current_user.youtube_channel_id,
            "channelName": current_user.youtube_channel_name,
        }
    )


@api_bp.route("/youtube/channel", methods=["GET"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_channel():
    return jsonify({"channel": _live_channel_info()})


@api_bp.route("/youtube/refresh-channel", methods=["POST"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_refresh_channel():
    return jsonify({"channel": _live_channel_info()})


@api_bp.route("/youtube/disconnect", methods=["DELETE"])
@login_required
@require_team_role(Role.CREATOR, message=CREATOR_ONLY)
def youtube_disconnect():
    current_user.clear_youtube_connection()
    db.session.commit()
    logger.info("youtube_disconnected", user_id=current_user.id)
    return jsonify({"success": True, "message": "YouTube disconnected successfully"})
