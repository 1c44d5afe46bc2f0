"""
Threaded video comments with reactions.

Every successful mutation is committed first and then broadcast to the
video's real-time room.
"""
import math
from datetime import datetime

import structlog
from flask import jsonify
from flask_login import login_required
from sqlalchemy import func, select

from videoflow.api import api_bp
from videoflow.api._helpers import int_arg, json_body
from videoflow.errors import AuthorizationError, NotFoundError, ValidationError
from videoflow.models import CommentReaction, ReactionType, User, VideoComment, db
from videoflow.permissions import (
    can_delete_comment,
    can_edit_comment,
    current_effective_role,
    get_team_video,
    require_team,
)
from videoflow.services import get_services

logger = structlog.get_logger(__name__)

CONTENT_MAX = 1000


def _content(data: dict) -> str:
    content = data.get("content")
    content = content.strip() if isinstance(content, str) else ""
    if not content or len(content) > CONTENT_MAX:
        raise ValidationError(
            "Validation errors",
            errors=[
                {
                    "field": "content",
                    "message": f"Comment must be between 1 and {CONTENT_MAX} characters",
                }
            ],
        )
    return content


def _timestamp(value):
    if value is None:
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        ts = -1
    if ts < 0 or isinstance(value, bool):
        raise ValidationError(
            "Validation errors",
            errors=[{"field": "timestamp", "message": "Timestamp must be 0 or greater"}],
        )
    return ts


def _team_comment(comment_id: int, effective) -> VideoComment:
    comment = db.session.get(VideoComment, comment_id)
    if comment is None or comment.video.team_id != effective.team_id:
        raise NotFoundError("Comment not found")
    return comment


def _mentioned_users(ids, team_id: int) -> list[User]:
    if not ids:
        return []
    if not isinstance(ids, list):
        raise ValidationError("Mentions must be a list of user ids")
    wanted = {int(i) for i in ids if str(i).isdigit()}
    if not wanted:
        return []
    return list(
        db.session.execute(
            select(User).where(User.id.in_(wanted), User.team_id == team_id)
        ).scalars()
    )


@api_bp.route("/comments/<int:video_id>", methods=["GET"])
@login_required
@require_team
def list_comments(video_id):
    """
    Top-level comments oldest first, each with its replies.

    Query params:
        page: 1-based page number (default 1)
        limit: page size (default 50, max 100)
    """
    video = get_team_video(video_id, current_effective_role())
    page = int_arg("page", 1)
    limit = int_arg("limit", 50, maximum=100)

    top_level = VideoComment.video_id == video.id, VideoComment.parent_id.is_(None)
    total = db.session.execute(
        select(func.count(VideoComment.id)).where(*top_level)
    ).scalar_one()
    comments = db.session.execute(
        select(VideoComment)
        .where(*top_level)
        .order_by(VideoComment.created_at, VideoComment.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars()

    return jsonify(
        {
            "comments": [c.to_dict(include_replies=True) for c in comments],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
                "hasMore": page * limit < total,
            },
        }
    )


@api_bp.route("/comments/<int:video_id>", methods=["POST"])
@login_required
@require_team
def add_comment(video_id):
    """
    Request body:
        {"content": "...", "timestamp": 12.5, "parentId": 3, "mentions": [7]}
    """
    effective = current_effective_role()
    video = get_team_video(video_id, effective)
    data = json_body()

    content = _content(data)
    timestamp = _timestamp(data.get("timestamp"))

    parent_id = data.get("parentId")
    if parent_id is not None:
        try:
            parent_id = int(parent_id)
        except (TypeError, ValueError) as e:
            raise ValidationError("Invalid parent comment id") from e
        parent = db.session.get(VideoComment, parent_id)
        if parent is None or parent.video_id != video.id:
            raise ValidationError("Parent comment not found on this video")
        if parent.parent_id is not None:
            raise ValidationError("Replies can only be made to top-level comments")

    comment = VideoComment(
        video_id=video.id,
        user_id=effective.user_id,
        content=content,
        timestamp=timestamp,
        parent_id=parent_id,
        mentions=_mentioned_users(data.get("mentions"), effective.team_id),
    )
    db.session.add(comment)
    db.session.commit()

    payload = comment.to_dict()
    logger.info("comment_added", comment_id=comment.id, video_id=video.id)
    get_services().realtime.comment_added(video.id, payload)
    return jsonify({"comment": payload}), 201


@api_bp.route("/comments/<int:comment_id>", methods=["PUT"])
@login_required
@require_team
def update_comment(comment_id):
    effective = current_effective_role()
    comment = _team_comment(comment_id, effective)
    if not can_edit_comment(comment, effective):
        raise AuthorizationError()

    comment.content = _content(json_body())
    comment.is_edited = True
    comment.edited_at = datetime.utcnow()
    db.session.commit()

    payload = comment.to_dict()
    get_services().realtime.comment_updated(comment.video_id, payload)
    return jsonify({"comment": payload})


@api_bp.route("/comments/<int:comment_id>", methods=["DELETE"])
@login_required
@require_team
def delete_comment(comment_id):
    """Delete a comment; deleting a top-level comment removes its replies too."""
    effective = current_effective_role()
    comment = _team_comment(comment_id, effective)
    if not can_delete_comment(comment, effective):
        raise AuthorizationError()

    video_id = comment.video_id
    replies = len(comment.replies)
    db.session.delete(comment)
    db.session.commit()

    logger.info(
        "comment_deleted", comment_id=comment_id, video_id=video_id, replies=replies
    )
    get_services().realtime.comment_deleted(video_id, comment_id)
    return jsonify({"message": "Comment deleted successfully"})


@api_bp.route("/comments/<int:comment_id>/reaction", methods=["POST"])
@login_required
@require_team
def toggle_reaction(comment_id):
    """
    Same type again removes the caller's reaction; a different type replaces it.

    Request body:
        {"type": "like" | "dislike" | "heart" | "laugh"}
    """
    effective = current_effective_role()
    comment = _team_comment(comment_id, effective)
    try:
        reaction_type = ReactionType(json_body().get("type"))
    except ValueError as e:
        raise ValidationError("Invalid reaction type") from e

    existing = db.session.execute(
        select(CommentReaction).where(
            CommentReaction.comment_id == comment.id,
            CommentReaction.user_id == effective.user_id,
        )
    ).scalar_one_or_none()

    if existing is None:
        db.session.add(
            CommentReaction(
                comment_id=comment.id, user_id=effective.user_id, type=reaction_type
            )
        )
    elif existing.type == reaction_type:
        db.session.delete(existing)
    else:
        existing.type = reaction_type
    db.session.commit()
    db.session.refresh(comment)

    get_services().realtime.reaction_updated(
        comment.video_id, comment.id, comment.reactions_to_list()
    )
    return jsonify({"comment": comment.to_dict()})
