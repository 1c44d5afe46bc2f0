"""
Video workflow endpoints.

Mounts served by this module:

- GET    /videos                  team videos, newest first (optional ?status=)
- GET    /videos/<id>             one team video
- POST   /videos/upload           register an uploaded video as pending
- POST   /videos/<id>/approve     approve, then try to publish
- POST   /videos/<id>/publish     publish an approved video to YouTube
- POST   /videos/<id>/reject      reject with a reason
- DELETE /videos/<id>             remove the video and its media

State changes go through ``VideoLifecycle``; handlers only resolve the video
and the caller's team role and shape the response.
"""

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import select

from videoflow.api import api_bp
from videoflow.api._helpers import json_body
from videoflow.errors import ValidationError
from videoflow.models import Video, VideoStatus, db
from videoflow.permissions import current_effective_role, get_team_video, require_team
from videoflow.services import get_services


@api_bp.route("/videos", methods=["GET"])
@login_required
@require_team
def list_videos():
    effective = current_effective_role()
    stmt = (
        select(Video)
        .where(Video.team_id == effective.team_id)
        .order_by(Video.created_at.desc(), Video.id.desc())
    )

    status = request.args.get("status")
    if status:
        try:
            stmt = stmt.where(Video.status == VideoStatus(status))
        except ValueError as e:
            raise ValidationError("Invalid status filter") from e

    videos = db.session.execute(stmt).scalars()
    return jsonify({"videos": [v.to_dict() for v in videos]})


@api_bp.route("/videos/<int:video_id>", methods=["GET"])
@login_required
@require_team
def get_video(video_id):
    video = get_team_video(video_id, current_effective_role())
    return jsonify({"video": video.to_dict()})


@api_bp.route("/videos/upload", methods=["POST"])
@login_required
def upload_video():
    """
    Register a video whose media already lives in Cloudinary.

    Request body:
        {
            "title": "...", "description": "...", "tags": ["..."],
            "cloudinaryVideoId": "...", "cloudinaryVideoUrl": "...",
            "cloudinaryThumbnailId": "...", "cloudinaryThumbnailUrl": "...",
            "fileSize": 1024, "duration": 12.5,
            "category": "22", "privacy": "private"
        }
    """
    lifecycle = get_services().lifecycle
    video = lifecycle.upload(current_effective_role(), current_user, json_body())
    return (
        jsonify({"message": "Video uploaded successfully", "video": video.to_dict()}),
        201,
    )


@api_bp.route("/videos/<int:video_id>/approve", methods=["POST"])
@login_required
@require_team
def approve_video(video_id):
    """
    Approve a pending video and, unless ``{"publish": false}``, publish it.

    A failed publish still answers 200; the failure is described under
    ``publishError`` and the video stays approved for a later retry.
    """
    effective = current_effective_role()
    video = get_team_video(video_id, effective)
    publish = json_body().get("publish", True) is not False

    result = get_services().lifecycle.approve_and_publish(video, effective, publish=publish)
    result["video"] = result["video"].to_dict()
    return jsonify(result)


@api_bp.route("/videos/<int:video_id>/publish", methods=["POST"])
@login_required
@require_team
def publish_video(video_id):
    effective = current_effective_role()
    video = get_team_video(video_id, effective)
    get_services().lifecycle.publish(video, effective)
    return jsonify(
        {"message": "Video published to YouTube successfully", "video": video.to_dict()}
    )


@api_bp.route("/videos/<int:video_id>/reject", methods=["POST"])
@login_required
@require_team
def reject_video(video_id):
    effective = current_effective_role()
    video = get_team_video(video_id, effective)
    get_services().lifecycle.reject(video, effective, json_body().get("reason"))
    return jsonify({"message": "Video rejected", "video": video.to_dict()})


@api_bp.route("/videos/<int:video_id>", methods=["DELETE"])
@login_required
@require_team
def delete_video(video_id):
    effective = current_effective_role()
    video = get_team_video(video_id, effective)
    get_services().lifecycle.delete(video, effective)
    return jsonify({"success": True, "message": "Video deleted successfully"})
