"""
Video workflow state machine.

    pending --approve--> approved --publish--> published
       \\--reject--> rejected

``rejected`` and ``published`` are terminal. Every transition is a conditional
``UPDATE ... WHERE id = ? AND status = ?`` so two concurrent requests cannot
both advance the same video. Email, media cleanup and YouTube calls hang off
the transitions through the collaborators passed to ``VideoLifecycle``.
"""
from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import update

from videoflow.error_utils import safe_log_error
from videoflow.errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    ValidationError,
    YouTubeNotConnectedError,
)
from videoflow.integrations.youtube import YouTubeTokens
from videoflow.models import Privacy, Video, VideoStatus, db
from videoflow.permissions import can_delete_video

logger = structlog.get_logger(__name__)

TITLE_MAX = 100
DESCRIPTION_MAX = 5000
TAG_MAX = 50
REJECTION_REASON_MAX = 500


def _field_error(errors: list, field: str, message: str) -> None:
    errors.append({"field": field, "message": message})


def _non_negative(data: dict, key: str, errors: list):
    value = data.get(key)
    if value is None or isinstance(value, bool):
        _field_error(errors, key, f"{key} is required")
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        _field_error(errors, key, f"{key} must be a number")
        return None
    if number < 0:
        _field_error(errors, key, f"{key} must be 0 or greater")
        return None
    return number


def validate_video_data(data: dict) -> dict:
    """Check an upload payload and map it onto ``Video`` column values.

    Raises:
        ValidationError: with one ``{field, message}`` entry per problem
    """
    errors: list = []

    title = (data.get("title") or "").strip()
    if not title:
        _field_error(errors, "title", "Title is required")
    elif len(title) > TITLE_MAX:
        _field_error(errors, "title", f"Title cannot exceed {TITLE_MAX} characters")

    description = (data.get("description") or "").strip()
    if not description:
        _field_error(errors, "description", "Description is required")
    elif len(description) > DESCRIPTION_MAX:
        _field_error(
            errors,
            "description",
            f"Description cannot exceed {DESCRIPTION_MAX} characters",
        )

    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        _field_error(errors, "tags", "Tags must be a list of strings")
        tags = []
    elif any(len(t) > TAG_MAX for t in tags):
        _field_error(errors, "tags", f"Each tag cannot exceed {TAG_MAX} characters")

    for key in ("cloudinaryVideoId", "cloudinaryVideoUrl"):
        if not data.get(key):
            _field_error(errors, key, f"{key} is required")

    file_size = _non_negative(data, "fileSize", errors)
    duration = _non_negative(data, "duration", errors)

    privacy = data.get("privacy") or Privacy.PRIVATE.value
    try:
        privacy = Privacy(privacy)
    except ValueError:
        _field_error(errors, "privacy", "Privacy must be private, unlisted, or public")

    if errors:
        raise ValidationError("Validation errors", errors=errors)

    return {
        "title": title,
        "description": description,
        "tags": tags,
        "thumbnail": data.get("thumbnail"),
        "cloudinary_video_id": data["cloudinaryVideoId"],
        "cloudinary_video_url": data["cloudinaryVideoUrl"],
        "cloudinary_thumbnail_id": data.get("cloudinaryThumbnailId"),
        "cloudinary_thumbnail_url": data.get("cloudinaryThumbnailUrl"),
        "file_size": int(file_size),
        "duration": duration,
        "category": str(data.get("category") or "22"),
        "privacy": privacy,
    }


class VideoLifecycle:
    """Owns every Video status change and its side effects."""

    def __init__(self, publisher, notifier, media_store):
        self.publisher = publisher
        self.notifier = notifier
        self.media_store = media_store

    def _transition(self, video: Video, from_status: VideoStatus, **values) -> bool:
        """Apply ``values`` only if the row is still in ``from_status``."""
        values.setdefault("updated_at", datetime.utcnow())
        result = db.session.execute(
            update(Video)
            .where(Video.id == video.id, Video.status == from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(video)
        return result.rowcount == 1

    # Upload

    def upload(self, actor, uploader, data: dict) -> Video:
        if not actor.in_team:
            raise ValidationError("User not part of any team")

        video = Video(
            **validate_video_data(data),
            status=VideoStatus.PENDING,
            uploaded_by=uploader.id,
            uploaded_at=datetime.utcnow(),
            team_id=actor.team_id,
        )
        db.session.add(video)
        db.session.commit()

        logger.info(
            "video_uploaded", video_id=video.id, team_id=video.team_id, user_id=uploader.id
        )
        self.notifier.notify_video_uploaded(video)
        return video

    # Approve

    def approve(self, video: Video, actor) -> bool:
        """Move a pending video to approved.

        Returns:
            True if this call approved the video, False if it already was
        """
        if not actor.is_creator:
            raise AuthorizationError()
        if video.status == VideoStatus.APPROVED:
            return False
        if video.status != VideoStatus.PENDING:
            raise ConflictError("Video is not pending approval")

        now = datetime.utcnow()
        if not self._transition(
            video,
            VideoStatus.PENDING,
            status=VideoStatus.APPROVED,
            approved_by=actor.user_id,
            approved_at=now,
        ):
            # Lost the race; another approval landing first is still a success
            if video.status == VideoStatus.APPROVED:
                return False
            raise ConflictError("Video is not pending approval")

        logger.info("video_approved", video_id=video.id, user_id=actor.user_id)
        self.notifier.notify_video_approved(video)
        return True

    # Publish

    def _owner_tokens(self, video: Video) -> tuple:
        owner = video.team.owner if video.team else None
        if owner is None or not owner.youtube_connected:
            raise YouTubeNotConnectedError()

        tokens, refreshed = self.publisher.ensure_fresh(YouTubeTokens.from_user(owner))
        if refreshed:
            owner.set_youtube_tokens(tokens)
            db.session.commit()
            logger.info("youtube_tokens_refreshed", user_id=owner.id)
        return owner, tokens

    def _record_publish_error(self, video: Video, message: str) -> None:
        db.session.rollback()
        db.session.execute(
            update(Video)
            .where(Video.id == video.id, Video.status == VideoStatus.APPROVED)
            .values(publish_error=message[:1000], updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(video)

    def publish(self, video: Video, actor) -> Video:
        """Upload an approved video to the team owner's channel.

        Failures leave the video ``approved`` with ``publish_error`` set, so
        the call can be retried.

        Raises:
            AuthorizationError: caller is not the team creator
            ConflictError: video is not approved
            YouTubeNotConnectedError: team owner never connected YouTube
            ExternalServiceError: token refresh or upload failed
        """
        if not actor.is_creator:
            raise AuthorizationError()
        if video.status != VideoStatus.APPROVED:
            raise ConflictError("Only approved videos can be published")

        try:
            _, tokens = self._owner_tokens(video)
            result = self.publisher.upload_video(tokens.access_token, video)
        except YouTubeNotConnectedError:
            raise
        except ExternalServiceError as e:
            safe_log_error(
                logger,
                "video_publish_failed",
                exc_info=True,
                video_id=video.id,
                error=e.message,
            )
            self._record_publish_error(video, e.message)
            raise ExternalServiceError(
                "Failed to publish video to YouTube", service="youtube"
            ) from e

        if not self._transition(
            video,
            VideoStatus.APPROVED,
            status=VideoStatus.PUBLISHED,
            youtube_id=result["id"],
            youtube_url=result["url"],
            published_at=datetime.utcnow(),
            publish_error=None,
        ):
            logger.warning(
                "video_publish_race", video_id=video.id, youtube_id=result["id"]
            )
            raise ConflictError("Only approved videos can be published")

        logger.info("video_published", video_id=video.id, youtube_id=video.youtube_id)
        self.notifier.notify_video_published(video)
        return video

    def approve_and_publish(self, video: Video, actor, publish: bool = True) -> dict:
        """Approve, then try to publish; publish failures go in the payload."""
        approved_now = self.approve(video, actor)
        response = {
            "video": video,
            "message": "Video approved successfully"
            if approved_now
            else "Video already approved",
        }
        if not publish:
            return response

        try:
            self.publish(video, actor)
        except YouTubeNotConnectedError as e:
            response["message"] = "Video approved; YouTube is not connected"
            response["publishError"] = {
                "type": "youtube_not_connected",
                "message": e.message,
            }
        except ExternalServiceError as e:
            response["message"] = "Video approved but publishing to YouTube failed"
            response["publishError"] = {"type": "publish_failed", "message": e.message}
        else:
            response["message"] = "Video approved and published to YouTube"
        return response

    # Reject

    def reject(self, video: Video, actor, reason) -> Video:
        if not actor.is_creator:
            raise AuthorizationError()

        reason = reason.strip() if isinstance(reason, str) else ""
        if not reason:
            raise ValidationError("Rejection reason is required")
        if len(reason) > REJECTION_REASON_MAX:
            raise ValidationError(
                f"Rejection reason cannot exceed {REJECTION_REASON_MAX} characters"
            )
        if video.status != VideoStatus.PENDING:
            raise ConflictError("Video is not pending approval")

        if not self._transition(
            video,
            VideoStatus.PENDING,
            status=VideoStatus.REJECTED,
            rejected_by=actor.user_id,
            rejected_at=datetime.utcnow(),
            rejection_reason=reason,
        ):
            raise ConflictError("Video is not pending approval")

        logger.info("video_rejected", video_id=video.id, user_id=actor.user_id)
        self.notifier.notify_video_rejected(video)
        return video

    # Delete

    def _delete_media(self, public_id: str | None, resource_type: str, video_id: int) -> None:
        if not public_id:
            return
        try:
            self.media_store.delete(public_id, resource_type=resource_type)
        except ExternalServiceError as e:
            logger.warning(
                "video_media_delete_failed",
                video_id=video_id,
                public_id=public_id,
                resource_type=resource_type,
                error=e.message,
            )

    def delete(self, video: Video, actor) -> None:
        if not can_delete_video(video, actor):
            raise AuthorizationError()

        video_id = video.id
        self._delete_media(video.cloudinary_video_id, "video", video_id)
        self._delete_media(video.cloudinary_thumbnail_id, "image", video_id)

        db.session.delete(video)
        db.session.commit()
        logger.info("video_deleted", video_id=video_id, user_id=actor.user_id)
