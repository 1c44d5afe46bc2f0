"""Team analytics derived from video rows (no YouTube Analytics API calls)."""

from flask import jsonify
from flask_login import login_required
from sqlalchemy import func, select

from videoflow.api import api_bp
from videoflow.models import Video, VideoStatus, _iso, db
from videoflow.permissions import current_effective_role, require_team

ACTIVITY_TYPES = {
    VideoStatus.PUBLISHED: "publish",
    VideoStatus.APPROVED: "approval",
    VideoStatus.REJECTED: "rejection",
}


def _activity(video: Video) -> dict:
    return {
        "id": video.id,
        "type": ACTIVITY_TYPES.get(video.status, "upload"),
        "message": f'Video "{video.title}" was {video.status.value}',
        "timestamp": _iso(video.updated_at or video.created_at),
        "user": video.uploader.to_summary() if video.uploader else None,
    }


@api_bp.route("/analytics", methods=["GET"])
@login_required
@require_team
def get_analytics():
    team_id = current_effective_role().team_id

    counts = dict(
        db.session.execute(
            select(Video.status, func.count(Video.id))
            .where(Video.team_id == team_id)
            .group_by(Video.status)
        ).all()
    )
    by_status = {status.value: counts.get(status, 0) for status in VideoStatus}

    top_videos = db.session.execute(
        select(Video)
        .where(Video.team_id == team_id, Video.status == VideoStatus.PUBLISHED)
        .order_by(Video.published_at.desc(), Video.id.desc())
        .limit(5)
    ).scalars()
    recent = db.session.execute(
        select(Video)
        .where(Video.team_id == team_id)
        .order_by(Video.updated_at.desc(), Video.id.desc())
        .limit(10)
    ).scalars()

    return jsonify(
        {
            "analytics": {
                "totalVideos": sum(by_status.values()),
                "videosByStatus": by_status,
                "publishedVideos": by_status[VideoStatus.PUBLISHED.value],
                "topVideos": [
                    {
                        "id": v.id,
                        "title": v.title,
                        "youtubeUrl": v.youtube_url,
                        "publishedAt": _iso(v.published_at or v.approved_at),
                    }
                    for v in top_videos
                ],
                "recentActivity": [_activity(v) for v in recent],
            }
        }
    )
