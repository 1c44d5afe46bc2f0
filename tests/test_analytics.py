"""Tests for team analytics."""
from datetime import datetime, timedelta

from videoflow.models import Role, VideoStatus


class TestAnalytics:
    """Test the /api/analytics summary."""

    def test_counts_by_status(
        self, client, creator, editor, outsider, make_video, auth_headers
    ):
        """Should count every status of the caller's team only."""
        make_video(editor, status=VideoStatus.PENDING)
        make_video(editor, status=VideoStatus.PENDING)
        make_video(editor, status=VideoStatus.REJECTED)
        make_video(
            editor,
            status=VideoStatus.PUBLISHED,
            youtube_id="yt-1",
            youtube_url="https://www.youtube.com/watch?v=yt-1",
            published_at=datetime.utcnow(),
        )
        make_video(outsider, status=VideoStatus.PUBLISHED)

        resp = client.get("/api/analytics", headers=auth_headers(creator))
        assert resp.status_code == 200
        analytics = resp.get_json()["analytics"]
        assert analytics["totalVideos"] == 4
        assert analytics["publishedVideos"] == 1
        assert analytics["videosByStatus"] == {
            "uploading": 0,
            "pending": 2,
            "approved": 0,
            "rejected": 1,
            "published": 1,
        }

    def test_top_videos_newest_first(
        self, client, creator, editor, make_video, auth_headers
    ):
        """Should list at most five published videos by publish date."""
        now = datetime.utcnow()
        ids = [
            make_video(
                editor,
                status=VideoStatus.PUBLISHED,
                title=f"Episode {i}",
                youtube_url=f"https://www.youtube.com/watch?v=ep{i}",
                published_at=now - timedelta(days=i),
            )
            for i in range(6)
        ]

        top = client.get("/api/analytics", headers=auth_headers(creator)).get_json()[
            "analytics"
        ]["topVideos"]
        assert [v["id"] for v in top] == ids[:5]
        assert top[0]["title"] == "Episode 0"
        assert top[0]["youtubeUrl"] == "https://www.youtube.com/watch?v=ep0"

    def test_recent_activity(self, client, creator, editor, make_video, auth_headers):
        """Should describe the latest changes with an activity type."""
        now = datetime.utcnow()
        make_video(editor, title="Old", updated_at=now - timedelta(hours=3))
        make_video(
            editor,
            status=VideoStatus.APPROVED,
            title="Cut",
            updated_at=now - timedelta(hours=2),
        )
        make_video(
            editor,
            status=VideoStatus.REJECTED,
            title="Rough",
            updated_at=now - timedelta(hours=1),
        )

        activity = client.get("/api/analytics", headers=auth_headers(creator)).get_json()[
            "analytics"
        ]["recentActivity"]
        assert [a["type"] for a in activity] == ["rejection", "approval", "upload"]
        assert activity[0]["message"] == 'Video "Rough" was rejected'
        assert activity[0]["user"]["id"] == editor.id

    def test_requires_team(self, client, make_user, auth_headers):
        """Should refuse callers without a team."""
        loner = make_user(role=Role.EDITOR)
        resp = client.get("/api/analytics", headers=auth_headers(loner))
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "User not part of any team"
