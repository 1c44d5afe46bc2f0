"""
Tests for external integrations (YouTube, Cloudinary).

Covers API client functionality and error handling over httpx.MockTransport.
"""
import hashlib
import io
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from videoflow.errors import ExternalServiceError, ValidationError
from videoflow.integrations import CloudinaryClient, YouTubeClient, YouTubeTokens
from videoflow.integrations import youtube as youtube_module
from videoflow.integrations.cloudinary import sign_params
from videoflow.models import Privacy, User, db

from conftest import MEDIA_URL, FakeRemote


def _youtube(remote=None):
    client = YouTubeClient(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://localhost:3000/youtube/callback",
        transport=httpx.MockTransport(remote or FakeRemote()),
    )
    client.open()
    return client


def _cloudinary(remote=None):
    client = CloudinaryClient(
        cloud_name="demo-cloud",
        api_key="key",
        api_secret="secret",
        transport=httpx.MockTransport(remote or FakeRemote()),
    )
    client.open()
    return client


class TestYouTubeClient:
    """Test the YouTube Data API client."""

    def test_auth_url_requests_offline_access(self):
        """Should build a consent URL with offline access and upload scope."""
        url = _youtube().get_auth_url(state="xyz")
        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["cid"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["state"] == ["xyz"]
        assert "https://www.googleapis.com/auth/youtube.upload" in query["scope"][0]

    def test_auth_url_requires_configuration(self):
        """Should refuse to build a URL without OAuth credentials."""
        with pytest.raises(ExternalServiceError):
            YouTubeClient().get_auth_url()

    def test_exchange_code(self):
        """Should return both tokens and an expiry."""
        tokens = _youtube().exchange_code("auth-code")
        assert tokens.access_token == "access-1"
        assert tokens.refresh_token == "refresh-1"
        assert tokens.expires_at > datetime.utcnow()

    def test_exchange_code_without_refresh_token(self):
        """Should fail when Google omits the refresh token."""

        def handler(request):
            return httpx.Response(200, json={"access_token": "only-access"})

        client = YouTubeClient("cid", "cs", "http://cb", transport=httpx.MockTransport(handler))
        client.open()
        with pytest.raises(ExternalServiceError, match="Failed to get tokens from YouTube"):
            client.exchange_code("code")

    def test_ensure_fresh_keeps_valid_tokens(self):
        """Should not refresh tokens that are still valid."""
        remote = FakeRemote()
        tokens = YouTubeTokens("a", "r", datetime.utcnow() + timedelta(hours=1))
        result, refreshed = _youtube(remote).ensure_fresh(tokens)
        assert result is tokens
        assert refreshed is False
        assert remote.requests == []

    def test_ensure_fresh_refreshes_near_expiry(self):
        """Should refresh inside the expiry margin and keep the refresh token."""
        tokens = YouTubeTokens("a", "r", datetime.utcnow() + timedelta(seconds=30))
        result, refreshed = _youtube().ensure_fresh(tokens)
        assert refreshed is True
        assert result.access_token == "refreshed-access"
        assert result.refresh_token == "r"

    def test_channel_info(self):
        """Should map the channel resource."""
        info = _youtube().get_channel_info("token")
        assert info == {
            "id": "UC123",
            "title": "Demo Channel",
            "description": "Videos",
            "thumbnail": "https://img.test/c.jpg",
            "subscriberCount": "10",
            "videoCount": "2",
            "viewCount": "100",
        }

    def test_channel_info_without_channel(self):
        """Should fail when the account has no channel."""
        remote = FakeRemote()
        remote.channel_items = []
        with pytest.raises(ExternalServiceError, match="No YouTube channel found"):
            _youtube(remote).get_channel_info("token")

    def test_http_errors_become_external_service_errors(self):
        """Should wrap transport failures."""

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = YouTubeClient("cid", "cs", "http://cb", transport=httpx.MockTransport(handler))
        client.open()
        with pytest.raises(ExternalServiceError) as exc:
            client.get_channel_info("token")
        assert exc.value.service == "youtube"

    def test_upload_streams_media_through_spool(self):
        """Should relay the media in chunks with an explicit length."""
        remote = FakeRemote()
        video = SimpleNamespace(
            id=1,
            title="Launch",
            description="Cut",
            tags=["launch"],
            category="22",
            privacy=Privacy.UNLISTED,
            cloudinary_video_url=MEDIA_URL,
            cloudinary_thumbnail_url=None,
            thumbnail=None,
        )
        with patch.object(youtube_module, "TRANSFER_CHUNK_SIZE", 4), patch.object(
            youtube_module, "SPOOL_MAX_SIZE", 8
        ):
            result = _youtube(remote).upload_video("token", video)

        assert result == {
            "id": "yt-abc",
            "url": "https://www.youtube.com/watch?v=yt-abc",
        }
        session, put = remote.requests[1], remote.requests[2]
        assert session.headers["X-Upload-Content-Length"] == str(len(b"video-bytes"))
        assert put.method == "PUT"
        assert put.headers["Content-Length"] == str(len(b"video-bytes"))
        assert put.content == b"video-bytes"

    def test_upload_fails_when_media_missing(self):
        """Should raise a service error when the stored media cannot be fetched."""
        video = SimpleNamespace(
            id=1, cloudinary_video_url="https://missing.test/clip.mp4"
        )
        with pytest.raises(ExternalServiceError, match="Could not fetch video media"):
            _youtube().upload_video("token", video)

    def test_closed_client_raises(self):
        """Should refuse requests before open or after close."""
        client = _youtube()
        client.close()
        with pytest.raises(ExternalServiceError):
            client.get_channel_info("token")


class TestCloudinaryClient:
    """Test the Cloudinary REST client."""

    def test_sign_params_matches_reference(self):
        """Should sign sorted params, skipping file and api_key."""
        params = {"timestamp": 1315060510, "public_id": "sample", "api_key": "k", "file": "x"}
        expected = hashlib.sha1(
            b"public_id=sample&timestamp=1315060510abcd"
        ).hexdigest()
        assert sign_params(params, "abcd") == expected

    def test_upload_signature(self):
        """Should sign the folder and timestamp for direct uploads."""
        sig = _cloudinary().upload_signature("image")
        assert sig["folder"] == "videoflow/images"
        assert sig["cloudName"] == "demo-cloud"
        assert sig["signature"] == sign_params(
            {"timestamp": sig["timestamp"], "folder": sig["folder"]}, "secret"
        )

    def test_upload_signature_rejects_unknown_type(self):
        """Should only sign video or image uploads."""
        with pytest.raises(ValidationError):
            _cloudinary().upload_signature("raw")

    def test_upload_maps_result(self):
        """Should post a signed upload and map the response."""
        remote = FakeRemote()
        data = _cloudinary(remote).upload(b"bytes", "clip.mp4", resource_type="video")
        assert data["publicId"] == "videoflow/videos/clip"
        assert data["duration"] == 12.5
        request = remote.requests[0]
        assert request.url.path == "/v1_1/demo-cloud/video/upload"
        assert b'name="signature"' in request.content

    def test_delete_failure(self):
        """Should raise a service error when destroy fails."""
        remote = FakeRemote()
        remote.fail_delete = True
        with pytest.raises(ExternalServiceError, match="Failed to delete resource"):
            _cloudinary(remote).delete("videoflow/images/x")

    def test_optimized_url(self):
        """Should build a delivery URL with transformations."""
        url = _cloudinary().optimized_url("videoflow/images/x", width=320)
        assert url == (
            "https://res.cloudinary.com/demo-cloud/image/upload/"
            "w_320,q_auto,f_auto/videoflow/images/x"
        )


class TestMediaEndpoints:
    """Test the /api/cloudinary routes."""

    def test_upload_file(self, client, editor, auth_headers):
        """Should upload an allowed file type."""
        resp = client.post(
            "/api/cloudinary/upload",
            headers=auth_headers(editor),
            data={
                "file": (io.BytesIO(b"data"), "clip.mp4"),
                "resourceType": "video",
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True
        assert resp.get_json()["data"]["publicId"] == "videoflow/videos/clip"

    def test_upload_rejects_wrong_extension(self, client, editor, auth_headers):
        """Should reject a file type not allowed for the resource type."""
        resp = client.post(
            "/api/cloudinary/upload",
            headers=auth_headers(editor),
            data={"file": (io.BytesIO(b"data"), "notes.txt"), "resourceType": "image"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"].startswith(
            "Invalid file type. Allowed types for image:"
        )

    def test_upload_without_file(self, client, editor, auth_headers):
        """Should require a file."""
        resp = client.post(
            "/api/cloudinary/upload",
            headers=auth_headers(editor),
            data={},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "No file uploaded"

    def test_delete_and_info_accept_folder_ids(self, client, editor, auth_headers, remote):
        """Should accept public ids containing slashes."""
        headers = auth_headers(editor)
        resp = client.delete(
            "/api/cloudinary/videoflow/videos/clip?resourceType=video", headers=headers
        )
        assert resp.get_json() == {"success": True, "result": {"result": "ok"}}

        resp = client.get("/api/cloudinary/videoflow/videos/clip/info", headers=headers)
        assert resp.get_json()["data"]["publicId"] == "videoflow/videos/clip"

    def test_signature_endpoint(self, client, editor, auth_headers):
        """Should return signed params for the browser."""
        resp = client.post(
            "/api/cloudinary/signature",
            headers=auth_headers(editor),
            json={"resourceType": "video"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["folder"] == "videoflow/videos"


class TestYouTubeEndpoints:
    """Test the /api/youtube routes."""

    def test_creator_only(self, client, editor, auth_headers):
        """Should refuse non-creators."""
        resp = client.get("/api/youtube/status", headers=auth_headers(editor))
        assert resp.status_code == 403

    def test_connect_flow(self, app, client, creator, auth_headers):
        """Should exchange the code and store the connection."""
        headers = auth_headers(creator)
        auth_url = client.get("/api/youtube/auth-url", headers=headers).get_json()["authUrl"]
        assert "client_id=yt-client-id" in auth_url

        resp = client.post("/api/youtube/callback", headers=headers, json={"code": "abc"})
        assert resp.status_code == 200
        assert resp.get_json()["channel"]["id"] == "UC123"

        status = client.get("/api/youtube/status", headers=headers).get_json()
        assert status == {
            "connected": True,
            "channelId": "UC123",
            "channelName": "Demo Channel",
        }
        with app.app_context():
            user = db.session.get(User, creator.id)
            assert user.youtube_refresh_token == "refresh-1"

    def test_callback_requires_code(self, client, creator, auth_headers):
        """Should require an authorization code."""
        resp = client.post("/api/youtube/callback", headers=auth_headers(creator), json={})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Authorization code is required"

    def test_channel_requires_connection(self, client, creator, auth_headers):
        """Should report a missing connection."""
        resp = client.get("/api/youtube/channel", headers=auth_headers(creator))
        assert resp.status_code == 400

    def test_disconnect(self, app, client, creator, auth_headers, connect_youtube):
        """Should clear stored tokens."""
        connect_youtube(creator)
        resp = client.delete("/api/youtube/disconnect", headers=auth_headers(creator))
        assert resp.status_code == 200
        with app.app_context():
            user = db.session.get(User, creator.id)
            assert user.youtube_access_token is None
            assert user.youtube_channel_id is None

    def test_refresh_channel(self, client, creator, auth_headers, connect_youtube):
        """Should return live channel info for a connected creator."""
        connect_youtube(creator)
        resp = client.post("/api/youtube/refresh-channel", headers=auth_headers(creator))
        assert resp.status_code == 200
        assert resp.get_json()["channel"]["title"] == "Demo Channel"
