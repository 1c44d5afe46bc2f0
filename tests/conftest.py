import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from config.settings import TestingConfig
from videoflow import create_app
from videoflow.integrations import CloudinaryClient, YouTubeClient
from videoflow.mailer import Mailer
from videoflow.membership import add_member, create_team_for_creator
from videoflow.models import Role, User, Video, VideoStatus, db
from videoflow.security import issue_token
from videoflow.services import Services, get_services

UPLOAD_SESSION_URL = "https://upload.youtube.test/session/1"
MEDIA_URL = "https://res.cloudinary.com/demo-cloud/video/upload/videoflow/videos/clip.mp4"


class FakeRemote:
    """Scripted Google + Cloudinary endpoints behind an ``httpx.MockTransport``."""

    def __init__(self):
        self.requests = []
        self.fail_upload = False
        self.fail_delete = False
        self.channel_items = [
            {
                "id": "UC123",
                "snippet": {
                    "title": "Demo Channel",
                    "description": "Videos",
                    "thumbnails": {"default": {"url": "https://img.test/c.jpg"}},
                },
                "statistics": {
                    "subscriberCount": "10",
                    "videoCount": "2",
                    "viewCount": "100",
                },
            }
        ]

    def paths(self, method=None):
        return [
            (r.method, r.url.host + r.url.path)
            for r in self.requests
            if method is None or r.method == method
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if host == "oauth2.googleapis.com":
            body = request.content.decode()
            if "grant_type=refresh_token" in body:
                return httpx.Response(
                    200, json={"access_token": "refreshed-access", "expires_in": 3600}
                )
            return httpx.Response(
                200,
                json={
                    "access_token": "access-1",
                    "refresh_token": "refresh-1",
                    "expires_in": 3600,
                },
            )

        if host == "www.googleapis.com" and path == "/youtube/v3/channels":
            return httpx.Response(200, json={"items": self.channel_items})
        if host == "www.googleapis.com" and path == "/upload/youtube/v3/videos":
            return httpx.Response(200, headers={"location": UPLOAD_SESSION_URL})
        if host == "www.googleapis.com" and path.endswith("/thumbnails/set"):
            return httpx.Response(200, json={})
        if host == "upload.youtube.test":
            if self.fail_upload:
                return httpx.Response(500, json={"error": "backend"})
            return httpx.Response(200, json={"id": "yt-abc"})

        if host == "res.cloudinary.com":
            return httpx.Response(
                200, content=b"video-bytes", headers={"content-type": "video/mp4"}
            )

        if host == "api.cloudinary.com":
            if path.endswith("/destroy"):
                if self.fail_delete:
                    return httpx.Response(500, json={"error": {"message": "boom"}})
                return httpx.Response(200, json={"result": "ok"})
            if path.endswith("/upload"):
                return httpx.Response(
                    200,
                    json={
                        "public_id": "videoflow/videos/clip",
                        "secure_url": MEDIA_URL,
                        "width": 1920,
                        "height": 1080,
                        "format": "mp4",
                        "bytes": 1024,
                        "duration": 12.5,
                    },
                )
            if "/resources/video/upload/" in path:
                return httpx.Response(
                    200,
                    json={
                        "public_id": path.split("/resources/video/upload/", 1)[1],
                        "secure_url": MEDIA_URL,
                        "duration": 12.5,
                        "format": "mp4",
                        "bytes": 1024,
                        "width": 1920,
                        "height": 1080,
                        "created_at": "2024-01-01T00:00:00Z",
                    },
                )

        return httpx.Response(404, content=json.dumps({"error": "unexpected"}))


@pytest.fixture()
def remote():
    return FakeRemote()


@pytest.fixture()
def mailer():
    return MagicMock(spec=Mailer)


@pytest.fixture()
def app(remote, mailer):
    transport = httpx.MockTransport(remote)
    services = Services(
        mailer=mailer,
        youtube=YouTubeClient(transport=transport),
        media=CloudinaryClient(transport=transport),
    )
    flask_app = create_app(TestingConfig, services=services)
    with flask_app.app_context():
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
    services.close()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth(client):
    """Cookie login helper bound to the test client."""

    class AuthActions:
        def login(self, account):
            return client.post(
                "/api/auth/login",
                json={"email": account.email, "password": account.password},
            )

        def logout(self):
            return client.post("/api/auth/logout")

    return AuthActions()


@pytest.fixture()
def services(app):
    with app.app_context():
        return get_services()


@pytest.fixture()
def make_user(app):
    """Build a user; creators get their own team unless ``team_id`` is given."""
    counter = {"n": 0}

    def _make(
        name=None,
        email=None,
        role=Role.EDITOR,
        team_id=None,
        password="password123",
        own_team=True,
    ):
        counter["n"] += 1
        n = counter["n"]
        with app.app_context():
            user = User(
                name=name or f"User {n}",
                email=email or f"user{n}@example.com",
                role=role,
            )
            user.set_password(password)
            db.session.add(user)
            db.session.flush()
            if team_id is not None:
                user.team_id = team_id
                add_member(team_id, user.id, role)
            elif role == Role.CREATOR and own_team:
                create_team_for_creator(user)
            db.session.commit()
            return SimpleNamespace(
                id=user.id,
                team_id=user.team_id,
                email=user.email,
                name=user.name,
                password=password,
            )

    return _make


@pytest.fixture()
def creator(make_user):
    return make_user(name="Casey Creator", email="creator@example.com", role=Role.CREATOR)


@pytest.fixture()
def editor(make_user, creator):
    return make_user(
        name="Eddie Editor",
        email="editor@example.com",
        role=Role.EDITOR,
        team_id=creator.team_id,
    )


@pytest.fixture()
def manager(make_user, creator):
    return make_user(
        name="Morgan Manager",
        email="manager@example.com",
        role=Role.MANAGER,
        team_id=creator.team_id,
    )


@pytest.fixture()
def outsider(make_user):
    """A creator of a different team."""
    return make_user(name="Olly Outsider", email="outsider@example.com", role=Role.CREATOR)


@pytest.fixture()
def auth_headers(app):
    def _headers(account):
        with app.app_context():
            user = db.session.get(User, account.id)
            return {"Authorization": f"Bearer {issue_token(user)}"}

    return _headers


@pytest.fixture()
def token_for(app):
    def _token(account):
        with app.app_context():
            return issue_token(db.session.get(User, account.id))

    return _token


@pytest.fixture()
def make_video(app):
    def _make(uploader, status=VideoStatus.PENDING, title="Launch trailer", **overrides):
        with app.app_context():
            fields = {
                "title": title,
                "description": "First cut",
                "tags": ["launch"],
                "cloudinary_video_id": "videoflow/videos/clip",
                "cloudinary_video_url": MEDIA_URL,
                "file_size": 1024,
                "duration": 12.5,
                "uploaded_by": uploader.id,
                "team_id": uploader.team_id,
                "status": status,
            }
            fields.update(overrides)
            video = Video(**fields)
            db.session.add(video)
            db.session.commit()
            return video.id

    return _make


@pytest.fixture()
def connect_youtube(app):
    """Store YouTube tokens on a creator, as the OAuth callback would."""

    def _connect(account, expires_at=None):
        from datetime import datetime, timedelta

        from videoflow.integrations import YouTubeTokens

        with app.app_context():
            user = db.session.get(User, account.id)
            user.set_youtube_tokens(
                YouTubeTokens(
                    "access-0",
                    "refresh-0",
                    expires_at or datetime.utcnow() + timedelta(hours=1),
                )
            )
            user.youtube_channel_id = "UC123"
            user.youtube_channel_name = "Demo Channel"
            db.session.commit()

    return _connect


@pytest.fixture()
def socket_client(app, services, token_for):
    clients = []

    def _connect(account=None, token=None):
        auth = {"token": token or token_for(account)} if (account or token) else None
        sio = services.realtime.socketio.test_client(app, auth=auth)
        clients.append(sio)
        return sio

    yield _connect
    for sio in clients:
        if sio.is_connected():
            sio.disconnect()
