"""
YouTube Data API client: OAuth consent, token exchange/refresh, channel info,
and resumable uploads.

Uses an ``httpx.Client`` owned by the instance; ``init_app`` opens it from app
config and ``close`` releases it. Any HTTP failure is raised as
``ExternalServiceError(service="youtube")``.
"""
from __future__ import annotations

import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, BinaryIO, Iterator
from urllib.parse import urlencode

import httpx
import structlog

from videoflow.errors import ExternalServiceError

logger = structlog.get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
YOUTUBE_UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
YOUTUBE_THUMBNAIL_URL = "https://www.googleapis.com/upload/youtube/v3/thumbnails/set"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/youtube.upload",
    "https://www.googleapis.com/auth/youtube",
]

# Media is relayed in chunks; small files stay in memory, larger ones spill to disk
TRANSFER_CHUNK_SIZE = 1024 * 1024
SPOOL_MAX_SIZE = 8 * 1024 * 1024

# Refresh a little before Google says the token expires
EXPIRY_MARGIN = timedelta(seconds=60)


@dataclass
class YouTubeTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at - EXPIRY_MARGIN

    @classmethod
    def from_user(cls, user) -> YouTubeTokens:
        return cls(
            access_token=user.youtube_access_token,
            refresh_token=user.youtube_refresh_token,
            expires_at=user.youtube_token_expires_at,
        )


def _expiry(payload: dict) -> datetime:
    return datetime.utcnow() + timedelta(seconds=int(payload.get("expires_in", 3600)))


def _read_chunks(media: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = media.read(TRANSFER_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def watch_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL.format(video_id=video_id)


class YouTubeClient:
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        timeout: float = 30.0,
        upload_timeout: float = 600.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self._transport = transport
        self._http: httpx.Client | None = None

    def init_app(self, app) -> None:
        cfg = app.config
        self.client_id = cfg.get("YOUTUBE_CLIENT_ID") or self.client_id
        self.client_secret = cfg.get("YOUTUBE_CLIENT_SECRET") or self.client_secret
        self.redirect_uri = cfg.get("YOUTUBE_REDIRECT_URI") or self.redirect_uri
        self.timeout = float(cfg.get("YOUTUBE_TIMEOUT", self.timeout))
        self.upload_timeout = float(cfg.get("YOUTUBE_UPLOAD_TIMEOUT", self.upload_timeout))
        self.open()

    def open(self) -> None:
        if self._http is None:
            self._http = httpx.Client(timeout=self.timeout, transport=self._transport)

    def close(self) -> None:
        if self._http is not None:
            self._http.close()
            self._http = None

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            raise ExternalServiceError("YouTube client is not initialized", service="youtube")
        return self._http

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self.http.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            logger.warning(
                "youtube_request_failed",
                url=url,
                status=e.response.status_code,
                body=e.response.text[:500],
            )
            raise ExternalServiceError(
                f"YouTube API error ({e.response.status_code})", service="youtube"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("youtube_request_failed", url=url, error=str(e))
            raise ExternalServiceError("YouTube API request failed", service="youtube") from e

    # OAuth

    def get_auth_url(self, state: str | None = None) -> str:
        """Consent screen URL requesting offline access to the channel."""
        if not self.is_configured():
            raise ExternalServiceError("YouTube OAuth is not configured", service="youtube")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> YouTubeTokens:
        resp = self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        payload = resp.json()
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not access_token or not refresh_token:
            raise ExternalServiceError(
                "Failed to get tokens from YouTube", service="youtube"
            )
        return YouTubeTokens(access_token, refresh_token, _expiry(payload))

    def refresh_tokens(self, refresh_token: str) -> YouTubeTokens:
        """Trade a refresh token for a new access token.

        Google usually omits ``refresh_token`` here, so the old one is kept.
        """
        resp = self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        payload = resp.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise ExternalServiceError("Failed to refresh YouTube token", service="youtube")
        return YouTubeTokens(
            access_token, payload.get("refresh_token") or refresh_token, _expiry(payload)
        )

    def ensure_fresh(self, tokens: YouTubeTokens) -> tuple[YouTubeTokens, bool]:
        """Return usable tokens and whether they had to be refreshed."""
        if not tokens.is_expired():
            return tokens, False
        return self.refresh_tokens(tokens.refresh_token), True

    # Channel

    def get_channel_info(self, access_token: str) -> dict[str, Any]:
        resp = self._request(
            "GET",
            f"{YOUTUBE_API_BASE}/channels",
            params={"part": "snippet,statistics", "mine": "true"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        items = resp.json().get("items") or []
        if not items:
            raise ExternalServiceError("No YouTube channel found", service="youtube")
        channel = items[0]
        snippet = channel.get("snippet", {})
        stats = channel.get("statistics", {})
        thumbnails = snippet.get("thumbnails", {})
        thumb = (thumbnails.get("high") or thumbnails.get("default") or {}).get("url")
        return {
            "id": channel.get("id"),
            "title": snippet.get("title"),
            "description": snippet.get("description"),
            "thumbnail": thumb,
            "subscriberCount": stats.get("subscriberCount"),
            "videoCount": stats.get("videoCount"),
            "viewCount": stats.get("viewCount"),
        }

    # Upload

    def _download(self, url: str, sink: BinaryIO) -> tuple[int, str]:
        """Stream ``url`` into ``sink``; returns (size in bytes, content type)."""
        try:
            with self.http.stream(
                "GET", url, timeout=self.upload_timeout, follow_redirects=True
            ) as resp:
                resp.raise_for_status()
                content_type = resp.headers.get("content-type", "video/*")
                for chunk in resp.iter_bytes(TRANSFER_CHUNK_SIZE):
                    sink.write(chunk)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "youtube_media_download_failed", url=url, status=e.response.status_code
            )
            raise ExternalServiceError(
                f"Could not fetch video media ({e.response.status_code})",
                service="youtube",
            ) from e
        except httpx.HTTPError as e:
            logger.warning("youtube_media_download_failed", url=url, error=str(e))
            raise ExternalServiceError(
                "Could not fetch video media", service="youtube"
            ) from e
        size = sink.tell()
        sink.seek(0)
        return size, content_type

    def upload_video(self, access_token: str, video) -> dict[str, str]:
        """Fetch the stored media for ``video`` and publish it to the channel.

        Returns:
            dict with keys: id, url
        """
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as media:
            size, content_type = self._download(video.cloudinary_video_url, media)
            youtube_id = self._resumable_upload(
                access_token, video, media, size, content_type
            )

        thumbnail_url = video.cloudinary_thumbnail_url or video.thumbnail
        if thumbnail_url:
            self._set_thumbnail(
                {"Authorization": f"Bearer {access_token}"}, youtube_id, thumbnail_url
            )

        logger.info("youtube_video_uploaded", video_id=video.id, youtube_id=youtube_id)
        return {"id": youtube_id, "url": watch_url(youtube_id)}

    def _resumable_upload(
        self, access_token: str, video, media: BinaryIO, size: int, content_type: str
    ) -> str:
        auth = {"Authorization": f"Bearer {access_token}"}
        metadata = {
            "snippet": {
                "title": video.title,
                "description": video.description,
                "tags": video.tags or [],
                "categoryId": video.category or "22",
                "defaultLanguage": "en",
            },
            "status": {"privacyStatus": video.privacy.value},
        }

        session = self._request(
            "POST",
            YOUTUBE_UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            json=metadata,
            headers={
                **auth,
                "X-Upload-Content-Type": content_type,
                "X-Upload-Content-Length": str(size),
            },
        )
        location = session.headers.get("location")
        if not location:
            raise ExternalServiceError(
                "YouTube did not return an upload session", service="youtube"
            )

        resp = self._request(
            "PUT",
            location,
            content=_read_chunks(media),
            headers={
                **auth,
                "Content-Type": content_type,
                "Content-Length": str(size),
            },
            timeout=self.upload_timeout,
        )
        youtube_id = resp.json().get("id")
        if not youtube_id:
            raise ExternalServiceError("YouTube upload returned no video id", service="youtube")
        return youtube_id

    def _set_thumbnail(self, auth: dict, youtube_id: str, thumbnail_url: str) -> None:
        # The video is already live; a thumbnail failure only gets logged
        try:
            image = self._request("GET", thumbnail_url, follow_redirects=True)
            self._request(
                "POST",
                YOUTUBE_THUMBNAIL_URL,
                params={"videoId": youtube_id},
                content=image.content,
                headers={
                    **auth,
                    "Content-Type": image.headers.get("content-type", "image/jpeg"),
                },
            )
        except ExternalServiceError as e:
            logger.warning("youtube_thumbnail_failed", youtube_id=youtube_id, error=str(e))
