"""
Cloudinary REST client for VideoFlow media.

Talks to the upload and admin APIs directly over httpx. Upload calls are
signed with the account secret: SHA-1 over the sorted ``key=value`` pairs
joined by ``&`` with the secret appended.
"""
from __future__ import annotations

import hashlib
import time
from typing import Any

import httpx
import structlog

from videoflow.errors import ExternalServiceError, ValidationError

logger = structlog.get_logger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
CLOUDINARY_DELIVERY_BASE = "https://res.cloudinary.com"

DEFAULT_FOLDER = "videoflow"
RESOURCE_TYPES = ("video", "image")

# Never part of the string to sign
_UNSIGNED_PARAMS = {"file", "cloud_name", "resource_type", "api_key"}


def folder_for(resource_type: str) -> str:
    return f"{DEFAULT_FOLDER}/{resource_type}s"


def _param_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    to_sign = "&".join(
        f"{key}={_param_str(params[key])}"
        for key in sorted(params)
        if key not in _UNSIGNED_PARAMS and params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class CloudinaryClient:
    def __init__(
        self,
        cloud_name: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.Client | None = None

    def init_app(self, app) -> None:
        cfg = app.config
        self.cloud_name = cfg.get("CLOUDINARY_CLOUD_NAME") or self.cloud_name
        self.api_key = cfg.get("CLOUDINARY_API_KEY") or self.api_key
        self.api_secret = cfg.get("CLOUDINARY_API_SECRET") or self.api_secret
        self.timeout = float(cfg.get("CLOUDINARY_TIMEOUT", self.timeout))
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
            raise ExternalServiceError(
                "Cloudinary client is not initialized", service="cloudinary"
            )
        return self._http

    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _require_config(self) -> None:
        if not self.is_configured():
            raise ExternalServiceError("Cloudinary is not configured", service="cloudinary")

    def _request(self, method: str, url: str, failure: str, **kwargs) -> dict:
        try:
            resp = self.http.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "cloudinary_request_failed",
                url=url,
                status=e.response.status_code,
                body=e.response.text[:500],
            )
            raise ExternalServiceError(failure, service="cloudinary") from e
        except httpx.HTTPError as e:
            logger.warning("cloudinary_request_failed", url=url, error=str(e))
            raise ExternalServiceError(failure, service="cloudinary") from e

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params.setdefault("timestamp", int(time.time()))
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return {k: _param_str(v) for k, v in params.items()}

    def upload_signature(self, resource_type: str = "video") -> dict[str, Any]:
        """Parameters a browser needs for a signed direct upload."""
        self._require_config()
        if resource_type not in RESOURCE_TYPES:
            raise ValidationError("Resource type must be video or image")
        timestamp = int(time.time())
        folder = folder_for(resource_type)
        signature = sign_params(
            {"timestamp": timestamp, "folder": folder}, self.api_secret
        )
        return {
            "signature": signature,
            "timestamp": timestamp,
            "cloudName": self.cloud_name,
            "apiKey": self.api_key,
            "folder": folder,
        }

    def upload(
        self,
        file,
        filename: str,
        resource_type: str = "video",
        folder: str | None = None,
        public_id: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file object or bytes.

        Returns:
            dict with keys: publicId, url, width, height, format, bytes, duration
        """
        self._require_config()
        params = self._signed(
            {
                "folder": folder or folder_for(resource_type),
                "public_id": public_id,
                "use_filename": True,
                "unique_filename": True,
                "overwrite": False,
            }
        )
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/upload"
        result = self._request(
            "POST",
            url,
            f"Failed to upload {resource_type} to Cloudinary",
            data=params,
            files={"file": (filename, file)},
        )
        logger.info(
            "cloudinary_uploaded",
            public_id=result.get("public_id"),
            resource_type=resource_type,
            bytes=result.get("bytes"),
        )
        return {
            "publicId": result.get("public_id"),
            "url": result.get("secure_url"),
            "width": result.get("width"),
            "height": result.get("height"),
            "format": result.get("format"),
            "bytes": result.get("bytes"),
            "duration": result.get("duration"),
        }

    def delete(self, public_id: str, resource_type: str = "image") -> dict[str, Any]:
        self._require_config()
        params = self._signed({"public_id": public_id})
        url = f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/destroy"
        result = self._request(
            "POST", url, "Failed to delete resource from Cloudinary", data=params
        )
        logger.info(
            "cloudinary_deleted",
            public_id=public_id,
            resource_type=resource_type,
            result=result.get("result"),
        )
        return result

    def get_video_info(self, public_id: str) -> dict[str, Any]:
        self._require_config()
        url = (
            f"{CLOUDINARY_API_BASE}/{self.cloud_name}/resources/video/upload/{public_id}"
        )
        result = self._request(
            "GET",
            url,
            "Failed to get video information",
            auth=(self.api_key, self.api_secret),
        )
        return {
            "publicId": result.get("public_id"),
            "url": result.get("secure_url"),
            "duration": result.get("duration"),
            "format": result.get("format"),
            "bytes": result.get("bytes"),
            "width": result.get("width"),
            "height": result.get("height"),
            "createdAt": result.get("created_at"),
        }

    def transformation_url(
        self, public_id: str, transformations: list[str], resource_type: str = "image"
    ) -> str:
        parts = ",".join(t for t in transformations if t)
        segment = f"{parts}/" if parts else ""
        return (
            f"{CLOUDINARY_DELIVERY_BASE}/{self.cloud_name}/{resource_type}/upload/"
            f"{segment}{public_id}"
        )

    def optimized_url(
        self,
        public_id: str,
        width: int | None = None,
        height: int | None = None,
        quality: str = "auto",
        fmt: str = "auto",
        resource_type: str = "image",
    ) -> str:
        transformations = [
            f"w_{width}" if width else "",
            f"h_{height}" if height else "",
            f"q_{quality}",
            f"f_{fmt}",
        ]
        return self.transformation_url(public_id, transformations, resource_type)
