"""
Cloudinary media endpoints.

Mounts served by this module:

- POST   /cloudinary/upload                 multipart ``file`` + ``resourceType``
- POST   /cloudinary/signature              signed params for direct browser uploads
- DELETE /cloudinary/<public_id>            ?resourceType=image|video
- GET    /cloudinary/<public_id>/info       stored video metadata

Public ids include their folder (``videoflow/videos/abc``), hence the path
converters.
"""
import os

import structlog
from flask import current_app, jsonify, request
from flask_login import current_user, login_required
from werkzeug.utils import secure_filename

from videoflow.api import api_bp
from videoflow.api._helpers import json_body
from videoflow.errors import ValidationError
from videoflow.integrations.cloudinary import RESOURCE_TYPES
from videoflow.services import get_services

logger = structlog.get_logger(__name__)


def _resource_type(value) -> str:
    resource_type = value or "video"
    if resource_type not in RESOURCE_TYPES:
        raise ValidationError("Resource type must be video or image")
    return resource_type


def _allowed_extensions(resource_type: str) -> set:
    key = "ALLOWED_VIDEO_EXTENSIONS" if resource_type == "video" else "ALLOWED_IMAGE_EXTENSIONS"
    return set(current_app.config.get(key) or ())


@api_bp.route("/cloudinary/upload", methods=["POST"])
@login_required
def cloudinary_upload():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded")

    resource_type = _resource_type(request.form.get("resourceType"))
    filename = secure_filename(upload.filename) or f"upload.{resource_type}"
    ext = os.path.splitext(filename)[1].lower().lstrip(".")
    allowed = _allowed_extensions(resource_type)
    if ext not in allowed:
        raise ValidationError(
            f"Invalid file type. Allowed types for {resource_type}: "
            + ", ".join(f".{e}" for e in sorted(allowed))
        )

    data = get_services().media.upload(upload.stream, filename, resource_type=resource_type)
    logger.info(
        "media_uploaded",
        user_id=current_user.id,
        public_id=data["publicId"],
        resource_type=resource_type,
    )
    return jsonify({"success": True, "data": data})


@api_bp.route("/cloudinary/signature", methods=["POST"])
@login_required
def cloudinary_signature():
    resource_type = _resource_type(json_body().get("resourceType"))
    return jsonify(get_services().media.upload_signature(resource_type))


@api_bp.route("/cloudinary/<path:public_id>", methods=["DELETE"])
@login_required
def cloudinary_delete(public_id):
    resource_type = _resource_type(request.args.get("resourceType") or "image")
    result = get_services().media.delete(public_id, resource_type=resource_type)
    return jsonify({"success": True, "result": result})


@api_bp.route("/cloudinary/<path:public_id>/info", methods=["GET"])
@login_required
def cloudinary_info(public_id):
    return jsonify({"success": True, "data": get_services().media.get_video_info(public_id)})
