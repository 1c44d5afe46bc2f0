"""Health endpoints.

Mounts served by this module:

- GET /health and GET /api/health
    - Purpose: liveness check used by load balancers and orchestration
      to verify the API process is running.
    - Parameters: none

This module keeps a very small surface area so it can be imported safely by
infrastructure checks without pulling in heavy application code.
"""
import time
from datetime import datetime, timezone

from flask import jsonify

from videoflow.api import api_bp

_STARTED_AT = time.monotonic()


@api_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint.

    Returns status, the current UTC time, and process uptime in seconds.
    No auth required.
    """
    return jsonify(
        {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - _STARTED_AT, 3),
        }
    )
