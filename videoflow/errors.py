"""
Application error taxonomy.

Services raise these; ``register_error_handlers`` turns any of them into a
JSON ``{"message": ...}`` response with the matching HTTP status.
"""


class VideoFlowError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"message": self.message}


class ValidationError(VideoFlowError):
    status_code = 400
    default_message = "Validation errors"

    def __init__(self, message: str | None = None, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class AuthenticationError(VideoFlowError):
    status_code = 401
    default_message = "Authorization token required"


class AuthorizationError(VideoFlowError):
    status_code = 403
    default_message = "Permission denied"


class NotFoundError(VideoFlowError):
    status_code = 404
    default_message = "Not found"


class ConflictError(VideoFlowError):
    """A state precondition failed (e.g. approving a video that is not pending)."""

    status_code = 400
    default_message = "Request conflicts with the current state"


class ExternalServiceError(VideoFlowError):
    """A call to YouTube, Cloudinary, or SMTP failed."""

    status_code = 500
    default_message = "External service request failed"

    def __init__(
        self,
        message: str | None = None,
        service: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, status_code)
        self.service = service


class YouTubeNotConnectedError(ExternalServiceError):
    status_code = 400
    default_message = "YouTube not connected for this team"

    def __init__(self, message: str | None = None):
        super().__init__(message, service="youtube")


class InternalError(VideoFlowError):
    status_code = 500
    default_message = "Internal server error"
