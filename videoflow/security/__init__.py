"""Security helpers package (auth tokens).

Exposes helpers to issue and verify the signed token shared by the REST API
and the Socket.IO connection handshake.
"""

from .tokens import (
    TokenSettings,
    decode_token,
    extract_request_token,
    issue_token,
)

__all__ = [
    "TokenSettings",
    "decode_token",
    "extract_request_token",
    "issue_token",
]
