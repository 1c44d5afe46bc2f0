"""HTTP clients for the third-party services VideoFlow talks to."""

from videoflow.integrations.cloudinary import CloudinaryClient
from videoflow.integrations.youtube import YouTubeClient, YouTubeTokens

__all__ = ["CloudinaryClient", "YouTubeClient", "YouTubeTokens"]
