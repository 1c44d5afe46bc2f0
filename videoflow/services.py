"""
Explicit service container.

``create_app`` calls ``Services.init_app`` once; the process entry point calls
``close`` on shutdown. Route handlers reach the container through
``get_services()`` instead of module-level singletons.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from flask import current_app

from videoflow.integrations import CloudinaryClient, YouTubeClient
from videoflow.lifecycle import VideoLifecycle
from videoflow.mailer import Mailer
from videoflow.notifications import TeamNotifier
from videoflow.realtime import RealtimeHub

logger = structlog.get_logger(__name__)

EXTENSION_KEY = "videoflow.services"


@dataclass
class Services:
    mailer: Mailer = field(default_factory=Mailer)
    youtube: YouTubeClient = field(default_factory=YouTubeClient)
    media: CloudinaryClient = field(default_factory=CloudinaryClient)
    realtime: RealtimeHub = field(default_factory=RealtimeHub)
    notifier: TeamNotifier | None = None
    lifecycle: VideoLifecycle | None = None

    def __post_init__(self):
        if self.notifier is None:
            self.notifier = TeamNotifier(self.mailer)
        if self.lifecycle is None:
            self.lifecycle = VideoLifecycle(
                publisher=self.youtube, notifier=self.notifier, media_store=self.media
            )

    def init_app(self, app) -> None:
        self.mailer.init_app(app)
        self.notifier.init_app(app)
        self.youtube.init_app(app)
        self.media.init_app(app)
        self.realtime.init_app(app)
        app.extensions[EXTENSION_KEY] = self
        logger.debug("services_initialized")

    def close(self) -> None:
        # Reverse order of init_app
        for service in (
            self.realtime,
            self.media,
            self.youtube,
            self.notifier,
            self.mailer,
        ):
            service.close()
        logger.debug("services_closed")


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
