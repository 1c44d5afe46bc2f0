"""
Real-time comment fan-out over Socket.IO.

Connections authenticate with the same token as the REST API, join one room
per video they are watching, and receive comment and reaction changes made
through the REST endpoints. Room membership is tracked in a process-local
``RoomRegistry``; the database stays the source of truth.

Client events:
    join-video-room {videoId}
    leave-video-room {videoId}
    typing {videoId, isTyping}

Server events:
    comment-added, comment-updated, comment-deleted, reaction-updated,
    user-typing, error
"""
from __future__ import annotations

import threading

import structlog
from flask import current_app, request
from flask_socketio import ConnectionRefusedError, SocketIO, emit, join_room, leave_room

from videoflow.error_utils import safe_log_error
from videoflow.errors import AuthenticationError
from videoflow.models import User, Video, db
from videoflow.security import decode_token
from videoflow.structured_logging import bind_request_context

logger = structlog.get_logger(__name__)


def room_name(video_id) -> str:
    return f"video-{video_id}"


def _video_id(data) -> int | None:
    if not isinstance(data, dict):
        return None
    try:
        return int(data.get("videoId"))
    except (TypeError, ValueError):
        return None


class RoomRegistry:
    """Which socket connections sit in which video room: videoId -> {sid: userId}."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rooms: dict[int, dict[str, int]] = {}

    def join(self, video_id: int, sid: str, user_id: int) -> None:
        with self._lock:
            self._rooms.setdefault(video_id, {})[sid] = user_id

    def leave(self, video_id: int, sid: str) -> bool:
        with self._lock:
            members = self._rooms.get(video_id)
            if not members or sid not in members:
                return False
            del members[sid]
            if not members:
                del self._rooms[video_id]
            return True

    def leave_all(self, sid: str) -> list[int]:
        """Drop ``sid`` from every room; returns the video ids it left."""
        left = []
        with self._lock:
            for video_id in list(self._rooms):
                members = self._rooms[video_id]
                if members.pop(sid, None) is not None:
                    left.append(video_id)
                if not members:
                    del self._rooms[video_id]
        return left

    def members(self, video_id: int) -> dict[str, int]:
        with self._lock:
            return dict(self._rooms.get(video_id, {}))

    def rooms(self) -> list[int]:
        with self._lock:
            return list(self._rooms)

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()


class RealtimeHub:
    def __init__(self, registry: RoomRegistry | None = None):
        self.registry = registry or RoomRegistry()
        self.socketio: SocketIO | None = None
        self._connections: dict[str, dict] = {}
        self._conn_lock = threading.Lock()

    def init_app(self, app) -> None:
        cfg = app.config
        options = {
            "cors_allowed_origins": [cfg.get("FRONTEND_URL", "http://localhost:3000")],
            "async_mode": cfg.get("SOCKETIO_ASYNC_MODE") or "threading",
        }
        if cfg.get("SOCKETIO_MESSAGE_QUEUE"):
            options["message_queue"] = cfg["SOCKETIO_MESSAGE_QUEUE"]

        self.socketio = SocketIO(app, **options)
        self._register_handlers(self.socketio)
        logger.debug("realtime_initialized", async_mode=options["async_mode"])

    def close(self) -> None:
        self.registry.clear()
        with self._conn_lock:
            self._connections.clear()
        self.socketio = None

    def connection(self, sid: str) -> dict | None:
        with self._conn_lock:
            return self._connections.get(sid)

    # Socket event handlers

    def _register_handlers(self, socketio: SocketIO) -> None:
        socketio.on_event("connect", self.on_connect)
        socketio.on_event("disconnect", self.on_disconnect)
        socketio.on_event("join-video-room", self.on_join_video_room)
        socketio.on_event("leave-video-room", self.on_leave_video_room)
        socketio.on_event("typing", self.on_typing)

    def _authenticate(self, auth) -> User:
        token = auth.get("token") if isinstance(auth, dict) else None
        if not token:
            cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth-token")
            token = request.cookies.get(cookie_name)
        if not token:
            raise AuthenticationError()

        payload = decode_token(token)
        user = db.session.get(User, int(payload["sub"]))
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid or expired token")
        return user

    def on_connect(self, auth=None):
        bind_request_context(sid=request.sid)
        try:
            user = self._authenticate(auth)
        except AuthenticationError as e:
            logger.info("socket_auth_refused", reason=e.message)
            raise ConnectionRefusedError("Authentication error") from e

        with self._conn_lock:
            self._connections[request.sid] = {
                "userId": user.id,
                "userName": user.name,
                "teamId": user.team_id,
            }
        logger.info("socket_connected", user_id=user.id)

    def on_disconnect(self, *args):
        sid = request.sid
        with self._conn_lock:
            conn = self._connections.pop(sid, None)
        left = self.registry.leave_all(sid)
        logger.info(
            "socket_disconnected",
            user_id=conn["userId"] if conn else None,
            rooms_left=len(left),
        )

    def on_join_video_room(self, data):
        conn = self.connection(request.sid)
        video_id = _video_id(data)
        if conn is None or video_id is None:
            emit("error", {"message": "Invalid room request"})
            return

        video = db.session.get(Video, video_id)
        if video is None or video.team_id != conn["teamId"]:
            emit("error", {"message": "Access denied"})
            return

        join_room(room_name(video_id))
        self.registry.join(video_id, request.sid, conn["userId"])
        logger.debug("socket_joined_room", video_id=video_id, user_id=conn["userId"])

    def on_leave_video_room(self, data):
        video_id = _video_id(data)
        if video_id is None:
            return
        leave_room(room_name(video_id))
        self.registry.leave(video_id, request.sid)

    def on_typing(self, data):
        conn = self.connection(request.sid)
        video_id = _video_id(data)
        if conn is None or video_id is None:
            return
        if request.sid not in self.registry.members(video_id):
            return
        emit(
            "user-typing",
            {
                "userId": conn["userId"],
                "userName": conn["userName"],
                "isTyping": bool(data.get("isTyping")),
            },
            to=room_name(video_id),
            include_self=False,
        )

    # Broadcasts from REST handlers

    def broadcast(self, event: str, video_id, payload) -> bool:
        """Emit ``event`` to a video room; failures are logged, never raised."""
        if self.socketio is None:
            logger.warning(
                "realtime_not_initialized", socket_event=event, video_id=video_id
            )
            return False
        try:
            self.socketio.emit(event, payload, to=room_name(video_id))
            return True
        except Exception:
            safe_log_error(
                logger, "realtime_broadcast_failed", socket_event=event, video_id=video_id
            )
            return False

    def comment_added(self, video_id, comment: dict) -> bool:
        return self.broadcast("comment-added", video_id, comment)

    def comment_updated(self, video_id, comment: dict) -> bool:
        return self.broadcast("comment-updated", video_id, comment)

    def comment_deleted(self, video_id, comment_id: int) -> bool:
        return self.broadcast("comment-deleted", video_id, comment_id)

    def reaction_updated(self, video_id, comment_id: int, reactions: list) -> bool:
        return self.broadcast(
            "reaction-updated", video_id, {"commentId": comment_id, "reactions": reactions}
        )
