"""
Structured logging for the VideoFlow API and Socket.IO server.

Every module logs through structlog with an event name plus keyword context::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("video_approved", video_id=12, team_id=3)

``configure_structlog`` runs once per process from ``create_app``:

- under TESTING, events render to the console and no files are written
- otherwise events are handed to the stdlib root logger as ``msg`` plus
  ``extra`` so python-json-logger writes one JSON object per line to
  ``app.json`` (everything) and ``error.json`` (WARNING and up)

Per-request context (request id, socket id) is bound with structlog
contextvars by ``bind_request_context``.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from pythonjsonlogger.json import JsonFormatter

_STRUCTLOG_CONFIGURED = False

# Substrings; any event key containing one is redacted
SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "api_key",
    "authorization",
    "cookie",
)

# Matched exactly; "code" alone is an OAuth authorization code
SENSITIVE_EXACT_KEYS = frozenset({"code"})

HEALTH_PATHS = frozenset({"/health", "/api/health"})

LOG_FILE_MAX_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 10


def get_log_dir(instance_path: str, override: str | None = None) -> str:
    """Pick the log directory: ``override``, then ``$LOG_DIR``, then instance/logs."""
    log_dir = override or os.environ.get("LOG_DIR")
    if not log_dir:
        log_dir = os.path.join(instance_path, "logs")
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    return log_dir


def get_log_level(app_config=None) -> int:
    name = (app_config or {}).get("LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")
    return getattr(logging, str(name).upper(), logging.INFO)


def bind_request_context(**values) -> None:
    """Reset and bind context carried by every event of the current request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def _add_caller(logger, method_name, event_dict):
    """Attach the HTTP route and authenticated user when inside a request."""
    from flask import has_request_context, request

    if not has_request_context():
        return event_dict

    event_dict.setdefault("endpoint", request.endpoint)
    event_dict.setdefault("http_method", request.method)
    event_dict.setdefault("path", request.path)
    event_dict.setdefault("remote_addr", request.remote_addr)

    from flask_login import current_user

    # Resolving current_user can itself fail mid-teardown
    try:
        if current_user.is_authenticated:
            event_dict.setdefault("user_id", current_user.id)
    except Exception:
        pass
    return event_dict


def _add_role(role: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("process_role", role)
        return event_dict

    return processor


def _filter_health_checks(logger, method_name, event_dict):
    """Drop routine events logged while serving load balancer probes."""
    if event_dict.get("level") in ("debug", "info", "warning"):
        if event_dict.get("path") in HEALTH_PATHS:
            raise structlog.DropEvent
    return event_dict


def _censor_sensitive_data(logger, method_name, event_dict):
    for key in event_dict:
        lowered = key.lower()
        if lowered in SENSITIVE_EXACT_KEYS or any(
            marker in lowered for marker in SENSITIVE_KEYS
        ):
            event_dict[key] = "***REDACTED***"
    return event_dict


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _censor_sensitive_data,
    ]


def _json_file_handler(path: str, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
    )
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "severity", "name": "logger_name"},
        )
    )
    return handler


def _console_handler(level: int, verbose: bool) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if verbose:
        fmt = "%(asctime)s [%(levelname)-8s] %(name)-28s %(message)s"
    else:
        fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_component_loggers(base_level: int) -> None:
    """Quiet chatty third-party loggers.

    Werkzeug request lines and SQL echo only show up at DEBUG. Socket.IO,
    Engine.IO and httpx log every packet or request at INFO, so they stay at
    WARNING regardless.
    """
    debug = base_level <= logging.DEBUG
    logging.getLogger("werkzeug").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if debug else logging.WARNING
    )
    for name in ("socketio", "engineio", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _configure_for_tests() -> None:
    structlog.configure(
        processors=_shared_processors()
        + [structlog.dev.ConsoleRenderer(colors=False)],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def _configure_json_files(app, role: str, level: int, app_log: str, error_log: str):
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(_json_file_handler(app_log, level))
    root.addHandler(_json_file_handler(error_log, logging.WARNING))
    root.addHandler(_console_handler(level, verbose=app.debug))
    configure_component_loggers(level)

    structlog.configure(
        processors=_shared_processors()
        + [
            structlog.stdlib.add_logger_name,
            _add_role(role),
            _add_caller,
            _filter_health_checks,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_structlog(app, role: str = "web") -> dict:
    """Configure structlog once per process.

    Args:
        app: Flask app (``config`` and ``instance_path`` are read)
        role: process role added to every event, e.g. ``web``

    Returns:
        dict with ``log_dir``, ``app_log`` and ``error_log`` paths; all empty
        under TESTING.
    """
    global _STRUCTLOG_CONFIGURED

    if app.config.get("TESTING"):
        if not _STRUCTLOG_CONFIGURED:
            _configure_for_tests()
            _STRUCTLOG_CONFIGURED = True
        return {"log_dir": "", "app_log": "", "error_log": ""}

    log_dir = get_log_dir(app.instance_path)
    paths = {
        "log_dir": log_dir,
        "app_log": os.path.join(log_dir, "app.json"),
        "error_log": os.path.join(log_dir, "error.json"),
    }
    level = get_log_level(app.config)

    if not _STRUCTLOG_CONFIGURED:
        _configure_json_files(app, role, level, paths["app_log"], paths["error_log"])
        _STRUCTLOG_CONFIGURED = True
        structlog.get_logger(__name__).info(
            "logging_configured", log_dir=log_dir, log_level=logging.getLevelName(level)
        )

    return paths
