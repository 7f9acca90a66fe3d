"""
Logging service — audit trail of user events.

Entries are written as one JSON object per line to a rotating sink:
``application.log`` (info and above, rotated at midnight) and
``error.log`` (errors only, rotated by size).  Unlike ordinary logging
handlers, the sink handlers re-raise write failures so the caller of
``log_message`` learns that the entry was not recorded.
"""
import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from typing import Any

from newsblog.config import Settings
from newsblog.kvstore import KeyValueStore
from newsblog.services.user_service import USER_CREATED, USER_LOGGED_IN

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "newsblog.audit"


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            entry = {"level": record.levelname.lower(), **record.msg}
        else:
            entry = {"level": record.levelname.lower(), "message": record.getMessage()}
        return json.dumps(entry, default=str)


class _RaisingHandlerMixin:
    def handleError(self, record: logging.LogRecord) -> None:
        # Called from inside emit()'s except block: propagate the write error.
        raise


class AuditFileHandler(_RaisingHandlerMixin, TimedRotatingFileHandler):
    pass


class ErrorFileHandler(_RaisingHandlerMixin, RotatingFileHandler):
    pass


def build_audit_logger(settings: Settings) -> logging.Logger:
    """
    (Re)configure the audit logger to write into ``settings.LOG_DIR``.

    Any handlers from a previous call are closed and replaced.
    """
    os.makedirs(settings.LOG_DIR, exist_ok=True)
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit.handlers):
        audit.removeHandler(handler)
        handler.close()

    formatter = JsonLineFormatter()
    general = AuditFileHandler(
        os.path.join(settings.LOG_DIR, "application.log"),
        when="midnight",
        backupCount=settings.LOG_RETENTION_DAYS,
        encoding="utf-8",
    )
    general.setLevel(logging.INFO)
    general.setFormatter(formatter)

    errors = ErrorFileHandler(
        os.path.join(settings.LOG_DIR, "error.log"),
        maxBytes=settings.ERROR_LOG_MAX_BYTES,
        backupCount=settings.ERROR_LOG_BACKUPS,
        encoding="utf-8",
    )
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)

    audit.addHandler(general)
    audit.addHandler(errors)
    audit.setLevel(logging.INFO)
    audit.propagate = False
    return audit


class LoggingService:
    def __init__(self, audit_logger: logging.Logger) -> None:
        self.audit = audit_logger

    async def log_message(self, data: dict[str, Any]) -> dict:
        """
        Record *data* as one entry, at error level when ``data["level"]``
        is ``"error"`` and at info level otherwise.
        """
        entry = {"timestamp": datetime.now(timezone.utc).isoformat()}
        entry.update((k, v) for k, v in data.items() if v is not None)
        try:
            if data.get("level") == "error":
                self.audit.error(entry)
            else:
                self.audit.info(entry)
        except Exception:
            logger.exception("Failed to write audit entry")
            raise
        return {"success": True, "message": "Log entry recorded"}

    async def log_user_creation(self, data: dict[str, Any]) -> dict:
        return await self.log_message({
            "action": "user_created",
            "level": "info",
            "userId": data.get("userId"),
            "email": data.get("email"),
            "timestamp": data.get("timestamp"),
        })

    async def log_user_login(self, data: dict[str, Any]) -> dict:
        return await self.log_message({
            "action": "user_logged_in",
            "level": "info",
            "userId": data.get("userId"),
            "email": data.get("email"),
            "timestamp": data.get("timestamp"),
        })

    async def handle_user_created(self, message: str) -> None:
        await self.log_user_creation(json.loads(message))

    async def handle_user_logged_in(self, message: str) -> None:
        await self.log_user_login(json.loads(message))

    async def subscribe(self, store: KeyValueStore) -> None:
        await store.subscribe(USER_CREATED, self.handle_user_created)
        await store.subscribe(USER_LOGGED_IN, self.handle_user_logged_in)
        logger.info("Subscribed to %s and %s", USER_CREATED, USER_LOGGED_IN)
