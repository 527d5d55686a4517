"""Logging for OrgLedger.

Every record carries the request it was logged under (``request_id``) and
the authenticated caller (``user_id``) when there is one. Both live in
context variables that the HTTP middleware and the auth dependency set, so
service code only passes membership specifics such as ``org_id`` or
``invite_id`` through ``extra``.

Invite tokens are bearer credentials. They appear in request paths
(``/api/invites/<token>``) and are masked before a record is emitted.
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

# Membership extras accepted from ``logger.info(..., extra={...})``
EXTRA_FIELDS = ("org_id", "invite_id", "task_id")

_INVITE_TOKEN_RE = re.compile(r"(/invites?/)([A-Za-z0-9_-]{20,})")


def mask_invite_tokens(text: str) -> str:
    """Keep the first four characters of any invite token in ``text``."""
    return _INVITE_TOKEN_RE.sub(lambda m: f"{m.group(1)}{m.group(2)[:4]}***", text)


def set_request_context(request_id: str | None = None, user_id: str | None = None) -> None:
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    user_id_var.set(None)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        if not getattr(record, "user_id", None):
            record.user_id = user_id_var.get() or "-"
        return True


class InviteTokenFilter(logging.Filter):
    """Mask invite tokens in the message and its string arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = mask_invite_tokens(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(mask_invite_tokens(a) if isinstance(a, str) else a for a in record.args)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(app_env: str = "development", log_level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(InviteTokenFilter())
    if app_env == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] [req=%(request_id)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    # SQL echo only while developing locally
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if app_env == "development" else logging.WARNING
    )
