"""JSON logging for the ingestion service.

Every record carries the request id of the HTTP call that produced it and
the service/environment pair, so interaction failures can be traced from a
log aggregator back to a single click.
"""

import contextvars
import logging
import uuid

from pythonjsonlogger.json import JsonFormatter

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"

# Driver and client chatter that drowns out interaction logs at INFO
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio", "httpx", "slowapi")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")  # type: ignore[attr-defined]
        return True


def setup_logging(
    *,
    debug: bool = False,
    service: str = "audience-api",
    environment: str = "development",
) -> None:
    """Replace root handlers with a single JSON stream handler."""
    formatter = JsonFormatter(
        fmt=_LOG_FORMAT,
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": service, "environment": environment},
        # Action metadata may carry non-ASCII text (track titles, emoji)
        json_ensure_ascii=False,
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Short hex id echoed back in the X-Request-ID header."""
    return uuid.uuid4().hex[:16]
