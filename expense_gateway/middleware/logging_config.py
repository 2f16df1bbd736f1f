"""
Gateway logging.

- Development: coloured one-liners tagged with the request id
- Production: one JSON object per line
- Log level: LOG_LEVEL env variable

Two filters sit on the root handler:
  RequestContextFilter  stamps request_id on every record emitted inside a
                        request, so service and gateway lines can be joined
                        with the timing line for the same call
  CredentialFilter      masks Authorization values ("OAuth …", "Basic …",
                        "Bearer …") so a Concur token or login never
                        reaches the log, even through an exception message
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Authorization schemes used towards Concur and the destination service
_CREDENTIAL_RE = re.compile(r"\b(OAuth|Basic|Bearer)\s+[A-Za-z0-9._~+/=-]+")
REDACTED = "***"

# Extra fields copied from the LogRecord into JSON output when present
_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "error_code",
)


def redact(text: str) -> str:
    """Replace credential values after a known auth scheme with ***."""
    return _CREDENTIAL_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)


class CredentialFilter(logging.Filter):
    """Rewrite the record's message with credentials masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


class RequestContextFilter(logging.Filter):
    """Attach the current request id to records that lack one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = redact(self.formatException(record.exc_info))
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """Coloured formatter for development.

    ``12:00:01 ERROR    [3f2a9c1d0b7e] expense_gateway.middleware.timing: Server error ... [412ms] ERR_UPSTREAM``
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        request_id = getattr(record, "request_id", None)
        rid = f" [{request_id}]" if request_id else ""
        duration = getattr(record, "duration_ms", None)
        dur = f" [{duration:.0f}ms]" if duration is not None else ""
        error_code = getattr(record, "error_code", None)
        code = f" {error_code}" if error_code else ""

        line = (
            f"{color}{ts} {record.levelname:<8}{self.RESET}{rid} "
            f"{record.name}: {record.getMessage()}{dur}{code}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + redact(self.formatException(record.exc_info))
        return line


def configure_logging(app):
    """
    Install the gateway's root handler.

    LOG_LEVEL defaults to DEBUG in development and testing, INFO otherwise.
    Production (neither DEBUG nor TESTING) logs JSON.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(CredentialFilter())

    # Cleared first so repeated create_app() calls don't stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # urllib3 logs full request lines at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
