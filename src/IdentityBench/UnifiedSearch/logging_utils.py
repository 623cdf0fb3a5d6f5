"""Structured logging helpers for unified identity search.

Log records produced by this package carry their structured payload under the
``event`` attribute (``logger.info("unified-trace", extra={"event": {...}})``).
:class:`JSONFormatter` flattens that payload into one JSON object per line and
masks identity values (tax ids, account numbers, emails, phone numbers) so that
search terms never land in log files in clear text.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

__all__ = ["JSONFormatter", "mask_identity_value", "mask_event", "setup_logging"]

LOGGER_NAME = "IdentityBench.UnifiedSearch"

_SENSITIVE_KEYS = frozenset(
    {
        "ssn",
        "ssn_last4",
        "tax_id",
        "tax_id_number",
        "account_number",
        "account_last4",
        "email",
        "phone",
        "phone_number",
        "terms",
        "query",
        "matched_value",
    }
)
_EMAIL_PATTERN = re.compile(r"^([^@]{1,2})[^@]*(@.*)$")


def mask_identity_value(value: Any) -> Any:
    """Redact an identity value, keeping only a short recognisable tail.

    Examples:
        >>> mask_identity_value("123-45-6789")
        '*******6789'
        >>> mask_identity_value("jane.doe@example.com")
        'ja***@example.com'
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [mask_identity_value(item) for item in value]
    text = str(value)
    match = _EMAIL_PATTERN.match(text)
    if match:
        return f"{match.group(1)}***{match.group(2)}"
    if len(text) <= 4:
        return "*" * len(text)
    return "*" * (len(text) - 4) + text[-4:]


def mask_event(payload: Any) -> Any:
    """Recursively mask sensitive keys inside a structured event payload."""
    if isinstance(payload, dict):
        masked = {}
        for key, value in payload.items():
            if str(key).lower() in _SENSITIVE_KEYS:
                masked[key] = mask_identity_value(value)
            else:
                masked[key] = mask_event(value)
        return masked
    if isinstance(payload, list):
        return [mask_event(item) for item in payload]
    return payload


class JSONFormatter(logging.Formatter):
    """Formatter emitting one masked JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            payload["event"] = event
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_event(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    max_log_size_mb: int = 50,
    json_console: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the package logger with a console handler and optional JSONL file.

    Calling this repeatedly replaces the handlers installed by earlier calls
    instead of stacking duplicates.

    Args:
        level: Logging level name.
        log_file: Optional path of a rotating JSON lines log file.
        max_log_size_mb: Rotation threshold for ``log_file``.
        json_console: Render console output as JSON instead of plain text.
        propagate: Whether records also reach the root logger.

    Returns:
        The configured ``IdentityBench.UnifiedSearch`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_identitybench_managed", False):
            logger.removeHandler(handler)
            if not isinstance(handler, logging.StreamHandler) or handler.stream not in (
                sys.stdout,
                sys.stderr,
            ):
                handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(
        JSONFormatter() if json_console else logging.Formatter("%(levelname)s: %(message)s")
    )
    console._identitybench_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=int(max_log_size_mb * 1024 * 1024), backupCount=3
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._identitybench_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
