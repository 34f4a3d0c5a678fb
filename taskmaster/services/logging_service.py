"""structlog setup: JSON lines, correlation ids, credential redaction."""

import logging
import re
import sys
from typing import Any, Dict

import structlog

REDACTED = "REDACTED"

# Matched as substrings of the key, so refresh_token and new_password count
SENSITIVE_KEYS = frozenset({"api_key", "authorization", "password", "secret", "token"})

BEARER_VALUE = re.compile(r"Bearer\s+\S+", re.IGNORECASE)
JWT_VALUE = re.compile(r"\beyJ[\w-]*\.[\w-]+\.[\w-]*")


def _is_sensitive(key: Any) -> bool:
    key_lower = str(key).lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def _scrub(value: Any) -> Any:
    """Mask bearer credentials and JWTs inside strings, dicts and lists."""
    if isinstance(value, str):
        value = BEARER_VALUE.sub(f"Bearer {REDACTED}", value)
        return JWT_VALUE.sub(REDACTED, value)
    if isinstance(value, dict):
        return {
            k: REDACTED if _is_sensitive(k) else _scrub(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that keeps credentials out of log lines.

    Values under a sensitive key (case-insensitive substring match) become
    ``REDACTED``. Tokens that leak into other values, such as an error
    message quoting a header, are masked in place.
    """
    for key, value in list(event_dict.items()):
        event_dict[key] = REDACTED if _is_sensitive(key) else _scrub(value)
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib logging and structlog to stdout as JSON lines.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR; unknown names mean INFO
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # After exception formatting, so tracebacks are scrubbed too
            redact_sensitive,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, bound to ``logger_name`` when a name is given."""
    logger = structlog.get_logger()
    return logger.bind(logger_name=name) if name else logger
