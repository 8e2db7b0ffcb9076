"""structlog configuration.

Every module logs through ``structlog.get_logger()`` with dotted event
names (``auth.login``, ``db.checkout_exceeded``). The request id bound by
RequestIdMiddleware is merged into every entry via contextvars.

Bearer credentials must never reach a log sink, so any field whose name
looks like a token or secret is masked before rendering.
"""

import logging
from typing import Any

import structlog

_SENSITIVE_KEYS = ("token", "secret", "authorization", "password")


def _redact_credentials(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask values of credential-like fields, keeping a short prefix."""
    for key, value in event_dict.items():
        if not isinstance(value, str):
            continue
        if any(marker in key.lower() for marker in _SENSITIVE_KEYS):
            event_dict[key] = value[:4] + "***" if len(value) > 8 else "***"
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog processors and the minimum log level.

    JSON lines in deployed environments; a colourless console renderer
    when ``json_output`` is off (local development).
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_credentials,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
