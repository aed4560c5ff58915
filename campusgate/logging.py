"""
CampusGate - Structured Logging

Local diagnostics for the session core. These logs are for operators;
the durable audit trail lives in campusgate.audit.

Security: session tokens, passwords and secrets are masked before rendering.
"""

import logging
import sys
from typing import Any, Dict

import structlog

from campusgate.config import settings


_SENSITIVE_KEYS = {"password", "secret", "token", "authorization", "cookie"}


def _mask_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only a short prefix of anything that looks like a credential."""
    for key, value in event_dict.items():
        if not isinstance(value, str) or len(value) <= 8:
            continue
        if any(marker in key.lower() for marker in _SENSITIVE_KEYS):
            event_dict[key] = value[:8] + "..."
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog processors.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines when True, coloured console output otherwise
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_secrets,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)


def get_logger(name: str):
    return structlog.get_logger(name)
