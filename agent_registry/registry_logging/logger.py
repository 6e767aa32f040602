"""
Structured logging for transaction lifecycle and account reads.

Every record carries timestamp, level, logger and event_type, so events like
tx_sent / tx_confirmed / tx_failed can be filtered by signature or program.
Program clients bind program name and id with bind_program().

Records go to stderr: the CLI keeps stdout for its JSON results.
No agent_registry imports here to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# json (default) or console
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

# keys whose values must never reach a log line
SECRET_KEYS = frozenset({"private_key", "secret_key", "payer_private_key", "keypair", "seed_phrase"})


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _normalize_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog 'event' -> event_type; message mirrors it when absent."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """(Re)configure structlog. Called once at import with LOG_LEVEL / LOG_FORMAT."""
    level_value = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _redact_secrets,
        _normalize_event,
    ]
    if (fmt or LOG_FORMAT) == "json":
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Structured logger for a module:

        logger = get_logger(__name__)
        logger.info("tx_confirmed", signature=sig, slot=slot)

    renders as {"event_type": "tx_confirmed", "signature": "...", "slot": 1,
    "timestamp": "...", "level": "info", "logger": "agent_registry.chain.submitter"}.
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_program(program: str, program_id: Any) -> structlog.BoundLogger:
    """Logger with program name and base58 program id bound to every record."""
    return get_logger("agent_registry").bind(program=program, program_id=str(program_id))
