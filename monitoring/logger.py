# =============================================================================
# TICKET AGENT SYSTEM - STRUCTURED LOGGING
# =============================================================================
"""
Structured Logging Module

Provides consistent, structured logging across all components.
Modules log through the standard ``logging`` API; records are rendered by
structlog so context bound with LogContext (ticket id, agent name) shows
up in every line.

Features:
    - JSON or console output
    - Contextual information bound per ticket
    - Sensitive data masking
    - File output with rotation
    - Audit trail logger
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars


# =============================================================================
# SENSITIVE DATA MASKING
# =============================================================================

# Keys whose values should be masked
SENSITIVE_KEYS = frozenset([
    "token", "api_key", "password", "secret", "credential",
    "authorization", "trello_token", "trello_api_key",
    "openai_api_key", "anthropic_api_key", "git_password",
])


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower().replace("-", "_")
    return any(s in key_lower for s in SENSITIVE_KEYS)


def _mask_value(value: Any) -> str:
    """Mask a sensitive value, keeping first/last 4 chars if long enough."""
    if not isinstance(value, str):
        return "****"
    if len(value) > 8:
        return value[:4] + "****" + value[-4:]
    return "****"


def mask_sensitive_data(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Structlog processor that masks sensitive data in log events.

    Recursively processes dictionaries to mask values whose keys
    match known sensitive patterns.
    """

    def _process(d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            if _is_sensitive(key):
                result[key] = _mask_value(value)
            elif isinstance(value, dict):
                result[key] = _process(value)
            else:
                result[key] = value
        return result

    return _process(event_dict)


def mask_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive data in an arbitrary dict (e.g. configuration dumps)."""
    return mask_sensitive_data(None, "", data)


# =============================================================================
# LOGGING SETUP
# =============================================================================


def _shared_processors(mask_sensitive: bool) -> list:
    processors: list = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if mask_sensitive:
        processors.append(mask_sensitive_data)
    return processors


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: Optional[str] = None,
    mask_sensitive: bool = True,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Console format, ``"json"`` or ``"text"``.
        log_file: Optional log file path (always JSON, rotated).
        mask_sensitive: Mask sensitive values in logs.
        max_bytes: Max file size before rotation.
        backup_count: Number of rotated files to keep.

    Returns:
        Root logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    shared = _shared_processors(mask_sensitive)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric_level)
    console.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=console_renderer,
        foreign_pre_chain=shared,
    ))
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=shared,
        ))
        root.addHandler(file_handler)

    # Suppress noisy third-party loggers
    for name in ("urllib3", "httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


# =============================================================================
# LOG CONTEXT MANAGER
# =============================================================================


class LogContext:
    """
    Context manager that binds key-value pairs to all logs emitted
    inside the block.

    Usage::

        with LogContext(ticket_id="abc", agent="manager"):
            logger.info("Starting work")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_contextvars(*self.context.keys())


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit trail of agent activity, one JSON object per line.

    Event categories:
        - ``state_transition``: Ticket workflow state changes
        - ``clarification``: Questions posted and replies received
        - ``child_ticket``: Child ticket creation results
        - ``context_update``: Model context refreshes
        - ``error``: Failures

    Usage::

        audit = AuditLogger("./logs/audit.jsonl")
        audit.log_state_transition("abc", "OPENED", "CLARIFICATION_POSTED", "manager")
    """

    def __init__(
        self,
        output_path: str = "./logs/audit.jsonl",
        max_bytes: int = 100 * 1024 * 1024,
        backup_count: int = 10,
    ):
        self.output_path = output_path
        self._logger = logging.getLogger(f"audit.{output_path}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        if not self._logger.handlers:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                output_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def _write_event(self, event_type: str, data: Dict[str, Any]) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **mask_dict(data),
        }
        self._logger.info(json.dumps(event, default=str))

    def log_state_transition(
        self,
        ticket_id: str,
        from_state: str,
        to_state: str,
        agent: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a ticket workflow state transition."""
        self._write_event("state_transition", {
            "ticket_id": ticket_id,
            "from_state": from_state,
            "to_state": to_state,
            "agent": agent,
            **(details or {}),
        })

    def log_clarification(
        self,
        ticket_id: str,
        agent: str,
        direction: str,
        tag: str,
        attempts: Optional[int] = None,
    ) -> None:
        """Log a clarification question ("asked") or reply ("received")."""
        self._write_event("clarification", {
            "ticket_id": ticket_id,
            "agent": agent,
            "direction": direction,
            "tag": tag,
            "attempts": attempts,
        })

    def log_child_ticket(
        self,
        parent_id: str,
        title: str,
        child_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log the result of creating one child ticket."""
        self._write_event("child_ticket", {
            "parent_id": parent_id,
            "child_id": child_id,
            "title": title,
            "created": child_id is not None,
            "error": error,
        })

    def log_context_update(self, agent: str, slot: str, version: int, size: int) -> None:
        """Log a model context slot replacement."""
        self._write_event("context_update", {
            "agent": agent,
            "slot": slot,
            "version": version,
            "size_chars": size,
        })

    def log_error(
        self,
        component: str,
        error_type: str,
        message: str,
        ticket_id: Optional[str] = None,
    ) -> None:
        """Log an error event."""
        self._write_event("error", {
            "component": component,
            "error_type": error_type,
            "message": message,
            "ticket_id": ticket_id,
        })


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "setup_logging",
    "mask_sensitive_data",
    "mask_dict",
    "LogContext",
    "AuditLogger",
]
