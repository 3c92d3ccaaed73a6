# =============================================================================
# TICKET AGENT SYSTEM - MONITORING PACKAGE
# =============================================================================
"""
Monitoring Package

Logging, audit and metrics infrastructure for the ticket agent system.

Components:
    - Logger: Structured logging with structlog
    - Audit: Audit trail recording to JSONL
    - Metrics: Prometheus metrics collection

Usage:
    from monitoring import setup_logging, MetricsCollector, AuditLogger

    setup_logging(level="INFO", fmt="json", log_file="./logs/agent.log")

    metrics = MetricsCollector()
    metrics.record_parse_degradation(1)

    audit = AuditLogger("./logs/audit.jsonl")
    audit.log_state_transition("abc", "OPENED", "CLARIFICATION_POSTED", "manager")
"""

from monitoring.logger import (
    setup_logging,
    AuditLogger,
    LogContext,
    mask_sensitive_data,
    mask_dict,
)

from monitoring.metrics import (
    MetricsCollector,
    create_metrics_collector,
)


__all__ = [
    "setup_logging",
    "AuditLogger",
    "LogContext",
    "mask_sensitive_data",
    "mask_dict",
    "MetricsCollector",
    "create_metrics_collector",
]
