# =============================================================================
# TICKET AGENT SYSTEM - METRICS COLLECTION
# =============================================================================
"""
Metrics Collection Module

Collects Prometheus metrics for the ticket agent system.

Metric Categories:
    - Ticket metrics: Processing results, state transitions
    - Clarification metrics: Poll attempts, timeouts
    - Decomposition metrics: Child tickets, dropped parse segments
    - LLM metrics: Requests, tokens, latency
    - Board metrics: API requests

Each collector owns a private CollectorRegistry so several agents (or
tests) in one process do not clash on metric names.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================


class MetricsCollector:
    """
    Central metrics collector.

    Usage::

        metrics = MetricsCollector()
        metrics.record_ticket_processed("manager", "children_created")
        metrics.record_parse_degradation(2)
        metrics.record_llm_call("gpt-4o", 1500, 800, 3.2)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initialize all metric collectors.

        Args:
            config: Optional metrics configuration (port)
            registry: Registry to register into (default: a new private one)
        """
        self.config = config or {}
        self.registry = registry or CollectorRegistry()

        # Ticket metrics
        self.tickets_total = Counter(
            "tickets_processed_total",
            "Tickets that reached a terminal workflow state",
            ["agent", "result"],
            registry=self.registry,
        )
        self.state_transitions = Counter(
            "ticket_state_transitions_total",
            "Ticket workflow state transitions",
            ["from_state", "to_state"],
            registry=self.registry,
        )

        # Clarification metrics
        self.poll_attempts = Counter(
            "clarification_poll_attempts_total",
            "Comment reads performed while awaiting a reply",
            ["tag"],
            registry=self.registry,
        )
        self.reply_timeouts = Counter(
            "clarification_timeouts_total",
            "Clarification waits that exhausted their budget",
            ["tag"],
            registry=self.registry,
        )

        # Decomposition metrics
        self.child_tickets = Counter(
            "child_tickets_total",
            "Child ticket creation attempts",
            ["result"],
            registry=self.registry,
        )
        self.parse_dropped_segments = Counter(
            "task_parse_dropped_segments_total",
            "Decomposition segments dropped by the task parser",
            registry=self.registry,
        )

        # Board metrics
        self.board_requests = Counter(
            "trello_requests_total",
            "Trello API requests",
            ["method", "status"],
            registry=self.registry,
        )

        # LLM metrics
        self.llm_requests = Counter(
            "llm_requests_total",
            "Total LLM API requests",
            ["model"],
            registry=self.registry,
        )
        self.llm_tokens = Counter(
            "llm_tokens_total",
            "Total tokens used",
            ["model", "token_type"],
            registry=self.registry,
        )
        self.llm_latency = Histogram(
            "llm_request_duration_seconds",
            "LLM request duration",
            ["model"],
            buckets=[1, 2, 5, 10, 30, 60, 120],
            registry=self.registry,
        )

        # Errors
        self.errors_total = Counter(
            "errors_total",
            "Total errors",
            ["component", "error_type"],
            registry=self.registry,
        )

    # =====================================================================
    # RECORDING METHODS
    # =====================================================================

    def record_ticket_processed(self, agent: str, result: str) -> None:
        """Record a ticket reaching a terminal state."""
        self.tickets_total.labels(agent=agent, result=result).inc()

    def record_state_transition(self, from_state: str, to_state: str) -> None:
        self.state_transitions.labels(from_state=from_state, to_state=to_state).inc()

    def record_poll_attempt(self, tag: str) -> None:
        self.poll_attempts.labels(tag=tag).inc()

    def record_reply_timeout(self, tag: str) -> None:
        self.reply_timeouts.labels(tag=tag).inc()

    def record_child_ticket(self, created: bool) -> None:
        self.child_tickets.labels(result="created" if created else "failed").inc()

    def record_parse_degradation(self, dropped_segments: int) -> None:
        """Record segments dropped while parsing a decomposition."""
        if dropped_segments > 0:
            self.parse_dropped_segments.inc(dropped_segments)

    def record_llm_call(
        self,
        model: str,
        input_tokens: int,
        output_tokens: int,
        duration: float,
    ) -> None:
        """Record an LLM API call."""
        self.llm_requests.labels(model=model).inc()
        self.llm_tokens.labels(model=model, token_type="input").inc(input_tokens)
        self.llm_tokens.labels(model=model, token_type="output").inc(output_tokens)
        self.llm_latency.labels(model=model).observe(duration)

    def record_board_request(self, method: str, status: str) -> None:
        self.board_requests.labels(method=method, status=status).inc()

    def record_error(self, component: str, error_type: str) -> None:
        self.errors_total.labels(component=component, error_type=error_type).inc()

    # =====================================================================
    # EXPORT
    # =====================================================================

    def get_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Read a sample value from the registry (0.0 if absent)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def export(self) -> bytes:
        """Render all metrics in the Prometheus text format."""
        return generate_latest(self.registry)

    def start_server(self, port: Optional[int] = None) -> None:
        """Expose metrics over HTTP for scraping."""
        port = port or self.config.get("port", 9100)
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics server listening on port {port}")


def create_metrics_collector(config: Optional[Dict[str, Any]] = None) -> MetricsCollector:
    """Factory function for MetricsCollector."""
    return MetricsCollector(config=config)


__all__ = [
    "MetricsCollector",
    "create_metrics_collector",
]
