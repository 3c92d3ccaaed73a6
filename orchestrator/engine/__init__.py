# =============================================================================
# TICKET AGENT SYSTEM - ORCHESTRATOR ENGINE PACKAGE
# =============================================================================
"""
Orchestrator Engine Package

Core engine components:

1. clarification: Tag-addressed mailbox and bounded, cancellable reply wait
2. ticket_workflow: Per-ticket state machine (clarify, wait, decompose)

Usage:
    from orchestrator.engine import TicketOrchestrator, CancelToken

    orchestrator = TicketOrchestrator(identity, reviewer_name="po")
    result = orchestrator.handle_ticket(ticket, cancel_token=CancelToken())
"""

from orchestrator.engine.clarification import (
    CancelToken,
    ClarificationChannel,
    ClarificationExchange,
    ExchangeOutcome,
    Mailbox,
    mentions,
    tag_pattern,
)

from orchestrator.engine.ticket_workflow import (
    TicketOrchestrator,
    TicketState,
    TransitionRecord,
    WorkflowResult,
)


__all__ = [
    # Clarification
    "CancelToken",
    "ClarificationChannel",
    "ClarificationExchange",
    "ExchangeOutcome",
    "Mailbox",
    "mentions",
    "tag_pattern",

    # Workflow
    "TicketOrchestrator",
    "TicketState",
    "TransitionRecord",
    "WorkflowResult",
]
