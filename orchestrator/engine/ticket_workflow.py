# =============================================================================
# TICKET AGENT SYSTEM - TICKET WORKFLOW
# =============================================================================
"""
Ticket Workflow Module

The state machine that drives one ticket from a high-level request to a
set of technical child tickets.

State Machine Overview:
    ┌──────────────────────────────────────────────────────────────────┐
    │                                                                  │
    │    ┌──────────┐   question posted   ┌──────────────────────┐     │
    │    │  OPENED  │ ──────────────────▶ │ CLARIFICATION_POSTED │     │
    │    └────┬─────┘                     └──────────┬───────────┘     │
    │         │ (model/post error)                   │                 │
    │         ▼                                      ▼                 │
    │  CLARIFICATION_FAILED                 ┌────────────────┐         │
    │                                       │ AWAITING_REPLY │         │
    │                                       └───────┬────────┘         │
    │                          (budget exhausted)   │  reply found     │
    │                     REPLY_TIMEOUT ◀───────────┤                  │
    │                                               ▼                  │
    │                                       ┌──────────────┐           │
    │              DECOMPOSITION_FAILED ◀── │ DECOMPOSING  │           │
    │                                       └──────┬───────┘           │
    │                                              │                   │
    │                         ┌────────────────────┴─────┐             │
    │                         ▼                          ▼             │
    │                ┌──────────────────┐   ┌────────────────────────┐ │
    │                │ CHILDREN_CREATED │   │ CHILD_CREATION_PARTIAL │ │
    │                └──────────────────┘   └────────────────────────┘ │
    │                                                                  │
    └──────────────────────────────────────────────────────────────────┘

Fatal exits raise (ClarificationFailed, ReplyTimeout, DecompositionFailed)
after the transition is recorded. CHILD_CREATION_PARTIAL is soft: the
children that could be created are returned.

Progress is persisted on the ticket itself as marker comments, so
running the workflow twice on one ticket neither re-asks the question
nor creates the children again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import AgentIdentity
from agents.base.task_parser import TaskBlock, TaskBlockParser
from monitoring.logger import LogContext
from orchestrator.engine.clarification import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    CancelToken,
    ClarificationChannel,
    Mailbox,
)
from orchestrator.errors import (
    AgentSystemError,
    ClarificationCancelled,
    ClarificationFailed,
    DecompositionFailed,
    ExternalCallFailure,
    ReplyTimeout,
    call_external,
)
from orchestrator.trello.models import Member, Ticket


logger = logging.getLogger(__name__)


DEFAULT_REVIEWER = "reviewer"
DEFAULT_DESTINATION_LIST = "Doing"
TECHNICAL_TITLE_PREFIX = "Technical: "


# =============================================================================
# PROMPTS
# =============================================================================

CLARIFICATION_PROMPT = (
    "Given the following ticket details:\n{ticket_info}\n"
    "Confirm that the business requirements of this ticket are clear. You already "
    "know the best technical approach, including libraries, design patterns, "
    "testing frameworks and coding standards, so do NOT ask about them.\n"
    "Do NOT ask about:\n"
    "- Commenting guidelines or documentation standards.\n"
    "- Performance benchmarks or optimizations.\n"
    "- Review processes, stakeholder impacts or timelines.\n"
    "- Libraries, design patterns, tooling or testing frameworks.\n"
    "Do not add summaries, headers, footers or unrelated comments.\n"
    "Only ask concise questions where the business intent or expected behaviour "
    "is ambiguous, so that you are ready to write technical tickets."
)

DECOMPOSITION_INSTRUCTION = (
    "Given the clarifications above, create a list of clear, atomic technical "
    "tickets for the backend developer containing only coding tasks. Each ticket "
    "starts with a concise title on its own line, followed by a precise technical "
    "specification for the developer. Respond ONLY with actionable tickets: no "
    "additional fields, general questions or comments. Separate tickets from each "
    "other with a line containing only @@@@."
)

ANSWER_PROMPT = (
    "Provide a detailed clarification for the following request from the developer "
    "agent. Always answer questions, never ask them. Your vision is the source of "
    "engineering truth for the project. Here is the question from the engineer: {question}"
)

DIRECT_DECOMPOSE_PROMPT = (
    "Decompose this ticket into detailed technical tasks with clear atomic assignments:\n"
    "{description}"
)


def format_ticket_info(ticket: Ticket) -> str:
    return f"Ticket ID: {ticket.id}\nTitle: {ticket.title}\nDescription: {ticket.description}"


# =============================================================================
# STATE
# =============================================================================

class TicketState(Enum):
    """Workflow states of one ticket."""
    OPENED = "OPENED"
    CLARIFICATION_POSTED = "CLARIFICATION_POSTED"
    AWAITING_REPLY = "AWAITING_REPLY"
    DECOMPOSING = "DECOMPOSING"
    CHILDREN_CREATED = "CHILDREN_CREATED"
    CLARIFICATION_FAILED = "CLARIFICATION_FAILED"
    REPLY_TIMEOUT = "REPLY_TIMEOUT"
    DECOMPOSITION_FAILED = "DECOMPOSITION_FAILED"
    CHILD_CREATION_PARTIAL = "CHILD_CREATION_PARTIAL"


@dataclass
class TransitionRecord:
    """Record of a state transition for audit trail."""
    timestamp: str
    from_state: str
    to_state: str
    trigger: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowResult:
    """
    Outcome of handle_ticket.

    Attributes:
        ticket: The processed ticket
        state: Final state (CHILDREN_CREATED or CHILD_CREATION_PARTIAL)
        children: Child tickets created, in task order
        failed_titles: Titles of tasks whose child ticket could not be created
        dropped_segments: Unusable segments discarded by the parser
        reply: The clarification reply the decomposition was based on
        skipped: True if the ticket had already been decomposed
        history: State transitions of this run
    """
    ticket: Ticket
    state: TicketState
    children: List[Ticket] = field(default_factory=list)
    failed_titles: List[str] = field(default_factory=list)
    dropped_segments: int = 0
    reply: Optional[str] = None
    skipped: bool = False
    history: List[TransitionRecord] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.state == TicketState.CHILD_CREATION_PARTIAL


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class TicketOrchestrator:
    """
    Runs the clarification and decomposition workflow for one persona.

    Usage:
        orchestrator = TicketOrchestrator(identity, reviewer_name="po",
                                          metrics=metrics, audit=audit)
        result = orchestrator.handle_ticket(ticket)
        for child in result.children:
            print(child.title)
    """

    def __init__(
        self,
        identity: AgentIdentity,
        channel: Optional[ClarificationChannel] = None,
        parser: Optional[TaskBlockParser] = None,
        reviewer_name: str = DEFAULT_REVIEWER,
        destination_list: str = DEFAULT_DESTINATION_LIST,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        metrics=None,
        audit=None,
    ):
        self.identity = identity
        self.metrics = metrics
        self.audit = audit
        self.channel = channel or ClarificationChannel(
            Mailbox(identity.store), metrics=metrics, audit=audit, agent_name=identity.name
        )
        self.parser = parser or TaskBlockParser(metrics=metrics)
        self.reviewer_name = reviewer_name.lstrip("@")
        self.destination_list = destination_list
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    # =========================================================================
    # MARKERS
    # =========================================================================

    @property
    def clarification_marker(self) -> str:
        return f"[agent:{self.identity.name}] clarification-requested"

    @property
    def decomposed_marker(self) -> str:
        return f"[agent:{self.identity.name}] decomposed"

    def _has_marker(self, comments: List[str], marker: str) -> bool:
        return any(comment.strip() == marker for comment in comments)

    # =========================================================================
    # MAIN WORKFLOW
    # =========================================================================

    def handle_ticket(self, ticket: Ticket, cancel_token: Optional[CancelToken] = None) -> WorkflowResult:
        """
        Drive one ticket through clarification and decomposition.

        Args:
            ticket: Ticket to process
            cancel_token: Optional token that stops the reply wait

        Returns:
            WorkflowResult with the created children

        Raises:
            ClarificationFailed: Question could not be generated or posted
            ReplyTimeout: No tagged reply within the poll budget
            ClarificationCancelled: The wait was cancelled
            DecompositionFailed: The task list could not be generated
            ExternalCallFailure: A board call outside the soft steps failed
        """
        with LogContext(ticket_id=ticket.id, agent=self.identity.name):
            result = WorkflowResult(ticket=ticket, state=TicketState.OPENED)
            try:
                self._run(result, cancel_token)
            except ClarificationFailed:
                self._finish(result, "clarification_failed")
                raise
            except ReplyTimeout:
                self._finish(result, "reply_timeout")
                raise
            except ClarificationCancelled:
                self._finish(result, "cancelled")
                raise
            except DecompositionFailed:
                self._finish(result, "decomposition_failed")
                raise
            except AgentSystemError as e:
                self._record_error(ticket, e)
                self._finish(result, "error")
                raise

            if not result.skipped:
                self._finish(result, result.state.value.lower())
            return result

    def _run(self, result: WorkflowResult, cancel_token: Optional[CancelToken]) -> None:
        ticket = result.ticket
        comments = self.identity.read_comments(ticket)

        if self._has_marker(comments, self.decomposed_marker):
            logger.info(f"Ticket {ticket.id} already decomposed, skipping")
            result.state = TicketState.CHILDREN_CREATED
            result.skipped = True
            return

        if self._has_marker(comments, self.clarification_marker):
            logger.info(f"Ticket {ticket.id} already has a clarification request, resuming wait")
            self._transition(result, TicketState.CLARIFICATION_POSTED, "resumed")
        else:
            self._post_clarification(result)

        reply = self._await_reply(result, cancel_token)

        self._transition(result, TicketState.DECOMPOSING, "reply_received")
        blocks = self._decompose(result, reply)
        list_id = self._resolve_destination(result)

        call_external("trello.post_comment", self.identity.write_comment, ticket, self.decomposed_marker)
        self._create_children(result, blocks, list_id)

        if result.failed_titles:
            self._transition(result, TicketState.CHILD_CREATION_PARTIAL, "children_created", {
                "created": len(result.children),
                "failed": len(result.failed_titles),
            })
        else:
            self._transition(result, TicketState.CHILDREN_CREATED, "children_created", {
                "created": len(result.children),
            })

    # =========================================================================
    # STEPS
    # =========================================================================

    def _post_clarification(self, result: WorkflowResult) -> None:
        ticket = result.ticket
        prompt = CLARIFICATION_PROMPT.format(ticket_info=format_ticket_info(ticket))
        try:
            question = self.identity.chat(prompt)
            if not question.strip():
                raise ClarificationFailed(f"model returned an empty clarification for ticket {ticket.id}")
            self.channel.request_clarification(ticket, question, self.reviewer_name)
            self.identity.write_comment(ticket, self.clarification_marker)
        except ExternalCallFailure as e:
            self._transition(result, TicketState.CLARIFICATION_FAILED, e.operation, {"error": str(e)})
            raise ClarificationFailed(f"failed to request clarification on ticket {ticket.id}: {e}") from e
        except ClarificationFailed as e:
            self._transition(result, TicketState.CLARIFICATION_FAILED, "empty_response", {"error": str(e)})
            raise

        self._transition(result, TicketState.CLARIFICATION_POSTED, "question_posted", {
            "reviewer": self.reviewer_name,
        })

    def _await_reply(self, result: WorkflowResult, cancel_token: Optional[CancelToken]) -> str:
        ticket = result.ticket
        self._transition(result, TicketState.AWAITING_REPLY, "waiting", {"tag": self.identity.tag})
        try:
            reply = self.channel.await_reply(
                ticket,
                self.identity.tag,
                poll_interval=self.poll_interval,
                max_attempts=self.max_attempts,
                cancel_token=cancel_token,
            )
        except ReplyTimeout as e:
            self._transition(result, TicketState.REPLY_TIMEOUT, "timeout", {"attempts": e.attempts})
            raise

        result.reply = reply
        return reply

    def _decompose(self, result: WorkflowResult, reply: str) -> List[TaskBlock]:
        try:
            response = self.identity.chat(reply + "\n" + DECOMPOSITION_INSTRUCTION)
        except ExternalCallFailure as e:
            self._transition(result, TicketState.DECOMPOSITION_FAILED, e.operation, {"error": str(e)})
            raise DecompositionFailed(f"failed to decompose ticket {result.ticket.id}: {e}") from e

        report = self.parser.parse_with_report(response)
        result.dropped_segments = report.dropped_segments
        if not report.blocks:
            logger.warning(f"Decomposition of ticket {result.ticket.id} produced no tasks")
        return report.blocks

    def _resolve_destination(self, result: WorkflowResult) -> str:
        store = self.identity.store
        try:
            return call_external("trello.get_list_id_by_name", store.get_list_id_by_name, self.destination_list)
        except AgentSystemError as e:
            self._transition(result, TicketState.DECOMPOSITION_FAILED, "destination_list", {"error": str(e)})
            raise

    def _create_children(self, result: WorkflowResult, blocks: List[TaskBlock], list_id: str) -> None:
        """Create one child per block; a failed child is logged and skipped."""
        store = self.identity.store
        for block in blocks:
            try:
                child = call_external(
                    "trello.create_ticket", store.create_ticket, block.title, block.description, list_id
                )
            except AgentSystemError as e:
                logger.error(f"Failed to create technical ticket for task '{block.title}': {e}")
                result.failed_titles.append(block.title)
                if self.metrics is not None:
                    self.metrics.record_child_ticket(created=False)
                if self.audit is not None:
                    self.audit.log_child_ticket(result.ticket.id, block.title, error=str(e))
                continue

            result.children.append(child)
            logger.info(f"Created technical ticket {child.id}: {child.title}")
            if self.metrics is not None:
                self.metrics.record_child_ticket(created=True)
            if self.audit is not None:
                self.audit.log_child_ticket(result.ticket.id, block.title, child_id=child.id)

    # =========================================================================
    # SUPPLEMENTARY OPERATIONS
    # =========================================================================

    def assign_ticket(self, ticket: Ticket, agent_name: str) -> Member:
        """
        Assign a ticket to the board member with the given name.

        Raises:
            MemberNotFound: If no member has that name
        """
        store = self.identity.store
        member = call_external("trello.get_member_by_name", store.get_member_by_name, agent_name)
        call_external("trello.assign_member", store.assign_member, ticket, member.id)
        logger.info(f"Assigned ticket {ticket.id} to {member.username}")
        return member

    def answer_clarification(self, ticket: Ticket, question: str, requester_name: str) -> str:
        """
        Answer another persona's question on a ticket.

        The answer is posted as "Response: <answer> @<requester>".

        Returns:
            The answer text
        """
        with LogContext(ticket_id=ticket.id, agent=self.identity.name):
            answer = self.identity.chat(ANSWER_PROMPT.format(question=question))
            requester = requester_name.lstrip("@")
            self.identity.write_comment(ticket, f"Response: {answer} @{requester}")
            logger.info(f"Answered clarification from @{requester} on ticket {ticket.id}")
            if self.audit is not None:
                self.audit.log_clarification(ticket.id, self.identity.name, "answered", f"@{requester}")
            return answer

    def direct_decompose(self, ticket: Ticket) -> Ticket:
        """
        Turn a ticket's own description into one technical ticket.

        Returns:
            The created "Technical: <title>" ticket

        Raises:
            DecompositionFailed: If the model call fails
        """
        with LogContext(ticket_id=ticket.id, agent=self.identity.name):
            try:
                technical = self.identity.chat(DIRECT_DECOMPOSE_PROMPT.format(description=ticket.description))
            except ExternalCallFailure as e:
                raise DecompositionFailed(f"failed to decompose ticket {ticket.id}: {e}") from e

            store = self.identity.store
            list_id = call_external("trello.get_list_id_by_name", store.get_list_id_by_name, self.destination_list)
            child = call_external(
                "trello.create_ticket", store.create_ticket,
                TECHNICAL_TITLE_PREFIX + ticket.title, technical, list_id,
            )
            logger.info(f"Created technical ticket {child.id} from {ticket.id}")
            if self.metrics is not None:
                self.metrics.record_child_ticket(created=True)
            if self.audit is not None:
                self.audit.log_child_ticket(ticket.id, child.title, child_id=child.id)
            return child

    # =========================================================================
    # BOOKKEEPING
    # =========================================================================

    def _transition(
        self,
        result: WorkflowResult,
        to_state: TicketState,
        trigger: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a state transition in history, audit trail and metrics."""
        from_state = result.state
        record = TransitionRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            from_state=from_state.value,
            to_state=to_state.value,
            trigger=trigger,
            details=details or {},
        )
        result.history.append(record)
        result.state = to_state

        logger.info(f"Ticket {result.ticket.id}: {from_state.value} -> {to_state.value} ({trigger})")
        if self.metrics is not None:
            self.metrics.record_state_transition(from_state.value, to_state.value)
        if self.audit is not None:
            self.audit.log_state_transition(
                result.ticket.id, from_state.value, to_state.value, self.identity.name,
                {"trigger": trigger, **record.details},
            )

    def _finish(self, result: WorkflowResult, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_ticket_processed(self.identity.name, outcome)

    def _record_error(self, ticket: Ticket, error: Exception) -> None:
        if self.metrics is not None:
            self.metrics.record_error("ticket_workflow", type(error).__name__)
        if self.audit is not None:
            self.audit.log_error("ticket_workflow", type(error).__name__, str(error), ticket.id)
