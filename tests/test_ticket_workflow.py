"""Tests for the ticket workflow state machine."""

import json

import pytest

from agents.base.context_loader import ContextSynchronizer
from agents.base.llm_client import ModelContext
from agents.base.task_parser import TASK_DELIMITER
from orchestrator.engine.clarification import CancelToken
from orchestrator.engine.ticket_workflow import (
    DECOMPOSITION_INSTRUCTION,
    TicketOrchestrator,
    TicketState,
)
from orchestrator.errors import (
    ClarificationCancelled,
    ClarificationFailed,
    DecompositionFailed,
    ListNotFound,
    MemberNotFound,
    ReplyTimeout,
)


QUESTION = "Can guests check out without an account?"
REPLY = "Yes, guests can check out with an email address only. @manager"
TASKS = TASK_DELIMITER.join([
    "Create order model\nStore basket items, totals and a guest email",
    "Add checkout endpoint\nPOST /checkout creates an order from the basket",
    "Send confirmation email\nQueue an email when an order is created",
])


@pytest.fixture
def ticket(board, manager_member):
    return board.add_ticket(
        "Checkout",
        "Customers pay for the items in their basket.",
        list_name="To Do",
        members=[manager_member],
    )


@pytest.fixture
def orchestrator(identity, metrics, audit):
    return TicketOrchestrator(
        identity,
        reviewer_name="reviewer",
        destination_list="Doing",
        poll_interval=0,
        max_attempts=3,
        metrics=metrics,
        audit=audit,
    )


def read_audit(audit):
    with open(audit.output_path) as f:
        return [json.loads(line) for line in f if line.strip()]


class TestHandleTicket:
    """Happy path and soft failures."""

    def test_creates_one_child_per_task_in_order(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        result = orchestrator.handle_ticket(ticket)

        assert result.state == TicketState.CHILDREN_CREATED
        assert [c.title for c in result.children] == [
            "Create order model",
            "Add checkout endpoint",
            "Send confirmation email",
        ]
        assert result.children[1].description == "POST /checkout creates an order from the basket"
        assert board.tickets_in("Doing") == result.children
        assert result.failed_titles == []
        assert result.reply == REPLY

    def test_walks_the_expected_states(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        result = orchestrator.handle_ticket(ticket)

        assert [(r.from_state, r.to_state) for r in result.history] == [
            ("OPENED", "CLARIFICATION_POSTED"),
            ("CLARIFICATION_POSTED", "AWAITING_REPLY"),
            ("AWAITING_REPLY", "DECOMPOSING"),
            ("DECOMPOSING", "CHILDREN_CREATED"),
        ]

    def test_question_is_addressed_to_reviewer(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        assert board.comments_on(ticket)[0] == QUESTION + "\n@reviewer"

    def test_clarification_prompt_embeds_ticket(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        prompt = [m.content for m in provider.requests[0] if m.role == "user"][0]
        assert f"Ticket ID: {ticket.id}" in prompt
        assert "Title: Checkout" in prompt
        assert "Description: Customers pay for the items in their basket." in prompt

    def test_decomposition_prompt_is_reply_plus_instruction(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        assert provider.last_prompt() == REPLY + "\n" + DECOMPOSITION_INSTRUCTION

    def test_repository_context_does_not_silence_decomposition(self, orchestrator, identity, board, provider, ticket):
        ContextSynchronizer(identity).refresh_repository_context()
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        system = provider.system_messages()
        assert any("File: README.md" in text for text in system)
        assert not any("no response" in text.lower() for text in system)

    def test_model_calls_carry_the_persona_context(self, orchestrator, identity, board, provider, ticket):
        identity.context.update(ModelContext.ROLE, "You are an engineering manager agent.")
        identity.context.update(ModelContext.GUIDANCE, "Guidance Tickets:\nTitle: Use Postgres\n")
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        assert provider.system_messages(-1) == [
            "You are an engineering manager agent.",
            "Guidance Tickets:\nTitle: Use Postgres\n",
        ]

    def test_failed_child_is_skipped(self, orchestrator, board, provider, ticket, metrics):
        board.auto_reply("@reviewer", REPLY)
        board.failing_titles.add("Add checkout endpoint")
        provider.queue(QUESTION, TASKS)

        result = orchestrator.handle_ticket(ticket)

        assert result.state == TicketState.CHILD_CREATION_PARTIAL
        assert result.partial
        assert [c.title for c in result.children] == ["Create order model", "Send confirmation email"]
        assert result.failed_titles == ["Add checkout endpoint"]
        assert board.calls.count("create_ticket:Add checkout endpoint") == 1
        assert metrics.get_value("child_tickets_total", {"result": "created"}) == 2.0
        assert metrics.get_value("child_tickets_total", {"result": "failed"}) == 1.0

    def test_no_tasks_gives_empty_result(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, "   \n")

        result = orchestrator.handle_ticket(ticket)

        assert result.state == TicketState.CHILDREN_CREATED
        assert result.children == []
        assert board.tickets_in("Doing") == []

    def test_dropped_segments_are_reported(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, "Only task\nDo it" + TASK_DELIMITER + "  ")

        result = orchestrator.handle_ticket(ticket)

        assert result.dropped_segments == 1
        assert [c.title for c in result.children] == ["Only task"]

    def test_transitions_are_audited_and_counted(self, orchestrator, board, provider, ticket, audit, metrics):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        orchestrator.handle_ticket(ticket)

        events = read_audit(audit)
        transitions = [e["to_state"] for e in events if e["event_type"] == "state_transition"]
        assert transitions == ["CLARIFICATION_POSTED", "AWAITING_REPLY", "DECOMPOSING", "CHILDREN_CREATED"]
        assert sum(1 for e in events if e["event_type"] == "child_ticket") == 3
        assert metrics.get_value(
            "ticket_state_transitions_total",
            {"from_state": "DECOMPOSING", "to_state": "CHILDREN_CREATED"},
        ) == 1.0
        assert metrics.get_value(
            "tickets_processed_total", {"agent": "manager", "result": "children_created"}
        ) == 1.0


class TestFatalExits:

    def test_model_failure_during_clarification(self, orchestrator, board, provider, ticket, metrics):
        provider.queue(RuntimeError("model unavailable"))

        with pytest.raises(ClarificationFailed):
            orchestrator.handle_ticket(ticket)

        assert board.comments_on(ticket) == []
        assert metrics.get_value(
            "tickets_processed_total", {"agent": "manager", "result": "clarification_failed"}
        ) == 1.0

    def test_comment_failure_during_clarification(self, orchestrator, board, provider, ticket):
        provider.queue(QUESTION)
        board.fail_comments = True

        with pytest.raises(ClarificationFailed):
            orchestrator.handle_ticket(ticket)

    def test_empty_question_is_a_clarification_failure(self, orchestrator, board, provider, ticket):
        provider.queue("  ")

        with pytest.raises(ClarificationFailed):
            orchestrator.handle_ticket(ticket)

        assert board.comments_on(ticket) == []

    def test_reply_timeout_produces_no_children(self, orchestrator, board, provider, ticket, audit):
        provider.queue(QUESTION, TASKS)

        with pytest.raises(ReplyTimeout) as exc_info:
            orchestrator.handle_ticket(ticket)

        assert exc_info.value.attempts == 3
        assert provider.call_count == 1
        assert board.tickets_in("Doing") == []
        transitions = [e["to_state"] for e in read_audit(audit) if e["event_type"] == "state_transition"]
        assert transitions[-1] == "REPLY_TIMEOUT"

    def test_reply_for_longer_name_does_not_count(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", "This is for someone else. @managerbot")
        provider.queue(QUESTION, TASKS)

        with pytest.raises(ReplyTimeout):
            orchestrator.handle_ticket(ticket)

    def test_model_failure_during_decomposition(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, RuntimeError("context length exceeded"))

        with pytest.raises(DecompositionFailed):
            orchestrator.handle_ticket(ticket)

        assert board.tickets_in("Doing") == []
        assert orchestrator.decomposed_marker not in board.comments_on(ticket)

    def test_missing_destination_list(self, identity, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)
        orchestrator = TicketOrchestrator(identity, destination_list="In Progress", poll_interval=0, max_attempts=1)

        with pytest.raises(ListNotFound):
            orchestrator.handle_ticket(ticket)

        assert orchestrator.decomposed_marker not in board.comments_on(ticket)

    def test_cancelled_wait(self, orchestrator, provider, ticket):
        provider.queue(QUESTION)
        token = CancelToken()
        token.cancel()

        with pytest.raises(ClarificationCancelled):
            orchestrator.handle_ticket(ticket, cancel_token=token)


class TestReentry:
    """Marker comments guard against processing a ticket twice."""

    def test_second_run_is_a_no_op(self, orchestrator, board, provider, ticket):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)
        orchestrator.handle_ticket(ticket)
        calls_before = provider.call_count
        children_before = len(board.tickets_in("Doing"))

        result = orchestrator.handle_ticket(ticket)

        assert result.skipped
        assert result.state == TicketState.CHILDREN_CREATED
        assert result.children == []
        assert provider.call_count == calls_before
        assert len(board.tickets_in("Doing")) == children_before

    def test_skipped_ticket_is_not_counted_as_processed(self, orchestrator, board, provider, ticket, metrics):
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)
        orchestrator.handle_ticket(ticket)

        orchestrator.handle_ticket(ticket)
        orchestrator.handle_ticket(ticket)

        processed = {"agent": "manager", "result": "children_created"}
        assert metrics.get_value("tickets_processed_total", processed) == 1.0
        assert metrics.get_value("tickets_processed_total", {"agent": "manager", "result": "skipped"}) == 0.0

    def test_posted_question_is_not_asked_again(self, orchestrator, board, provider, ticket):
        board.comments[ticket.id] = [
            QUESTION + "\n@reviewer",
            orchestrator.clarification_marker,
            REPLY,
        ]
        provider.queue(TASKS)

        result = orchestrator.handle_ticket(ticket)

        assert provider.call_count == 1
        assert board.comments_on(ticket).count(QUESTION + "\n@reviewer") == 1
        assert len(result.children) == 3
        assert result.history[0].trigger == "resumed"

    def test_markers_are_per_persona(self, orchestrator, board, provider, ticket):
        board.comments[ticket.id] = ["[agent:backend] decomposed"]
        board.auto_reply("@reviewer", REPLY)
        provider.queue(QUESTION, TASKS)

        result = orchestrator.handle_ticket(ticket)

        assert not result.skipped
        assert len(result.children) == 3


class TestSupplementaryOperations:

    def test_assign_ticket(self, orchestrator, board, ticket):
        backend = board.add_member("backend", "Backend Developer")

        member = orchestrator.assign_ticket(ticket, "Backend")

        assert member == backend
        assert backend.id in board.tickets[0].member_ids

    def test_assign_ticket_to_unknown_member(self, orchestrator, ticket):
        with pytest.raises(MemberNotFound):
            orchestrator.assign_ticket(ticket, "designer")

    def test_answer_clarification(self, orchestrator, board, provider, ticket):
        provider.queue("Use the existing payments service.")

        answer = orchestrator.answer_clarification(ticket, "Which payment API do I call?", "backend")

        assert answer == "Use the existing payments service."
        assert board.comments_on(ticket) == ["Response: Use the existing payments service. @backend"]
        assert "Which payment API do I call?" in provider.last_prompt()

    def test_direct_decompose(self, orchestrator, board, provider, ticket):
        provider.queue("1. Add order table\n2. Add checkout endpoint")

        child = orchestrator.direct_decompose(ticket)

        assert child.title == "Technical: Checkout"
        assert child.description == "1. Add order table\n2. Add checkout endpoint"
        assert board.tickets_in("Doing") == [child]
        assert "Customers pay for the items in their basket." in provider.last_prompt()

    def test_direct_decompose_model_failure(self, orchestrator, board, provider, ticket):
        provider.queue(RuntimeError("timeout"))

        with pytest.raises(DecompositionFailed):
            orchestrator.direct_decompose(ticket)

        assert board.tickets_in("Doing") == []
