"""Tests for the comment mailbox and the bounded reply wait."""

import json
import threading
from typing import List
from unittest.mock import Mock

import pytest

from orchestrator.engine.clarification import (
    CancelToken,
    ClarificationChannel,
    ClarificationExchange,
    Mailbox,
    mentions,
)
from orchestrator.errors import ClarificationCancelled, ExternalCallFailure, ReplyTimeout


class RecordingToken(CancelToken):
    """CancelToken that records waits instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.waits: List[float] = []

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        return self.cancelled


@pytest.fixture
def ticket(board):
    return board.add_ticket("Checkout flow", "Users pay for their basket", list_name="To Do")


@pytest.fixture
def mailbox(board):
    return Mailbox(board)


@pytest.fixture
def channel(mailbox, metrics):
    return ClarificationChannel(mailbox, metrics=metrics, agent_name="manager")


class TestTagMatching:
    """Tags match as whole tokens."""

    @pytest.mark.parametrize("text", [
        "@bob please answer",
        "Done.\n@bob",
        "Response: use cards @bob",
        "cc @bob, thanks",
        "(@bob)",
    ])
    def test_tag_matches(self, text):
        assert mentions(text, "@bob")

    @pytest.mark.parametrize("text", [
        "@bobby please answer",
        "@bob_smith",
        "mail bob@bob.com",
        "@@bob",
        "no tag here",
    ])
    def test_prefix_and_embedded_tags_do_not_match(self, text):
        assert not mentions(text, "@bob")

    def test_tag_without_at_sign_is_normalized(self):
        assert mentions("hi @bob", "bob")

    @pytest.mark.parametrize("text", ["@BOB please answer", "Done.\n@Bob"])
    def test_matching_is_case_sensitive(self, text):
        assert not mentions(text, "@bob")


class TestMailbox:

    def test_send_appends_recipient_tag_on_own_line(self, mailbox, board, ticket):
        mailbox.send(ticket, "Which payment providers?", recipient="reviewer")

        assert board.comments_on(ticket) == ["Which payment providers?\n@reviewer"]

    def test_send_without_recipient_posts_text_unchanged(self, mailbox, board, ticket):
        mailbox.send(ticket, "status update")

        assert board.comments_on(ticket) == ["status update"]

    def test_receive_matching_returns_first_in_board_order(self, mailbox, board, ticket):
        board.comments[ticket.id] = ["first @manager", "second @manager"]

        assert mailbox.receive_matching(ticket, "@manager") == "first @manager"

    def test_receive_matching_skips_longer_names(self, mailbox, board, ticket):
        board.comments[ticket.id] = ["for @managerbot", "for @manager"]

        assert mailbox.receive_matching(ticket, "@manager") == "for @manager"

    def test_receive_matching_returns_none_without_match(self, mailbox, board, ticket):
        board.comments[ticket.id] = ["nothing for you"]

        assert mailbox.receive_matching(ticket, "@manager") is None

    def test_receive_all(self, mailbox, board, ticket):
        board.comments[ticket.id] = ["a @manager", "b @reviewer", "c @manager"]

        assert mailbox.receive_all(ticket, "@manager") == ["a @manager", "c @manager"]

    def test_store_errors_are_wrapped(self, ticket):
        store = Mock()
        store.get_comments.side_effect = ConnectionError("board down")

        with pytest.raises(ExternalCallFailure) as exc_info:
            Mailbox(store).read(ticket)

        assert exc_info.value.operation == "trello.get_comments"
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestRequestClarification:

    def test_posts_question_addressed_to_target(self, channel, board, ticket):
        channel.request_clarification(ticket, "Is guest checkout allowed?", "reviewer")

        assert board.comments_on(ticket) == ["Is guest checkout allowed?\n@reviewer"]

    def test_target_given_with_at_sign_is_tagged_once(self, mailbox, board, ticket, audit):
        channel = ClarificationChannel(mailbox, audit=audit, agent_name="manager")

        channel.request_clarification(ticket, "Is guest checkout allowed?", "@reviewer")

        assert board.comments_on(ticket) == ["Is guest checkout allowed?\n@reviewer"]
        with open(audit.output_path) as f:
            event = json.loads(f.readline())
        assert event["direction"] == "asked"
        assert event["tag"] == "@reviewer"


class TestAwaitReply:
    """Polling discipline of await_reply."""

    def test_returns_on_first_read_with_match(self, channel, board, ticket):
        board.comments[ticket.id] = ["Yes, guests may check out. @manager"]
        token = RecordingToken()

        reply = channel.await_reply(ticket, "@manager", poll_interval=5, max_attempts=3, cancel_token=token)

        assert reply == "Yes, guests may check out. @manager"
        assert board.comment_reads[ticket.id] == 1
        assert token.waits == []

    def test_returns_on_later_attempt_without_extra_wait(self, channel, board, ticket):
        board.schedule_comment(ticket, "Answer @manager", on_read=3)
        token = RecordingToken()

        reply = channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=10, cancel_token=token)

        assert reply == "Answer @manager"
        assert board.comment_reads[ticket.id] == 3
        assert token.waits == [0, 0]

    def test_first_match_in_board_order_wins(self, channel, board, ticket):
        board.comments[ticket.id] = ["older answer @manager", "newer answer @manager"]

        assert channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=1) == "older answer @manager"

    def test_times_out_after_exactly_max_attempts(self, channel, board, ticket, metrics):
        board.comments[ticket.id] = ["a reply for @managerbot only"]
        token = RecordingToken()

        with pytest.raises(ReplyTimeout) as exc_info:
            channel.await_reply(ticket, "@manager", poll_interval=0.25, max_attempts=4, cancel_token=token)

        assert exc_info.value.attempts == 4
        assert board.comment_reads[ticket.id] == 4
        assert token.waits == [0.25, 0.25, 0.25]
        assert metrics.get_value("clarification_poll_attempts_total", {"tag": "@manager"}) == 4.0
        assert metrics.get_value("clarification_timeouts_total", {"tag": "@manager"}) == 1.0

    def test_reply_tagged_in_other_case_is_not_accepted(self, channel, board, ticket):
        board.comments[ticket.id] = ["Reply for @MANAGER only"]

        with pytest.raises(ReplyTimeout):
            channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=1)

    def test_each_attempt_rereads_all_comments(self, channel, board, ticket):
        board.comments[ticket.id] = ["question\n@reviewer"]

        with pytest.raises(ReplyTimeout):
            channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=3)

        assert board.calls.count(f"get_comments:{ticket.id}") == 3

    def test_rejects_non_positive_budget(self, channel, ticket):
        with pytest.raises(ValueError):
            channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=0)

    def test_read_failure_propagates(self, ticket):
        store = Mock()
        store.get_comments.side_effect = RuntimeError("500")
        channel = ClarificationChannel(Mailbox(store))

        with pytest.raises(ExternalCallFailure):
            channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=3)

        assert store.get_comments.call_count == 1


class TestCancellation:

    def test_cancelled_token_stops_before_first_read(self, channel, board, ticket):
        token = CancelToken()
        token.cancel()

        with pytest.raises(ClarificationCancelled):
            channel.await_reply(ticket, "@manager", poll_interval=0, max_attempts=5, cancel_token=token)

        assert board.comment_reads.get(ticket.id, 0) == 0

    def test_cancel_wakes_a_waiting_poll(self, channel, board, ticket):
        token = CancelToken()
        errors = []

        def wait():
            try:
                channel.await_reply(ticket, "@manager", poll_interval=30, max_attempts=5, cancel_token=token)
            except ClarificationCancelled as e:
                errors.append(e)

        worker = threading.Thread(target=wait)
        worker.start()
        token.cancel()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert len(errors) == 1
        assert board.comment_reads.get(ticket.id, 0) <= 1


class TestAwaitMany:

    def test_settles_each_exchange_independently(self, channel, board):
        fast = board.add_ticket("Search")
        slow = board.add_ticket("Wishlist")
        silent = board.add_ticket("Reviews")
        board.comments[fast.id] = ["Search by name only. @manager"]
        board.schedule_comment(slow, "Wishlists are private. @manager", on_read=2)

        outcomes = channel.await_many([
            ClarificationExchange(fast, "@manager", poll_interval=0, max_attempts=3),
            ClarificationExchange(slow, "@manager", poll_interval=0, max_attempts=3),
            ClarificationExchange(silent, "@manager", poll_interval=0, max_attempts=2),
        ])

        assert outcomes[0].reply == "Search by name only. @manager"
        assert outcomes[0].attempts == 1
        assert outcomes[1].reply == "Wishlists are private. @manager"
        assert outcomes[1].attempts == 2
        assert not outcomes[2].answered
        assert isinstance(outcomes[2].error, ReplyTimeout)
        assert board.comment_reads[silent.id] == 2

    def test_settled_exchanges_are_not_read_again(self, channel, board):
        answered = board.add_ticket("Search")
        pending = board.add_ticket("Wishlist")
        board.comments[answered.id] = ["ok @manager"]

        channel.await_many([
            ClarificationExchange(answered, "@manager", poll_interval=0, max_attempts=4),
            ClarificationExchange(pending, "@manager", poll_interval=0, max_attempts=4),
        ])

        assert board.comment_reads[answered.id] == 1
        assert board.comment_reads[pending.id] == 4

    def test_cancel_stops_all_exchanges(self, channel, board):
        ticket = board.add_ticket("Search")
        token = CancelToken()
        token.cancel()

        with pytest.raises(ClarificationCancelled):
            channel.await_many([ClarificationExchange(ticket, "@manager", poll_interval=0)], cancel_token=token)
