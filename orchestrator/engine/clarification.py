# =============================================================================
# TICKET AGENT SYSTEM - CLARIFICATION CHANNEL
# =============================================================================
"""
Clarification Channel Module

Question/answer round trips conducted through ticket comments.

The comment stream of a ticket doubles as a mailbox between personas:
a comment is addressed to a persona by carrying its "@name" tag. The
Mailbox gives this an explicit send / receive-matching contract, and
matches tags as whole tokens so "@bob" is never satisfied by "@bobby".

Waiting for a reply is a bounded poll:
    - every attempt re-reads the full comment list (no cursor)
    - the first matching comment in board order wins
    - a match returns at once, with no further wait or read
    - after max_attempts unsuccessful reads, ReplyTimeout is raised
    - a CancelToken stops the wait at the next poll boundary

Usage:
    channel = ClarificationChannel(Mailbox(store), metrics=metrics)
    channel.request_clarification(ticket, question, "reviewer")
    reply = channel.await_reply(ticket, "@manager", poll_interval=60, max_attempts=100)
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import List, Optional

from orchestrator.errors import ClarificationCancelled, ReplyTimeout, call_external
from orchestrator.trello.models import Ticket, TicketStore


logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_MAX_ATTEMPTS = 100


# =============================================================================
# CANCELLATION
# =============================================================================

class CancelToken:
    """
    Explicit cancel signal for a clarification wait.

    The poll sleeps on the token's event, so cancel() wakes a waiting
    poll immediately instead of after the interval.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; returns True if cancelled."""
        return self._event.wait(timeout)


# =============================================================================
# MAILBOX
# =============================================================================

def tag_pattern(tag: str) -> "re.Pattern[str]":
    """
    Compile a whole-token matcher for a mention tag.

    The tag must not be glued to a preceding word character or "@", nor
    followed by another name character, so prefixes of longer names
    never match. Matching is case-sensitive.
    """
    if not tag.startswith("@"):
        tag = "@" + tag
    return re.compile(r"(?<![\w@])" + re.escape(tag) + r"(?![\w-])")


def mentions(text: str, tag: str) -> bool:
    """Check whether text addresses the given tag."""
    return tag_pattern(tag).search(text) is not None


class Mailbox:
    """
    Tag-addressed messages backed by a ticket's comment list.

    Attributes:
        store: Ticket store holding the comments
    """

    def __init__(self, store: TicketStore):
        self.store = store

    def send(self, ticket: Ticket, text: str, recipient: Optional[str] = None) -> None:
        """
        Post a comment, addressed to recipient when given.

        Args:
            ticket: Ticket to comment on
            text: Message body
            recipient: Persona name; "@recipient" is appended on its own line
        """
        if recipient:
            text = f"{text}\n@{recipient.lstrip('@')}"
        call_external("trello.post_comment", self.store.post_comment, ticket, text)

    def read(self, ticket: Ticket) -> List[str]:
        """All comments on the ticket, in board order."""
        return call_external("trello.get_comments", self.store.get_comments, ticket)

    def receive_all(self, ticket: Ticket, tag: str) -> List[str]:
        """Every comment addressed to tag, in board order."""
        pattern = tag_pattern(tag)
        return [comment for comment in self.read(ticket) if pattern.search(comment)]

    def receive_matching(self, ticket: Ticket, tag: str) -> Optional[str]:
        """
        Return the first comment, in board order, addressed to tag.

        Returns:
            The comment text, or None if no comment matches
        """
        pattern = tag_pattern(tag)
        for comment in self.read(ticket):
            if pattern.search(comment):
                return comment
        return None


# =============================================================================
# CLARIFICATION CHANNEL
# =============================================================================

@dataclass
class ClarificationExchange:
    """
    One pending question on one ticket.

    Attributes:
        ticket: Ticket carrying the exchange
        required_tag: Tag a reply must carry ("@" + requester name)
        question: Question text, if posted through this exchange
        poll_interval: Seconds between reads
        max_attempts: Read budget
    """
    ticket: Ticket
    required_tag: str
    question: str = ""
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int = DEFAULT_MAX_ATTEMPTS


@dataclass
class ExchangeOutcome:
    """Result of one exchange in await_many: a reply or a timeout."""
    exchange: ClarificationExchange
    reply: Optional[str] = None
    error: Optional[ReplyTimeout] = None
    attempts: int = 0

    @property
    def answered(self) -> bool:
        return self.reply is not None


class ClarificationChannel:
    """
    Posts tagged questions and waits for tagged replies.

    Attributes:
        mailbox: Comment-backed mailbox
        metrics: Optional MetricsCollector
        audit: Optional AuditLogger
        agent_name: Name recorded in audit events
    """

    def __init__(self, mailbox: Mailbox, metrics=None, audit=None, agent_name: str = ""):
        self.mailbox = mailbox
        self.metrics = metrics
        self.audit = audit
        self.agent_name = agent_name

    def request_clarification(self, ticket: Ticket, question_text: str, target_agent_name: str) -> None:
        """Post question_text addressed to the target persona."""
        target = target_agent_name.lstrip("@")
        self.mailbox.send(ticket, question_text, recipient=target)
        logger.info(f"Posted clarification on ticket {ticket.id} for @{target}")
        if self.audit is not None:
            self.audit.log_clarification(ticket.id, self.agent_name, "asked", f"@{target}")

    def await_reply(
        self,
        ticket: Ticket,
        required_tag: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Block until a comment addressed to required_tag appears.

        Args:
            ticket: Ticket to watch
            required_tag: Tag the reply must carry
            poll_interval: Seconds between reads
            max_attempts: Number of reads before giving up
            cancel_token: Optional token that stops the wait

        Returns:
            The first matching comment in board order

        Raises:
            ReplyTimeout: After max_attempts reads without a match
            ClarificationCancelled: If the token is cancelled
            ExternalCallFailure: If reading comments fails
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        token = cancel_token or CancelToken()

        for attempt in range(1, max_attempts + 1):
            if token.cancelled:
                raise ClarificationCancelled(f"wait for {required_tag} on ticket {ticket.id} cancelled")

            reply = self.mailbox.receive_matching(ticket, required_tag)
            if self.metrics is not None:
                self.metrics.record_poll_attempt(required_tag)

            if reply is not None:
                self._received(ticket, required_tag, attempt)
                return reply

            logger.info(
                f"No reply with {required_tag} found on ticket {ticket.id}, "
                f"attempt {attempt}/{max_attempts}"
            )
            if attempt < max_attempts and token.wait(poll_interval):
                raise ClarificationCancelled(f"wait for {required_tag} on ticket {ticket.id} cancelled")

        self._timed_out(ticket, required_tag)
        raise ReplyTimeout(ticket.id, required_tag, max_attempts)

    def await_many(
        self,
        exchanges: List[ClarificationExchange],
        cancel_token: Optional[CancelToken] = None,
    ) -> List[ExchangeOutcome]:
        """
        Wait on several exchanges in one loop.

        Each round reads every pending exchange once, then sleeps for the
        smallest poll interval among those still pending. An exchange is
        settled by a match or by exhausting its own attempt budget; a
        timeout is reported in its outcome rather than raised.

        Returns:
            One outcome per exchange, in input order

        Raises:
            ClarificationCancelled: If the token is cancelled
        """
        token = cancel_token or CancelToken()
        outcomes = [ExchangeOutcome(exchange=exchange) for exchange in exchanges]
        pending = [o for o in outcomes if o.exchange.max_attempts > 0]
        for outcome in outcomes:
            if outcome.exchange.max_attempts <= 0:
                outcome.error = ReplyTimeout(outcome.exchange.ticket.id, outcome.exchange.required_tag, 0)

        while pending:
            if token.cancelled:
                raise ClarificationCancelled(f"wait on {len(pending)} exchange(s) cancelled")

            still_pending = []
            for outcome in pending:
                exchange = outcome.exchange
                outcome.attempts += 1
                reply = self.mailbox.receive_matching(exchange.ticket, exchange.required_tag)
                if self.metrics is not None:
                    self.metrics.record_poll_attempt(exchange.required_tag)

                if reply is not None:
                    outcome.reply = reply
                    self._received(exchange.ticket, exchange.required_tag, outcome.attempts)
                elif outcome.attempts >= exchange.max_attempts:
                    self._timed_out(exchange.ticket, exchange.required_tag)
                    outcome.error = ReplyTimeout(exchange.ticket.id, exchange.required_tag, outcome.attempts)
                else:
                    still_pending.append(outcome)

            pending = still_pending
            if pending:
                interval = min(o.exchange.poll_interval for o in pending)
                logger.info(f"{len(pending)} exchange(s) still waiting, next poll in {interval}s")
                if token.wait(interval):
                    raise ClarificationCancelled(f"wait on {len(pending)} exchange(s) cancelled")

        return outcomes

    def _received(self, ticket: Ticket, tag: str, attempts: int) -> None:
        logger.info(f"Received reply with {tag} on ticket {ticket.id} after {attempts} attempt(s)")
        if self.audit is not None:
            self.audit.log_clarification(ticket.id, self.agent_name, "received", tag, attempts)

    def _timed_out(self, ticket: Ticket, tag: str) -> None:
        logger.warning(f"Reply with {tag} not received on ticket {ticket.id}")
        if self.metrics is not None:
            self.metrics.record_reply_timeout(tag)
