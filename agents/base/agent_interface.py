# =============================================================================
# TICKET AGENT SYSTEM - AGENT IDENTITY
# =============================================================================
"""
Agent Identity Module

An AgentIdentity is a named persona: its name is both the board mention
tag ("@name") and the key matched against ticket assignees, and its role
instruction is the fixed system guidance for every model interaction.

The identity holds references to the three collaborators (ticket store,
repository mirror, language-model client) and to the persona's explicit
ModelContext. It is created once per process and never changes.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from agents.base.llm_client import LLMClient, ModelContext
from orchestrator.errors import AgentSystemError, call_external
from orchestrator.repository.mirror import RepositoryMirror
from orchestrator.trello.models import Ticket, TicketStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentIdentity:
    """
    A persona acting on the board.

    Attributes:
        name: Mention tag and assignment-matching key
        role: Role instruction sent as system guidance
        store: Ticket board client
        repository: Repository mirror
        llm: Language-model client
        context: The persona's model context
    """
    name: str
    role: str
    store: TicketStore
    repository: RepositoryMirror
    llm: LLMClient
    context: ModelContext = field(default_factory=ModelContext, compare=False)

    @property
    def tag(self) -> str:
        """Mention tag addressing this persona."""
        return f"@{self.name}"

    # =========================================================================
    # ASSIGNMENT ROUTING
    # =========================================================================

    def ticket_belongs_to_me(self, ticket: Ticket) -> bool:
        """
        Check whether any assignee of the ticket is this persona.

        Assignee names are compared case-insensitively. A member that
        cannot be resolved is logged and treated as not matching.
        """
        wanted = self.name.lower()
        for member_id in ticket.member_ids:
            try:
                member = call_external("trello.get_member", self.store.get_member, member_id)
            except AgentSystemError as e:
                logger.warning(f"Could not resolve member {member_id} on ticket {ticket.id}: {e}")
                continue
            if member.username.lower() == wanted:
                return True
        return False

    def list_assigned_tickets(
        self,
        on_first_match: Optional[Callable[[], None]] = None,
    ) -> List[Ticket]:
        """
        Scan the board for tickets assigned to this persona.

        Args:
            on_first_match: Called once, when the first assigned ticket of
                this scan is found (used to refresh repository context)

        Returns:
            Assigned tickets in board order
        """
        tickets = call_external("trello.get_board_tickets", self.store.get_board_tickets)

        assigned: List[Ticket] = []
        for ticket in tickets:
            if not self.ticket_belongs_to_me(ticket):
                continue
            if not assigned and on_first_match is not None:
                on_first_match()
            assigned.append(ticket)

        logger.debug(f"{self.name}: {len(assigned)} of {len(tickets)} tickets assigned")
        return assigned

    # =========================================================================
    # BOARD HELPERS
    # =========================================================================

    def write_comment(self, ticket: Ticket, text: str) -> None:
        call_external("trello.post_comment", self.store.post_comment, ticket, text)

    def read_comments(self, ticket: Ticket) -> List[str]:
        return call_external("trello.get_comments", self.store.get_comments, ticket)

    def move_ticket(self, ticket: Ticket, list_name: str) -> None:
        """Move a ticket to the list with the given name."""
        list_id = call_external(
            "trello.get_list_id_by_name", self.store.get_list_id_by_name, list_name
        )
        call_external("trello.move_ticket", self.store.move_ticket, ticket, list_id)

    # =========================================================================
    # MODEL AND REPOSITORY HELPERS
    # =========================================================================

    def chat(self, prompt: str) -> str:
        """Ask the model under this persona's context."""
        return self.llm.chat(prompt, context=self.context)

    def read_all_files(self) -> Dict[str, str]:
        return call_external("repository.read_all_files", self.repository.read_all_files)

    def write_file(self, file_name: str, content: bytes) -> None:
        call_external("repository.write_file", self.repository.write_file, file_name, content)

    def start_routine(self) -> List[str]:
        """Observe the repository; returns the paths found."""
        paths = sorted(self.read_all_files())
        for path in paths:
            logger.info(f"Found file: {path}")
        return paths
