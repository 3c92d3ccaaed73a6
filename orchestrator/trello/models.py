# =============================================================================
# TICKET AGENT SYSTEM - BOARD DATA MODEL
# =============================================================================
"""
Board Data Model

Plain data structures for board entities. Instances are built from the
Trello REST payloads and are never mutated by the orchestration core;
changes go through the TicketStore contract.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@dataclass
class Ticket:
    """
    A unit of work on the board (a Trello card).

    Attributes:
        id: Card identifier
        title: Card name
        description: Free-text card description
        list_id: Identifier of the list (column) holding the card
        member_ids: Identifiers of assigned board members
        url: Card URL, if known
    """
    id: str
    title: str
    description: str = ""
    list_id: str = ""
    member_ids: List[str] = field(default_factory=list)
    url: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Ticket":
        """Create a Ticket from a Trello card payload."""
        return cls(
            id=data["id"],
            title=data.get("name", ""),
            description=data.get("desc", "") or "",
            list_id=data.get("idList", ""),
            member_ids=list(data.get("idMembers", []) or []),
            url=data.get("url", ""),
        )


@dataclass
class Member:
    """A board member (human or agent account)."""
    id: str
    username: str
    full_name: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Member":
        """Create a Member from a Trello member payload."""
        return cls(
            id=data["id"],
            username=data.get("username", ""),
            full_name=data.get("fullName", "") or "",
        )

    def matches_name(self, name: str) -> bool:
        """Case-insensitive match against username or full name."""
        wanted = name.lower()
        return self.username.lower() == wanted or self.full_name.lower() == wanted


@runtime_checkable
class TicketStore(Protocol):
    """Contract the orchestration core relies on for board access."""

    def get_board_tickets(self) -> List[Ticket]: ...

    def get_list_id_by_name(self, name: str) -> str: ...

    def get_list_tickets(self, list_id: str) -> List[Ticket]: ...

    def create_ticket(self, title: str, description: str, list_id: str) -> Ticket: ...

    def move_ticket(self, ticket: Ticket, list_id: str) -> None: ...

    def assign_member(self, ticket: Ticket, member_id: str) -> None: ...

    def post_comment(self, ticket: Ticket, text: str) -> None: ...

    def get_comments(self, ticket: Ticket) -> List[str]: ...

    def get_member(self, member_id: str) -> Member: ...

    def get_member_by_name(self, name: str) -> Member: ...

    def get_board_members(self) -> List[Member]: ...


__all__ = ["Ticket", "Member", "TicketStore"]
