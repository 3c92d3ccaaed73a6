# =============================================================================
# TICKET AGENT SYSTEM - TRELLO INTEGRATION PACKAGE
# =============================================================================
"""
Trello Integration Package

Board access for the agents. The board doubles as the communication
channel between personas: tickets carry the work, comments carry the
tagged clarification exchange.

Components:
    - TrelloClient: REST client implementing the TicketStore contract
    - Ticket, Member: Board data model
    - TicketStore: Protocol the orchestration core depends on

Usage:
    from orchestrator.trello import TrelloClient

    client = TrelloClient(api_key="...", token="...", board_id="...")
    doing = client.get_list_id_by_name("Doing")
"""

from orchestrator.trello.client import (
    TrelloClient,
    TrelloAPIError,
    NotFoundError,
    AuthenticationError,
    RateLimitError,
)
from orchestrator.trello.models import Ticket, Member, TicketStore

__all__ = [
    "TrelloClient",
    "TrelloAPIError",
    "NotFoundError",
    "AuthenticationError",
    "RateLimitError",
    "Ticket",
    "Member",
    "TicketStore",
]
