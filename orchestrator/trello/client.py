# =============================================================================
# TICKET AGENT SYSTEM - TRELLO API CLIENT
# =============================================================================
"""
Trello API Client

Low-level client for the Trello REST API. Implements the TicketStore
contract used by the orchestration core.

Features:
    - Key/token query authentication
    - Retry with exponential backoff on 5xx for idempotent verbs only
    - Board, list, card, comment and member operations
    - Request/response logging

Usage:
    client = TrelloClient(api_key="...", token="...", board_id="abc123")
    tickets = client.get_board_tickets()
    client.post_comment(tickets[0], "Hello from an agent! @someone")
"""

import os
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from orchestrator.errors import ListNotFound, MemberNotFound
from orchestrator.trello.models import Member, Ticket


logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class TrelloAPIError(Exception):
    """Base exception for Trello API errors."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self):
        if self.status_code:
            return f"[{self.status_code}] {super().__str__()}"
        return super().__str__()


class NotFoundError(TrelloAPIError):
    """Raised when a resource is not found."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class AuthenticationError(TrelloAPIError):
    """Raised when the key/token pair is rejected."""

    def __init__(self, message: str):
        super().__init__(message, status_code=401)


class RateLimitError(TrelloAPIError):
    """Raised when the API rate limit is exceeded."""

    def __init__(self, message: str):
        super().__init__(message, status_code=429)


# =============================================================================
# TRELLO CLIENT CLASS
# =============================================================================

class TrelloClient:
    """
    Trello board client.

    Attributes:
        api_key: Trello API key
        token: Trello API token
        board_id: Board the client operates on
        base_url: Trello API base URL

    Comments are returned in the order the board supplies them. Callers
    must not assume that the first comment is the most recent one.
    """

    DEFAULT_BASE_URL = "https://api.trello.com/1"
    DEFAULT_TIMEOUT = 30
    DEFAULT_RETRY_COUNT = 3
    DEFAULT_BACKOFF_FACTOR = 0.5

    def __init__(
        self,
        api_key: str = None,
        token: str = None,
        board_id: str = None,
        base_url: str = None,
        timeout: int = None,
        retry_count: int = None,
        backoff_factor: float = None,
        metrics=None,
    ):
        """
        Initialize Trello client.

        Args:
            api_key: API key (default: from TRELLO_API_KEY env)
            token: API token (default: from TRELLO_TOKEN env)
            board_id: Board id (default: from TRELLO_BOARD_ID env)
            base_url: API base URL
            timeout: Request timeout in seconds
            retry_count: Number of retries on 5xx (GET, PUT and DELETE only)
            backoff_factor: Backoff multiplier for retries
            metrics: Optional MetricsCollector for request counts

        Raises:
            ValueError: If key, token or board id is missing
        """
        self.api_key = api_key or os.environ.get("TRELLO_API_KEY")
        self.token = token or os.environ.get("TRELLO_TOKEN")
        self.board_id = board_id or os.environ.get("TRELLO_BOARD_ID")
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.retry_count = retry_count if retry_count is not None else self.DEFAULT_RETRY_COUNT
        self.backoff_factor = backoff_factor or self.DEFAULT_BACKOFF_FACTOR
        self.metrics = metrics

        if not self.api_key or not self.token:
            raise ValueError(
                "Trello credentials required. Set TRELLO_API_KEY and TRELLO_TOKEN "
                "or pass api_key/token parameters."
            )
        if not self.board_id:
            raise ValueError(
                "Trello board required. Set TRELLO_BOARD_ID or pass board_id."
            )

        self._session = self._create_session()
        logger.info(f"TrelloClient initialized for board {self.board_id}")

    def _create_session(self) -> requests.Session:
        """Create configured HTTP session with retry logic."""
        session = requests.Session()
        session.headers.update({
            "Accept": "application/json",
            "User-Agent": "Ticket-Agent-System/1.0",
        })

        retry_strategy = Retry(
            total=self.retry_count,
            backoff_factor=self.backoff_factor,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "PUT", "DELETE"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    # =========================================================================
    # BOARD AND LIST OPERATIONS
    # =========================================================================

    def get_board_tickets(self) -> List[Ticket]:
        """Get every open card on the board, in board order."""
        cards = self._request("GET", f"/boards/{self.board_id}/cards")
        return [Ticket.from_api(card) for card in cards]

    def get_lists(self) -> List[Dict[str, Any]]:
        """Get the board's lists (columns)."""
        return self._request("GET", f"/boards/{self.board_id}/lists")

    def get_list_id_by_name(self, name: str) -> str:
        """
        Resolve a list id from its display name.

        Raises:
            ListNotFound: If no list has that name
        """
        for board_list in self.get_lists():
            if board_list.get("name") == name:
                return board_list["id"]
        raise ListNotFound(name)

    def get_list_tickets(self, list_id: str) -> List[Ticket]:
        """Get the cards in one list, in board order."""
        cards = self._request("GET", f"/lists/{list_id}/cards")
        return [Ticket.from_api(card) for card in cards]

    # =========================================================================
    # CARD OPERATIONS
    # =========================================================================

    def create_ticket(self, title: str, description: str, list_id: str) -> Ticket:
        """
        Create a card.

        Args:
            title: Card name
            description: Card description
            list_id: Destination list

        Returns:
            Created Ticket
        """
        data = self._request("POST", "/cards", params={
            "name": title,
            "desc": description,
            "idList": list_id,
        })
        ticket = Ticket.from_api(data)
        logger.info(f"Created card {ticket.id}: {title}")
        return ticket

    def move_ticket(self, ticket: Ticket, list_id: str) -> None:
        """Move a card to another list."""
        self._request("PUT", f"/cards/{ticket.id}", params={"idList": list_id})

    def assign_member(self, ticket: Ticket, member_id: str) -> None:
        """Add a member to a card."""
        self._request("POST", f"/cards/{ticket.id}/idMembers", params={"value": member_id})

    # =========================================================================
    # COMMENT OPERATIONS
    # =========================================================================

    def post_comment(self, ticket: Ticket, text: str) -> None:
        """Append a comment to a card."""
        self._request("POST", f"/cards/{ticket.id}/actions/comments", params={"text": text})

    def get_comments(self, ticket: Ticket) -> List[str]:
        """Get the text of every comment on a card, in board order."""
        actions = self._request(
            "GET",
            f"/cards/{ticket.id}/actions",
            params={"filter": "commentCard", "limit": 1000},
        )
        return [action.get("data", {}).get("text", "") for action in actions]

    # =========================================================================
    # MEMBER OPERATIONS
    # =========================================================================

    def get_member(self, member_id: str) -> Member:
        """Get a member by id."""
        return Member.from_api(self._request("GET", f"/members/{member_id}"))

    def get_board_members(self) -> List[Member]:
        """Get every member of the board."""
        members = self._request("GET", f"/boards/{self.board_id}/members")
        return [Member.from_api(member) for member in members]

    def get_member_by_name(self, name: str) -> Member:
        """
        Resolve a board member by username or full name (case-insensitive).

        Raises:
            MemberNotFound: If no board member matches
        """
        for member in self.get_board_members():
            if member.matches_name(name):
                return member
        raise MemberNotFound(name)

    # =========================================================================
    # HTTP METHODS
    # =========================================================================

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make authenticated API request.

        Trello authenticates through key/token query parameters.
        """
        url = f"{self.base_url}{endpoint}"
        query = {"key": self.api_key, "token": self.token}
        if params:
            query.update(params)

        logger.debug(f"Trello API: {method} {endpoint}")

        try:
            response = self._session.request(
                method=method,
                url=url,
                params=query,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            self._count(method, "error")
            raise TrelloAPIError(f"Request timed out: {method} {endpoint}")
        except requests.exceptions.ConnectionError as e:
            self._count(method, "error")
            raise TrelloAPIError(f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            self._count(method, "error")
            raise TrelloAPIError(f"Request failed: {e}")

        self._count(method, str(response.status_code))
        if response.status_code >= 400:
            self._handle_error(response)

        if not response.content:
            return {}
        return response.json()

    def _count(self, method: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_board_request(method, status)

    def _handle_error(self, response: requests.Response) -> None:
        """Raise the exception matching an error response."""
        status_code = response.status_code
        message = response.text or response.reason or "unknown error"

        logger.error(f"Trello API error [{status_code}]: {message}")

        if status_code == 401:
            raise AuthenticationError("Authentication failed. Check your Trello key and token.")
        if status_code == 404:
            raise NotFoundError(f"Resource not found: {message}")
        if status_code == 429:
            raise RateLimitError(message)
        raise TrelloAPIError(message, status_code)

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close the HTTP session."""
        if self._session:
            self._session.close()
            logger.debug("TrelloClient session closed")
