# =============================================================================
# TICKET AGENT SYSTEM - ERROR TAXONOMY
# =============================================================================
"""
Error Taxonomy

Exceptions shared by the agents and the orchestration engine.

Hierarchy:
    AgentSystemError
    ├── ExternalCallFailure      # board / model / repository call failed
    ├── ReplyTimeout             # clarification wait budget exhausted
    ├── ClarificationCancelled   # wait cancelled through a CancelToken
    ├── LookupFailure
    │   ├── MemberNotFound
    │   └── ListNotFound
    ├── ClarificationFailed      # could not generate or post the question
    └── DecompositionFailed      # could not generate the task list

Malformed decomposition text is never an error: the parser drops
unusable segments and reports the count instead.
"""

import logging
from typing import Any, Callable, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class AgentSystemError(Exception):
    """Base exception for the ticket agent system."""
    pass


class ExternalCallFailure(AgentSystemError):
    """
    An external collaborator call failed.

    Attributes:
        operation: Name of the failed operation (e.g. "trello.post_comment")
        cause: Original exception
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ReplyTimeout(AgentSystemError):
    """No tagged reply appeared within the poll budget."""

    def __init__(self, ticket_id: str, required_tag: str, attempts: int):
        self.ticket_id = ticket_id
        self.required_tag = required_tag
        self.attempts = attempts
        super().__init__(
            f"reply with tag {required_tag} not received on ticket "
            f"{ticket_id} after {attempts} attempts"
        )


class ClarificationCancelled(AgentSystemError):
    """A clarification wait was cancelled before a reply arrived."""
    pass


class LookupFailure(AgentSystemError):
    """A named board entity could not be resolved."""
    pass


class MemberNotFound(LookupFailure):
    """No board member matches the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"board member not found: {name}")


class ListNotFound(LookupFailure):
    """No board list matches the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"board list not found: {name}")


class ClarificationFailed(AgentSystemError):
    """Generating or posting a clarification question failed."""
    pass


class DecompositionFailed(AgentSystemError):
    """Generating the technical task list failed."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def call_external(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Invoke a collaborator call, wrapping foreign errors.

    Errors already in the taxonomy (e.g. MemberNotFound raised by the
    store) pass through untouched; anything else becomes an
    ExternalCallFailure carrying the operation name.

    Args:
        operation: Operation name used in the error message
        func: Callable to invoke
        *args, **kwargs: Passed to func

    Returns:
        Whatever func returns

    Raises:
        ExternalCallFailure: If func raised a foreign exception
    """
    try:
        return func(*args, **kwargs)
    except AgentSystemError:
        raise
    except Exception as e:
        logger.error(f"External call {operation} failed: {e}")
        raise ExternalCallFailure(operation, e) from e


__all__ = [
    "AgentSystemError",
    "ExternalCallFailure",
    "ReplyTimeout",
    "ClarificationCancelled",
    "LookupFailure",
    "MemberNotFound",
    "ListNotFound",
    "ClarificationFailed",
    "DecompositionFailed",
    "call_external",
]
