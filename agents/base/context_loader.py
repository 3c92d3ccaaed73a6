# =============================================================================
# TICKET AGENT SYSTEM - CONTEXT SYNCHRONIZER
# =============================================================================
"""
Context Synchronizer Module

This module keeps a persona's model context in step with the outside
world. It reads from:
1. The repository mirror (every file except version-control metadata)
2. The guidance column of the board (default "IMPORTANT")
3. The persona's role instruction

Each source fills one slot of the persona's ModelContext. A slot is
replaced wholesale, so a repository refresh always reflects the working
copy as it is now, never an accumulation of older snapshots.

Usage:
    sync = ContextSynchronizer(identity, audit=audit)
    sync.load_role()
    sync.load_guidance_digest()
    sync.refresh_repository_context()
"""

import logging
import os
from typing import Dict, List

from agents.base.agent_interface import AgentIdentity
from agents.base.llm_client import ModelContext
from orchestrator.errors import call_external
from orchestrator.trello.models import Ticket


logger = logging.getLogger(__name__)


GUIDANCE_LIST = "IMPORTANT"

REPOSITORY_HEADER = (
    "Project Reference:\n"
    "Folder structure, file locations and full file contents of the "
    "repository you are working on:\n\n"
)
FILE_SEPARATOR = "\n----------------\n"

GUIDANCE_HEADER = "Guidance Tickets:\n"


# =============================================================================
# TEXT BUILDERS
# =============================================================================

def build_repository_snapshot(files: Dict[str, str]) -> str:
    """
    Render repository files as reference text for the repository slot.

    Files appear in path order. Each block carries the path, the folder
    holding it, and the full content.
    """
    parts = [REPOSITORY_HEADER]
    for path in sorted(files):
        folder = os.path.dirname(path) or "."
        parts.append(f"File: {path}\n")
        parts.append(f"Location: {folder}\n")
        parts.append("Content:\n")
        parts.append(files[path])
        parts.append(FILE_SEPARATOR)
    return "".join(parts)


def build_guidance_digest(tickets: List[Ticket]) -> str:
    """Concatenate title and details of every guidance ticket, in board order."""
    if not tickets:
        return ""
    parts = [GUIDANCE_HEADER]
    for ticket in tickets:
        parts.append(f"Title: {ticket.title}\n")
        parts.append(f"Details: {ticket.description}\n\n")
    return "".join(parts)


# =============================================================================
# CONTEXT SYNCHRONIZER
# =============================================================================

class ContextSynchronizer:
    """
    Pushes repository contents, guidance and role into a persona's context.

    Attributes:
        identity: Persona whose context is maintained
        guidance_list: Board list holding project guidance tickets
        audit: Optional AuditLogger for context updates
        pull_first: Pull the remote before reading the working copy
    """

    def __init__(
        self,
        identity: AgentIdentity,
        guidance_list: str = GUIDANCE_LIST,
        audit=None,
        pull_first: bool = False,
    ):
        self.identity = identity
        self.guidance_list = guidance_list
        self.audit = audit
        self.pull_first = pull_first

    @property
    def context(self) -> ModelContext:
        return self.identity.context

    def refresh_repository_context(self) -> int:
        """
        Replace the repository snapshot in the model context.

        Returns:
            The new context version
        """
        if self.pull_first:
            call_external("repository.pull", self.identity.repository.pull)
        files = self.identity.read_all_files()
        snapshot = build_repository_snapshot(files)
        version = self._install(ModelContext.REPOSITORY, snapshot)
        logger.info(f"Repository context refreshed: {len(files)} file(s), context v{version}")
        return version

    def load_guidance_digest(self) -> bool:
        """
        Load the guidance column into the model context.

        Returns:
            True if a digest was installed, False if the column was empty
        """
        store = self.identity.store
        list_id = call_external("trello.get_list_id_by_name", store.get_list_id_by_name, self.guidance_list)
        tickets = call_external("trello.get_list_tickets", store.get_list_tickets, list_id)

        digest = build_guidance_digest(tickets)
        if not digest:
            logger.info(f"No guidance tickets in list '{self.guidance_list}'")
            return False

        version = self._install(ModelContext.GUIDANCE, digest)
        logger.info(f"Guidance tickets loaded: {len(tickets)} ticket(s), context v{version}")
        return True

    def load_role(self) -> int:
        """Install the persona's role instruction."""
        return self._install(ModelContext.ROLE, self.identity.role)

    def _install(self, slot: str, text: str) -> int:
        version = self.context.update(slot, text)
        if self.audit is not None:
            self.audit.log_context_update(self.identity.name, slot, version, len(text))
        return version
