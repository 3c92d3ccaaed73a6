# =============================================================================
# TICKET AGENT SYSTEM - AGENT BASE PACKAGE
# =============================================================================
"""
Agent Base Package

Shared infrastructure used by every persona:
1. Persona identity and assignment routing
2. Model context synchronization
3. Task block parsing of model output
4. LLM interaction utilities

Components:
    - AgentIdentity: Named persona with role, tag and collaborators
    - ContextSynchronizer: Keeps the persona's model context current
    - TaskBlockParser: Splits model output into work items
    - LLMClient: Configured LLM client
    - ModelContext: Explicit, versioned system context

Usage:
    from agents.base import AgentIdentity, ContextSynchronizer

    identity = AgentIdentity(name="manager", role=MANAGER.system_message,
                             store=store, repository=mirror, llm=llm)
    ContextSynchronizer(identity).refresh_repository_context()
"""

from .agent_interface import AgentIdentity

from .context_loader import (
    ContextSynchronizer,
    build_guidance_digest,
    build_repository_snapshot,
)

from .task_parser import (
    TASK_DELIMITER,
    ParseReport,
    TaskBlock,
    TaskBlockParser,
    parse_tasks,
)

from .llm_client import (
    LLMClient,
    LLMResponse,
    LLMMessage,
    ModelContext,
    create_llm_client,
)


__all__ = [
    # Identity
    "AgentIdentity",

    # Context
    "ContextSynchronizer",
    "build_guidance_digest",
    "build_repository_snapshot",

    # Parsing
    "TASK_DELIMITER",
    "ParseReport",
    "TaskBlock",
    "TaskBlockParser",
    "parse_tasks",

    # LLM client
    "LLMClient",
    "LLMResponse",
    "LLMMessage",
    "ModelContext",
    "create_llm_client",
]
