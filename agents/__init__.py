# =============================================================================
# TICKET AGENT SYSTEM - AGENTS PACKAGE
# =============================================================================
"""
Agents Package

Personas that work tickets on the board. A persona is an AgentIdentity
(name, role instruction, collaborators) plus the ModelContext it reasons
under.

Package Structure:
    agents/
    ├── __init__.py           # This file
    ├── roles.py              # Role instructions
    └── base/                 # Shared infrastructure
        ├── agent_interface.py   # Identity and assignment routing
        ├── context_loader.py    # Context synchronization
        ├── task_parser.py       # Model output parsing
        └── llm_client.py        # Language-model client

Persona Lifecycle:
    1. Role, guidance and repository context are loaded
    2. The board is scanned for tickets assigned to the persona
    3. Each ticket goes through the ticket workflow
"""

__version__ = "1.0.0"

__all__ = [
    "AgentIdentity",
    "RoleConfig",
    "get_role",
]

from agents.base.agent_interface import AgentIdentity
from agents.roles import RoleConfig, get_role
