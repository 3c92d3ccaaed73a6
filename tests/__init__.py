# =============================================================================
# TICKET AGENT SYSTEM - TEST PACKAGE
# =============================================================================
"""
Test Package

Tests for the ticket agent system. No test touches the network, a real
language model or a remote git server.

Test Structure:
    tests/
    ├── __init__.py              # This file
    ├── conftest.py              # Shared fixtures
    ├── fixtures/                # In-memory board and scripted LLM provider
    ├── test_task_parser.py      # Decomposition parsing
    ├── test_clarification.py    # Mailbox and reply wait
    ├── test_ticket_workflow.py  # Ticket state machine
    ├── test_context_loader.py   # Model context synchronization
    ├── test_agent_identity.py   # Assignment routing
    ├── test_agent_runner.py     # Scan loop
    ├── test_trello_client.py    # Trello REST client
    ├── test_repository_mirror.py # Git working copy
    ├── test_llm_client.py       # LLM client and model context
    ├── test_config.py           # Configuration loading
    ├── test_roles.py            # Roles and runner wiring
    └── test_monitoring.py       # Logging, audit and metrics

Running Tests:
    pytest tests/ -v
"""
