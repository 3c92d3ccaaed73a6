# =============================================================================
# TICKET AGENT SYSTEM - ORCHESTRATOR PACKAGE
# =============================================================================
"""
Orchestrator Package

Ticket-lifecycle orchestration for board-driven agent personas. The
orchestrator is responsible for:

1. Scanning the board for tickets assigned to a persona
2. Running the clarification exchange through ticket comments
3. Decomposing clarified tickets into technical child tickets
4. Keeping an audit trail and metrics of every transition

Package Structure:
    - main.py: Entry point and scan loop (AgentRunner)
    - config.py: YAML + environment configuration
    - errors.py: Error taxonomy
    - engine/: Core orchestration engine
        - clarification.py: Mailbox and bounded reply wait
        - ticket_workflow.py: Per-ticket state machine
    - trello/: Trello board client
    - repository/: Git working copy mirror

Usage:
    ```python
    from orchestrator.config import load_config
    from orchestrator.main import build_runner

    runner = build_runner(load_config())
    runner.run()
    ```

Environment Variables Required:
    - TRELLO_API_KEY, TRELLO_TOKEN, TRELLO_BOARD_ID: Board access
    - LLM_PROVIDER: LLM provider (openai, anthropic, ollama)
    - LLM_API_KEY or OPENAI_API_KEY / ANTHROPIC_API_KEY: LLM API key
"""

__version__ = "1.0.0"
