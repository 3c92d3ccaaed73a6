# =============================================================================
# TICKET AGENT SYSTEM - AGENT RUNNER ENTRY POINT
# =============================================================================
"""
Agent Runner Module

Entry point for one persona process. It wires the collaborators from
configuration and runs the scan loop:

1. Start-up: load guidance digest, role instruction and repository context
2. Scan: list tickets assigned to the persona, refreshing repository
   context once when the first assigned ticket is found
3. Handle each ticket through the ticket workflow; a failing ticket is
   logged and does not stop the others
4. Wait for the next scan or a stop request

Usage:
    python -m orchestrator.main

Configuration comes from config/agent.yaml (or CONFIG_PATH) and the
environment; see orchestrator.config.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import AgentIdentity
from agents.base.context_loader import ContextSynchronizer
from agents.base.llm_client import create_llm_client
from agents.roles import get_role
from monitoring.logger import AuditLogger, mask_dict, setup_logging
from monitoring.metrics import MetricsCollector, create_metrics_collector
from orchestrator.config import load_config
from orchestrator.engine.clarification import CancelToken
from orchestrator.engine.ticket_workflow import TicketOrchestrator, WorkflowResult
from orchestrator.errors import (
    AgentSystemError,
    ClarificationCancelled,
    ExternalCallFailure,
    LookupFailure,
)
from orchestrator.repository.mirror import RepositoryError, RepositoryMirror
from orchestrator.trello.client import TrelloClient


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logger = logging.getLogger(__name__)


# =============================================================================
# AGENT RUNNER
# =============================================================================

class AgentRunner:
    """
    Runs one persona against the board until stopped.

    Attributes:
        identity: The persona
        synchronizer: Keeps the persona's model context current
        orchestrator: Ticket workflow
        scan_interval: Seconds between board scans
    """

    def __init__(
        self,
        identity: AgentIdentity,
        synchronizer: ContextSynchronizer,
        orchestrator: TicketOrchestrator,
        scan_interval: float = 60,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.identity = identity
        self.synchronizer = synchronizer
        self.orchestrator = orchestrator
        self.scan_interval = scan_interval
        self.metrics = metrics

        self._stop_event = threading.Event()
        self._cancel_token = CancelToken()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started and not self._stop_event.is_set()

    def startup(self) -> None:
        """
        Load the persona's full context.

        Guidance is optional: a missing or unreadable guidance list is
        logged and start-up continues without it.
        """
        logger.info(f"Starting agent {self.identity.name}")
        try:
            self.synchronizer.load_guidance_digest()
        except (LookupFailure, ExternalCallFailure) as e:
            logger.warning(f"Guidance tickets not loaded: {e}")
        self.synchronizer.load_role()
        self.synchronizer.refresh_repository_context()
        self._started = True

    def scan_once(self) -> List[WorkflowResult]:
        """
        Handle every ticket currently assigned to the persona.

        Returns:
            Results of the tickets that completed
        """
        tickets = self.identity.list_assigned_tickets(
            on_first_match=self.synchronizer.refresh_repository_context
        )

        results: List[WorkflowResult] = []
        for ticket in tickets:
            if self._stop_event.is_set():
                break
            try:
                result = self.orchestrator.handle_ticket(ticket, cancel_token=self._cancel_token)
            except ClarificationCancelled:
                logger.info(f"Stopped while waiting on ticket {ticket.id}")
                break
            except AgentSystemError as e:
                logger.error(f"Ticket {ticket.id} failed: {e}")
                if self.metrics is not None:
                    self.metrics.record_error("agent_runner", type(e).__name__)
                continue

            results.append(result)
            logger.info(
                f"Ticket {ticket.id} finished in {result.state.value}: "
                f"{len(result.children)} child ticket(s)"
            )
        return results

    def run(self, max_scans: Optional[int] = None) -> None:
        """
        Main loop.

        Runs until stop() is called or max_scans scans are done.
        """
        if not self._started:
            self.startup()

        scans = 0
        while not self._stop_event.is_set():
            try:
                self.scan_once()
            except AgentSystemError as e:
                logger.error(f"Scan failed: {e}")
                if self.metrics is not None:
                    self.metrics.record_error("agent_runner", type(e).__name__)
            except Exception as e:
                logger.error(f"Error in main loop: {e}", exc_info=True)

            scans += 1
            if max_scans is not None and scans >= max_scans:
                break

            # Wait for next scan or shutdown
            if self._stop_event.wait(self.scan_interval):
                break

        logger.info(f"Agent {self.identity.name} stopped")

    def stop(self) -> None:
        """Stop the loop, waking any reply wait in progress."""
        logger.info(f"Stopping agent {self.identity.name}...")
        self._stop_event.set()
        self._cancel_token.cancel()


# =============================================================================
# WIRING
# =============================================================================

def build_runner(config: Dict[str, Any]) -> AgentRunner:
    """
    Build a runner with real clients from a loaded configuration.

    Args:
        config: Output of load_config()
    """
    logging_config = config.get("logging", {})
    workflow = config.get("workflow", {})
    repo_config = config.get("repository", {})
    agent_config = config.get("agent", {})

    metrics = create_metrics_collector(config.get("metrics", {}))
    audit = AuditLogger(logging_config.get("audit_path", "./logs/audit.jsonl"))

    trello_config = config.get("trello", {})
    store = TrelloClient(
        api_key=trello_config.get("api_key") or None,
        token=trello_config.get("token") or None,
        board_id=trello_config.get("board_id") or None,
        metrics=metrics,
    )

    if repo_config.get("url"):
        repository = RepositoryMirror.open_or_clone(repo_config["url"], repo_config["path"])
    else:
        repository = RepositoryMirror(repo_config["path"])

    identity = AgentIdentity(
        name=agent_config["name"],
        role=get_role(agent_config.get("role", "manager")).system_message,
        store=store,
        repository=repository,
        llm=create_llm_client(config.get("llm", {}), metrics=metrics),
    )

    synchronizer = ContextSynchronizer(
        identity,
        guidance_list=workflow.get("guidance_list", "IMPORTANT"),
        audit=audit,
        pull_first=bool(repo_config.get("url")),
    )
    orchestrator = TicketOrchestrator(
        identity,
        reviewer_name=workflow.get("reviewer", "reviewer"),
        destination_list=workflow.get("destination_list", "Doing"),
        poll_interval=workflow.get("poll_interval", 60),
        max_attempts=workflow.get("max_attempts", 100),
        metrics=metrics,
        audit=audit,
    )

    return AgentRunner(
        identity,
        synchronizer,
        orchestrator,
        scan_interval=workflow.get("scan_interval", 60),
        metrics=metrics,
    )


# =============================================================================
# SIGNAL HANDLING
# =============================================================================

def setup_signal_handlers(runner: AgentRunner) -> None:
    """Setup signal handlers for graceful shutdown."""

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating shutdown...")
        runner.stop()

    if sys.platform != "win32":
        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main() -> None:
    """Main entry point."""
    config = load_config()

    logging_config = config["logging"]
    setup_logging(
        level=logging_config["level"],
        fmt=logging_config["format"],
        log_file=logging_config["path"] or None,
    )
    logger.debug(f"Configuration: {mask_dict(config)}")

    try:
        runner = build_runner(config)
    except (AgentSystemError, RepositoryError, ValueError) as e:
        logger.critical(f"Agent setup failed: {e}")
        sys.exit(1)

    if config["metrics"].get("enabled"):
        runner.metrics.start_server(config["metrics"].get("port"))

    setup_signal_handlers(runner)

    try:
        runner.run()
    except KeyboardInterrupt:
        logger.info("Agent stopped by user")
        runner.stop()
    except AgentSystemError as e:
        logger.critical(f"Agent failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
