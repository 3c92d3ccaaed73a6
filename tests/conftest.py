"""Pytest configuration and shared fixtures.

Every collaborator is in memory: the board is a FakeBoard, the model is
a ScriptedLLMProvider behind a real LLMClient, and the repository is a
plain directory under tmp_path.
"""

import pytest

from agents.base.agent_interface import AgentIdentity
from agents.base.llm_client import LLMClient
from monitoring.logger import AuditLogger
from monitoring.metrics import MetricsCollector
from orchestrator.repository.mirror import RepositoryMirror
from tests.fixtures.fake_board import FakeBoard
from tests.fixtures.mock_llm_provider import ScriptedLLMProvider


@pytest.fixture
def board():
    """Board with the default columns and two personas."""
    board = FakeBoard()
    board.add_list("IMPORTANT")
    board.add_list("To Do")
    board.add_list("Doing")
    board.add_member("manager", "Engineering Manager")
    board.add_member("reviewer", "Product Owner")
    return board


@pytest.fixture
def manager_member(board):
    return board.get_member_by_name("manager")


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def audit(tmp_path):
    return AuditLogger(str(tmp_path / "logs" / "audit.jsonl"))


@pytest.fixture
def provider():
    return ScriptedLLMProvider()


@pytest.fixture
def llm(provider, metrics):
    return LLMClient(provider="openai", provider_instance=provider, metrics=metrics)


@pytest.fixture
def repo_dir(tmp_path):
    repo = tmp_path / "repo"
    (repo / ".git").mkdir(parents=True)
    (repo / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (repo / "README.md").write_text("# Shop\n")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("print('hello')\n")
    return repo


@pytest.fixture
def identity(board, repo_dir, llm):
    return AgentIdentity(
        name="manager",
        role="You are an engineering manager agent.",
        store=board,
        repository=RepositoryMirror(str(repo_dir)),
        llm=llm,
    )
