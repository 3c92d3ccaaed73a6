"""Tests for configuration loading."""

import pytest

from orchestrator.config import ENV_MAPPINGS, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in list(ENV_MAPPINGS) + ["CONFIG_PATH"]:
        monkeypatch.delenv(env_var, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))

    assert config["agent"] == {"name": "manager", "role": "manager"}
    assert config["workflow"]["poll_interval"] == 60
    assert config["workflow"]["max_attempts"] == 100
    assert config["workflow"]["guidance_list"] == "IMPORTANT"
    assert config["metrics"]["enabled"] is False
    assert config["repository"] == {"url": "", "path": "./repo"}


def test_yaml_values_are_kept_and_merged_with_defaults(tmp_path):
    path = tmp_path / "agent.yaml"
    path.write_text(
        "agent:\n"
        "  name: reviewer\n"
        "workflow:\n"
        "  poll_interval: 5\n"
        "  destination_list: Sprint\n"
    )

    config = load_config(str(path))

    assert config["agent"]["name"] == "reviewer"
    assert config["agent"]["role"] == "manager"
    assert config["workflow"]["poll_interval"] == 5
    assert config["workflow"]["destination_list"] == "Sprint"
    assert config["workflow"]["max_attempts"] == 100


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "agent.yaml"
    path.write_text("agent:\n  name: reviewer\ntrello:\n  board_id: fromfile\n")
    monkeypatch.setenv("AGENT_NAME", "backend")
    monkeypatch.setenv("TRELLO_BOARD_ID", "fromenv")

    config = load_config(str(path))

    assert config["agent"]["name"] == "backend"
    assert config["trello"]["board_id"] == "fromenv"


def test_numeric_environment_values_are_coerced(tmp_path, monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "0.5")
    monkeypatch.setenv("MAX_POLL_ATTEMPTS", "12")

    workflow = load_config(str(tmp_path / "absent.yaml"))["workflow"]

    assert workflow["poll_interval"] == 0.5
    assert workflow["max_attempts"] == 12


def test_other_environment_values_stay_strings(tmp_path, monkeypatch):
    monkeypatch.setenv("TRELLO_TOKEN", "0123456789")

    assert load_config(str(tmp_path / "absent.yaml"))["trello"]["token"] == "0123456789"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("agent:\n  name: qa\n")
    monkeypatch.setenv("CONFIG_PATH", str(path))

    assert load_config()["agent"]["name"] == "qa"


def test_defaults_are_not_shared_between_loads(tmp_path):
    first = load_config(str(tmp_path / "absent.yaml"))
    first["workflow"]["reviewer"] = "someone"

    assert load_config(str(tmp_path / "absent.yaml"))["workflow"]["reviewer"] == "reviewer"
