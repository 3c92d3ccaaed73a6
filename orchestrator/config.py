# =============================================================================
# TICKET AGENT SYSTEM - CONFIGURATION
# =============================================================================
"""
Configuration Module

Loads the agent configuration from a YAML file, then applies environment
variable overrides, then fills in defaults for anything still missing.

Sections:
    trello:     api_key, token, board_id
    llm:        provider, model, api_key, max_tokens, temperature
    repository: url, path
    agent:      name, role
    workflow:   reviewer, destination_list, guidance_list,
                poll_interval, max_attempts, scan_interval
    logging:    level, format, path, audit_path
    metrics:    enabled, port
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "config/agent.yaml"

# Environment variable -> (section, key)
ENV_MAPPINGS = {
    # Trello
    "TRELLO_API_KEY": ("trello", "api_key"),
    "TRELLO_TOKEN": ("trello", "token"),
    "TRELLO_BOARD_ID": ("trello", "board_id"),
    # LLM
    "LLM_PROVIDER": ("llm", "provider"),
    "LLM_MODEL": ("llm", "model"),
    "LLM_API_KEY": ("llm", "api_key"),
    # Repository
    "REPO_URL": ("repository", "url"),
    "REPO_PATH": ("repository", "path"),
    # Agent
    "AGENT_NAME": ("agent", "name"),
    "AGENT_ROLE": ("agent", "role"),
    # Workflow
    "REVIEWER_NAME": ("workflow", "reviewer"),
    "POLL_INTERVAL": ("workflow", "poll_interval"),
    "MAX_POLL_ATTEMPTS": ("workflow", "max_attempts"),
    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FORMAT": ("logging", "format"),
    "LOG_PATH": ("logging", "path"),
}

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "trello": {
        "api_key": "",
        "token": "",
        "board_id": "",
    },
    "llm": {
        "provider": "openai",
        "model": "gpt-4o",
        "api_key": "",
        "max_tokens": 4096,
        "temperature": 0.7,
    },
    "repository": {
        "url": "",
        "path": "./repo",
    },
    "agent": {
        "name": "manager",
        "role": "manager",
    },
    "workflow": {
        "reviewer": "reviewer",
        "destination_list": "Doing",
        "guidance_list": "IMPORTANT",
        "poll_interval": 60,
        "max_attempts": 100,
        "scan_interval": 60,
    },
    "logging": {
        "level": "INFO",
        "format": "json",
        "path": "",
        "audit_path": "./logs/audit.jsonl",
    },
    "metrics": {
        "enabled": False,
        "port": 9100,
    },
}


# Keys whose environment values are numbers
NUMERIC_KEYS = {
    ("workflow", "poll_interval"),
    ("workflow", "max_attempts"),
}


def _coerce(section: str, key: str, value: str) -> Any:
    if (section, key) not in NUMERIC_KEYS:
        return value
    if value.isdigit():
        return int(value)
    return float(value)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file and environment variables.

    Environment variables override YAML values; defaults fill the rest.

    Args:
        config_path: Path to the YAML file (default: CONFIG_PATH env or
            config/agent.yaml). A missing file is not an error.

    Returns:
        Merged configuration dictionary
    """
    config_path = config_path or os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    config: Dict[str, Any] = {}

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded config from {config_path}")
    else:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is not None:
            config.setdefault(section, {})
            config[section][key] = _coerce(section, key, value)

    for section, section_defaults in DEFAULTS.items():
        config.setdefault(section, {})
        for key, default_value in section_defaults.items():
            if key not in config[section]:
                config[section][key] = copy.deepcopy(default_value)

    return config


__all__ = ["load_config", "DEFAULTS", "ENV_MAPPINGS", "DEFAULT_CONFIG_PATH"]
