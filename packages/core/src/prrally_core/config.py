import os
from pathlib import Path
from typing import Optional

import yaml

from prrally_core.errors import ConfigurationError

DEFAULT_CONFIG: dict = {
    "reviewer": {"agent": "anthropic", "model": None},
    "reviewee": {"agent": "anthropic", "model": None},
    "reviewer_prompt": None,  # inline custom instructions prepended to the reviewer prompt
    "reviewee_prompt": None,
    "reviewer_prompt_file": None,  # path whose contents replace reviewer_prompt
    "reviewee_prompt_file": None,
    "max_iterations": 10,
    "timeout_secs": 600,
    "rally_dir": None,  # None = $XDG_CACHE_HOME/prrally/rally
    "post_header": True,
    "post_summary": True,
}

ROLES = ("reviewer", "reviewee")


def load_config(config_path: str = ".prrally.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prrally.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG}
    for role in ROLES:
        config[role] = dict(DEFAULT_CONFIG[role])

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        for key, value in file_config.items():
            # Role sections are merged key by key so `reviewer: {model: x}` keeps the default agent.
            if key in ROLES and isinstance(value, dict):
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_custom_prompt(config: dict, role: str) -> str | None:
    """
    Return the custom instructions for `role` ("reviewer" or "reviewee").

    A configured `<role>_prompt_file` wins over the inline `<role>_prompt`.
    A prompt file that does not exist is a configuration error.
    """
    prompt_file = config.get(f"{role}_prompt_file")
    if prompt_file:
        p = Path(prompt_file).expanduser()
        if not p.exists():
            raise ConfigurationError(f"{role.capitalize()} prompt file not found: {prompt_file}")
        return p.read_text().strip() or None
    return config.get(f"{role}_prompt") or None


def positive_int(config: dict, key: str) -> int:
    value = config.get(key, DEFAULT_CONFIG.get(key))
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}") from None
    if number <= 0:
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}")
    return number
