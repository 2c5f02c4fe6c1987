import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from difflens_core.errors import ConfigError

DEFAULT_CONFIG: dict = {
    "model": "openai",
    "openai_model": "gpt-4o",
    "anthropic_model": "claude-sonnet-4-20250514",
    "default_branch": "main",
    "max_tool_calls": 8,
    "max_read_lines": 2000,
    "max_search_matches": 50,
    "temperature": None,  # None = provider default
    "max_tokens": 4096,
    "request_timeout": 120,
    "guidelines": None,  # None = use built-in reviewer policy; set to a path string to override
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "reviewer.md"


@dataclass(frozen=True)
class Budget:
    """Hard caps for one review. Read-only for the lifetime of the loop."""

    max_tool_calls: int = 8
    max_read_lines: int = 2000
    max_search_matches: int = 50

    def __post_init__(self):
        for name in ("max_tool_calls", "max_read_lines", "max_search_matches"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer, got {value!r}")
        if self.max_read_lines == 0:
            raise ConfigError("max_read_lines must be at least 1")

    @classmethod
    def from_config(cls, config: dict) -> "Budget":
        return cls(
            max_tool_calls=config.get("max_tool_calls", DEFAULT_CONFIG["max_tool_calls"]),
            max_read_lines=config.get("max_read_lines", DEFAULT_CONFIG["max_read_lines"]),
            max_search_matches=config.get("max_search_matches", DEFAULT_CONFIG["max_search_matches"]),
        )


def load_config(config_path: str = ".difflens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .difflens.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a YAML mapping")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["model"] not in ("openai", "anthropic"):
        raise ConfigError(f"Unknown model provider: {config['model']!r}. Choose 'openai' or 'anthropic'.")

    # Credentials come from the environment only, never from the config file.
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["openai_base_url"] = os.environ.get("OPENAI_BASE_URL")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

    return config


def load_guidelines(config: dict) -> str:
    """
    Load the reviewer policy placed at the end of the system prompt.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in policy.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text(encoding="utf-8")

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text(encoding="utf-8")

    raise FileNotFoundError("No guidelines configured and built-in default is missing.")
