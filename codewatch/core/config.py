"""Configuration management with validation.

Supports TOML and YAML configuration files with Pydantic validation.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

import tomlkit
import yaml
from pydantic import BaseModel, Field, model_validator

from codewatch.core.errors import ConfigError

DEFAULT_AGENT_TYPE = "code-modification"


class ServiceConfig(BaseModel):
    """Global service settings ([codewatch] table)."""

    concurrency: int = Field(default=1, ge=1)
    agent_timeout_s: float = Field(default=600.0, gt=0)
    shutdown_grace_s: float = Field(default=30.0, ge=0)
    console_verbosity: Literal["debug", "info", "warning", "error"] = Field(default="info")
    log_file: str = ""


class FilesystemConfig(BaseModel):
    """Per-filesystem watch configuration."""

    root: str = "."
    poll_interval_ms: int = Field(default=1000, gt=0)
    stability_threshold_ms: int = Field(default=2000, gt=0)
    agent_type: str = DEFAULT_AGENT_TYPE
    ignore: list[str] = Field(default_factory=list)


class AgentConfig(BaseModel):
    """How to launch one agent type as a headless subprocess."""

    command: list[str] = Field(default_factory=list)
    protocol: Literal["text", "jsonl"] = "text"
    timeout_s: float | None = Field(default=None, gt=0)
    env: dict[str, str] = Field(default_factory=dict)


class Config(BaseModel):
    """Root configuration model."""

    codewatch: ServiceConfig = Field(default_factory=ServiceConfig)
    filesystems: dict[str, FilesystemConfig] = Field(default_factory=dict)
    agents: dict[str, AgentConfig] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_agent_types(self) -> Config:
        """Every filesystem must reference a configured agent type."""
        for name, fs in self.filesystems.items():
            if fs.agent_type not in self.agents:
                raise ValueError(
                    f"filesystems.{name}.agent_type '{fs.agent_type}' "
                    f"is not defined under [agents]"
                )
        return self

    def agent_timeout_for(self, agent_type: str) -> float:
        """Resolve the session timeout for an agent type."""
        agent = self.agents.get(agent_type)
        if agent is not None and agent.timeout_s is not None:
            return agent.timeout_s
        return self.codewatch.agent_timeout_s


def load_config(path: Path | str) -> Config:
    """Load and validate configuration from file.

    Supports both TOML and YAML formats (detected by extension).

    Args:
        path: Path to configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If file cannot be read, parsed, or validated.
    """
    path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        if path.suffix in (".toml",):
            with open(path, "rb") as f:
                data = tomllib.load(f)
        elif path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            raise ConfigError(f"Unsupported config file extension: {path.suffix}")

    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Failed to parse configuration file {path}: {e}") from e

    try:
        return Config.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def load_config_or_default(path: Path | str | None = None) -> Config:
    """Load config from file, or return default if file doesn't exist.

    Args:
        path: Optional path to configuration file. If None, returns default.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If file exists but cannot be parsed or validated.
    """
    if path is None:
        return Config()

    path = Path(path)
    if not path.exists():
        return Config()

    return load_config(path)


def default_config() -> Config:
    """Starter configuration: watch the current directory with one agent."""
    return Config(
        filesystems={
            "local": FilesystemConfig(
                ignore=[".git/*", "node_modules/*", "__pycache__/*", ".venv/*"],
            )
        },
        agents={DEFAULT_AGENT_TYPE: AgentConfig()},
    )


def create_default_config(path: Path | str) -> None:
    """Create a default configuration file.

    Args:
        path: Path where to create the config file.

    Raises:
        ConfigError: If file already exists or cannot be written.
    """
    path = Path(path)

    if path.exists():
        raise ConfigError(f"Configuration file already exists: {path}")

    try:
        content = _serialize_config(default_config(), path)

        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Failed to write configuration file {path}: {e}") from e


def _serialize_config(config: Config, path: Path) -> str:
    """Serialize config to text based on file extension."""
    if path.suffix == ".toml":
        return _config_to_toml(config)
    if path.suffix in (".yaml", ".yml"):
        return yaml.dump(
            config.model_dump(exclude_none=True), default_flow_style=False, sort_keys=False
        )
    raise ConfigError(f"Unsupported config file extension: {path.suffix}")


def _config_to_toml(config: Config) -> str:
    """Convert Config to a commented TOML string."""
    doc = tomlkit.document()
    doc.add(tomlkit.comment("codewatch configuration"))

    service = tomlkit.table()
    for key, value in config.codewatch.model_dump().items():
        service[key] = value
    doc["codewatch"] = service

    filesystems = tomlkit.table(is_super_table=True)
    for name, fs in config.filesystems.items():
        table = tomlkit.table()
        for key, value in fs.model_dump().items():
            table[key] = value
        filesystems[name] = table
    doc["filesystems"] = filesystems

    agents = tomlkit.table(is_super_table=True)
    for name, agent in config.agents.items():
        table = tomlkit.table()
        table.add(tomlkit.comment("Command that runs one headless agent session"))
        for key, value in agent.model_dump(exclude_none=True).items():
            table[key] = value
        agents[name] = table
    doc["agents"] = agents

    return tomlkit.dumps(doc)
