from pathlib import Path

import pytest

from codewatch.core.config import (
    AgentConfig,
    Config,
    FilesystemConfig,
    ServiceConfig,
    create_default_config,
    load_config,
    load_config_or_default,
)
from codewatch.core.errors import ConfigError
from codewatch.core.model import WatchTarget

TOML = """
[codewatch]
concurrency = 3
agent_timeout_s = 120

[filesystems.local]
root = "."
poll_interval_ms = 500
stability_threshold_ms = 1500
agent_type = "coder"
ignore = [".git/*"]

[agents.coder]
command = ["my-agent", "--headless"]
protocol = "jsonl"
timeout_s = 30
"""


def test_load_toml(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.toml"
    path.write_text(TOML, encoding="utf-8")

    cfg = load_config(path)

    assert cfg.codewatch.concurrency == 3
    fs = cfg.filesystems["local"]
    assert fs.poll_interval_ms == 500
    assert fs.stability_threshold_ms == 1500
    assert cfg.agents["coder"].protocol == "jsonl"
    assert cfg.agent_timeout_for("coder") == 30


def test_load_yaml(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.yaml"
    path.write_text(
        "filesystems:\n  src:\n    root: src\n    agent_type: coder\n"
        "agents:\n  coder:\n    command: [agent]\n",
        encoding="utf-8",
    )

    cfg = load_config(path)

    assert cfg.filesystems["src"].stability_threshold_ms == 2000
    assert cfg.codewatch.concurrency == 1
    assert cfg.agent_timeout_for("coder") == cfg.codewatch.agent_timeout_s


def test_filesystem_must_reference_known_agent(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.toml"
    path.write_text('[filesystems.local]\nagent_type = "ghost"\n', encoding="utf-8")

    with pytest.raises(ConfigError, match="ghost"):
        load_config(path)


def test_concurrency_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ServiceConfig(concurrency=0)


def test_thresholds_must_be_positive() -> None:
    with pytest.raises(ValueError):
        FilesystemConfig(stability_threshold_ms=0)


def test_unknown_top_level_key_rejected(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.toml"
    path.write_text("[plugins]\nx = 1\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_and_unsupported_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.toml")

    path = tmp_path / "config.ini"
    path.write_text("[section]\nkey=value\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Unsupported"):
        load_config(path)


def test_invalid_toml_is_config_error(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.toml"
    path.write_text("[codewatch\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(path)


def test_load_config_or_default_missing_returns_default(tmp_path: Path) -> None:
    cfg = load_config_or_default(tmp_path / "does_not_exist.toml")
    assert isinstance(cfg, Config)
    assert cfg.filesystems == {}


def test_create_default_config_toml_and_load(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.toml"
    create_default_config(path)

    cfg = load_config(path)

    assert "local" in cfg.filesystems
    assert cfg.filesystems["local"].agent_type in cfg.agents
    assert ".git/*" in cfg.filesystems["local"].ignore

    with pytest.raises(ConfigError, match="already exists"):
        create_default_config(path)


def test_create_default_config_yaml_and_load(tmp_path: Path) -> None:
    path = tmp_path / "codewatch.yaml"
    create_default_config(path)
    cfg = load_config(path)
    assert cfg.codewatch.concurrency == 1


def test_watch_target_from_config(tmp_path: Path) -> None:
    cfg = FilesystemConfig(root=str(tmp_path), agent_type="coder", ignore=["*.lock"])
    target = WatchTarget.from_config("local", cfg)

    assert target.id == "local"
    assert target.root == tmp_path.resolve()
    assert target.stability_threshold_s == 2.0
    assert target.ignore == ("*.lock",)


def test_agent_config_defaults() -> None:
    agent = AgentConfig()
    assert agent.command == []
    assert agent.protocol == "text"
    assert agent.timeout_s is None
