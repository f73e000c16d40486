"""
livecheck — Configuration System

All configuration is Pydantic-validated and loaded from:
1. a YAML file (defaults for a workspace)
2. Environment variables (overrides)

Every tunable parameter of the verification engine lives here.
"""

from __future__ import annotations

import os
import shlex
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


def _split_command(value: Any) -> Any:
    # "json_parser --flag" in YAML/env is accepted as well as a list
    if isinstance(value, str):
        return shlex.split(value)
    return value


class ParserConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["./json_parser.exe"])
    timeout_s: float = 10.0

    @field_validator("command", mode="before")
    @classmethod
    def _parse_command(cls, value: Any) -> Any:
        return _split_command(value)


class VerifierConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["./ceval.exe"])
    index_flag: str = "--check-index"
    fast_flag: str = "--fast"  # selects the sound-but-incomplete phase
    timeout_s: float = 300.0  # per phase; expiry is classified as TIMEOUT

    @field_validator("command", mode="before")
    @classmethod
    def _parse_command(cls, value: Any) -> Any:
        return _split_command(value)


class SchedulerConfig(BaseModel):
    # Reject results from tasks launched before the latest reset of their index
    reject_stale_results: bool = True
    snapshot_dir: str = ""  # empty -> <tmpdir>/livecheck
    snapshot_suffix: str = ".bjy"
    subscriber_queue_size: int = 500

    @property
    def snapshot_path(self) -> Path:
        if self.snapshot_dir:
            return Path(self.snapshot_dir)
        return Path(tempfile.gettempdir()) / "livecheck"


class WatcherConfig(BaseModel):
    poll_interval_s: float = 1.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


class LiveCheckConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIVECHECK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Working directory for the parser and verifier processes
    workspace_root: str = "."

    parser: ParserConfig = Field(default_factory=ParserConfig)
    verifier: VerifierConfig = Field(default_factory=VerifierConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | Path | None = None) -> LiveCheckConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Executables are usually set per machine, so the environment wins over YAML
    overrides: dict[str, Any] = {}
    if parser_cmd := os.environ.get("LIVECHECK_PARSER_CMD"):
        overrides.setdefault("parser", {})["command"] = parser_cmd
    if verifier_cmd := os.environ.get("LIVECHECK_VERIFIER_CMD"):
        overrides.setdefault("verifier", {})["command"] = verifier_cmd
    if root := os.environ.get("LIVECHECK_WORKSPACE_ROOT"):
        overrides["workspace_root"] = root
    if level := os.environ.get("LIVECHECK_LOGGING__LEVEL"):
        overrides.setdefault("logging", {})["level"] = level

    return LiveCheckConfig(**_deep_merge(raw, overrides))
