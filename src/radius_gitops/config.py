"""Configuration loading utilities for radgit."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .paths import SETTINGS_FILE

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path(SETTINGS_FILE)

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class ToolsConfig:
    """External binaries driven by the executor and version-control layers."""

    terraform_binary: str = "terraform"
    kubectl_binary: str = "kubectl"
    git_binary: str = "git"
    command_timeout: int = 1800          # seconds per terraform/kubectl call


@dataclass
class DeployConfig:
    """Settings for deploy and delete runs."""

    auto_commit: bool = True
    record_layout: str = "commit"        # "commit" | "legacy"
    require_pinned_recipes: bool = False


@dataclass
class DiffConfig:
    """Settings for the diff command."""

    output: str = "human"                # "human" | "json"


@dataclass
class InteractionConfig:
    """Configuration for user interaction."""

    mode: str = "cli"                    # "cli" | "auto"
    auto_confirm: bool = False


@dataclass
class PollingConfig:
    """Bounds for loops that wait on external triggers."""

    timeout_seconds: int = 120
    interval_seconds: float = 2.0


@dataclass
class AppConfig:
    """Top-level configuration."""

    tools: ToolsConfig = field(default_factory=ToolsConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    diff: DiffConfig = field(default_factory=DiffConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            # Drop comment fields such as "_doc"
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            tools=ToolsConfig(**{**ToolsConfig().__dict__, **section("tools")}),
            deploy=DeployConfig(**{**DeployConfig().__dict__, **section("deploy")}),
            diff=DiffConfig(**{**DiffConfig().__dict__, **section("diff")}),
            interaction=InteractionConfig(
                **{**InteractionConfig().__dict__, **section("interaction")}
            ),
            polling=PollingConfig(**{**PollingConfig().__dict__, **section("polling")}),
            log_level=payload.get("log_level", "INFO") or "INFO",
        )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """Apply RADGIT_* environment variables on top of file settings."""
    env_auto_commit = os.getenv("RADGIT_AUTO_COMMIT")
    if env_auto_commit:
        config.deploy.auto_commit = _env_flag(env_auto_commit)

    env_terraform = os.getenv("RADGIT_TERRAFORM_BINARY")
    if env_terraform:
        config.tools.terraform_binary = env_terraform

    env_kubectl = os.getenv("RADGIT_KUBECTL_BINARY")
    if env_kubectl:
        config.tools.kubectl_binary = env_kubectl

    env_git = os.getenv("RADGIT_GIT_BINARY")
    if env_git:
        config.tools.git_binary = env_git

    env_timeout = os.getenv("RADGIT_COMMAND_TIMEOUT")
    if env_timeout:
        config.tools.command_timeout = int(env_timeout)

    env_level = os.getenv("RADGIT_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()

    return config


def load_config(path: Optional[str] = None, workdir: Optional[Path] = None) -> AppConfig:
    """Load configuration from `path` or `.radius/config/radgit.json`.

    A missing file is not an error: defaults are used. Environment variables
    (higher priority than the config file):
    - RADGIT_AUTO_COMMIT: "true"/"false"
    - RADGIT_TERRAFORM_BINARY / RADGIT_KUBECTL_BINARY / RADGIT_GIT_BINARY
    - RADGIT_COMMAND_TIMEOUT: seconds per external command
    - RADGIT_LOG_LEVEL: logging level name
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append((workdir or Path.cwd()) / _DEFAULT_CONFIG_PATH)

    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            return apply_env_overrides(AppConfig.from_dict(data))

    return apply_env_overrides(AppConfig())
