"""Unified path constants for the .radius/ workspace layout.

All state lives under the .radius directory of the repository:
- .radius/config/types/        # resource type schemas
- .radius/config/recipes/      # recipe registry entries
- .radius/model/               # declarative application models (*.bicep)
- .radius/plan/<app>/<env>/    # compiled plan + per-step terraform config
- .radius/deploy/<app>/<env>/<commit>/   # deployment records
- .radius/deployments/<env>/   # legacy deployment records
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Optional, Union

RADIUS_DIR = ".radius"

CONFIG_DIR = f"{RADIUS_DIR}/config"
TYPES_DIR = f"{CONFIG_DIR}/types"
RECIPES_DIR = f"{CONFIG_DIR}/recipes"
MODEL_DIR = f"{RADIUS_DIR}/model"
PLAN_DIR = f"{RADIUS_DIR}/plan"
DEPLOY_DIR = f"{RADIUS_DIR}/deploy"
LEGACY_DEPLOY_DIR = f"{RADIUS_DIR}/deployments"

PLAN_FILE = "plan.yaml"
RECORD_FILE = "deployment.json"
SETTINGS_FILE = f"{CONFIG_DIR}/radgit.json"
STATE_FILE = "terraform.tfstate"

TERRAFORM_SUFFIX = "terraform"

PathLike = Union[str, Path]


def step_dir_name(sequence: int, symbolic_name: str, tool: str = TERRAFORM_SUFFIX) -> str:
    """Directory name for one plan step, e.g. ``001-db-terraform``."""
    return f"{sequence:03d}-{symbolic_name}-{tool}"


def parse_step_dir_name(name: str) -> Optional[str]:
    """Return the symbolic name encoded in a step directory name, or None."""
    parts = name.split("-")
    if len(parts) < 3 or not parts[0].isdigit():
        return None
    return "-".join(parts[1:-1]) or None


def plan_dir(root: PathLike, app: str, env: str) -> Path:
    return Path(root) / PLAN_DIR / app / env


def plan_file(root: PathLike, app: str, env: str) -> Path:
    return plan_dir(root, app, env) / PLAN_FILE


def relative_plan_dir(app: str, env: str) -> str:
    """Plan directory relative to the workspace root, always with forward slashes."""
    return str(PurePosixPath(PLAN_DIR) / app / env)


def deploy_dir(root: PathLike, app: str, env: str, key: str) -> Path:
    return Path(root) / DEPLOY_DIR / app / env / key


def legacy_deploy_dir(root: PathLike, env: str) -> Path:
    return Path(root) / LEGACY_DEPLOY_DIR / env


def get_radius_dir(root: PathLike) -> Path:
    return Path(root) / RADIUS_DIR
