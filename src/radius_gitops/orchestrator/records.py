"""Where deployment and deletion records live on disk."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from ..gitops.manager import GitInfo
from ..paths import DEPLOY_DIR, LEGACY_DEPLOY_DIR, RECORD_FILE, deploy_dir, legacy_deploy_dir

logger = logging.getLogger(__name__)

LAYOUT_COMMIT = "commit"
LAYOUT_LEGACY = "legacy"

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def record_key(git: Optional[GitInfo], now: datetime) -> str:
    """Directory key for a run: the short commit, or a timestamp without one."""
    if git is not None and git.commit_short:
        return git.commit_short
    return now.strftime(TIMESTAMP_FORMAT)


def _split_record_path(path: str) -> Optional[Tuple[str, List[str]]]:
    """``(layout, segments below the layout root)`` for a workspace-relative path."""
    if path.startswith(DEPLOY_DIR + "/"):
        return LAYOUT_COMMIT, path[len(DEPLOY_DIR) + 1:].split("/")
    if path.startswith(LEGACY_DEPLOY_DIR + "/"):
        return LAYOUT_LEGACY, path[len(LEGACY_DEPLOY_DIR) + 1:].split("/")
    return None


def is_record_path(path: str) -> bool:
    """True for workspace-relative paths holding a deployment or deletion record."""
    split = _split_record_path(path)
    if split is None or not path.endswith(".json"):
        return False
    layout, parts = split
    name = parts[-1]
    if layout == LAYOUT_COMMIT:
        # <app>/<env>/<key>/<file>
        return len(parts) == 4 and (name == RECORD_FILE or name.startswith("delete-"))
    return len(parts) == 2 and (name.startswith("deploy-") or name.startswith("delete-"))


def is_deletion_record_path(path: str) -> bool:
    return is_record_path(path) and path.rsplit("/", 1)[-1].startswith("delete-")


def record_matches(path: str, application: Optional[str] = None, environment: Optional[str] = None) -> bool:
    """Whether a record path belongs to ``application``/``environment``.

    Legacy paths carry no application, so only the environment filter applies.
    """
    split = _split_record_path(path)
    if split is None:
        return False
    layout, parts = split
    if layout == LAYOUT_COMMIT:
        app, env = parts[0], parts[1] if len(parts) > 1 else ""
        if application and app != application:
            return False
    else:
        env = parts[0]
    return not environment or env == environment


def _started_at(content: str) -> str:
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return ""
    return str(data.get("startedAt") or "") if isinstance(data, dict) else ""


def pick_latest(candidates: List[Tuple[str, str]]) -> Optional[str]:
    """Path of the most recent record among ``(path, content)`` pairs.

    Records are ordered by their ``startedAt`` timestamp, then by path.
    """
    best: Optional[Tuple[str, str]] = None
    for path, content in candidates:
        key = (_started_at(content), path)
        if best is None or key > best:
            best = key
    return best[1] if best else None


class RecordStore:
    """Computes record paths and finds existing records under a workspace root."""

    def __init__(self, root: Path, layout: str = LAYOUT_COMMIT) -> None:
        self.root = Path(root)
        self.layout = layout if layout in (LAYOUT_COMMIT, LAYOUT_LEGACY) else LAYOUT_COMMIT

    def deployment_path(self, application: str, environment: str, git: Optional[GitInfo], now: datetime) -> Path:
        if self.layout == LAYOUT_LEGACY:
            return legacy_deploy_dir(self.root, environment) / f"deploy-{now.strftime(TIMESTAMP_FORMAT)}.json"
        return deploy_dir(self.root, application, environment, record_key(git, now)) / RECORD_FILE

    def deletion_path(self, application: str, environment: str, git: Optional[GitInfo], now: datetime) -> Path:
        name = f"delete-{now.strftime(TIMESTAMP_FORMAT)}.json"
        if self.layout == LAYOUT_LEGACY:
            return legacy_deploy_dir(self.root, environment) / name
        return deploy_dir(self.root, application, environment, record_key(git, now)) / name

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()

    def list_records(
        self,
        environment: Optional[str] = None,
        application: Optional[str] = None,
        deployments_only: bool = False,
    ) -> List[Path]:
        found: List[Path] = []
        for base in (self.root / DEPLOY_DIR, self.root / LEGACY_DEPLOY_DIR):
            if not base.is_dir():
                continue
            for path in sorted(base.rglob("*.json")):
                rel = self.relative(path)
                if not is_record_path(rel) or not record_matches(rel, application, environment):
                    continue
                if deployments_only and is_deletion_record_path(rel):
                    continue
                found.append(path)
        return found

    def latest(
        self,
        environment: Optional[str] = None,
        application: Optional[str] = None,
        deployments_only: bool = False,
    ) -> Optional[Path]:
        """Most recent record across both layouts, filtered by environment and application."""
        candidates = []
        for path in self.list_records(environment, application, deployments_only):
            try:
                candidates.append((self.relative(path), path.read_text(encoding="utf-8")))
            except OSError as exc:
                logger.debug(f"Skipping unreadable record {path}: {exc}")
        latest = pick_latest(candidates)
        return self.root / latest if latest else None
