"""Structured commit trailers and auto-commit of workflow artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .manager import GitCommandError, GitRepositoryManager

logger = logging.getLogger(__name__)

TRAILER_PREFIX = "Radius-"
TRAILER_ACTION = "Radius-Action"
TRAILER_APPLICATION = "Radius-Application"
TRAILER_ENVIRONMENT = "Radius-Environment"

ACTIONS = ("init", "model", "plan", "deploy", "delete")

DEFAULT_STAGE_PATHS = [".radius/"]


def default_subject(action: str, application: str = "", environment: str = "") -> str:
    both = bool(application and environment)
    if action == "init":
        return "Initialize Radius workspace"
    if action == "model":
        return "Add application model"
    if action == "plan":
        return f"Plan deployment of {application} to {environment}" if both else "Generate deployment plan"
    if action == "deploy":
        return f"Deploy {application} to {environment}" if both else "Record deployment"
    if action == "delete":
        return f"Delete {application} from {environment}" if both else "Record deletion"
    return f"Radius {action}"


def build_commit_message(
    action: str,
    application: str = "",
    environment: str = "",
    message: Optional[str] = None,
) -> str:
    """Subject line followed by a blank line and the trailer block."""
    lines = [message or default_subject(action, application, environment), ""]
    lines.append(f"{TRAILER_ACTION}: {action}")
    if application:
        lines.append(f"{TRAILER_APPLICATION}: {application}")
    if environment:
        lines.append(f"{TRAILER_ENVIRONMENT}: {environment}")
    return "\n".join(lines) + "\n"


def parse_trailers(message: str) -> Dict[str, str]:
    """``Radius-*`` trailers found in a commit message body."""
    trailers: Dict[str, str] = {}
    for line in message.splitlines():
        line = line.strip()
        if not line.startswith(TRAILER_PREFIX) or ":" not in line:
            continue
        key, value = line.split(":", 1)
        trailers[key.strip()] = value.strip()
    return trailers


@dataclass
class CommitOutcome:
    """Result of an auto-commit attempt; failures never raise."""

    commit: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None
    manual_command: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def auto_commit(
    vc: GitRepositoryManager,
    action: str,
    application: str = "",
    environment: str = "",
    paths: Optional[Sequence[str]] = None,
    message: Optional[str] = None,
) -> CommitOutcome:
    """Stage ``paths`` and commit them with a trailer block.

    Nothing staged means nothing to commit. A git failure is reported in the
    outcome together with the command the operator can run by hand.
    """
    stage_paths: List[str] = list(paths or DEFAULT_STAGE_PATHS)
    full_message = build_commit_message(action, application, environment, message)
    subject = full_message.splitlines()[0]
    manual = f"git add {' '.join(stage_paths)} && git commit -m \"{subject}\""
    try:
        commit = vc.stage_and_commit(stage_paths, full_message)
    except (GitCommandError, OSError) as exc:
        logger.warning("Auto-commit failed: %s", exc)
        return CommitOutcome(error=str(exc), manual_command=manual)
    if commit is None:
        return CommitOutcome(skipped=True, manual_command=manual)
    logger.info("Committed %s as %s", action, commit[:8])
    return CommitOutcome(commit=commit, manual_command=manual)
