"""Action log: history of init/plan/deploy/delete runs read back from commit trailers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from rich.markup import escape
from rich.table import Table

from .errors import ValidationError
from .gitops.manager import GitCommandError
from .gitops.trailers import (
    ACTIONS,
    TRAILER_ACTION,
    TRAILER_APPLICATION,
    TRAILER_ENVIRONMENT,
    parse_trailers,
)
from .paths import RADIUS_DIR, RECORD_FILE

if TYPE_CHECKING:
    from rich.console import Console

    from .gitops.manager import GitRepositoryManager

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10

ACTION_ICONS = {
    "init": "🚀",
    "model": "🧩",
    "plan": "📋",
    "deploy": "🎯",
    "delete": "🗑️",
}

ACTION_STYLES = {
    "init": "cyan",
    "model": "magenta",
    "plan": "yellow",
    "deploy": "green",
    "delete": "red",
}


@dataclass
class LogEntry:
    """One commit carrying a ``Radius-Action`` trailer."""

    commit: str
    date: Optional[datetime]
    author: str
    message: str
    action: str
    application: str = ""
    environment: str = ""
    artifacts: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)

    @property
    def commit_short(self) -> str:
        return self.commit[:8]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "commitHash": self.commit,
            "commitShort": self.commit_short,
            "date": self.date.isoformat() if self.date else None,
            "author": self.author,
            "message": self.message,
            "action": self.action,
        }
        if self.application:
            data["application"] = self.application
        if self.environment:
            data["environment"] = self.environment
        if self.artifacts:
            data["artifacts"] = self.artifacts
        if self.deleted:
            data["deleted"] = self.deleted
        return data


def _step_label(app: str, env: str, step_dir: str, filename: str) -> Optional[str]:
    location = f"{app}/{env}/{step_dir}"
    if step_dir.endswith("-bicep") or filename.endswith((".bicep", ".bicepparam")):
        return f"Bicep: {location}"
    if filename.endswith((".tf", ".tfvars", ".json")):
        return f"Terraform: {location}"
    return None


def classify_artifact(path: str) -> str:
    """Short description of a file under ``.radius/`` for the verbose log."""
    parts = PurePosixPath(path).parts
    name = parts[-1] if parts else path
    if len(parts) < 3 or parts[0] != RADIUS_DIR:
        return name

    area = parts[1]
    if area == "config":
        if parts[2] == "recipes":
            return "recipes.yaml"
        if parts[2] == "types":
            return "Resource Types"
        return name

    if area == "model":
        return f"Model: {name}"

    if area == "plan" and len(parts) >= 5:
        app, env = parts[2], parts[3]
        if len(parts) == 5 and name == "plan.yaml":
            return f"plan.yaml ({app}/{env})"
        if len(parts) >= 6:
            return _step_label(app, env, parts[4], name) or name
        return name

    if area == "deploy" and len(parts) >= 6:
        app, env = parts[2], parts[3]
        if name == RECORD_FILE or (name.startswith(("deploy-", "delete-")) and name.endswith(".json")):
            return f"Deployment record: {app}/{env}"
        if name.endswith(".yaml"):
            return f"Manifest: {app}/{env}/{name}"
        return name

    if area == "deployments" and len(parts) >= 4:
        return f"Deployment record: {parts[2]}"

    return name


def _unique(items: List[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class ActionLog:
    """Reads the action history of a repository."""

    def __init__(self, vc: "GitRepositoryManager") -> None:
        self.vc = vc

    def entries(
        self,
        limit: int = DEFAULT_LIMIT,
        action: Optional[str] = None,
        application: Optional[str] = None,
        environment: Optional[str] = None,
        verbose: bool = False,
    ) -> List[LogEntry]:
        """
        Most recent actions first.

        Args:
            limit: maximum number of entries returned
            action: only entries for this action (init, plan, deploy, delete)
            application: only entries for this application
            environment: only entries for this environment
            verbose: also list the artifacts each commit touched

        Returns:
            At most ``limit`` entries.
        """
        if action and action not in ACTIONS:
            raise ValidationError(
                f"Invalid action '{action}': must be one of {', '.join(ACTIONS)}",
            )
        if limit <= 0:
            return []

        # Over-fetch: filters are applied after reading the trailers
        records = self.vc.log_grep(f"{TRAILER_ACTION}:", limit * 3)

        entries: List[LogEntry] = []
        for record in records:
            try:
                trailers = parse_trailers(self.vc.commit_message(record.commit))
            except GitCommandError as exc:
                logger.debug(f"Could not read message of {record.commit}: {exc}")
                continue

            entry = LogEntry(
                commit=record.commit,
                date=_parse_date(record.date),
                author=record.author,
                message=record.subject,
                action=trailers.get(TRAILER_ACTION, ""),
                application=trailers.get(TRAILER_APPLICATION, ""),
                environment=trailers.get(TRAILER_ENVIRONMENT, ""),
            )
            if action and entry.action != action:
                continue
            if application and entry.application != application:
                continue
            if environment and entry.environment != environment:
                continue

            if verbose:
                entry.artifacts, entry.deleted = self.artifacts(record.commit)
            entries.append(entry)
            if len(entries) >= limit:
                break
        return entries

    def artifacts(self, commit: str) -> Tuple[List[str], List[str]]:
        """``(added or updated, deleted)`` artifact labels for one commit."""
        try:
            changes = self.vc.diff_tree(commit, f"{RADIUS_DIR}/")
        except GitCommandError as exc:
            logger.debug(f"Could not list files of {commit}: {exc}")
            return [], []

        added: List[str] = []
        deleted: List[str] = []
        for status, path in changes:
            label = classify_artifact(path)
            if status == "D":
                deleted.append(label)
            elif status == "M":
                added.append(f"{label} (updated)")
            else:
                added.append(label)
        return _unique(added), _unique(deleted)


def entries_to_json(entries: List[LogEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False)


def build_table(entries: List[LogEntry], verbose: bool = False) -> Table:
    table = Table(title="Radius Actions")
    table.add_column("Action")
    table.add_column("Commit", style="bold")
    table.add_column("Date")
    table.add_column("Author")
    table.add_column("Message")
    table.add_column("App/Env")
    if verbose:
        table.add_column("Artifacts")

    for entry in entries:
        style = ACTION_STYLES.get(entry.action, "")
        target = "/".join(part for part in (entry.application, entry.environment) if part)
        row = [
            f"[{style}]{ACTION_ICONS.get(entry.action, '📌')} {entry.action}[/]" if style else entry.action,
            entry.commit_short,
            entry.date.strftime("%Y-%m-%d %H:%M") if entry.date else "",
            escape(entry.author),
            escape(entry.message),
            target or "-",
        ]
        if verbose:
            lines = [f"[green]+ {escape(label)}[/]" for label in entry.artifacts]
            lines += [f"[red]- {escape(label)}[/]" for label in entry.deleted]
            row.append("\n".join(lines))
        table.add_row(*row)
    return table


def print_entries(console: "Console", entries: List[LogEntry], output: str = "table", verbose: bool = False) -> None:
    if output == "json":
        console.print_json(entries_to_json(entries))
        return
    if not entries:
        console.print("No Radius actions found in the repository.")
        return
    console.print(build_table(entries, verbose=verbose))
