"""Shared fakes for the radgit test suite."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from radius_gitops.errors import ExecutionError
from radius_gitops.executor.base import Executor, PlatformResource, PlatformState
from radius_gitops.executor.kubernetes import CapturedResource
from radius_gitops.gitops.manager import GitCommandError, LogRecord
from radius_gitops.paths import parse_step_dir_name
from radius_gitops.plan.models import ChangeCount


def _git_available() -> bool:
    return shutil.which("git") is not None


def _run_git(args: list[str], cwd: Path) -> str:
    process = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return process.stdout


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    _run_git(["init", "--initial-branch=main"], path)
    _run_git(["config", "user.email", "bot@example.com"], path)
    _run_git(["config", "user.name", "Radius Bot"], path)
    _run_git(["config", "commit.gpgsign", "false"], path)
    return path


def commit_all(path: Path, message: str) -> str:
    _run_git(["add", "-A"], path)
    _run_git(["commit", "-m", message], path)
    return _run_git(["rev-parse", "HEAD"], path).strip()


class FakeExecutor(Executor):
    """Executor bound to one step directory; behaviour comes from its factory."""

    def __init__(self, factory: "FakeExecutorFactory", working_dir: Path) -> None:
        self.factory = factory
        self.working_dir = working_dir
        self.name = parse_step_dir_name(working_dir.name) or working_dir.name

    def _record(self, action: str) -> None:
        self.factory.calls.append((action, self.name))

    def init(self) -> None:
        self._record("init")

    def plan(self) -> ChangeCount:
        self._record("plan")
        if self.name in self.factory.fail_plan:
            raise ExecutionError(f"plan failed for {self.name}", stderr="Error: invalid module")
        return self.factory.changes.get(self.name, ChangeCount(add=1))

    def apply(self) -> Tuple[ChangeCount, List[PlatformResource]]:
        self._record("apply")
        if self.name in self.factory.fail_apply:
            raise ExecutionError(f"apply failed for {self.name}", stderr="Error: quota exceeded")
        resource = PlatformResource(
            address=f"module.{self.name}.kubernetes_deployment.main",
            type="kubernetes_deployment",
            name="main",
            provider="kubernetes",
            namespace="default",
            attributes={"metadata": [{"name": self.name, "namespace": "default"}]},
        )
        return self.factory.changes.get(self.name, ChangeCount(add=1)), [resource]

    def destroy(self) -> None:
        self._record("destroy")
        if self.name in self.factory.fail_destroy:
            raise ExecutionError(f"destroy failed for {self.name}")

    def show(self) -> PlatformState:
        return PlatformState(outputs={"host": f"{self.name}.default.svc"})


class FakeExecutorFactory:
    def __init__(
        self,
        fail_plan=(),
        fail_apply=(),
        fail_destroy=(),
        changes: Optional[Dict[str, ChangeCount]] = None,
    ) -> None:
        self.fail_plan = set(fail_plan)
        self.fail_apply = set(fail_apply)
        self.fail_destroy = set(fail_destroy)
        self.changes = changes or {}
        self.calls: List[Tuple[str, str]] = []

    def __call__(self, working_dir: Path) -> FakeExecutor:
        return FakeExecutor(self, Path(working_dir))

    def names(self, action: str) -> List[str]:
        return [name for act, name in self.calls if act == action]


class FakeCapture:
    """Stands in for KubernetesCapture: writes a small manifest per resource."""

    def __init__(self, live: Optional[Dict[Tuple[str, str, str], Optional[str]]] = None) -> None:
        self.live = live or {}
        self.errors: Dict[Tuple[str, str, str], Exception] = {}

    def capture(self, resources, deploy_dir: Path, step_sequence: int, radius_resource_type: str = ""):
        captured = []
        for resource in resources:
            name = resource.attributes["metadata"][0]["name"]
            manifest = f"apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: {name}\n  namespace: default\n"
            file_name = f"deployment-{name}.yaml"
            deploy_dir.mkdir(parents=True, exist_ok=True)
            (deploy_dir / file_name).write_text(manifest, encoding="utf-8")
            captured.append(CapturedResource(
                resource_id=f"default/deployment/{name}",
                kind="deployment",
                name=name,
                namespace="default",
                radius_resource_type=radius_resource_type,
                deployment_step=step_sequence,
                manifest=manifest,
                definition_file=file_name,
            ))
        return captured

    def get_live(self, kind: str, name: str, namespace: str) -> Optional[str]:
        key = (kind, name, namespace)
        if key in self.errors:
            raise self.errors[key]
        return self.live.get(key)


class FakeVersionControl:
    """In-memory revisions: ``{revision: {path: content}}``."""

    def __init__(self, revisions: Dict[str, Dict[str, str]], repository: bool = True) -> None:
        self.revisions = revisions
        self.repository = repository
        self.logs: List[LogRecord] = []
        self.messages: Dict[str, str] = {}

    def is_repository(self) -> bool:
        return self.repository

    def resolve(self, revision: str) -> str:
        if revision not in self.revisions:
            raise GitCommandError(["git", "rev-parse", revision], 128, f"unknown revision {revision}")
        return revision

    def list_files(self, revision: str, path: str) -> List[str]:
        return sorted(p for p in self.revisions.get(revision, {}) if p.startswith(path))

    def file_at_revision(self, revision: str, path: str) -> Optional[str]:
        return self.revisions.get(revision, {}).get(path)

    def changed_files(self, rev_a: str, rev_b: Optional[str] = None, pathspec: str = ".radius/") -> List[str]:
        if rev_a not in self.revisions:
            raise GitCommandError(["git", "diff", rev_a], 128, "bad revision")
        old = self.revisions[rev_a]
        new = self.revisions.get(rev_b, {}) if rev_b else self.revisions.get("WORKTREE", {})
        paths = set(old) | set(new)
        return sorted(p for p in paths if p.startswith(pathspec) and old.get(p) != new.get(p))

    def log_grep(self, pattern: str, limit: int) -> List[LogRecord]:
        return self.logs[:limit]

    def commit_message(self, revision: str) -> str:
        return self.messages[revision]
