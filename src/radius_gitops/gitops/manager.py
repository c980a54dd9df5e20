"""Git-backed version-control capability."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")


@dataclass
class GitInfo:
    """Version-control context captured at the start of a run."""

    commit: str = ""
    commit_short: str = ""
    branch: str = ""
    is_dirty: bool = False

    def to_dict(self) -> dict:
        return {
            "commit": self.commit,
            "commitShort": self.commit_short,
            "branch": self.branch,
            "isDirty": self.is_dirty,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "GitInfo":
        data = data or {}
        return cls(
            commit=data.get("commit", ""),
            commit_short=data.get("commitShort", ""),
            branch=data.get("branch", ""),
            is_dirty=bool(data.get("isDirty", False)),
        )


@dataclass
class LogRecord:
    """One line of ``git log --format=%H|%aI|%an|%s``."""

    commit: str
    date: str
    author: str
    subject: str


class GitRepositoryManager:
    """Wraps `git` CLI commands for one working tree."""

    def __init__(self, root: Path, git_binary: str = "git") -> None:
        self.root = Path(root)
        self.git_binary = git_binary

    # -- queries -----------------------------------------------------------

    def is_repository(self) -> bool:
        try:
            out = self._run(["rev-parse", "--is-inside-work-tree"])
        except (GitCommandError, OSError):
            return False
        return out.strip() == "true"

    def current_commit(self) -> Optional[str]:
        """HEAD commit hash, or None in a repository without commits."""
        try:
            return self._run(["rev-parse", "HEAD"]).strip()
        except GitCommandError:
            return None

    def resolve(self, revision: str) -> str:
        return self._run(["rev-parse", "--verify", f"{revision}^{{commit}}"]).strip()

    def current_branch(self) -> str:
        try:
            return self._run(["rev-parse", "--abbrev-ref", "HEAD"]).strip()
        except GitCommandError:
            return ""

    def git_info(self) -> GitInfo:
        commit = self.current_commit() or ""
        return GitInfo(
            commit=commit,
            commit_short=commit[:7],
            branch=self.current_branch(),
            is_dirty=bool(self._run(["status", "--porcelain"]).strip()),
        )

    def file_at_revision(self, revision: str, path: str) -> Optional[str]:
        """Content of ``path`` at ``revision``, or None when it does not exist there."""
        try:
            return self._run(["show", f"{revision}:./{path}"])
        except GitCommandError:
            return None

    def changed_files(self, rev_a: str, rev_b: Optional[str] = None, pathspec: str = ".radius/") -> List[str]:
        """Paths changed between two revisions, or between ``rev_a`` and the working tree."""
        args = ["diff", "--name-only", "--relative", rev_a]
        if rev_b:
            args.append(rev_b)
        args.extend(["--", pathspec])
        return [line for line in self._run(args).splitlines() if line.strip()]

    def has_uncommitted_changes(self, path: str) -> bool:
        out = self._run(["status", "--porcelain", "--", path])
        return bool(out.strip())

    def list_files(self, revision: str, path: str) -> List[str]:
        try:
            out = self._run(["ls-tree", "-r", "--name-only", revision, "--", path])
        except GitCommandError:
            return []
        return [line for line in out.splitlines() if line.strip()]

    def log_grep(self, pattern: str, limit: int) -> List[LogRecord]:
        try:
            out = self._run([
                "log", f"--grep={pattern}", "-n", str(limit), "--format=%H|%aI|%an|%s",
            ])
        except GitCommandError as exc:
            # Fresh repository: no commits yet
            if "does not have any commits" in exc.stderr or "bad default revision" in exc.stderr:
                return []
            raise
        records = []
        for line in out.splitlines():
            parts = line.split("|", 3)
            if len(parts) == 4:
                records.append(LogRecord(*parts))
        return records

    def commit_message(self, revision: str) -> str:
        return self._run(["log", "-1", "--format=%B", revision])

    def diff_tree(self, revision: str, path: str = ".radius/") -> List[Tuple[str, str]]:
        """``(status, path)`` pairs for files touched by one commit."""
        out = self._run([
            "diff-tree", "--no-commit-id", "--name-status", "--relative", "-r", "--root", revision, "--", path,
        ])
        entries = []
        for line in out.splitlines():
            parts = line.split("\t")
            if len(parts) >= 2:
                entries.append((parts[0][:1], parts[-1]))
        return entries

    # -- mutations ---------------------------------------------------------

    def stage(self, paths: Sequence[str]) -> None:
        self._run(["add", "--", *paths])

    def has_staged_changes(self) -> bool:
        command = [self.git_binary, "diff", "--cached", "--quiet"]
        process = subprocess.run(command, cwd=str(self.root), capture_output=True, text=True, check=False)
        if process.returncode == 0:
            return False
        if process.returncode == 1:
            return True
        raise GitCommandError(command, process.returncode, process.stderr.strip())

    def commit(self, message: str) -> str:
        self._run(["commit", "-m", message])
        return self.current_commit() or ""

    def stage_and_commit(self, paths: Sequence[str], message: str) -> Optional[str]:
        """Stage ``paths`` and commit; returns the new hash, or None when nothing was staged."""
        self.stage(paths)
        if not self.has_staged_changes():
            logger.info("No staged changes, skipping commit")
            return None
        return self.commit(message)

    def _run(self, args: list[str], cwd: Optional[Path] = None) -> str:
        command = [self.git_binary] + args
        process = subprocess.run(
            command,
            cwd=str(cwd or self.root),
            capture_output=True,
            text=True,
            check=False,
        )
        if process.returncode != 0:
            raise GitCommandError(command, process.returncode, process.stderr.strip())
        return process.stdout
