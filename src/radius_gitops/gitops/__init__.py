"""Git operations helpers."""

from .manager import GitCommandError, GitInfo, GitRepositoryManager, LogRecord
from .trailers import (
    ACTIONS,
    CommitOutcome,
    auto_commit,
    build_commit_message,
    default_subject,
    parse_trailers,
)

__all__ = [
    "ACTIONS",
    "CommitOutcome",
    "GitCommandError",
    "GitInfo",
    "GitRepositoryManager",
    "LogRecord",
    "auto_commit",
    "build_commit_message",
    "default_subject",
    "parse_trailers",
]
