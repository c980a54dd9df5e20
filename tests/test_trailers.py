"""Tests for commit trailers and auto-commit."""

from radius_gitops.gitops.manager import GitCommandError
from radius_gitops.gitops.trailers import (
    auto_commit,
    build_commit_message,
    default_subject,
    parse_trailers,
)


class _StubVC:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def stage_and_commit(self, paths, message):
        self.calls.append((list(paths), message))
        if self.error is not None:
            raise self.error
        return self.result


class TestCommitMessages:
    def test_message_layout(self):
        message = build_commit_message("deploy", "todo", "dev")
        assert message == (
            "Deploy todo to dev\n"
            "\n"
            "Radius-Action: deploy\n"
            "Radius-Application: todo\n"
            "Radius-Environment: dev\n"
        )

    def test_init_has_only_action(self):
        message = build_commit_message("init")
        assert message.splitlines() == ["Initialize Radius workspace", "", "Radius-Action: init"]

    def test_custom_subject(self):
        assert build_commit_message("plan", "todo", "dev", message="Replan").startswith("Replan\n\n")

    def test_default_subjects(self):
        assert default_subject("plan", "todo", "dev") == "Plan deployment of todo to dev"
        assert default_subject("plan") == "Generate deployment plan"
        assert default_subject("delete", "todo", "dev") == "Delete todo from dev"
        assert default_subject("deploy") == "Record deployment"
        assert default_subject("model") == "Add application model"

    def test_parse_trailers(self):
        message = build_commit_message("delete", "todo", "dev") + "Signed-off-by: someone\n"
        assert parse_trailers(message) == {
            "Radius-Action": "delete",
            "Radius-Application": "todo",
            "Radius-Environment": "dev",
        }
        assert parse_trailers("plain commit\n") == {}


class TestAutoCommit:
    def test_success(self):
        vc = _StubVC(result="a" * 40)
        outcome = auto_commit(vc, "plan", "todo", "dev", [".radius/plan/todo/dev"])

        assert outcome.ok
        assert outcome.commit == "a" * 40
        assert vc.calls[0][0] == [".radius/plan/todo/dev"]
        assert "Radius-Action: plan" in vc.calls[0][1]

    def test_nothing_staged(self):
        outcome = auto_commit(_StubVC(result=None), "deploy", "todo", "dev")
        assert outcome.skipped
        assert outcome.ok
        assert outcome.commit is None

    def test_failure_is_reported_not_raised(self):
        error = GitCommandError(["git", "commit"], 1, "nothing to commit")
        outcome = auto_commit(_StubVC(error=error), "deploy", "todo", "dev")

        assert not outcome.ok
        assert "nothing to commit" in outcome.error
        assert outcome.manual_command == 'git add .radius/ && git commit -m "Deploy todo to dev"'
