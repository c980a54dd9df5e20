import io
import json
import tempfile
import unittest
from pathlib import Path

from rich.console import Console

from helpers import _git_available, commit_all, init_repo

from radius_gitops.actionlog import (
    ActionLog,
    LogEntry,
    build_table,
    classify_artifact,
    entries_to_json,
    print_entries,
)
from radius_gitops.errors import ValidationError
from radius_gitops.gitops import GitRepositoryManager, build_commit_message


class ClassifyArtifactTests(unittest.TestCase):
    def test_labels(self) -> None:
        cases = {
            ".radius/config/recipes/default.yaml": "recipes.yaml",
            ".radius/config/types/containers.yaml": "Resource Types",
            ".radius/model/app.bicep": "Model: app.bicep",
            ".radius/plan/todo/dev/plan.yaml": "plan.yaml (todo/dev)",
            ".radius/plan/todo/dev/001-db-terraform/main.tf": "Terraform: todo/dev/001-db-terraform",
            ".radius/plan/todo/dev/002-web-bicep/main.bicepparam": "Bicep: todo/dev/002-web-bicep",
            ".radius/deploy/todo/dev/abc1234/deployment.json": "Deployment record: todo/dev",
            ".radius/deploy/todo/dev/abc1234/delete-20250101-000000.json": "Deployment record: todo/dev",
            ".radius/deploy/todo/dev/abc1234/deployment-db.yaml": "Manifest: todo/dev/deployment-db.yaml",
            ".radius/deployments/dev/deploy-20250101-000000.json": "Deployment record: dev",
            "README.md": "README.md",
        }
        for path, label in cases.items():
            with self.subTest(path=path):
                self.assertEqual(classify_artifact(path), label)


class ActionLogTests(unittest.TestCase):
    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        self._tmp = tempfile.TemporaryDirectory()
        self.root = init_repo(Path(self._tmp.name) / "repo")

        (self.root / "README.md").write_text("hello", encoding="utf-8")
        commit_all(self.root, "unrelated commit")

        self._write(".radius/config/recipes/default.yaml", "recipes: {}\n")
        self.init_commit = commit_all(self.root, build_commit_message("init"))

        self._write(".radius/plan/todo/dev/plan.yaml", "application: todo\n")
        self._write(".radius/plan/todo/dev/001-db-terraform/main.tf", "# db\n")
        self.plan_commit = commit_all(self.root, build_commit_message("plan", "todo", "dev"))

        self._write(".radius/plan/todo/dev/plan.yaml", "application: todo\nenvironment: dev\n")
        (self.root / ".radius/config/recipes/default.yaml").unlink()
        self._write(".radius/deploy/todo/dev/abc1234/deployment.json", "{}\n")
        self.deploy_commit = commit_all(self.root, build_commit_message("deploy", "todo", "dev"))

        self._write(".radius/plan/shop/prod/plan.yaml", "application: shop\n")
        self.shop_commit = commit_all(self.root, build_commit_message("plan", "shop", "prod"))

        self.log = ActionLog(GitRepositoryManager(self.root))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, rel: str, content: str) -> None:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def test_entries_newest_first(self) -> None:
        entries = self.log.entries()
        self.assertEqual(
            [e.commit for e in entries],
            [self.shop_commit, self.deploy_commit, self.plan_commit, self.init_commit],
        )
        self.assertEqual(entries[0].action, "plan")
        self.assertEqual(entries[0].application, "shop")
        self.assertEqual(entries[0].environment, "prod")
        self.assertEqual(entries[0].message, "Plan deployment of shop to prod")
        self.assertEqual(entries[0].author, "Radius Bot")
        self.assertIsNotNone(entries[0].date)
        self.assertEqual(entries[0].artifacts, [])

    def test_filters_and_limit(self) -> None:
        self.assertEqual([e.commit for e in self.log.entries(limit=2)], [self.shop_commit, self.deploy_commit])
        self.assertEqual([e.commit for e in self.log.entries(action="deploy")], [self.deploy_commit])
        self.assertEqual(
            [e.commit for e in self.log.entries(application="todo")],
            [self.deploy_commit, self.plan_commit],
        )
        self.assertEqual([e.commit for e in self.log.entries(environment="prod")], [self.shop_commit])
        self.assertEqual(self.log.entries(limit=0), [])

    def test_invalid_action(self) -> None:
        with self.assertRaises(ValidationError):
            self.log.entries(action="rollback")

    def test_verbose_artifacts(self) -> None:
        entries = {e.commit: e for e in self.log.entries(verbose=True)}

        self.assertEqual(entries[self.init_commit].artifacts, ["recipes.yaml"])
        self.assertEqual(
            entries[self.plan_commit].artifacts,
            ["Terraform: todo/dev/001-db-terraform", "plan.yaml (todo/dev)"],
        )
        deploy = entries[self.deploy_commit]
        self.assertEqual(deploy.artifacts, ["Deployment record: todo/dev", "plan.yaml (todo/dev) (updated)"])
        self.assertEqual(deploy.deleted, ["recipes.yaml"])

    def test_json_output(self) -> None:
        data = json.loads(entries_to_json(self.log.entries(action="deploy", verbose=True)))
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["commitHash"], self.deploy_commit)
        self.assertEqual(data[0]["commitShort"], self.deploy_commit[:8])
        self.assertEqual(data[0]["application"], "todo")
        self.assertEqual(data[0]["deleted"], ["recipes.yaml"])


class RenderingTests(unittest.TestCase):
    def _entry(self, **kwargs) -> LogEntry:
        values = dict(commit="0123456789abcdef", date=None, author="dev", message="Deploy todo to dev", action="deploy")
        values.update(kwargs)
        return LogEntry(**values)

    def test_table_columns(self) -> None:
        self.assertEqual(len(build_table([self._entry()]).columns), 6)
        self.assertEqual(len(build_table([self._entry()], verbose=True).columns), 7)

    def test_json_omits_empty_fields(self) -> None:
        data = self._entry().to_dict()
        self.assertNotIn("application", data)
        self.assertNotIn("artifacts", data)
        self.assertIsNone(data["date"])

    def test_print_entries(self) -> None:
        buffer = io.StringIO()
        console = Console(file=buffer, width=160, color_system=None)

        print_entries(console, [])
        self.assertIn("No Radius actions found", buffer.getvalue())

        print_entries(console, [self._entry(application="todo", environment="dev")])
        output = buffer.getvalue()
        self.assertIn("01234567", output)
        self.assertIn("todo/dev", output)

        buffer.truncate(0)
        buffer.seek(0)
        print_entries(console, [self._entry()], output="json")
        self.assertEqual(json.loads(buffer.getvalue())[0]["action"], "deploy")


if __name__ == "__main__":
    unittest.main()
