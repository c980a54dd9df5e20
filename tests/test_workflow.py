import io
import json
import tempfile
import unittest
from pathlib import Path

from rich.console import Console

from helpers import FakeCapture, FakeExecutorFactory, _git_available, _run_git, init_repo

from radius_gitops.config import AppConfig
from radius_gitops.diff import DiffExitCode
from radius_gitops.errors import ValidationError
from radius_gitops.gitops import parse_trailers
from radius_gitops.interaction import AutoResponseHandler
from radius_gitops.orchestrator import DeploymentRecord, RunStatus
from radius_gitops.plan.models import DeploymentPlan
from radius_gitops.workflow import DiffCommandRequest, PlanRequest, RadiusWorkflow, RunRequest

MODEL = """
extension radius

resource app 'Radius.Core/applications@2025-08-01-preview' = {
  name: 'todoapp'
  properties: {
    environment: 'default'
  }
}

resource db 'Radius.Data/postgreSqlDatabases@2025-08-01-preview' = {
  name: 'db'
  properties: {
    application: app.id
    size: 'S'
  }
}

resource web 'Radius.Compute/containers@2025-08-01-preview' = {
  name: 'web'
  properties: {
    application: app.id
    container: {
      image: 'nginx:1.27'
    }
    connections: {
      postgres: {
        source: db.id
      }
    }
  }
}
"""


class _Workflow(RadiusWorkflow):
    """Workflow with terraform and kubectl replaced by in-memory fakes."""

    def __init__(self, *args, factory: FakeExecutorFactory, capture: FakeCapture, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.factory = factory
        self.capture = capture

    def _executor_factory(self, working_dir: Path):
        return self.factory(working_dir)

    def _capture(self, environment):
        return self.capture


class WorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        self._tmp = tempfile.TemporaryDirectory()
        self.root = init_repo(Path(self._tmp.name) / "repo")
        self.factory = FakeExecutorFactory()
        self.handler = AutoResponseHandler()
        self.workflow = _Workflow(
            AppConfig(),
            self.root,
            interaction_handler=self.handler,
            console=Console(file=io.StringIO()),
            factory=self.factory,
            capture=FakeCapture(),
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _head_trailers(self) -> dict:
        return parse_trailers(_run_git(["log", "-1", "--format=%B"], self.root))

    def test_plan_requires_workspace(self) -> None:
        with self.assertRaises(ValidationError):
            self.workflow.run_plan(PlanRequest(auto_confirm=True))

    def test_init_plan_deploy_log_diff_delete(self) -> None:
        self.workflow.run_init()
        self.assertEqual(self._head_trailers(), {"Radius-Action": "init"})

        (self.root / ".radius/model/app.bicep").write_text(MODEL, encoding="utf-8")
        compiled = self.workflow.run_plan(PlanRequest(auto_confirm=True))

        self.assertEqual(compiled.plan_path, self.root / ".radius/plan/todoapp/default/plan.yaml")
        self.assertEqual([s.resource.name for s in compiled.plan.steps], ["db", "web"])
        self.assertEqual(compiled.plan.application_model_file, ".radius/model/app.bicep")
        self.assertTrue(compiled.commit.ok)
        self.assertEqual(self._head_trailers()["Radius-Action"], "plan")
        self.assertEqual(self.factory.names("plan"), ["db", "web"])
        plan_commit = _run_git(["rev-parse", "HEAD"], self.root).strip()

        record = self.workflow.run_deploy(RunRequest(auto_confirm=True))
        self.assertIsInstance(record, DeploymentRecord)
        self.assertEqual(record.status, RunStatus.SUCCEEDED)
        self.assertEqual(self.factory.names("apply"), ["db", "web"])
        self.assertEqual(record.git.commit, plan_commit)
        record_file = self.root / f".radius/deploy/todoapp/default/{plan_commit[:7]}/deployment.json"
        self.assertTrue(record_file.is_file())
        self.assertEqual(json.loads(record_file.read_text(encoding="utf-8"))["status"], "succeeded")
        self.assertEqual(self._head_trailers(), {
            "Radius-Action": "deploy",
            "Radius-Application": "todoapp",
            "Radius-Environment": "default",
        })
        self.assertEqual(_run_git(["status", "--porcelain", "--", ".radius/deploy"], self.root).strip(), "")

        entries = self.workflow.run_log()
        self.assertEqual([e.action for e in entries], ["deploy", "plan", "init"])
        self.assertEqual([e.action for e in self.workflow.run_log(action="plan")], ["plan"])

        diff = self.workflow.run_diff(DiffCommandRequest(revisions=["HEAD~1", "HEAD"]))
        self.assertEqual(diff.exit_code, DiffExitCode.DIFF_FOUND)
        self.assertEqual(diff.application, "todoapp")
        self.assertEqual(diff.plan_diffs, [])
        self.assertEqual(sorted(m.name for m in diff.manifest_diffs), ["db", "web"])

        clean = self.workflow.run_diff(DiffCommandRequest())
        self.assertEqual(clean.exit_code, DiffExitCode.NO_DIFF)

        deleted = self.workflow.run_delete(RunRequest(auto_confirm=True))
        self.assertEqual(deleted.status, RunStatus.SUCCEEDED)
        self.assertEqual(self.factory.names("destroy"), ["web", "db"])
        self.assertEqual(self._head_trailers()["Radius-Action"], "delete")
        self.assertEqual([e.action for e in self.workflow.run_log(limit=1)], ["delete"])

    def test_deploy_without_commit(self) -> None:
        self.workflow.run_init()
        (self.root / ".radius/model/app.bicep").write_text(MODEL, encoding="utf-8")
        self.workflow.run_plan(PlanRequest(auto_confirm=True))
        head = _run_git(["rev-parse", "HEAD"], self.root).strip()

        record = self.workflow.run_deploy(RunRequest(auto_confirm=True, auto_commit=False))

        self.assertEqual(record.status, RunStatus.SUCCEEDED)
        self.assertEqual(_run_git(["rev-parse", "HEAD"], self.root).strip(), head)
        self.assertNotEqual(_run_git(["status", "--porcelain", "--", ".radius/deploy"], self.root).strip(), "")

    def test_deploy_selects_requested_application(self) -> None:
        self.workflow.run_init()
        (self.root / ".radius/model/app.bicep").write_text(MODEL, encoding="utf-8")
        self.workflow.run_plan(PlanRequest(auto_confirm=True))
        self.workflow.run_plan(PlanRequest(auto_confirm=True, application="shop"))

        self.assertEqual(self.workflow.workspace.list_plans("default"), ["shop", "todoapp"])
        plan = DeploymentPlan.load(self.root / ".radius/plan/shop/default/plan.yaml")
        self.assertEqual(plan.application, "shop")

        record = self.workflow.run_deploy(RunRequest(auto_confirm=True, application="shop"))
        self.assertEqual(record.application, "shop")
        with self.assertRaises(ValidationError):
            self.workflow.run_deploy(RunRequest(auto_confirm=True, environment="prod"))


if __name__ == "__main__":
    unittest.main()
