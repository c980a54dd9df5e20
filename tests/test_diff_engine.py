import json
import tempfile
import unittest
from pathlib import Path

import yaml
from helpers import FakeCapture, FakeVersionControl, _git_available, commit_all, init_repo

from radius_gitops.diff import (
    ChangeKind,
    DiffEngine,
    DiffExitCode,
    DiffMode,
    DiffResult,
    diff_captured_resources,
    format_diff_output,
    parse_revision_args,
)
from radius_gitops.diff.engine import diff_manifests, normalize_manifest, split_plan_path
from radius_gitops.errors import ExecutionError, ValidationError
from radius_gitops.executor.kubernetes import CapturedResource
from radius_gitops.gitops.manager import GitRepositoryManager

PLAN_PATH = ".radius/plan/todo/dev/plan.yaml"
RECORD_A = ".radius/deploy/todo/dev/aaaaaaa/deployment.json"
RECORD_B = ".radius/deploy/todo/dev/bbbbbbb/deployment.json"


def _manifest(name: str, replicas: int = 1, resource_version: str = "1") -> str:
    return yaml.safe_dump({
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": "dev", "resourceVersion": resource_version},
        "spec": {"replicas": replicas},
        "status": {"readyReplicas": replicas},
    })


def _captured(name: str, manifest: str = "", definition_file: str = "") -> CapturedResource:
    return CapturedResource(
        resource_id=f"dev/deployment/{name}",
        kind="deployment",
        name=name,
        namespace="dev",
        manifest=manifest,
        definition_file=definition_file,
    )


def _plan_yaml(add: int) -> str:
    return yaml.safe_dump({
        "application": "todo",
        "environment": "dev",
        "environmentFile": ".env.dev",
        "steps": [{"sequence": 1, "resource": {"name": "db"}, "expectedChanges": {"add": add}}],
    })


def _record(started_at: str, captured) -> str:
    return json.dumps({
        "application": "todo",
        "action": "deploy",
        "status": "succeeded",
        "startedAt": started_at,
        "steps": [{
            "sequence": 1,
            "name": "db",
            "status": "succeeded",
            "capturedResources": [c.to_dict() for c in captured],
        }],
    })


class RevisionArgumentTests(unittest.TestCase):
    def test_modes(self) -> None:
        request = parse_revision_args([])
        self.assertEqual((request.mode, request.source, request.target), (DiffMode.UNCOMMITTED, "HEAD", "working directory"))

        request = parse_revision_args(["abc"])
        self.assertEqual((request.mode, request.source, request.target), (DiffMode.REVISIONS, "abc", "HEAD"))

        request = parse_revision_args(["abc", "def"])
        self.assertEqual((request.source, request.target), ("abc", "def"))

        request = parse_revision_args(["abc...def"])
        self.assertEqual((request.source, request.target), ("abc", "def"))

        request = parse_revision_args(["abc"], live=True)
        self.assertEqual((request.mode, request.target), (DiffMode.LIVE, "live"))

    def test_usage_errors_exit_with_two(self) -> None:
        for args, live in ((["a", "b", "c"], False), (["a...b", "c", "d"], False), (["...b"], False),
                           ([], True), (["a", "b"], True)):
            with self.assertRaises(ValidationError) as ctx:
                parse_revision_args(args, live=live)
            self.assertEqual(ctx.exception.exit_code, 2)

    def test_split_plan_path(self) -> None:
        self.assertEqual(split_plan_path(".radius/plan/todo/dev/plan.yaml"), ("todo", "dev"))
        self.assertEqual(split_plan_path(".radius/plan/dev/plan.yaml"), (None, "dev"))
        self.assertIsNone(split_plan_path(".radius/plan/todo/dev/001-db-terraform/main.tf"))
        self.assertIsNone(split_plan_path(".radius/model/app.bicep"))


class ManifestDiffTests(unittest.TestCase):
    def test_volatile_fields_are_ignored(self) -> None:
        self.assertEqual(diff_manifests(_manifest("db", 1, "1"), _manifest("db", 1, "999")), [])
        cleaned = normalize_manifest(yaml.safe_load(_manifest("db")))
        self.assertNotIn("status", cleaned)
        self.assertNotIn("resourceVersion", cleaned["metadata"])

    def test_captured_sets(self) -> None:
        old = [_captured("a", _manifest("a")), _captured("b", _manifest("b", 1))]
        new = [_captured("b", _manifest("b", 3)), _captured("c", _manifest("c"))]

        diffs = diff_captured_resources(old, new)

        self.assertEqual(
            [(d.name, d.change) for d in diffs],
            [("a", ChangeKind.REMOVED), ("b", ChangeKind.MODIFIED), ("c", ChangeKind.ADDED)],
        )
        self.assertEqual([p.path for p in diffs[1].property_diffs], ["spec.replicas"])
        self.assertIn("~ spec.replicas: 1 -> 3", diffs[1].rendered)
        self.assertEqual(diffs[1].resource_id, "dev/deployment/b")

    def test_loaders_supply_linked_manifests(self) -> None:
        old = [_captured("b", definition_file="deployment-b.yaml")]
        new = [_captured("b", definition_file="deployment-b.yaml")]
        diffs = diff_captured_resources(
            old, new,
            load_old=lambda c: _manifest("b", 1),
            load_new=lambda c: _manifest("b", 2),
        )
        self.assertEqual(len(diffs), 1)
        self.assertEqual(diff_captured_resources(old, new), [])

    def test_unparseable_manifest_is_skipped(self) -> None:
        diffs = diff_captured_resources([_captured("b", "a: [1")], [_captured("b", _manifest("b"))])
        self.assertEqual(diffs, [])


class DiffEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _vc(self) -> FakeVersionControl:
        return FakeVersionControl({
            "c1": {
                PLAN_PATH: _plan_yaml(1),
                RECORD_A: _record("2025-01-01T00:00:00+00:00", [_captured("db", _manifest("db", 1))]),
            },
            "c2": {
                PLAN_PATH: _plan_yaml(2),
                RECORD_A: _record("2025-01-01T00:00:00+00:00", [_captured("db", _manifest("db", 1))]),
                RECORD_B: _record("2025-02-01T00:00:00+00:00", [
                    _captured("db", _manifest("db", 2)),
                    _captured("cache", _manifest("cache")),
                ]),
            },
        })

    def test_revisions(self) -> None:
        engine = DiffEngine(self.root, self._vc())
        result = engine.run(parse_revision_args(["c1...c2"]))

        self.assertEqual((result.application, result.environment), ("todo", "dev"))
        self.assertEqual([d.path for d in result.plan_diffs], ["steps[sequence=1].expectedChanges.add"])
        self.assertEqual(result.record_diffs, [])
        self.assertEqual(
            [(d.name, d.change) for d in result.manifest_diffs],
            [("db", ChangeKind.MODIFIED), ("cache", ChangeKind.ADDED)],
        )
        self.assertEqual(result.exit_code, DiffExitCode.DIFF_FOUND)

        text = format_diff_output(result)
        self.assertIn("Comparing c1 → c2", text)
        self.assertIn("Plan Changes:", text)
        self.assertIn("Kubernetes Manifest Changes:", text)
        self.assertIn("+ deployment/cache (dev): added", text)

    def test_filter_excludes_other_environment(self) -> None:
        engine = DiffEngine(self.root, self._vc(), application="todo", environment="prod")
        result = engine.run(parse_revision_args(["c1", "c2"]))
        self.assertFalse(result.has_diff)
        self.assertEqual(format_diff_output(result), "No differences found")

    def test_same_revision_has_no_diff(self) -> None:
        result = DiffEngine(self.root, self._vc()).run(parse_revision_args(["c2", "c2"]))
        self.assertEqual(result.exit_code, DiffExitCode.NO_DIFF)

    def test_record_changes_between_revisions(self) -> None:
        vc = self._vc()
        vc.revisions["c3"] = dict(vc.revisions["c2"])
        vc.revisions["c3"][RECORD_B] = vc.revisions["c2"][RECORD_B].replace('"succeeded"', '"failed"', 1)

        result = DiffEngine(self.root, vc).run(parse_revision_args(["c2", "c3"]))

        self.assertEqual([(d.path, d.file) for d in result.record_diffs], [("status", RECORD_B)])
        self.assertIn("Deployment Record Changes:", format_diff_output(result))

    def test_plan_added_on_one_side(self) -> None:
        vc = FakeVersionControl({"c0": {}, "c1": {PLAN_PATH: _plan_yaml(1)}})
        result = DiffEngine(self.root, vc).run(parse_revision_args(["c0", "c1"]))
        self.assertEqual([(d.path, d.change) for d in result.plan_diffs], [("(root)", ChangeKind.ADDED)])

    def test_unknown_revision(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            DiffEngine(self.root, self._vc()).run(parse_revision_args(["c1", "nope"]))
        self.assertEqual(ctx.exception.exit_code, 2)

    def test_outside_repository(self) -> None:
        vc = FakeVersionControl({}, repository=False)
        with self.assertRaises(ValidationError) as ctx:
            DiffEngine(self.root, vc).run(parse_revision_args([]))
        self.assertEqual(ctx.exception.exit_code, 2)

    def test_uncommitted_plan_changes(self) -> None:
        vc = FakeVersionControl({"HEAD": {PLAN_PATH: _plan_yaml(1)}, "WORKTREE": {PLAN_PATH: _plan_yaml(4)}})
        local = self.root / PLAN_PATH
        local.parent.mkdir(parents=True)
        local.write_text(_plan_yaml(4), encoding="utf-8")

        result = DiffEngine(self.root, vc).run(parse_revision_args([]))

        self.assertEqual(result.target, "working directory")
        self.assertEqual(result.plan_diffs[0].new_value, 4)

    def test_live_comparison(self) -> None:
        vc = self._vc()
        vc.revisions["c2"][RECORD_B] = _record("2025-02-01T00:00:00+00:00", [
            _captured("db", _manifest("db", 2)),
            _captured("cache", _manifest("cache")),
            _captured("queue", _manifest("queue")),
        ])
        capture = FakeCapture(live={("deployment", "db", "dev"): _manifest("db", 5, "77")})
        capture.errors[("deployment", "queue", "dev")] = ExecutionError("kubectl get failed")

        result = DiffEngine(self.root, vc, capture=capture).run(parse_revision_args(["c2"], live=True))

        self.assertEqual(result.target, "live")
        self.assertEqual(
            [(d.name, d.change) for d in result.manifest_diffs],
            [("db", ChangeKind.MODIFIED), ("cache", ChangeKind.REMOVED)],
        )
        self.assertEqual([p.path for p in result.manifest_diffs[0].property_diffs], ["spec.replicas"])

    def test_live_without_record(self) -> None:
        vc = FakeVersionControl({"c0": {PLAN_PATH: _plan_yaml(1)}})
        with self.assertRaises(ValidationError):
            DiffEngine(self.root, vc, capture=FakeCapture()).run(parse_revision_args(["c0"], live=True))

    def test_live_without_cluster_access(self) -> None:
        with self.assertRaises(ValidationError):
            DiffEngine(self.root, self._vc()).run(parse_revision_args(["c2"], live=True))

    def test_result_json(self) -> None:
        result = DiffEngine(self.root, self._vc()).run(parse_revision_args(["c1", "c2"]))
        data = json.loads(json.dumps(result.to_dict()))
        self.assertTrue(data["hasDiff"])
        self.assertEqual(set(data), {
            "hasDiff", "source", "target", "application", "environment",
            "planDiffs", "deploymentDiffs", "manifestDiffs",
        })
        self.assertEqual(data["planDiffs"][0]["file"], PLAN_PATH)
        self.assertEqual(DiffResult("a", "b").to_dict()["hasDiff"], False)


class DiffEngineGitTests(unittest.TestCase):
    def setUp(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")

    def test_two_commits_in_a_real_repository(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = init_repo(Path(tmp) / "repo")
            plan = root / PLAN_PATH
            plan.parent.mkdir(parents=True)
            plan.write_text(_plan_yaml(1), encoding="utf-8")
            first = commit_all(root, "plan v1")
            plan.write_text(_plan_yaml(2), encoding="utf-8")
            second = commit_all(root, "plan v2")

            engine = DiffEngine(root, GitRepositoryManager(root))
            result = engine.run(parse_revision_args([first, second]))
            self.assertEqual([d.path for d in result.plan_diffs], ["steps[sequence=1].expectedChanges.add"])

            plan.write_text(_plan_yaml(7), encoding="utf-8")
            uncommitted = DiffEngine(root, GitRepositoryManager(root)).run(parse_revision_args([]))
            self.assertEqual(uncommitted.plan_diffs[0].old_value, 2)
            self.assertEqual(uncommitted.plan_diffs[0].new_value, 7)


if __name__ == "__main__":
    unittest.main()
