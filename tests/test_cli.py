import json
import tempfile
import unittest
from pathlib import Path

from helpers import _git_available, init_repo

from radius_gitops.cli import build_parser, run_cli


class ParserTests(unittest.TestCase):
    def test_plan_arguments(self) -> None:
        args = build_parser().parse_args(["plan", "app.bicep", "-e", "prod", "-a", "todo", "--yes"])
        self.assertEqual(args.command, "plan")
        self.assertEqual(args.model, "app.bicep")
        self.assertEqual(args.environment, "prod")
        self.assertEqual(args.application, "todo")
        self.assertTrue(args.yes)

    def test_deploy_defaults(self) -> None:
        args = build_parser().parse_args(["deploy"])
        self.assertIsNone(args.environment)
        self.assertFalse(args.yes)
        self.assertFalse(args.no_commit)
        self.assertFalse(args.yes_global)

    def test_global_yes(self) -> None:
        args = build_parser().parse_args(["--yes", "delete", "--no-commit"])
        self.assertTrue(args.yes_global)
        self.assertTrue(args.no_commit)

    def test_diff_arguments(self) -> None:
        args = build_parser().parse_args(["diff", "main", "HEAD", "--live", "-o", "json"])
        self.assertEqual(args.revisions, ["main", "HEAD"])
        self.assertTrue(args.live)
        self.assertEqual(args.output, "json")

    def test_log_arguments(self) -> None:
        args = build_parser().parse_args(["log", "-n", "5", "--action", "deploy", "-v", "-o", "json"])
        self.assertEqual(args.number, 5)
        self.assertEqual(args.action, "deploy")
        self.assertTrue(args.log_verbose)
        self.assertEqual(args.output, "json")

    def test_model_arguments(self) -> None:
        args = build_parser().parse_args(["model", "-y"])
        self.assertEqual(args.command, "model")
        self.assertTrue(args.yes)

    def test_invalid_log_action(self) -> None:
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["log", "--action", "rollback"])

    def test_command_required(self) -> None:
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])


class RunCliTests(unittest.TestCase):
    def test_outside_repository(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(run_cli(["--workdir", tmp, "log"]), 1)
            self.assertEqual(run_cli(["--workdir", tmp, "deploy", "--yes"]), 1)
            self.assertEqual(run_cli(["--workdir", tmp, "diff"]), 2)
            self.assertEqual(run_cli(["--workdir", tmp, "diff", "a", "b", "c"]), 2)

    def test_missing_config_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(run_cli(["--workdir", tmp, "--config", str(Path(tmp) / "nope.json"), "log"]), 1)

    def test_invalid_config_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = Path(tmp) / "radgit.json"
            config.write_text("{not json", encoding="utf-8")
            self.assertEqual(run_cli(["--workdir", tmp, "--config", str(config), "log"]), 1)

    def test_init_then_log(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        with tempfile.TemporaryDirectory() as tmp:
            root = init_repo(Path(tmp) / "repo")
            config = Path(tmp) / "radgit.json"
            config.write_text(json.dumps({"interaction": {"mode": "auto"}}), encoding="utf-8")

            self.assertEqual(run_cli(["--workdir", str(root), "--config", str(config), "--yes", "init"]), 0)
            self.assertTrue((root / ".radius/config/recipes/recipes.yaml").is_file())
            self.assertEqual(run_cli(["--workdir", str(root), "log", "-o", "json"]), 0)
            # Workspace exists but holds no model yet
            self.assertEqual(run_cli(["--workdir", str(root), "--config", str(config), "plan"]), 1)
            self.assertEqual(run_cli(["--workdir", str(root), "--config", str(config), "deploy"]), 1)

    def test_model_scaffold(self) -> None:
        if not _git_available():
            self.skipTest("git binary not found")
        with tempfile.TemporaryDirectory() as tmp:
            root = init_repo(Path(tmp) / "repo")
            config = Path(tmp) / "radgit.json"
            config.write_text(json.dumps({"interaction": {"mode": "auto"}}), encoding="utf-8")
            base = ["--workdir", str(root), "--config", str(config)]

            self.assertEqual(run_cli([*base, "model"]), 1)
            self.assertEqual(run_cli([*base, "init"]), 0)
            self.assertEqual(run_cli([*base, "model"]), 0)
            self.assertTrue((root / ".radius/model/todolist.bicep").is_file())
            self.assertEqual(run_cli([*base, "log", "--action", "model", "-o", "json"]), 0)


if __name__ == "__main__":
    unittest.main()
