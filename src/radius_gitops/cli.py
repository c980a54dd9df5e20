"""Command-line interface for radgit."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console

from .actionlog import DEFAULT_LIMIT, print_entries
from .config import AppConfig, load_config
from .diff import DiffExitCode, format_diff_output
from .errors import RadiusError, ValidationError
from .gitops.manager import GitCommandError
from .gitops.trailers import ACTIONS
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .orchestrator import RunStatus
from .utils.logging import get_logger
from .workflow import DiffCommandRequest, PlanRequest, RadiusWorkflow, RunRequest

logger = logging.getLogger(__name__)


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    root: Path
    console: Console
    auto_confirm: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="radgit",
        description="Plan, deploy and audit Radius applications from a Git repository.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--workdir",
        type=str,
        default=None,
        help="Repository root to operate on (default: current directory).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--yes", "-y", action="store_true", dest="yes_global",
        help="Skip confirmation prompts",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create the .radius/ workspace in this repository")

    model_parser = subparsers.add_parser("model", help="Create a starter application model")
    model_parser.add_argument("--yes", "-y", action="store_true", help="Overwrite an existing model without asking")

    plan_parser = subparsers.add_parser("plan", help="Compile a model into a deployment plan")
    plan_parser.add_argument("model", nargs="?", default=None, help="Model file (default: .radius/model/*.bicep)")
    _add_target_args(plan_parser)
    plan_parser.add_argument("--yes", "-y", action="store_true", help="Overwrite an existing plan without asking")

    for name, help_text in (
        ("deploy", "Apply a compiled plan and record the outcome"),
        ("delete", "Destroy the resources of a compiled plan"),
    ):
        run_parser = subparsers.add_parser(name, help=help_text)
        _add_target_args(run_parser)
        run_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompts")
        run_parser.add_argument(
            "--no-commit", action="store_true",
            help="Do not commit the record after the run",
        )

    diff_parser = subparsers.add_parser("diff", help="Compare plans, records and live state")
    diff_parser.add_argument(
        "revisions", nargs="*", default=[],
        help="Revisions to compare: none, <a>, <a> <b> or <a>...<b>",
    )
    diff_parser.add_argument("--live", action="store_true", help="Compare the revision against live state")
    _add_target_args(diff_parser, default_env=None)
    diff_parser.add_argument("--output", "-o", choices=["human", "json"], default=None, help="Output format")

    log_parser = subparsers.add_parser("log", help="Show the history of Radius actions")
    log_parser.add_argument("--number", "-n", type=int, default=DEFAULT_LIMIT, help="Maximum entries to show")
    log_parser.add_argument("--action", choices=list(ACTIONS), default=None, help="Only this action")
    _add_target_args(log_parser, default_env=None)
    log_parser.add_argument("--verbose", "-v", action="store_true", dest="log_verbose", help="List artifacts")
    log_parser.add_argument("--output", "-o", choices=["table", "json"], default="table", help="Output format")

    return parser


def _add_target_args(parser: argparse.ArgumentParser, default_env: Optional[str] = None) -> None:
    parser.add_argument("--environment", "-e", default=default_env, help="Target environment")
    parser.add_argument("--application", "-a", default=None, help="Application name")


def _build_context(args: argparse.Namespace) -> CLIContext:
    root = Path(args.workdir).resolve() if args.workdir else Path.cwd()
    try:
        config = load_config(args.config, workdir=root)
    except FileNotFoundError as exc:
        raise ValidationError(str(exc), hint="Check the --config path") from exc
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid configuration file: {exc}") from exc

    get_logger(level="DEBUG" if args.verbose else config.log_level)
    return CLIContext(
        config=config,
        root=root,
        console=Console(),
        auto_confirm=bool(args.yes_global or getattr(args, "yes", False)),
    )


def _interaction_handler(context: CLIContext) -> UserInteractionHandler:
    if context.config.interaction.mode == "auto":
        return AutoResponseHandler(always_confirm=True)
    return CLIInteractionHandler(context.console)


def handle_diff_command(args: argparse.Namespace, workflow: RadiusWorkflow, context: CLIContext) -> int:
    request = DiffCommandRequest(
        revisions=list(args.revisions),
        live=args.live,
        application=args.application,
        environment=args.environment,
    )
    try:
        result = workflow.run_diff(request)
    except ValidationError as exc:
        raise ValidationError(exc.message, hint=exc.hint, exit_code=int(DiffExitCode.VALIDATION_ERROR)) from exc

    output = args.output or context.config.diff.output
    if output == "json":
        context.console.print_json(json.dumps(result.to_dict(), default=str))
    else:
        context.console.print(format_diff_output(result), markup=False, highlight=False)
    return int(result.exit_code)


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)
    workflow = RadiusWorkflow(
        config=context.config,
        root=context.root,
        interaction_handler=_interaction_handler(context),
        console=context.console,
    )

    if args.command == "init":
        workflow.run_init(auto_confirm=context.auto_confirm)
        return 0

    if args.command == "model":
        workflow.run_model(auto_confirm=context.auto_confirm)
        return 0

    if args.command == "plan":
        workflow.run_plan(PlanRequest(
            model=args.model,
            environment=args.environment,
            application=args.application,
            auto_confirm=context.auto_confirm,
        ))
        return 0

    if args.command in ("deploy", "delete"):
        request = RunRequest(
            environment=args.environment,
            application=args.application,
            auto_confirm=context.auto_confirm,
            auto_commit=False if args.no_commit else None,
        )
        if args.command == "deploy":
            record = workflow.run_deploy(request)
        else:
            record = workflow.run_delete(request)
        return 0 if record.status == RunStatus.SUCCEEDED else 1

    if args.command == "diff":
        return handle_diff_command(args, workflow, context)

    if args.command == "log":
        entries = workflow.run_log(
            limit=args.number,
            action=args.action,
            application=args.application,
            environment=args.environment,
            verbose=args.log_verbose,
        )
        print_entries(context.console, entries, output=args.output, verbose=args.log_verbose)
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console(stderr=True)
    try:
        return dispatch_command(args)
    except RadiusError as exc:
        if not exc.is_user_facing:
            logger.exception(f"Internal error: {exc}")
            return 1
        console.print(f"❌ {exc.message}", style="bold red", markup=False, highlight=False)
        if exc.hint:
            console.print(f"💡 {exc.hint}", markup=False, highlight=False)
        return exc.exit_code
    except GitCommandError as exc:
        logger.exception(f"Git command failed: {exc}")
        return 1
