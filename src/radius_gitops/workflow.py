"""High-level workflow: wires configuration, git and tools into each command."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from .actionlog import DEFAULT_LIMIT, ActionLog, LogEntry
from .config import AppConfig
from .diff import DiffEngine, DiffResult, parse_revision_args
from .errors import ValidationError
from .executor import KubernetesCapture, TerraformExecutor
from .executor.base import Executor
from .gitops.manager import GitRepositoryManager
from .interaction import CLIInteractionHandler, UserInteractionHandler
from .model.bicep import load_model
from .orchestrator import DeploymentOrchestrator, DeploymentRecord, RecordStore, StepExecutor
from .paths import RADIUS_DIR
from .plan import CompileResult, DeploymentPlan, PlanCompiler, load_recipe_registry, resolve_model_path
from .workspace import DEFAULT_ENVIRONMENT, Environment, InitResult, ModelResult, RadiusWorkspace

logger = logging.getLogger(__name__)


@dataclass
class PlanRequest:
    """Inputs of ``radgit plan``."""

    model: Optional[str] = None
    environment: Optional[str] = None
    application: Optional[str] = None
    auto_confirm: bool = False


@dataclass
class RunRequest:
    """Inputs of ``radgit deploy`` and ``radgit delete``."""

    environment: Optional[str] = None
    application: Optional[str] = None
    auto_confirm: bool = False
    auto_commit: Optional[bool] = None      # None: use the configured default


@dataclass
class DiffCommandRequest:
    revisions: List[str] = field(default_factory=list)
    live: bool = False
    application: Optional[str] = None
    environment: Optional[str] = None


class RadiusWorkflow:
    """Coordinates the plan, deploy, delete, diff and log commands for one workspace."""

    def __init__(
        self,
        config: AppConfig,
        root: Path,
        interaction_handler: Optional[UserInteractionHandler] = None,
        console: Optional[Console] = None,
        vc: Optional[GitRepositoryManager] = None,
    ) -> None:
        self.config = config
        self.root = Path(root)
        self.console = console or Console()
        self.interaction_handler = interaction_handler or CLIInteractionHandler(self.console)
        self.vc = vc or GitRepositoryManager(self.root, git_binary=config.tools.git_binary)
        self.workspace = RadiusWorkspace(self.root, self.vc)

    # -- commands ----------------------------------------------------------

    def run_init(self, auto_confirm: bool = False) -> InitResult:
        logger.info(f"Initializing Radius workspace in {self.root}")
        return self.workspace.initialize(
            self.interaction_handler,
            auto_confirm=auto_confirm or self.config.interaction.auto_confirm,
            commit=self.config.deploy.auto_commit,
        )

    def run_model(self, auto_confirm: bool = False) -> ModelResult:
        logger.info(f"Creating application model in {self.root}")
        return self.workspace.create_model(
            self.interaction_handler,
            auto_confirm=self._auto_confirm(auto_confirm),
            commit=self.config.deploy.auto_commit,
        )

    def run_plan(self, request: PlanRequest) -> CompileResult:
        self._require_workspace()
        model_path = resolve_model_path(self.root, self.interaction_handler, request.model)
        environment = Environment.detect(self.root, request.environment)
        logger.info(f"📄 Model: {model_path}")
        logger.info(f"🌍 Environment: {environment.name} ({environment.env_file})")

        recipes = load_recipe_registry(self.root, environment)
        recipes.validate()

        compiler = PlanCompiler(
            root=self.root,
            interaction_handler=self.interaction_handler,
            executor_factory=self._executor_factory,
            recipes=recipes,
            vc=self.vc,
            auto_confirm=self._auto_confirm(request.auto_confirm),
            auto_commit=self.config.deploy.auto_commit,
            require_pinned_recipes=self.config.deploy.require_pinned_recipes,
            console=self.console,
        )
        graph = load_model(model_path)
        result = compiler.compile(graph, environment, application=request.application, model_file=model_path)
        self.interaction_handler.notify(
            f"✅ Plan written to {result.plan_path.relative_to(self.root).as_posix()} ({len(result.plan.steps)} steps)",
            level="success",
        )
        return result

    def run_deploy(self, request: RunRequest) -> DeploymentRecord:
        plan, plan_file, environment = self._load_plan(request)
        orchestrator = self._orchestrator(request, environment, capture=True)
        return orchestrator.deploy(plan, environment, plan_file=plan_file)

    def run_delete(self, request: RunRequest) -> DeploymentRecord:
        plan, plan_file, environment = self._load_plan(request)
        orchestrator = self._orchestrator(request, environment, capture=False)
        return orchestrator.delete(plan, environment, plan_file=plan_file)

    def run_diff(self, request: DiffCommandRequest) -> DiffResult:
        diff_request = parse_revision_args(request.revisions, live=request.live)
        capture = None
        if request.live:
            environment = Environment.detect(self.root, request.environment)
            capture = self._capture(environment)
        engine = DiffEngine(
            self.root,
            self.vc,
            application=request.application,
            environment=request.environment,
            capture=capture,
        )
        return engine.run(diff_request)

    def run_log(
        self,
        limit: int = DEFAULT_LIMIT,
        action: Optional[str] = None,
        application: Optional[str] = None,
        environment: Optional[str] = None,
        verbose: bool = False,
    ) -> List[LogEntry]:
        self.workspace.require_repository()
        return ActionLog(self.vc).entries(
            limit=limit,
            action=action,
            application=application,
            environment=environment,
            verbose=verbose,
        )

    # -- wiring ------------------------------------------------------------

    def _executor_factory(self, working_dir: Path) -> Executor:
        return TerraformExecutor(
            working_dir,
            binary=self.config.tools.terraform_binary,
            timeout=self.config.tools.command_timeout,
        )

    def _capture(self, environment: Environment) -> KubernetesCapture:
        return KubernetesCapture(
            context=environment.kubernetes_context,
            namespace=environment.kubernetes_namespace or "default",
            kubectl_binary=self.config.tools.kubectl_binary,
            timeout=self.config.tools.command_timeout,
            wait_timeout=self.config.polling.timeout_seconds,
            wait_interval=self.config.polling.interval_seconds,
        )

    def _orchestrator(self, request: RunRequest, environment: Environment, capture: bool) -> DeploymentOrchestrator:
        auto_commit = self.config.deploy.auto_commit if request.auto_commit is None else request.auto_commit
        step_executor = StepExecutor(
            self._executor_factory,
            self.root,
            capture=self._capture(environment) if capture else None,
            console=self.console,
        )
        return DeploymentOrchestrator(
            root=self.root,
            step_executor=step_executor,
            interaction_handler=self.interaction_handler,
            vc=self.vc,
            record_store=RecordStore(self.root, layout=self.config.deploy.record_layout),
            auto_commit=auto_commit,
            auto_confirm=self._auto_confirm(request.auto_confirm),
        )

    def _load_plan(self, request: RunRequest) -> Tuple[DeploymentPlan, str, Environment]:
        self._require_workspace()
        env_name = request.environment or DEFAULT_ENVIRONMENT
        path = self.workspace.select_plan(self.interaction_handler, env_name, request.application)
        plan = DeploymentPlan.load(path)
        if plan.environment_file:
            environment = Environment.load(self.root, plan.environment_file)
        else:
            environment = Environment.detect(self.root, env_name)
        # The plan directory decides the environment name
        environment.name = plan.environment or env_name
        return plan, path.relative_to(self.root).as_posix(), environment

    def _require_workspace(self) -> None:
        self.workspace.require_repository()
        if not self.workspace.is_initialized:
            raise ValidationError(
                f"No {RADIUS_DIR}/ directory found in {self.root}",
                hint="Run 'radgit init' first.",
            )

    def _auto_confirm(self, requested: bool) -> bool:
        return requested or self.config.interaction.auto_confirm
