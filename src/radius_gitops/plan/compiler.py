"""Plan compiler: model graph + recipes -> ordered deployment plan."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..errors import ExecutionError, OperationCancelled, RadiusError, ValidationError
from ..gitops.manager import GitRepositoryManager
from ..gitops.trailers import CommitOutcome, auto_commit
from ..model.bicep import find_model_files
from ..model.graph import ModelGraph, ResourceNode
from ..paths import (
    MODEL_DIR,
    RECIPES_DIR,
    STATE_FILE,
    TYPES_DIR,
    parse_step_dir_name,
    plan_dir,
    plan_file,
    relative_plan_dir,
    step_dir_name,
)
from ..utils.progress import Spinner
from ..workspace.environment import Environment
from ..workspace.recipes import (
    RECIPE_KIND_BICEP,
    RECIPE_KIND_TERRAFORM,
    RecipeRegistry,
    display_type,
    is_pinned,
)
from ..workspace.types import PropertyIssue, ResourceTypeRegistry
from .codegen import write_step_config
from .models import (
    ChangeCount,
    DeploymentPlan,
    DeploymentStep,
    RecipeReference,
    RecipeVersion,
    ResourceReference,
)

if TYPE_CHECKING:
    from rich.console import Console

    from ..executor.base import ExecutorFactory
    from ..interaction import UserInteractionHandler

logger = logging.getLogger(__name__)


def resolve_model_path(root: Path, handler: "UserInteractionHandler", model: Optional[str] = None) -> Path:
    """Model file to compile: the explicit path, or the only/selected file under .radius/model/."""
    if model:
        path = Path(model)
        if not path.is_absolute():
            path = root / path
        if not path.is_file():
            raise ValidationError(f"Model file not found: {model}")
        return path

    files = find_model_files(root / MODEL_DIR)
    if not files:
        raise ValidationError(
            f"No model files found in {MODEL_DIR}/",
            hint="Create a Bicep model file or specify one explicitly: radgit plan path/to/model.bicep",
        )
    if len(files) == 1:
        return files[0]

    options = [f.relative_to(root).as_posix() for f in files]
    selected = handler.select_one(options, "Multiple model files found. Select one:")
    return root / selected


def load_recipe_registry(root: Path, environment: Environment) -> RecipeRegistry:
    """Recipes from the environment's RECIPES paths, else every manifest under .radius/config/recipes/."""
    if environment.recipes:
        return RecipeRegistry.load(environment.recipe_paths(root))
    return RecipeRegistry.load_dir(root / RECIPES_DIR)


@dataclass
class CompileSession:
    """State owned by a single compile: terraform state preserved across a replan."""

    plan_dir: Path
    preserved_state: Dict[str, bytes] = field(default_factory=dict)
    state_paths: Dict[str, Path] = field(default_factory=dict)

    def harvest_state(self) -> None:
        if not self.plan_dir.is_dir():
            return
        for entry in sorted(self.plan_dir.iterdir()):
            if not entry.is_dir():
                continue
            state = entry / STATE_FILE
            symbolic_name = parse_step_dir_name(entry.name)
            if symbolic_name and state.is_file():
                self.preserved_state[symbolic_name] = state.read_bytes()
                self.state_paths[symbolic_name] = state
                logger.debug(f"Preserved state for {symbolic_name}")

    def clean(self) -> None:
        if not self.plan_dir.is_dir():
            return
        for entry in self.plan_dir.iterdir():
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    def restore_state(self, symbolic_name: str, step_dir: Path) -> bool:
        content = self.preserved_state.get(symbolic_name)
        if content is None:
            return False
        (step_dir / STATE_FILE).write_bytes(content)
        logger.debug(f"Restored state for {symbolic_name}")
        return True

    def put_back(self) -> List[str]:
        """Write harvested state files back where they were found; used when a compile fails."""
        written: List[str] = []
        for symbolic_name, path in self.state_paths.items():
            if path.is_file():
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self.preserved_state[symbolic_name])
            written.append(symbolic_name)
        if written:
            logger.warning(f"Compile failed; restored terraform state for {', '.join(written)}")
        return written


@dataclass
class CompileResult:
    plan: DeploymentPlan
    plan_path: Path
    warnings: List[PropertyIssue] = field(default_factory=list)
    restored_state: List[str] = field(default_factory=list)
    commit: Optional[CommitOutcome] = None


class PlanCompiler:
    """
    Compiles a model graph into a deployment plan under .radius/plan/<app>/<env>/.

    Each deployable resource gets a step directory with generated terraform
    configuration and a dry run for its expected changes. A dry-run failure
    aborts the compile before plan.yaml is written.
    """

    def __init__(
        self,
        root: Path,
        interaction_handler: "UserInteractionHandler",
        executor_factory: "ExecutorFactory",
        recipes: Optional[RecipeRegistry] = None,
        types: Optional[ResourceTypeRegistry] = None,
        vc: Optional[GitRepositoryManager] = None,
        auto_confirm: bool = False,
        auto_commit: bool = False,
        strict_connections: bool = True,
        require_pinned_recipes: bool = False,
        console: Optional["Console"] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.root = Path(root)
        self.interaction_handler = interaction_handler
        self.executor_factory = executor_factory
        self.recipes = recipes
        self.types = types
        self.vc = vc
        self.auto_confirm = auto_confirm
        self.auto_commit = auto_commit
        self.strict_connections = strict_connections
        self.require_pinned_recipes = require_pinned_recipes
        self.console = console
        self.clock = clock

    def compile(
        self,
        graph: ModelGraph,
        environment: Environment,
        application: Optional[str] = None,
        model_file: Optional[Path] = None,
    ) -> CompileResult:
        graph.resolve_connections(strict=self.strict_connections)
        ordered = graph.ordered_resources()

        recipes = self.recipes if self.recipes is not None else load_recipe_registry(self.root, environment)
        types = self.types if self.types is not None else ResourceTypeRegistry.load_dir(self.root / TYPES_DIR)
        warnings = self._validate_properties(ordered, types)

        app = application or graph.application_name(self.root.resolve().name)
        env = environment.name
        target_dir = plan_dir(self.root, app, env)
        session = CompileSession(plan_dir=target_dir)
        self._prepare_plan_dir(session)

        try:
            plan = DeploymentPlan(
                application=app,
                environment=env,
                application_model_file=self._relative(model_file or graph.file_path),
                environment_file=environment.env_file,
                generated_at=self.clock().isoformat(),
            )

            deployable = [node for node in ordered if not node.is_application]

            logger.info("")
            logger.info("=" * 60)
            logger.info(f"📋 Generating deployment plan for {app} → {env}")
            logger.info("=" * 60)
            logger.info(f"📦 Found {len(deployable)} resources")
            logger.info("")

            restored: List[str] = []
            for node in deployable:
                step = self._build_step(node, recipes, len(plan.steps) + 1, app, env)
                step_dir = self.root / step.deployment_artifacts
                write_step_config(step_dir, node, step.recipe.kind, step.recipe.location, app, environment)
                if session.restore_state(node.symbolic_name, step_dir):
                    restored.append(node.symbolic_name)

                logger.info(f"   📦 {node.symbolic_name} ({display_type(node.type)})")
                step.expected_changes = self._dry_run(step, step_dir)
                if step.expected_changes.has_changes:
                    logger.info(f"      Changes: {step.expected_changes.describe()}")
                else:
                    logger.info("      No changes")
                plan.add_step(step)

            summary = plan.update_summary()
            if self.require_pinned_recipes and not summary.all_versions_pinned:
                unpinned = [
                    s.resource.name for s in plan.steps
                    if s.recipe.kind == RECIPE_KIND_TERRAFORM and not is_pinned(s.recipe.location)
                ]
                raise ValidationError(
                    f"Recipes are not pinned to a version: {', '.join(unpinned)}",
                    hint="Add ?ref=<tag> to the terraform recipe locations",
                )
            plan.validate()

            path = plan_file(self.root, app, env)
            plan.save(path)
        except Exception:
            session.put_back()
            raise

        logger.info("")
        logger.info("✅ Plan generated successfully!")
        logger.info(f"   Application: {app}")
        logger.info(f"   Environment: {env}")
        logger.info(f"   Steps: {len(plan.steps)}")
        logger.info(f"📁 Artifacts written to: {relative_plan_dir(app, env)}")

        result = CompileResult(plan=plan, plan_path=path, warnings=warnings, restored_state=restored)
        if self.auto_commit and self.vc is not None:
            result.commit = auto_commit(self.vc, "plan", app, env, [relative_plan_dir(app, env)])
            if result.commit.error:
                self.interaction_handler.notify(
                    f"Auto-commit failed: {result.commit.error}\n   Run manually: {result.commit.manual_command}",
                    level="warning",
                )
        return result

    def _validate_properties(self, nodes: List[ResourceNode], types: ResourceTypeRegistry) -> List[PropertyIssue]:
        issues: List[PropertyIssue] = []
        for node in nodes:
            if node.is_application:
                continue
            for issue in types.validate_properties(node.type, node.properties):
                issues.append(issue)
                self.interaction_handler.notify(
                    f"Validation warning ({node.symbolic_name}): {issue}", level="warning"
                )
        return issues

    def _prepare_plan_dir(self, session: CompileSession) -> None:
        if not session.plan_dir.is_dir() or not any(session.plan_dir.iterdir()):
            return
        if not self.auto_confirm and not self.interaction_handler.confirm(
            "Existing plan files found. Overwrite?", default=False
        ):
            raise OperationCancelled()
        session.harvest_state()
        session.clean()

    def _build_step(
        self,
        node: ResourceNode,
        recipes: RecipeRegistry,
        sequence: int,
        application: str,
        environment: str,
    ) -> DeploymentStep:
        shown = display_type(node.type)
        stored_type = f"{shown}@{node.api_version}" if node.api_version else shown

        entry = recipes.lookup(node.type)
        if entry is not None:
            kind, location = entry.kind, entry.location
        elif node.recipe is not None and node.recipe.source:
            kind, location = node.recipe.kind or RECIPE_KIND_TERRAFORM, node.recipe.source
        else:
            raise ValidationError(
                f"No recipe found for resource '{node.symbolic_name}' of type {shown}",
                hint=f"Add a recipe for {shown} under {RECIPES_DIR}/",
            )

        recipe = RecipeReference(
            name=shown,
            kind=kind,
            location=location,
            version=RecipeVersion.from_location(location),
        )
        tool = RECIPE_KIND_BICEP if kind == RECIPE_KIND_BICEP else RECIPE_KIND_TERRAFORM
        artifacts = f"{relative_plan_dir(application, environment)}/{step_dir_name(sequence, node.symbolic_name, tool)}"
        return DeploymentStep(
            sequence=sequence,
            resource=ResourceReference(
                name=node.symbolic_name,
                type=stored_type,
                properties=node.plain_properties(),
            ),
            recipe=recipe,
            deployment_artifacts=artifacts,
        )

    def _dry_run(self, step: DeploymentStep, step_dir: Path) -> ChangeCount:
        if step.tool == RECIPE_KIND_BICEP:
            return ChangeCount()
        executor = self.executor_factory(step_dir)
        try:
            if self.console is not None and self.console.is_terminal:
                with Spinner(f"Planning {step.resource.name}...", console=self.console):
                    executor.init()
                    return executor.plan()
            executor.init()
            return executor.plan()
        except (RadiusError, OSError) as exc:
            raise ExecutionError(
                f"Terraform plan failed for {step.resource.name}: {exc}",
                command=getattr(exc, "command", None),
                stderr=getattr(exc, "stderr", ""),
                hint="Fix the recipe or model and run radgit plan again",
            ) from exc

    def _relative(self, path: Optional[Path]) -> str:
        if path is None:
            return ""
        try:
            return Path(path).resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return Path(path).as_posix()
