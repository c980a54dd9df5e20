"""Workspace management for the .radius/ directory of a repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from ..errors import OperationCancelled, ValidationError
from ..gitops.trailers import CommitOutcome, auto_commit
from ..paths import (
    DEPLOY_DIR,
    MODEL_DIR,
    PLAN_DIR,
    PLAN_FILE,
    RADIUS_DIR,
    RECIPES_DIR,
    TYPES_DIR,
    plan_file,
)
from .environment import DEFAULT_ENVIRONMENT
from .recipes import RECIPE_KIND_TERRAFORM, RecipeEntry, RecipeRegistry

if TYPE_CHECKING:
    from ..gitops.manager import GitRepositoryManager
    from ..interaction import UserInteractionHandler

logger = logging.getLogger(__name__)

WORKSPACE_DIRS = [TYPES_DIR, RECIPES_DIR, MODEL_DIR, PLAN_DIR, DEPLOY_DIR]

GITIGNORE_HEADER = "# Radius / Terraform"
GITIGNORE_ENTRIES = [".terraform/", "*.tfplan", "tfplan", ".terraform.lock.hcl"]

STARTER_RECIPES_FILE = "recipes.yaml"

_CONTRIB = "git::https://github.com/radius-project/resource-types-contrib.git//"

STARTER_RECIPES = {
    "Radius.Compute/containers": f"{_CONTRIB}Compute/containers/recipes/kubernetes/terraform",
    "Radius.Data/postgreSqlDatabases": f"{_CONTRIB}Data/postgreSqlDatabases/recipes/kubernetes/terraform",
    "Radius.Data/redisCaches": f"{_CONTRIB}Data/redisCaches/recipes/kubernetes/terraform",
}

STARTER_MODEL_NAME = "todolist"

STARTER_MODEL = """extension radius

param environment string

resource todolist 'Radius.Core/applications@2025-08-01-preview' = {
  name: 'todolist'
  properties: {
    environment: environment
  }
}

resource frontend 'Radius.Compute/containers@2025-08-01-preview' = {
  name: 'frontend'
  properties: {
    application: todolist.id
    environment: environment
    containers: {
      frontend: {
        image: 'ghcr.io/radius-project/samples/demo:latest'
        ports: {
          web: {
            containerPort: 3000
          }
        }
      }
    }
    connections: {
      postgresql: {
        source: db.id
      }
    }
  }
}

resource db 'Radius.Data/postgreSqlDatabases@2025-08-01-preview' = {
  name: 'db'
  properties: {
    environment: environment
    application: todolist.id
    size: 'S'
  }
}
"""


@dataclass
class InitResult:
    created_dirs: List[str] = field(default_factory=list)
    gitignore_updated: bool = False
    recipes_file: Optional[str] = None
    env_file: Optional[str] = None
    commit: Optional[CommitOutcome] = None


@dataclass
class ModelResult:
    model_file: str
    created: bool = False
    commit: Optional[CommitOutcome] = None


class RadiusWorkspace:
    """The .radius/ tree of one git working copy."""

    def __init__(self, root: Path, vc: Optional["GitRepositoryManager"] = None) -> None:
        self.root = Path(root)
        self.vc = vc

    @property
    def radius_dir(self) -> Path:
        return self.root / RADIUS_DIR

    @property
    def is_initialized(self) -> bool:
        return self.radius_dir.is_dir()

    def require_repository(self) -> None:
        if self.vc is None or not self.vc.is_repository():
            raise ValidationError(
                "Current directory is not a Git repository.",
                hint="Run 'git init' first, then retry 'radgit init'.",
            )

    def initialize(
        self,
        handler: "UserInteractionHandler",
        auto_confirm: bool = False,
        commit: bool = True,
    ) -> InitResult:
        """Create the directory layout, ignore entries, starter recipes and ``.env``."""
        self.require_repository()

        if self.is_initialized and not auto_confirm:
            handler.notify("Radius is already configured in this Git repository.", level="warning")
            if not handler.confirm("Re-running init may overwrite existing configuration. Continue?", default=False):
                raise OperationCancelled()

        result = InitResult()
        for rel in WORKSPACE_DIRS:
            path = self.root / rel
            if not path.is_dir():
                path.mkdir(parents=True, exist_ok=True)
                result.created_dirs.append(rel)
        handler.notify(f"  ✓ Created {RADIUS_DIR}/ directory structure")

        result.gitignore_updated = self.ensure_gitignore()
        if result.gitignore_updated:
            handler.notify("  ✓ Updated .gitignore")

        recipes = self.write_starter_recipes()
        if recipes is not None:
            result.recipes_file = recipes
            handler.notify(f"  ✓ Created default recipes: {recipes}")

        env_file = self.write_env_file(recipes)
        if env_file is not None:
            result.env_file = env_file
            handler.notify(f"  ✓ Set up environment configuration: {env_file}")

        if commit and self.vc is not None:
            paths = [f"{RADIUS_DIR}/", ".gitignore"]
            if result.env_file:
                paths.append(result.env_file)
            result.commit = auto_commit(self.vc, "init", paths=paths)
            if result.commit.error:
                handler.notify(
                    f"Auto-commit failed: {result.commit.error}\n   Run manually: {result.commit.manual_command}",
                    level="warning",
                )

        handler.notify("✅ Git workspace initialized successfully", level="success")
        return result

    def create_model(
        self,
        handler: "UserInteractionHandler",
        auto_confirm: bool = False,
        commit: bool = True,
        name: str = STARTER_MODEL_NAME,
    ) -> ModelResult:
        """Write a starter application model under .radius/model/ and commit it."""
        self.require_repository()
        if not self.is_initialized:
            raise ValidationError(
                "Radius not initialized in this repository.",
                hint="Run 'radgit init' first.",
            )

        rel = f"{MODEL_DIR}/{name}.bicep"
        path = self.root / rel
        result = ModelResult(model_file=rel)
        if path.exists() and not auto_confirm:
            if not handler.confirm(f"Model file {rel} already exists. Overwrite?", default=False):
                handler.notify("Model creation cancelled.")
                return result

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(STARTER_MODEL, encoding="utf-8")
        result.created = True
        handler.notify(f"  ✓ Created: {rel}")

        if commit and self.vc is not None:
            result.commit = auto_commit(self.vc, "model", paths=[rel])
            if result.commit.error:
                handler.notify(
                    f"Auto-commit failed: {result.commit.error}\n   Run manually: {result.commit.manual_command}",
                    level="warning",
                )

        handler.notify(
            "✅ Application model created successfully\n"
            "   It holds a 'todolist' application with a frontend container and a PostgreSQL database.\n"
            "   Next: edit the model, then run 'radgit plan'.",
            level="success",
        )
        return result

    def ensure_gitignore(self) -> bool:
        """Append missing terraform entries to ``.gitignore``; True when the file changed."""
        path = self.root / ".gitignore"
        content = path.read_text(encoding="utf-8") if path.is_file() else ""
        existing = {line.strip() for line in content.splitlines()}
        missing = [entry for entry in GITIGNORE_ENTRIES if entry not in existing]
        if not missing:
            return False

        block = []
        if GITIGNORE_HEADER not in existing:
            block.append(GITIGNORE_HEADER)
        block.extend(missing)
        prefix = "" if not content or content.endswith("\n") else "\n"
        with path.open("a", encoding="utf-8") as handle:
            handle.write(prefix + "\n".join(block) + "\n")
        logger.debug(f"Added {len(missing)} entries to .gitignore")
        return True

    def write_starter_recipes(self) -> Optional[str]:
        """Write a starter recipe manifest unless one already exists."""
        recipes_dir = self.root / RECIPES_DIR
        if any(recipes_dir.glob("*.yaml")) or any(recipes_dir.glob("*.yml")):
            return None
        registry = RecipeRegistry(entries={
            name: RecipeEntry(kind=RECIPE_KIND_TERRAFORM, location=location)
            for name, location in STARTER_RECIPES.items()
        })
        registry.save(recipes_dir / STARTER_RECIPES_FILE)
        return f"{RECIPES_DIR}/{STARTER_RECIPES_FILE}"

    def write_env_file(self, recipes_file: Optional[str] = None) -> Optional[str]:
        path = self.root / ".env"
        if path.exists():
            return None
        content = "# Radius Environment Configuration\n# Generated by 'radgit init'\n\nKUBERNETES_NAMESPACE=default\n"
        if recipes_file:
            content += f"\nRECIPES={recipes_file}\n"
        path.write_text(content, encoding="utf-8")
        return ".env"

    def list_plans(self, environment: str = DEFAULT_ENVIRONMENT) -> List[str]:
        """Applications that have a compiled plan for ``environment``."""
        base = self.root / PLAN_DIR
        if not base.is_dir():
            return []
        return sorted(
            app_dir.name for app_dir in base.iterdir()
            if (app_dir / environment / PLAN_FILE).is_file()
        )

    def select_plan(
        self,
        handler: "UserInteractionHandler",
        environment: str = DEFAULT_ENVIRONMENT,
        application: Optional[str] = None,
    ) -> Path:
        """Plan file for ``application``, or the only/selected one for ``environment``."""
        if application:
            path = plan_file(self.root, application, environment)
            if not path.is_file():
                raise ValidationError(
                    f"No plan found for {application} in environment {environment}",
                    hint="Run 'radgit plan' first.",
                )
            return path

        apps = self.list_plans(environment)
        if not apps:
            raise ValidationError(
                f"No plans found in {PLAN_DIR}/*/{environment}/",
                hint="Run 'radgit plan' first.",
            )
        if len(apps) == 1:
            return plan_file(self.root, apps[0], environment)
        selected = handler.select_one(apps, "Multiple applications found. Select one:")
        return plan_file(self.root, selected, environment)