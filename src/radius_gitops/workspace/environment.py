"""Target environment descriptors read from ``.env`` files."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import dotenv_values

ENV_FILE_CANDIDATES = [".env", ".env.local", ".env.development", ".env.production"]
DEFAULT_ENVIRONMENT = "default"

_KNOWN_KEYS = {
    "RECIPES",
    "KUBERNETES_NAMESPACE",
    "KUBERNETES_CONTEXT",
    "PROVIDER",
    "AWS_REGION",
    "AWS_ACCOUNT_ID",
    "AZURE_SUBSCRIPTION_ID",
    "AZURE_RESOURCE_GROUP",
}


def environment_name_from_file(env_file: str) -> str:
    """``.env`` -> default, ``.env.staging`` -> staging, ``prod.env`` -> prod."""
    base = Path(env_file).name
    if base == ".env":
        return DEFAULT_ENVIRONMENT
    if base.startswith(".env."):
        return base[len(".env."):]
    if base.endswith(".env"):
        return base[: -len(".env")]
    return DEFAULT_ENVIRONMENT


def environment_file_for(name: str) -> str:
    return ".env" if name == DEFAULT_ENVIRONMENT else f".env.{name}"


@dataclass
class Environment:
    """Where and how a plan is deployed."""

    name: str = DEFAULT_ENVIRONMENT
    env_file: str = ".env"
    recipes: List[str] = field(default_factory=list)
    kubernetes_namespace: str = ""
    kubernetes_context: str = ""
    provider: str = ""
    aws_region: str = ""
    aws_account_id: str = ""
    azure_subscription_id: str = ""
    azure_resource_group: str = ""
    variables: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, root: Path, env_file: str) -> "Environment":
        """Read ``env_file`` relative to ``root``; a missing file yields defaults."""
        path = root / env_file
        values: Dict[str, Optional[str]] = dotenv_values(path) if path.is_file() else {}

        def get(key: str) -> str:
            return (values.get(key) or "").strip()

        recipes = [p.strip() for p in get("RECIPES").split(",") if p.strip()]
        return cls(
            name=environment_name_from_file(env_file),
            env_file=env_file,
            recipes=recipes,
            kubernetes_namespace=get("KUBERNETES_NAMESPACE"),
            kubernetes_context=get("KUBERNETES_CONTEXT"),
            provider=get("PROVIDER").lower(),
            aws_region=get("AWS_REGION"),
            aws_account_id=get("AWS_ACCOUNT_ID"),
            azure_subscription_id=get("AZURE_SUBSCRIPTION_ID"),
            azure_resource_group=get("AZURE_RESOURCE_GROUP"),
            variables={k: v or "" for k, v in values.items() if k not in _KNOWN_KEYS},
        )

    @classmethod
    def detect(cls, root: Path, name: Optional[str] = None) -> "Environment":
        """Pick the environment file: explicit name first, else the first existing candidate."""
        if name:
            return cls.load(root, environment_file_for(name))
        for candidate in ENV_FILE_CANDIDATES:
            if (root / candidate).is_file():
                return cls.load(root, candidate)
        return cls(name=DEFAULT_ENVIRONMENT, env_file=".env")

    def recipe_paths(self, root: Path) -> List[Path]:
        return [Path(p) if Path(p).is_absolute() else root / p for p in self.recipes]

    def to_context(self) -> Dict[str, str]:
        """Environment metadata handed to recipes."""
        context = {"name": self.name}
        if self.kubernetes_namespace:
            context["namespace"] = self.kubernetes_namespace
        if self.provider:
            context["provider"] = self.provider
        if self.aws_region:
            context["awsRegion"] = self.aws_region
        if self.azure_resource_group:
            context["azureResourceGroup"] = self.azure_resource_group
        return context
