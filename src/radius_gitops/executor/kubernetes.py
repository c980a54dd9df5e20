"""Kubernetes manifest capture and live lookups through ``kubectl``."""

from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import AuthenticationError, ExecutionError, ValidationError
from ..utils.progress import wait_until
from .base import PlatformResource

logger = logging.getLogger(__name__)

_VERSION_SUFFIX_RE = re.compile(r"_v\d+$")
_AUTH_MARKERS = ("Unauthorized", "Forbidden", "You must be logged in")


def kind_for(resource_type: str) -> str:
    """Kubernetes kind for a terraform resource type, e.g. ``kubernetes_deployment_v1`` -> ``deployment``."""
    kind = resource_type[len("kubernetes_"):] if resource_type.startswith("kubernetes_") else resource_type
    return _VERSION_SUFFIX_RE.sub("", kind)


def parse_resource_id(resource_id: str) -> Tuple[str, str, str]:
    """Split ``namespace/kind/name``."""
    parts = resource_id.split("/")
    if len(parts) != 3 or not all(parts):
        raise ValidationError(f"Invalid resource ID '{resource_id}': expected namespace/kind/name")
    return parts[0], parts[1], parts[2]


def _metadata(attributes: Dict[str, Any]) -> Dict[str, Any]:
    metadata = attributes.get("metadata")
    if isinstance(metadata, list) and metadata and isinstance(metadata[0], dict):
        return metadata[0]
    if isinstance(metadata, dict):
        return metadata
    return {}


@dataclass
class CapturedResource:
    """Snapshot of a live platform object taken right after apply."""

    resource_id: str                 # namespace/kind/name
    kind: str
    name: str
    namespace: str = ""
    provider: str = "kubernetes"
    radius_resource_type: str = ""
    deployment_step: int = 0
    manifest: str = ""               # raw YAML as returned by the platform
    definition_file: str = ""        # file next to the record holding the manifest
    captured_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resourceId": self.resource_id,
            "resourceType": self.kind,
            "provider": self.provider,
            "name": self.name,
            "namespace": self.namespace,
            "radiusResourceType": self.radius_resource_type,
            "deploymentStep": self.deployment_step,
            "rawManifest": self.manifest,
            "resourceDefinitionFile": self.definition_file,
            "capturedAt": self.captured_at.isoformat() if self.captured_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapturedResource":
        resource_id = data.get("resourceId", "")
        parts = resource_id.split("/")
        namespace, kind, name = parts if len(parts) == 3 else ("", "", "")
        manifest = data.get("rawManifest") or ""
        if not isinstance(manifest, str):
            manifest = json.dumps(manifest, indent=2, sort_keys=True)
        captured_at = None
        if data.get("capturedAt"):
            try:
                captured_at = datetime.fromisoformat(str(data["capturedAt"]).replace("Z", "+00:00"))
            except ValueError:
                captured_at = None
        return cls(
            resource_id=resource_id,
            kind=data.get("resourceType") or kind,
            name=data.get("name") or name,
            namespace=data.get("namespace") or namespace,
            provider=data.get("provider", "kubernetes"),
            radius_resource_type=data.get("radiusResourceType", ""),
            deployment_step=int(data.get("deploymentStep", 0) or 0),
            manifest=manifest,
            definition_file=data.get("resourceDefinitionFile", ""),
            captured_at=captured_at,
        )


class KubernetesCapture:
    """Fetches live manifests for kubernetes resources created by a step."""

    def __init__(
        self,
        context: str = "",
        namespace: str = "default",
        kubectl_binary: str = "kubectl",
        timeout: int = 60,
        wait_timeout: float = 0,
        wait_interval: float = 2.0,
    ) -> None:
        self.context = context
        self.namespace = namespace or "default"
        self.kubectl_binary = kubectl_binary
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.wait_interval = wait_interval

    def capture(
        self,
        resources: List[PlatformResource],
        deploy_dir: Path,
        step_sequence: int,
        radius_resource_type: str = "",
    ) -> List[CapturedResource]:
        """Write a manifest file per kubernetes resource into ``deploy_dir``.

        A resource that cannot be fetched is logged and skipped; capture never
        fails the step.
        """
        captured: List[CapturedResource] = []
        for resource in resources:
            if resource.provider != "kubernetes":
                continue
            metadata = _metadata(resource.attributes)
            name = metadata.get("name") or ""
            namespace = metadata.get("namespace") or resource.namespace or self.namespace
            if not name or not namespace:
                logger.debug("Skipping capture of %s: no name/namespace", resource.address)
                continue
            kind = kind_for(resource.type)
            try:
                manifest = self._fetch_with_wait(kind, name, namespace)
            except (ExecutionError, AuthenticationError) as exc:
                logger.warning("Failed to capture %s %s/%s: %s", kind, namespace, name, exc)
                continue
            if manifest is None:
                logger.warning("Resource %s %s/%s not found after apply", kind, namespace, name)
                continue

            file_name = f"{kind}-{name}.yaml"
            deploy_dir.mkdir(parents=True, exist_ok=True)
            (deploy_dir / file_name).write_text(manifest, encoding="utf-8")
            captured.append(CapturedResource(
                resource_id=f"{namespace}/{kind}/{name}",
                kind=kind,
                name=name,
                namespace=namespace,
                radius_resource_type=radius_resource_type,
                deployment_step=step_sequence,
                manifest=manifest,
                definition_file=file_name,
                captured_at=datetime.now(timezone.utc),
            ))
            logger.info("Captured %s %s/%s", kind, namespace, name)
        return captured

    def _fetch_with_wait(self, kind: str, name: str, namespace: str) -> Optional[str]:
        manifest = self.get_live(kind, name, namespace)
        if manifest is not None or self.wait_timeout <= 0:
            return manifest

        found: Dict[str, str] = {}

        def _appeared() -> bool:
            result = self.get_live(kind, name, namespace)
            if result is not None:
                found["manifest"] = result
                return True
            return False

        wait_until(_appeared, timeout=self.wait_timeout, interval=self.wait_interval)
        return found.get("manifest")

    def get_live(self, kind: str, name: str, namespace: str) -> Optional[str]:
        """Current manifest of one object as YAML, or None when it does not exist."""
        args = ["get", kind, name, "-n", namespace, "-o", "yaml"]
        returncode, stdout, stderr = self._run(args)
        if returncode == 0:
            return stdout
        if "NotFound" in stderr or "not found" in stderr:
            return None
        if any(marker in stderr for marker in _AUTH_MARKERS):
            raise AuthenticationError(
                f"kubectl was not authorized to read {kind}/{name}: {stderr}",
                hint="Check the kubernetes context and credentials for this environment",
            )
        raise ExecutionError(
            f"kubectl get {kind} {name} failed: {stderr}",
            command=[self.kubectl_binary, *args],
            exit_code=returncode,
            stderr=stderr,
        )

    def _run(self, args: List[str]) -> Tuple[int, str, str]:
        command = [self.kubectl_binary]
        if self.context:
            command += ["--context", self.context]
        command += args
        logger.debug("Running %s", " ".join(command))
        try:
            process = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ExecutionError(
                f"{self.kubectl_binary} not found",
                command=command,
                hint="Install kubectl or set RADGIT_KUBECTL_BINARY",
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ExecutionError(f"kubectl {args[0]} timed out after {self.timeout}s", command=command) from exc
        return process.returncode, process.stdout, process.stderr.strip()
