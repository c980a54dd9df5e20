"""Diff engine: compares plans, records and manifests across revisions or against live state."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from itertools import groupby
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Tuple

from ..errors import ExecutionError, ValidationError
from ..executor.kubernetes import CapturedResource, parse_resource_id
from ..gitops.manager import GitCommandError
from ..orchestrator.models import DeploymentRecord
from ..orchestrator.records import (
    is_deletion_record_path,
    is_record_path,
    pick_latest,
    record_matches,
)
from ..paths import PLAN_DIR, PLAN_FILE, RADIUS_DIR
from ..workspace.environment import environment_name_from_file
from .models import ChangeKind, DiffExitCode, DiffResult, ManifestDiff, PropertyDiff
from .structural import (
    ROOT_PATH,
    DocumentParseError,
    compare_data,
    load_document,
    render,
)

if TYPE_CHECKING:
    from ..executor.kubernetes import KubernetesCapture
    from ..gitops.manager import GitRepositoryManager

logger = logging.getLogger(__name__)

HEAD = "HEAD"
WORKING_TREE = "working directory"
LIVE = "live"

# Fields the platform rewrites on its own; they are not drift.
VOLATILE_METADATA_FIELDS = ("resourceVersion", "managedFields", "generation")


class DiffMode(str, Enum):
    UNCOMMITTED = "uncommitted"
    REVISIONS = "revisions"
    LIVE = "live"


@dataclass
class DiffRequest:
    mode: DiffMode
    source: str
    target: str


def _usage_error(message: str, hint: Optional[str] = None) -> ValidationError:
    return ValidationError(message, hint=hint, exit_code=int(DiffExitCode.VALIDATION_ERROR))


def parse_revision_args(revisions: Sequence[str], live: bool = False) -> DiffRequest:
    """Pick the comparison mode from the positional revision arguments.

    - none: HEAD against the working tree
    - ``a...b`` or ``a b``: two revisions
    - ``a``: ``a`` against HEAD, or against live state with ``live``
    """
    revs = [rev.strip() for rev in revisions if rev and rev.strip()]
    if len(revs) == 1 and "..." in revs[0]:
        source, _, target = revs[0].partition("...")
        if not source or not target:
            raise _usage_error(f"Invalid revision range: {revs[0]}", hint="Use radgit diff <from>...<to>")
        revs = [source, target]
    if len(revs) > 2:
        raise _usage_error(f"Too many revisions: {' '.join(revs)}", hint="Pass at most two revisions")

    if live:
        if len(revs) != 1:
            raise _usage_error("--live needs exactly one revision", hint="radgit diff <commit> --live")
        return DiffRequest(DiffMode.LIVE, revs[0], LIVE)
    if not revs:
        return DiffRequest(DiffMode.UNCOMMITTED, HEAD, WORKING_TREE)
    if len(revs) == 1:
        return DiffRequest(DiffMode.REVISIONS, revs[0], HEAD)
    return DiffRequest(DiffMode.REVISIONS, revs[0], revs[1])


def split_plan_path(path: str) -> Optional[Tuple[Optional[str], str]]:
    """``(application, environment)`` encoded in a plan file path, or None."""
    prefix = PLAN_DIR + "/"
    if not path.startswith(prefix) or PurePosixPath(path).name != PLAN_FILE:
        return None
    parts = path[len(prefix):].split("/")
    if len(parts) == 3:
        return parts[0], parts[1]
    if len(parts) == 2:
        return None, parts[0]
    return None


def normalize_manifest(data: Any) -> Any:
    """Drop status and server-maintained metadata from a manifest."""
    if not isinstance(data, dict):
        return data
    cleaned = {k: v for k, v in data.items() if k != "status"}
    metadata = cleaned.get("metadata")
    if isinstance(metadata, dict):
        cleaned["metadata"] = {k: v for k, v in metadata.items() if k not in VOLATILE_METADATA_FIELDS}
    return cleaned


def diff_manifests(old_text: str, new_text: str, file: str = "") -> List[PropertyDiff]:
    old = normalize_manifest(load_document(old_text, file))
    new = normalize_manifest(load_document(new_text, file))
    return compare_data(old, new, file=file)


ManifestLoader = Callable[[CapturedResource], Optional[str]]


def diff_captured_resources(
    old: Sequence[CapturedResource],
    new: Sequence[CapturedResource],
    load_old: Optional[ManifestLoader] = None,
    load_new: Optional[ManifestLoader] = None,
) -> List[ManifestDiff]:
    """Compare two captured-resource sets by resource id.

    Manifests come from the record itself, or from the loaders when the
    record only links to the manifest file. A manifest that cannot be read
    or parsed contributes no diff.
    """
    def manifest(resource: CapturedResource, loader: Optional[ManifestLoader]) -> Optional[str]:
        if resource.manifest:
            return resource.manifest
        return loader(resource) if loader else None

    diffs: List[ManifestDiff] = []
    new_by_id = {resource.resource_id: resource for resource in new}
    old_ids = set()
    for resource in old:
        old_ids.add(resource.resource_id)
        counterpart = new_by_id.get(resource.resource_id)
        if counterpart is None:
            diffs.append(ManifestDiff(resource.kind, resource.name, resource.namespace, ChangeKind.REMOVED))
            continue
        old_text, new_text = manifest(resource, load_old), manifest(counterpart, load_new)
        if not old_text or not new_text:
            continue
        try:
            changes = diff_manifests(old_text, new_text, resource.definition_file)
        except DocumentParseError as exc:
            logger.warning(f"Skipping manifest {resource.resource_id}: {exc}")
            continue
        if changes:
            diffs.append(ManifestDiff(
                resource.kind, resource.name, resource.namespace, ChangeKind.MODIFIED,
                property_diffs=changes, rendered=render(changes, indent="    "),
            ))
    for resource in new:
        if resource.resource_id not in old_ids:
            diffs.append(ManifestDiff(resource.kind, resource.name, resource.namespace, ChangeKind.ADDED))
    return diffs


class DiffEngine:
    """
    Locates plan, record and manifest artifacts at each revision and
    compares them structurally.

    Application and environment act as path filters. When not given they
    are discovered from the first plan file at the source revision; if that
    fails no filter is applied.
    """

    def __init__(
        self,
        root: Path,
        vc: "GitRepositoryManager",
        application: Optional[str] = None,
        environment: Optional[str] = None,
        capture: Optional["KubernetesCapture"] = None,
    ):
        self.root = Path(root)
        self.vc = vc
        self.application = application
        self.environment = environment
        self.capture = capture

    def run(self, request: DiffRequest) -> DiffResult:
        if not self.vc.is_repository():
            raise _usage_error("Current directory is not a Git repository.", hint="Run radgit diff inside a repository")
        if request.mode != DiffMode.UNCOMMITTED:
            self._verify_revision(request.source)
        if request.mode == DiffMode.REVISIONS:
            self._verify_revision(request.target)

        self.discover_app_env(request.source)

        if request.mode == DiffMode.UNCOMMITTED:
            return self.diff_uncommitted()
        if request.mode == DiffMode.LIVE:
            return self.diff_commit_to_live(request.source)
        return self.diff_revisions(request.source, request.target)

    # -- discovery ---------------------------------------------------------

    def discover_app_env(self, revision: str) -> Tuple[Optional[str], Optional[str]]:
        """Fill in application/environment from a plan file at ``revision``."""
        if self.application and self.environment:
            return self.application, self.environment

        for path in self.vc.list_files(revision, PLAN_DIR + "/"):
            split = split_plan_path(path)
            if split is None:
                continue
            app_from_path, env_from_path = split
            if self.environment and env_from_path != self.environment:
                continue
            if self.application and app_from_path and app_from_path != self.application:
                continue
            content = self.vc.file_at_revision(revision, path)
            if content is None:
                continue
            try:
                data = load_document(content, path)
            except DocumentParseError as exc:
                logger.debug(f"Skipping unreadable plan {path}: {exc}")
                continue
            if not isinstance(data, dict):
                continue

            self.application = self.application or data.get("application") or app_from_path
            if not self.environment:
                env_file = data.get("environmentFile") or ""
                self.environment = env_from_path or (environment_name_from_file(env_file) if env_file else None)
            logger.debug(f"Discovered application={self.application} environment={self.environment} from {path}")
            break
        else:
            logger.debug(f"No plan found at {revision}; diffing without application/environment filter")

        return self.application, self.environment

    # -- modes -------------------------------------------------------------

    def diff_uncommitted(self) -> DiffResult:
        """Plan files changed in the working tree relative to HEAD."""
        result = self._new_result(HEAD, WORKING_TREE)
        try:
            changed = self.vc.changed_files(HEAD, pathspec=PLAN_DIR + "/")
        except GitCommandError as exc:
            # No commits yet
            logger.debug(f"git diff against HEAD failed: {exc}")
            return result

        for path in changed:
            if not self._plan_matches(path):
                continue
            old = self.vc.file_at_revision(HEAD, path)
            local = self.root / path
            new = local.read_text(encoding="utf-8") if local.is_file() else None
            self._diff_plan(path, old, new, result)
        return result

    def diff_revisions(self, source: str, target: str) -> DiffResult:
        """Plans, records and captured manifests between two revisions."""
        result = self._new_result(source, target)
        try:
            changed = self.vc.changed_files(source, target, pathspec=RADIUS_DIR + "/")
        except GitCommandError as exc:
            raise _usage_error(f"Could not compare {source} and {target}: {exc.stderr}") from exc

        for path in changed:
            if self._plan_matches(path):
                self._diff_plan(path, self.vc.file_at_revision(source, path), self.vc.file_at_revision(target, path), result)
            elif is_record_path(path) and record_matches(path, self.application, self.environment):
                self._diff_record(path, source, target, result)

        old = self._latest_record(source)
        new = self._latest_record(target)
        result.manifest_diffs = diff_captured_resources(
            old[1].captured_resources if old else [],
            new[1].captured_resources if new else [],
            load_old=self._manifest_loader(source, old[0]) if old else None,
            load_new=self._manifest_loader(target, new[0]) if new else None,
        )
        return result

    def diff_commit_to_live(self, revision: str) -> DiffResult:
        """Captured manifests of the latest deployment at ``revision`` against the live platform."""
        if self.capture is None:
            raise _usage_error(
                "Live comparison needs kubernetes access",
                hint="Set KUBERNETES_CONTEXT/KUBERNETES_NAMESPACE in the environment file",
            )
        found = self._latest_record(revision)
        if found is None:
            raise _usage_error(
                f"No deployment records found at {revision}",
                hint="Pick a commit that contains a deployment record",
            )
        record_path, record = found
        result = self._new_result(revision, LIVE)
        load_stored = self._manifest_loader(revision, record_path)

        for captured in record.captured_resources:
            try:
                namespace, kind, name = parse_resource_id(captured.resource_id)
            except ValidationError as exc:
                logger.debug(f"Skipping captured resource: {exc}")
                continue

            try:
                live = self.capture.get_live(kind, name, namespace)
            except ExecutionError as exc:
                logger.warning(f"Could not fetch {kind}/{name} in {namespace}: {exc}")
                continue
            if live is None:
                result.manifest_diffs.append(ManifestDiff(kind, name, namespace, ChangeKind.REMOVED))
                continue

            stored = load_stored(captured) or captured.manifest
            if not stored:
                continue
            try:
                changes = diff_manifests(stored, live, captured.definition_file)
            except DocumentParseError as exc:
                logger.warning(f"Skipping manifest {captured.resource_id}: {exc}")
                continue
            if changes:
                result.manifest_diffs.append(ManifestDiff(
                    kind, name, namespace, ChangeKind.MODIFIED,
                    property_diffs=changes, rendered=render(changes, indent="    "),
                ))
        return result

    # -- helpers -----------------------------------------------------------

    def _new_result(self, source: str, target: str) -> DiffResult:
        return DiffResult(source=source, target=target, application=self.application, environment=self.environment)

    def _verify_revision(self, revision: str) -> None:
        try:
            self.vc.resolve(revision)
        except GitCommandError as exc:
            raise _usage_error(f"Unknown revision: {revision}", hint="Check the commit hash or ref name") from exc

    def _plan_matches(self, path: str) -> bool:
        split = split_plan_path(path)
        if split is None:
            return False
        app, env = split
        if self.application and app and app != self.application:
            return False
        return not self.environment or env == self.environment

    def _diff_plan(self, path: str, old: Optional[str], new: Optional[str], result: DiffResult) -> None:
        try:
            if old is None and new is None:
                return
            if old is None:
                diffs = [PropertyDiff(ROOT_PATH, ChangeKind.ADDED, new_value=load_document(new, path), file=path)]
            elif new is None:
                diffs = [PropertyDiff(ROOT_PATH, ChangeKind.REMOVED, old_value=load_document(old, path), file=path)]
            else:
                diffs = compare_data(load_document(old, path), load_document(new, path), file=path)
        except DocumentParseError as exc:
            logger.warning(f"Skipping plan {path}: {exc}")
            return
        if diffs:
            result.plan_diffs.extend(diffs)
            result.rendered += f"--- {path}\n{render(diffs)}\n"

    def _diff_record(self, path: str, source: str, target: str, result: DiffResult) -> None:
        old = self.vc.file_at_revision(source, path)
        new = self.vc.file_at_revision(target, path)
        if old is None or new is None:
            return
        try:
            diffs = compare_data(json.loads(old), json.loads(new), file=path)
        except ValueError as exc:
            logger.warning(f"Skipping record {path}: {exc}")
            return
        if diffs:
            result.record_diffs.extend(diffs)
            result.rendered += f"--- {path}\n{render(diffs)}\n"

    def _latest_record(self, revision: str) -> Optional[Tuple[str, DeploymentRecord]]:
        candidates = []
        for path in self.vc.list_files(revision, RADIUS_DIR + "/"):
            if not is_record_path(path) or is_deletion_record_path(path):
                continue
            if not record_matches(path, self.application, self.environment):
                continue
            content = self.vc.file_at_revision(revision, path)
            if content is not None:
                candidates.append((path, content))

        latest = pick_latest(candidates)
        if latest is None:
            return None
        try:
            record = DeploymentRecord.from_json(dict(candidates)[latest])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(f"Skipping unreadable record {latest} at {revision}: {exc}")
            return None
        return latest, record

    def _manifest_loader(self, revision: str, record_path: str) -> ManifestLoader:
        record_dir = PurePosixPath(record_path).parent

        def load(captured: CapturedResource) -> Optional[str]:
            if not captured.definition_file:
                return None
            return self.vc.file_at_revision(revision, str(record_dir / captured.definition_file))

        return load


def _render_grouped(diffs: List[PropertyDiff]) -> List[str]:
    lines = []
    for file, group in groupby(diffs, key=lambda d: d.file):
        if file:
            lines.append(f"  {file}")
        lines.append(render(list(group), indent="    "))
    return lines


def format_diff_output(result: DiffResult) -> str:
    """Human-readable report for the diff command."""
    if not result.has_diff:
        return "No differences found"

    lines = [
        f"Comparing {result.source} → {result.target}",
        f"Application: {result.application or '(all)'}",
        f"Environment: {result.environment or '(all)'}",
        "",
    ]
    if result.plan_diffs:
        lines.append("Plan Changes:")
        lines.extend(_render_grouped(result.plan_diffs))
        lines.append("")
    if result.record_diffs:
        lines.append("Deployment Record Changes:")
        lines.extend(_render_grouped(result.record_diffs))
        lines.append("")
    if result.manifest_diffs:
        lines.append("Kubernetes Manifest Changes:")
        for diff in result.manifest_diffs:
            lines.append(f"  {diff.change.symbol} {diff.kind}/{diff.name} ({diff.namespace}): {diff.change.value}")
            if diff.rendered:
                lines.append(diff.rendered)
    return "\n".join(lines).rstrip() + "\n"
