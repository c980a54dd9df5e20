"""Orchestrator module for plan execution.

- DeploymentOrchestrator: runs a plan forward (deploy) or in reverse (delete)
- StepExecutor: applies or destroys a single step
- DeploymentRecord/StepResult: the persisted audit trail of a run
- RecordStore: where records live on disk
"""

from .models import (
    DeploymentRecord,
    EnvironmentInfo,
    PlanReference,
    RecordSummary,
    RunAction,
    RunStatus,
    StepResult,
)
from .records import RecordStore, is_record_path, pick_latest, record_matches
from .step_executor import StepExecutor
from .orchestrator import DeploymentOrchestrator

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentRecord",
    "EnvironmentInfo",
    "PlanReference",
    "RecordStore",
    "RecordSummary",
    "RunAction",
    "RunStatus",
    "StepExecutor",
    "StepResult",
    "is_record_path",
    "pick_latest",
    "record_matches",
]
