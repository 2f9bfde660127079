"""
Domain models — Pydantic types for the provisioning engine.

All models are re-exported here for convenient access:

    from envforge.core.models import Task, TaskOutcome, ProbeStatus, RunRecord
"""

from envforge.core.models.platform import PlatformInfo
from envforge.core.models.probe import (
    AllProbe,
    BinaryProbe,
    CommandProbe,
    DirectoryProbe,
    FileContainsProbe,
    FileProbe,
    PackageProbe,
    Probe,
    ProbeContext,
    ProbeStatus,
)
from envforge.core.models.result import CommandResult
from envforge.core.models.run import PENDING, RunEvent, RunRecord, RunState
from envforge.core.models.task import (
    FailurePolicy,
    Phase,
    PlatformCondition,
    Task,
    TaskOutcome,
)

__all__ = [
    # platform.py
    "PlatformInfo",
    # probe.py
    "AllProbe",
    "BinaryProbe",
    "CommandProbe",
    "DirectoryProbe",
    "FileContainsProbe",
    "FileProbe",
    "PackageProbe",
    "Probe",
    "ProbeContext",
    "ProbeStatus",
    # result.py
    "CommandResult",
    # run.py
    "PENDING",
    "RunEvent",
    "RunRecord",
    "RunState",
    # task.py
    "FailurePolicy",
    "Phase",
    "PlatformCondition",
    "Task",
    "TaskOutcome",
]
