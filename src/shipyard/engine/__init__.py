"""Job execution: workspaces, step running and change submission."""

from .executor import ExecutionEngine, ExecutionOutcome, StepRecord
from .job import Job, JobPhase
from .progress import ProgressEmitter, ProgressEvent
from .submit import ChangeSubmitter, SubmittedChange, build_change_body
from .workspace import GitIdentity, Workspace, WorkspaceManager

__all__ = [
    "ChangeSubmitter",
    "ExecutionEngine",
    "ExecutionOutcome",
    "GitIdentity",
    "Job",
    "JobPhase",
    "ProgressEmitter",
    "ProgressEvent",
    "StepRecord",
    "SubmittedChange",
    "Workspace",
    "WorkspaceManager",
    "build_change_body",
]
