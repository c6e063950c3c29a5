"""Tool integrations used by the job engine."""

from .commands import BLOCKED_SUBSTRINGS, CommandValidator, Program, allowed
from .job_logs import JobLogEntry, load_job_log, write_job_log
from .proc import CommandResult, CommandRunner, make_job_id, run_command, safe_log_chunk
from .vcs import GitRepository

__all__ = [
    "BLOCKED_SUBSTRINGS",
    "CommandResult",
    "CommandRunner",
    "CommandValidator",
    "GitRepository",
    "JobLogEntry",
    "Program",
    "allowed",
    "load_job_log",
    "make_job_id",
    "run_command",
    "safe_log_chunk",
    "write_job_log",
]
