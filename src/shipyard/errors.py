"""Exception taxonomy shared by every stage of a job."""

from __future__ import annotations

from typing import Any, Dict, Sequence

__all__ = [
    "ConfigError",
    "ExecutionError",
    "GitError",
    "NoChangesError",
    "PlanParseError",
    "RateLimitedError",
    "ShipyardError",
    "ValidationError",
]

LOG_EXCERPT_LIMIT = 6000


class ShipyardError(RuntimeError):
    """Base error carrying the failing phase and any captured process output."""

    default_context = "job"

    def __init__(
        self,
        message: str,
        *,
        context: str | None = None,
        logs: str = "",
        command: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or self.default_context
        self.logs = logs or ""
        self.command = tuple(command)

    @property
    def command_line(self) -> str:
        return " ".join(self.command)

    def to_state_patch(self, job_id: str | None) -> Dict[str, Any]:
        """Render the thread error-slot patch describing this failure."""
        logs = self.logs or self.command_line
        return {
            "lastError": self.message[:800],
            "lastErrorJobId": job_id,
            "lastErrorContext": self.context,
            "lastErrorLogs": logs[:LOG_EXCERPT_LIMIT] if logs else None,
        }


class ConfigError(ShipyardError):
    """A required credential or dependency is missing."""

    default_context = "config"


class ValidationError(ShipyardError):
    """A plan step or verification command failed the allowlist."""

    default_context = "plan:blocked_command"


class PlanParseError(ShipyardError):
    """The model output could not be recovered into a plan."""

    default_context = "planning:parse"

    def __init__(self, message: str, *, raw_snippet: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.raw_snippet = raw_snippet

    def to_state_patch(self, job_id: str | None) -> Dict[str, Any]:
        patch = super().to_state_patch(job_id)
        if self.raw_snippet:
            patch["lastModelRawSnippet"] = self.raw_snippet
        return patch


class GitError(ShipyardError):
    """A git command (clone, config, checkout, commit, push) failed."""

    default_context = "git"


class ExecutionError(ShipyardError):
    """A plan step exited with a non-zero status."""

    default_context = "plan:exec"


class NoChangesError(ShipyardError):
    """The plan ran cleanly but left the working tree untouched."""

    default_context = "git:status_clean"


class RateLimitedError(ShipyardError):
    """The requester triggered too many jobs inside the current window."""

    default_context = "rate_limit"
