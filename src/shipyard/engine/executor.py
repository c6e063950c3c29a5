"""Run a validated plan inside a job workspace, then commit and push.

Steps execute strictly in order. The first rejected or failing step aborts
the job; later steps never run. Verification commands are advisory: the
first failure is noted on the plan and ends the verification loop, but the
job carries on to commit and push.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..brain.store import StateStore
from ..errors import ExecutionError, NoChangesError, ShipyardError
from ..planning.schemas import Plan
from ..tools.commands import CommandValidator
from ..tools.proc import CommandResult, CommandRunner, clamp, redact_result, run_command, safe_log_chunk
from .job import Job, JobPhase
from .progress import ProgressEmitter
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)

LOG_LIMIT = 6000
COMMIT_MESSAGE_LIMIT = 120


@dataclass(slots=True)
class StepRecord:
    """What happened when one command ran; kept for the job log."""

    kind: str
    argv: List[str]
    returncode: Optional[int]
    output: str = ""
    timed_out: bool = False

    @classmethod
    def from_result(cls, kind: str, result: CommandResult) -> "StepRecord":
        return cls(
            kind=kind,
            argv=list(result.argv),
            returncode=result.returncode,
            output=safe_log_chunk(result.combined_output, 2000),
            timed_out=result.timed_out,
        )


@dataclass(slots=True)
class ExecutionOutcome:
    branch: str
    commit_sha: str
    commit_message: str
    verification_failed: bool = False
    records: List[StepRecord] = field(default_factory=list)


def default_commit_message(plan: Plan, task: str) -> str:
    message = (plan.commit_message or "").strip()
    if message:
        return message[:COMMIT_MESSAGE_LIMIT]
    return f"shipyard: {task}"[:COMMIT_MESSAGE_LIMIT]


class ExecutionEngine:
    """Executes plan steps and optional verification against a workspace."""

    def __init__(
        self,
        *,
        validator: Optional[CommandValidator] = None,
        runner: CommandRunner = run_command,
        store: Optional[StateStore] = None,
        emitter: Optional[ProgressEmitter] = None,
        run_verification: bool = False,
        timeout: float | None = None,
    ) -> None:
        self._validator = validator or CommandValidator()
        self._runner = runner
        self._store = store or StateStore.disabled()
        self._emitter = emitter or ProgressEmitter()
        self._run_verification = run_verification
        self._timeout = timeout
        self.last_records: List[StepRecord] = []

    def run(self, workspace: Workspace, plan: Plan, job: Job) -> ExecutionOutcome:
        records: List[StepRecord] = []
        try:
            return self._run(workspace, plan, job, records)
        except ShipyardError as error:
            self._store.record_error(job.thread_key, error.to_state_patch(job.job_id))
            LOGGER.warning("Job %s aborted in %s: %s", job.job_id, error.context, error.message)
            raise
        finally:
            self.last_records = records

    def _run(self, workspace: Workspace, plan: Plan, job: Job, records: List[StepRecord]) -> ExecutionOutcome:
        job.advance(JobPhase.EXECUTING)
        for step in plan.steps:
            self._validator.check(step.cmd, step.args)
            self._emitter.publish(job.job_id, JobPhase.EXECUTING.value, step.render())
            result = self._execute(step.cmd, step.args, workspace)
            records.append(StepRecord.from_result("step", result))
            if not result.ok:
                output = result.failure_output
                raise ExecutionError(
                    f"Command failed: {step.render()}\n{safe_log_chunk(output)}",
                    context=f"plan:exec:{step.cmd}",
                    logs=clamp(safe_log_chunk(output, LOG_LIMIT), LOG_LIMIT),
                    command=step.argv,
                )

        if self._run_verification and plan.verify.commands:
            job.advance(JobPhase.VERIFYING)
            self._emitter.publish(job.job_id, JobPhase.VERIFYING.value, "Running verification...")
            self._verify(workspace, plan, job, records)

        job.advance(JobPhase.CHANGE_CHECKED)
        if not workspace.repo.has_changes():
            raise NoChangesError(
                "No changes produced in sandbox (git status clean).",
                logs="git status was clean after executing plan",
            )

        message = default_commit_message(plan, job.task)
        self._emitter.publish(job.job_id, JobPhase.COMMITTED.value, "Committing...")
        sha = workspace.repo.commit_all(message)
        job.advance(JobPhase.COMMITTED)

        self._emitter.publish(job.job_id, JobPhase.PUSHED.value, "Pushing branch...")
        workspace.repo.push(workspace.push_target, workspace.branch)
        job.advance(JobPhase.PUSHED)

        return ExecutionOutcome(
            branch=workspace.branch,
            commit_sha=sha,
            commit_message=message,
            verification_failed=plan.verify.failed,
            records=list(records),
        )

    def _verify(self, workspace: Workspace, plan: Plan, job: Job, records: List[StepRecord]) -> None:
        for argv in plan.verify.commands:
            program, args = argv[0], argv[1:]
            self._validator.check(
                program,
                args,
                context="verify:blocked_command",
                label="Blocked verify command",
            )
            result = self._execute(program, args, workspace)
            records.append(StepRecord.from_result("verify", result))
            if result.ok:
                continue
            plan.verify.failed = True
            plan.verify.logs = safe_log_chunk(result.failure_output, LOG_LIMIT)
            self._store.record_error(
                job.thread_key,
                {
                    "lastError": "Verification failed (non-blocking)",
                    "lastErrorJobId": job.job_id,
                    "lastErrorContext": f"verify:{program}",
                    "lastErrorLogs": clamp(plan.verify.logs, LOG_LIMIT),
                },
            )
            self._emitter.publish(
                job.job_id,
                JobPhase.VERIFYING.value,
                f"Verification failed (non-blocking): {' '.join(argv)}",
            )
            break

    def _execute(self, program: str, args: Sequence[str], workspace: Workspace) -> CommandResult:
        result = self._runner(
            program,
            list(args),
            cwd=workspace.path,
            env=workspace.env,
            timeout=self._timeout,
        )
        return redact_result(result, workspace.secrets)


__all__ = [
    "ExecutionEngine",
    "ExecutionOutcome",
    "StepRecord",
    "default_commit_message",
]
