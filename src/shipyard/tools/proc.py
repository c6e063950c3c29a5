"""Subprocess and string helpers used while running a job."""

from __future__ import annotations

import secrets
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence
from urllib.parse import urlsplit, urlunsplit

__all__ = [
    "CommandResult",
    "CommandRunner",
    "clamp",
    "https_repo_url",
    "make_job_id",
    "redact",
    "redact_result",
    "run_command",
    "safe_log_chunk",
    "strip_credentials",
]

TRUNCATION_MARKER = "\n...(truncated)...\n"


@dataclass(slots=True)
class CommandResult:
    """Captured outcome of a single subprocess invocation."""

    argv: tuple[str, ...]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def combined_output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    @property
    def failure_output(self) -> str:
        """Prefer stderr, falling back to stdout, as git and npm report there."""
        if self.timed_out:
            detail = self.stderr or self.stdout
            return f"command timed out\n{detail}".strip()
        return self.stderr or self.stdout


class CommandRunner(Protocol):
    def __call__(
        self,
        program: str,
        args: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


def _decode(payload: bytes | str | None) -> str:
    if not payload:
        return ""
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="replace")


def run_command(
    program: str,
    args: Sequence[str],
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run ``program`` without a shell and capture its output.

    A missing executable is reported as exit code 127 rather than raised so
    callers treat it like any other failing step.
    """
    argv = (program, *[str(arg) for arg in args])
    try:
        process = subprocess.run(  # noqa: S603 - argv validated by CommandValidator
            list(argv),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            stdin=subprocess.DEVNULL,
            text=False,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as error:
        return CommandResult(
            argv=argv,
            returncode=None,
            stdout=_decode(error.stdout),
            stderr=_decode(error.stderr),
            timed_out=True,
        )
    except FileNotFoundError as error:
        return CommandResult(argv=argv, returncode=127, stderr=str(error))
    return CommandResult(
        argv=argv,
        returncode=process.returncode,
        stdout=_decode(process.stdout),
        stderr=_decode(process.stderr),
    )


def make_job_id() -> str:
    """Return an opaque random token identifying one job attempt."""
    return secrets.token_hex(6)


def clamp(value: object, limit: int) -> str:
    if value is None:
        return ""
    return str(value)[:limit]


def safe_log_chunk(value: object, limit: int = 3500) -> str:
    text = "" if value is None else str(value)
    if len(text) > limit:
        return text[:limit] + TRUNCATION_MARKER
    return text


def https_repo_url(owner: str, repo: str, token: str, *, host: str = "github.com") -> str:
    return f"https://x-access-token:{token}@{host}/{owner}/{repo}.git"


def redact(text: str, secrets_: Iterable[str | None]) -> str:
    """Replace every non-empty secret in ``text`` with a placeholder."""
    for secret in secrets_:
        if secret:
            text = text.replace(secret, "***")
    return text


def strip_credentials(url: str) -> str:
    """Drop any ``user:token@`` part from an http(s) URL; other URLs pass through."""
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def redact_result(result: CommandResult, secrets_: Iterable[str | None]) -> CommandResult:
    """Return a copy of ``result`` with every secret masked in argv and output."""
    secrets_ = tuple(secret for secret in secrets_ if secret)
    if not secrets_:
        return result
    return CommandResult(
        argv=tuple(redact(part, secrets_) for part in result.argv),
        returncode=result.returncode,
        stdout=redact(result.stdout, secrets_),
        stderr=redact(result.stderr, secrets_),
        timed_out=result.timed_out,
    )
