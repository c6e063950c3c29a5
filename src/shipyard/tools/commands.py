"""Allowlist for commands a plan is permitted to run.

The check is a conservative token scan, not a parser: anything outside the
closed program vocabulary is refused, and so is any invocation whose joined
text mentions a shell escape or a remote fetch/shell utility.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence

from ..errors import ValidationError

__all__ = [
    "BLOCKED_SUBSTRINGS",
    "CommandValidator",
    "Program",
    "allowed",
    "permitted",
]


class Program(str, Enum):
    """Closed vocabulary of executables a plan step may name."""

    GIT = "git"
    NPM = "npm"
    NODE = "node"

    @classmethod
    def parse(cls, value: object) -> "Program | None":
        if isinstance(value, Program):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


BLOCKED_SUBSTRINGS: tuple[str, ...] = (
    "bash -c",
    "sh -c",
    "curl",
    "wget",
    "nc ",
    "netcat",
    "ssh ",
    "scp ",
    "sftp",
)


def _contains_blocked(program: str, arguments: Sequence[str]) -> bool:
    joined = " ".join([program, *(str(arg) for arg in arguments)]).lower()
    return any(needle in joined for needle in BLOCKED_SUBSTRINGS)


def permitted(program: object, arguments: Sequence[str] | None = None) -> Program | None:
    """Return the parsed program when the invocation may run, else ``None``."""
    parsed = Program.parse(program)
    if parsed is None or _contains_blocked(parsed.value, list(arguments or [])):
        return None
    return parsed


def allowed(program: object, arguments: Sequence[str] | None = None) -> bool:
    """Return ``True`` when ``program`` with ``arguments`` may be executed."""
    return permitted(program, arguments) is not None


class CommandValidator:
    """Callable gate applied before every step and verification command."""

    def allowed(self, program: object, arguments: Sequence[str] | None = None) -> bool:
        return allowed(program, arguments)

    def check(
        self,
        program: object,
        arguments: Sequence[str] | None = None,
        *,
        context: str = "plan:blocked_command",
        label: str = "Blocked command from plan",
    ) -> Program:
        """Return the parsed program or raise :class:`ValidationError`."""
        args = [str(arg) for arg in (arguments or [])]
        parsed = permitted(program, args)
        if parsed is None:
            rendered = " ".join([str(program), *args]).strip()
            raise ValidationError(
                f"{label}: {rendered}",
                context=context,
                logs=rendered[:2000],
                command=[str(program), *args],
            )
        return parsed
