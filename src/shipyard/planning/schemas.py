"""Plan wire schema returned by the planner model."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..tools.commands import Program

MAX_STEPS = 30
MAX_VERIFY_COMMANDS = 6


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, int, float, bool)):
        return [str(value)]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return []


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Step(WireModel):
    """One proposed command; opaque until the validator accepts it."""

    cmd: str = ""
    args: List[str] = Field(default_factory=list)

    @field_validator("cmd", mode="before")
    @classmethod
    def _coerce_cmd(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("args", mode="before")
    @classmethod
    def _coerce_args(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @property
    def program(self) -> Optional[Program]:
        return Program.parse(self.cmd)

    @property
    def argv(self) -> List[str]:
        return [self.cmd, *self.args]

    def render(self) -> str:
        return " ".join(self.argv).strip()


class Verification(WireModel):
    """Advisory post-step checks plus the outcome filled in after running them."""

    commands: List[List[str]] = Field(default_factory=list)
    failed: bool = False
    logs: str = ""

    @field_validator("commands", mode="before")
    @classmethod
    def _coerce_commands(cls, value: Any) -> List[List[str]]:
        if not isinstance(value, (list, tuple)):
            return []
        commands: List[List[str]] = []
        for entry in value:
            if isinstance(entry, str):
                entry = entry.split()
            argv = _as_string_list(entry)
            if argv:
                commands.append(argv)
        return commands

    @field_validator("logs", mode="before")
    @classmethod
    def _coerce_logs(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Plan(WireModel):
    """Structured unit of work proposed by the model for one job."""

    title: str = Field(default="", alias="prTitle")
    body: str = Field(default="", alias="prBody")
    commit_message: str = Field(default="", alias="commitMessage")
    summary_bullets: List[str] = Field(default_factory=list, alias="summaryBullets")
    test_plan_bullets: List[str] = Field(default_factory=list, alias="testPlanBullets")
    steps: List[Step] = Field(default_factory=list)
    verify: Verification = Field(default_factory=Verification)

    @field_validator("title", "body", "commit_message", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("summary_bullets", "test_plan_bullets", mode="before")
    @classmethod
    def _coerce_bullets(cls, value: Any) -> List[str]:
        return _as_string_list(value)

    @field_validator("steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: Any) -> List[Any]:
        if not isinstance(value, (list, tuple)):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("verify", mode="before")
    @classmethod
    def _coerce_verify(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value
        if isinstance(value, (list, tuple)):
            return {"commands": value}
        return {}

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "Plan":
        """Validate a parsed payload and apply the size caps."""
        plan = cls.model_validate(payload)
        return plan.clamped()

    def clamped(self) -> "Plan":
        self.steps = self.steps[:MAX_STEPS]
        self.verify.commands = self.verify.commands[:MAX_VERIFY_COMMANDS]
        return self

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


__all__ = ["MAX_STEPS", "MAX_VERIFY_COMMANDS", "Plan", "Step", "Verification"]
