"""Plan generation: prompts, extraction/repair and the wire schema."""

from .context import PlanTarget, RepoContext
from .generator import PlanGenerator
from .schemas import MAX_STEPS, MAX_VERIFY_COMMANDS, Plan, Step, Verification

__all__ = [
    "MAX_STEPS",
    "MAX_VERIFY_COMMANDS",
    "Plan",
    "PlanGenerator",
    "PlanTarget",
    "RepoContext",
    "Step",
    "Verification",
]
