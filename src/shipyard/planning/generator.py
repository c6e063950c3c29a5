"""Ask the model for a plan and coerce its answer into the wire schema."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError as SchemaValidationError

from ..brain.store import StateStore
from ..errors import PlanParseError
from ..models.llm_client import LLMClient, LLMClientError, LLMRequest
from .context import PlanTarget, RepoContext
from .extract import recover_plan_payload
from .prompts import (
    PLAN_SYSTEM_PROMPT,
    REPAIR_SYSTEM_PROMPT,
    render_plan_prompt,
    render_repair_prompt,
)
from .schemas import Plan

LOGGER = logging.getLogger(__name__)

RAW_SNIPPET_LIMIT = 1800
ERROR_SNIPPET_LIMIT = 220


class PlanGenerator:
    """Produces one validated :class:`Plan` per job, with a single repair pass."""

    def __init__(
        self,
        client: LLMClient,
        *,
        store: Optional[StateStore] = None,
        model: Optional[str] = None,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client
        self._store = store or StateStore.disabled()
        self._model = model
        self._max_tokens = max_tokens

    def generate(
        self,
        task: str,
        target: PlanTarget,
        *,
        thread_state: Optional[Mapping[str, Any]] = None,
        repo_state: Optional[Mapping[str, Any]] = None,
        repo_context: Optional[RepoContext] = None,
        job_id: Optional[str] = None,
        thread_key: Optional[str] = None,
    ) -> Plan:
        prompt = render_plan_prompt(
            task=task,
            owner=target.owner,
            repo=target.repo,
            default_branch=target.default_branch,
            repo_context=repo_context,
            thread_state=thread_state,
            repo_state=repo_state,
        )
        raw = self._ask(prompt, PLAN_SYSTEM_PROMPT, job_id=job_id)
        plan = self._coerce(raw)
        if plan is not None:
            return plan

        LOGGER.info("Plan output for job %s was not valid JSON; requesting repair", job_id)
        self._store.record_error(
            thread_key,
            {
                "lastError": "Model plan returned invalid JSON (first pass).",
                "lastErrorJobId": job_id,
                "lastErrorContext": "planning:parse:first_pass",
                "lastModelRawSnippet": raw[:RAW_SNIPPET_LIMIT],
            },
        )

        repaired_raw = self._ask(render_repair_prompt(raw), REPAIR_SYSTEM_PROMPT, job_id=job_id)
        plan = self._coerce(repaired_raw)
        if plan is not None:
            return plan

        self._store.record_error(
            thread_key,
            {
                "lastError": "Model plan returned invalid JSON (repair pass).",
                "lastErrorJobId": job_id,
                "lastErrorContext": "planning:parse:repair_pass",
                "lastModelRawSnippet": repaired_raw[:RAW_SNIPPET_LIMIT],
            },
        )
        raise PlanParseError(
            f"Plan JSON parse failed. Got: {raw[:ERROR_SNIPPET_LIMIT]}",
            context="planning:parse:repair_pass",
            raw_snippet=repaired_raw[:RAW_SNIPPET_LIMIT],
        )

    def _ask(self, prompt: str, system_prompt: str, *, job_id: Optional[str]) -> str:
        request = LLMRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            model=self._model,
            max_tokens=self._max_tokens,
        )
        try:
            return self._client.complete(request)
        except LLMClientError as error:
            raise PlanParseError(
                f"Planner model call failed: {error}",
                context="planning:model",
            ) from error

    @staticmethod
    def _coerce(raw: str) -> Optional[Plan]:
        payload: Optional[Dict[str, Any]] = recover_plan_payload(raw)
        if payload is None:
            return None
        try:
            return Plan.from_wire(payload)
        except SchemaValidationError as error:
            LOGGER.debug("Recovered payload failed schema validation: %s", error)
            return None


__all__ = ["PlanGenerator"]
