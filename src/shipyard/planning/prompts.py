"""Prompt templates used by the planner."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from .context import RepoContext

PLAN_SYSTEM_PROMPT = (
    "You are a senior software engineer controlling a sandbox runner. "
    "Return STRICT JSON only. No markdown. No commentary. "
    "Optimize for FAST pull request creation; build and tests are secondary."
)

REPAIR_SYSTEM_PROMPT = (
    "Return ONLY valid JSON. No markdown. Keep prBody and summaryBullets very short."
)

PLAN_SCHEMA_LINES = (
    "{",
    '  "prTitle": string,',
    '  "prBody": string,',
    '  "commitMessage": string,',
    '  "summaryBullets": string[],',
    '  "testPlanBullets": string[],',
    '  "steps": [{ "cmd": "git"|"npm"|"node", "args": string[] }],',
    '  "verify": { "commands": string[][] }',
    "}",
)

PLAN_GUIDANCE = (
    "- Allowed commands: git, npm, node only (no npx).",
    "- Prefer minimal manual setup over scaffolding tools; write files directly.",
    "- Add or edit files with node -e \"require('fs').writeFileSync(...)\", one file per step, "
    "keeping each payload under 2000 characters.",
    "- Do NOT use shell wrappers (no bash -c / sh -c). Do NOT use curl/wget.",
    "- IMPORTANT: Output MUST be raw JSON only (no ``` fences).",
    "- Keep prBody and summaryBullets brief (1-2 short sentences) so the full plan fits in one response.",
)

MEMORY_LIMIT = 5000
REPAIR_ECHO_LIMIT = 12000
ERROR_HINT_LIMIT = 200


def _memory_block(label: str, memory: Optional[Mapping[str, Any]]) -> list[str]:
    rendered = json.dumps(dict(memory or {}), indent=2, ensure_ascii=False, default=str)
    return [f"{label} (may be empty):", rendered[:MEMORY_LIMIT]]


def render_repo_context(context: Optional[RepoContext]) -> str:
    if context is None:
        return ""
    paths = ", ".join(context.root_paths) or "(empty repo)"
    return "\n".join(
        [
            "",
            "Current repo state (use this to decide bootstrap vs modify):",
            f"- Top-level paths: {paths}",
            f"- Description: {context.description[:200]}",
            f"- README (excerpt): {context.readme_snippet[:1500]}",
        ]
    )


def render_error_hint(thread_state: Optional[Mapping[str, Any]]) -> str:
    last_error = (thread_state or {}).get("lastError")
    if not last_error:
        return ""
    return (
        f"\n\nPrevious run in this thread failed: \"{str(last_error)[:ERROR_HINT_LIMIT]}\". "
        "Avoid repeating it (e.g. output raw JSON only, no markdown fences)."
    )


def render_plan_prompt(
    *,
    task: str,
    owner: str,
    repo: str,
    default_branch: str,
    repo_context: Optional[RepoContext],
    thread_state: Optional[Mapping[str, Any]],
    repo_state: Optional[Mapping[str, Any]],
) -> str:
    lines = [
        "Create an execution plan to implement the task in a fresh cloned repo checkout.",
        "",
        "Return JSON ONLY, shape:",
        *PLAN_SCHEMA_LINES,
        "",
        "Guidance:",
        *PLAN_GUIDANCE,
        render_repo_context(repo_context),
        render_error_hint(thread_state),
        "",
        *_memory_block("Thread memory", thread_state),
        "",
        *_memory_block("Repo memory", repo_state),
        "",
        f"Repo: {owner}/{repo}",
        f"Default branch: {default_branch}",
        f"Task: {task}",
        "",
        "Output must be valid JSON only.",
    ]
    return "\n".join(lines)


def render_repair_prompt(previous_output: str) -> str:
    return "\n".join(
        [
            "You returned invalid JSON.",
            "Return ONLY valid JSON for the plan. No markdown, no backticks, no commentary.",
            "",
            "Here is your previous output (for reference):",
            (previous_output or "")[:REPAIR_ECHO_LIMIT],
            "",
            "Return ONLY valid JSON with the required keys.",
        ]
    )


__all__ = [
    "PLAN_SYSTEM_PROMPT",
    "REPAIR_SYSTEM_PROMPT",
    "render_error_hint",
    "render_plan_prompt",
    "render_repair_prompt",
    "render_repo_context",
]
