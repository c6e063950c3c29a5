from __future__ import annotations

import json

from shipyard.planning.extract import (
    extract_json_text,
    looks_like_plan,
    parse_plan_json,
    recover_plan_payload,
    strip_code_fence,
)
from shipyard.planning.schemas import MAX_STEPS, MAX_VERIFY_COMMANDS, Plan


def _plan_payload(**overrides: object) -> dict:
    payload = {
        "prTitle": "Add health endpoint",
        "prBody": "Adds GET /health.",
        "commitMessage": "feat: add health endpoint",
        "summaryBullets": ["Added server.js"],
        "testPlanBullets": ["curl /health"],
        "steps": [{"cmd": "node", "args": ["-e", "console.log(1)"]}],
        "verify": {"commands": [["npm", "test"]]},
    }
    payload.update(overrides)
    return payload


def test_strip_code_fence_drops_trailing_commentary() -> None:
    text = '```json\n{"a": 1}\n```\nHope this helps!'
    assert strip_code_fence(text) == '{"a": 1}'


def test_extract_json_text_slices_between_braces() -> None:
    text = 'Sure! Here is the plan: {"prTitle": "x", "steps": []} Let me know.'
    assert extract_json_text(text) == '{"prTitle": "x", "steps": []}'


def test_extract_json_text_keeps_unclosed_tail() -> None:
    assert extract_json_text('noise {"prTitle": "x') == '{"prTitle": "x'


def test_extract_normalises_smart_quotes() -> None:
    text = "“not json” {“prTitle”: “x”, “steps”: []}"
    assert json.loads(extract_json_text(text)) == {"prTitle": "x", "steps": []}


def test_recover_plan_payload_from_fenced_output() -> None:
    raw = "```json\n" + json.dumps(_plan_payload()) + "\n```"
    payload = recover_plan_payload(raw)
    assert payload is not None
    assert payload["prTitle"] == "Add health endpoint"


def test_recover_truncated_plan_keeps_preceding_fields() -> None:
    raw = (
        '{"prTitle": "Add health endpoint", '
        '"steps": [{"cmd": "git", "args": ["status"]}], '
        '"prBody": "Adds the health endpoint and a small'
    )
    payload = recover_plan_payload(raw)
    assert payload is not None
    assert looks_like_plan(payload)
    assert payload["steps"] == [{"cmd": "git", "args": ["status"]}]
    assert "prBody" not in payload


def test_repair_requires_plan_shape() -> None:
    assert parse_plan_json('{"unrelated": "value that is long') is None
    assert parse_plan_json('{"a": 1') is None


def test_unparseable_text_returns_none() -> None:
    assert recover_plan_payload("I cannot help with that.") is None
    assert recover_plan_payload("") is None


def test_plan_from_wire_clamps_steps_and_verify_commands() -> None:
    payload = _plan_payload(
        steps=[{"cmd": "git", "args": ["status"]}] * (MAX_STEPS + 5),
        verify={"commands": [["npm", "test"]] * (MAX_VERIFY_COMMANDS + 3)},
    )
    plan = Plan.from_wire(payload)
    assert len(plan.steps) == MAX_STEPS
    assert len(plan.verify.commands) == MAX_VERIFY_COMMANDS


def test_plan_from_wire_tolerates_loose_shapes() -> None:
    plan = Plan.from_wire(
        {
            "prTitle": "x",
            "steps": [{"cmd": "npm", "args": "install"}, "not a step"],
            "verify": ["npm test", ""],
            "summaryBullets": None,
        }
    )
    assert [step.argv for step in plan.steps] == [["npm", "install"]]
    assert plan.verify.commands == [["npm", "test"]]
    assert plan.summary_bullets == []
    assert plan.to_wire()["prTitle"] == "x"
