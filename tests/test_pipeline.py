# tests/test_pipeline.py
from __future__ import annotations

import asyncio
import json

from scpi_planner.config import EMPTY_RESPONSE_ERROR, TERMINAL_RETRY_MESSAGE
from scpi_planner.live_tree import DelayStep, ScpiStep, TestPlan, TimeGuardStep
from scpi_planner.pipeline import (
    EXTRACTION_FAILED,
    INVALID_STRUCTURE,
    NO_INSTRUMENTS,
    process_response,
    request_plan,
)


def _existing_plan():
    return TestPlan(child_steps=[DelayStep(name="keep me")])


def test_fenced_response_updates_the_plan(plan_json, instruments):
    test_plan = _existing_plan()
    result = process_response(f"Here you go:\n```json\n{plan_json}\n```", test_plan, instruments)

    assert result.ok
    assert result.error is None
    assert [type(s) for s in test_plan.child_steps] == [ScpiStep, DelayStep, TimeGuardStep]
    assert result.messages[0].startswith("Powers the DUT")
    assert result.plan is not None and len(result.plan.steps) == 3


def test_first_instrument_is_the_default(instruments):
    response = json.dumps(
        {
            "Steps": [{"StepOrder": 1, "StepType": "SCPI", "Parameters": {"Action": "Query", "Query": "*IDN?", "Instrument": "Scope"}}],
            "Explanation": [],
        }
    )
    test_plan = TestPlan()
    result = process_response(response, test_plan, instruments)

    assert result.ok
    assert test_plan.child_steps[0].instrument_name == "DMM"


def test_error_response_is_surfaced_verbatim(instruments):
    test_plan = _existing_plan()
    result = process_response(TERMINAL_RETRY_MESSAGE, test_plan, instruments)

    assert not result.ok
    assert result.messages == [TERMINAL_RETRY_MESSAGE]
    assert test_plan.child_steps[0].name == "keep me"


def test_empty_response_is_an_error(instruments):
    result = process_response("", TestPlan(), instruments)
    assert result.error == EMPTY_RESPONSE_ERROR


def test_unextractable_response_leaves_plan_untouched(instruments):
    test_plan = _existing_plan()
    result = process_response("I cannot help with that.", test_plan, instruments)

    assert not result.ok
    assert result.messages == [EXTRACTION_FAILED, "Original response: I cannot help with that."]
    assert test_plan.child_steps[0].name == "keep me"


def test_structure_error_reports_raw_json(instruments):
    result = process_response('Result: {"Answer": 42}', TestPlan(), instruments)

    assert result.error == INVALID_STRUCTURE
    assert result.messages[-1] == 'Raw JSON: {"Answer": 42}'


def test_invalid_plan_lists_each_violation(instruments):
    response = json.dumps(
        {
            "Steps": [
                {"StepOrder": 1, "StepType": "Delay", "Parameters": {}},
                {"StepOrder": 2, "StepType": "SCPI", "Parameters": {"Action": "Query", "Query": "*IDN?"}},
            ],
            "Explanation": [],
        }
    )
    test_plan = _existing_plan()
    result = process_response(response, test_plan, instruments)

    assert not result.ok
    assert result.messages[0] == INVALID_STRUCTURE
    assert any("DelaySecs" in m for m in result.messages)
    assert any("Instrument" in m for m in result.messages)
    assert result.report is not None and len(result.report.errors) == 2
    assert test_plan.child_steps[0].name == "keep me"


def test_no_instruments_is_an_error(plan_json):
    result = process_response(plan_json, TestPlan(), [])
    assert result.error == NO_INSTRUMENTS


def test_synthesis_warnings_become_messages(instruments):
    response = json.dumps(
        {
            "Steps": [
                {"StepOrder": 1, "StepType": "SCPI", "Parameters": {"Action": "Shout", "Query": "*RST", "Instrument": "DMM"}},
                {"StepOrder": 2, "StepType": "Delay", "Parameters": {"DelaySecs": 1}},
            ],
            "Explanation": [],
        }
    )
    test_plan = TestPlan()
    result = process_response(response, test_plan, instruments)

    assert result.ok
    assert len(test_plan.child_steps) == 1
    assert result.messages[-1].startswith("Skipped SCPI step 1")
    assert result.to_json()["synthesis_warnings"] == [result.messages[-1]]


def test_request_plan_retries_then_applies(plan_json, instruments, fake_sleep):
    sleep, waits = fake_sleep
    replies = [EMPTY_RESPONSE_ERROR, f"```json\n{plan_json}\n```"]

    def ask(prompt):
        return replies.pop(0)

    test_plan = TestPlan()
    result = asyncio.run(request_plan("plan it", ask, test_plan, instruments, sleep=sleep))

    assert result.ok
    assert waits == [3.0]
    assert len(test_plan.child_steps) == 3


def test_identity_query_response_end_to_end(instrument_binding):
    response = (
        'Sure!\n```json\n{"Steps":[{"StepOrder":1,"StepType":"SCPI","Parameters":'
        '{"Action":"Query","Query":"*IDN?","Instrument":"DMM"}}],"Explanation":["ctx"]}\n```\n'
    )
    test_plan = TestPlan()
    result = process_response(response, test_plan, instrument_binding)

    assert result.ok
    assert result.raw_json.startswith('{"Steps"') and result.raw_json.endswith("}")
    assert result.report.is_valid
    (step,) = test_plan.child_steps
    assert isinstance(step, ScpiStep)
    assert step.query == "*IDN?"
    assert step.instrument_name == "DMM"
    assert step.instrument is instrument_binding.get("DMM")


def test_mistyped_guard_is_rejected_before_synthesis(instruments):
    response = json.dumps(
        {
            "Steps": [
                {
                    "StepOrder": 1,
                    "StepType": "TimeGuard",
                    "Parameters": {"Timeout": "ten", "StopOnTimeout": "yes", "TimeoutVerdict": "Error"},
                    "ChildSteps": [
                        {"StepOrder": 1, "StepType": "SCPI", "Parameters": {"Action": "Query", "Query": "*IDN?", "Instrument": "DMM"}}
                    ],
                }
            ],
            "Explanation": [],
        }
    )
    test_plan = _existing_plan()
    result = process_response(response, test_plan, instruments)

    assert not result.ok
    assert result.error == INVALID_STRUCTURE
    assert {e.parameter for e in result.report.errors} == {"Timeout", "StopOnTimeout"}
    assert test_plan.child_steps[0].name == "keep me"
