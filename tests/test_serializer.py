# tests/test_serializer.py
from __future__ import annotations

import json

from scpi_planner.live_tree import (
    DelayStep,
    EnabledValue,
    RegexBehavior,
    ScpiAction,
    ScpiStep,
    TestPlan,
    TimeGuardStep,
    Verdict,
)
from scpi_planner.serializer import serialize, serialize_to_json, step_parameters, step_type_name
from scpi_planner.synthesizer import synthesize
from scpi_planner.validator import parse_plan, validate_plan


def _shape(steps):
    """Order-independent view of a descriptor list: (type, parameters, children)."""
    return [(s.step_type, s.parameters, _shape(s.children)) for s in sorted(steps, key=lambda s: s.order)]


def test_empty_plan_serializes_to_empty_steps():
    plan = serialize(TestPlan())
    assert plan.steps == []
    assert plan.explanations == []


def test_orders_are_positional_and_one_based():
    test_plan = TestPlan(child_steps=[DelayStep(delay_secs=1.0), DelayStep(delay_secs=2.0), DelayStep()])
    assert [s.order for s in serialize(test_plan).steps] == [1, 2, 3]


def test_time_guard_children_are_nested():
    guard = TimeGuardStep(timeout=5.0, stop_on_timeout=True, timeout_verdict=Verdict.FAIL)
    guard.child_steps.extend([DelayStep(delay_secs=0.5), DelayStep(delay_secs=0.25)])
    plan = serialize(TestPlan(child_steps=[guard]))

    (root,) = plan.steps
    assert root.step_type == "TimeGuard"
    assert root.parameters == {"Timeout": 5.0, "StopOnTimeout": True, "TimeoutVerdict": "Fail"}
    assert [c.order for c in root.children] == [1, 2]
    assert root.children[1].parameters == {"DelaySecs": 0.25}


def test_scpi_minimal_parameters():
    step = ScpiStep(action=ScpiAction.QUERY, query="*IDN?")
    assert step_parameters(step) == {"Action": "Query", "Query": "*IDN?"}


def test_scpi_instrument_written_only_when_bound():
    step = ScpiStep(query="*RST", instrument=object(), instrument_name="DMM")
    assert step_parameters(step)["Instrument"] == "DMM"

    unbound = ScpiStep(query="*RST", instrument_name="DMM")
    assert "Instrument" not in step_parameters(unbound)


def test_scpi_enabled_patterns_are_written():
    step = ScpiStep(
        action=ScpiAction.QUERY,
        query="MEAS?",
        regex_pattern=EnabledValue("^\\+", True),
        verdict_on_match=Verdict.PASS,
        verdict_on_no_match=Verdict.INCONCLUSIVE,
        result_regex_pattern=EnabledValue("([0-9.]+)", True),
        behavior=RegexBehavior.GROUPS_AS_RESULTS,
        dimension_titles="Voltage",
    )
    assert step_parameters(step) == {
        "Action": "Query",
        "Query": "MEAS?",
        "RegularExpressionPattern": "^\\+",
        "VerdictOnMatch": "Pass",
        "VerdictOnNoMatch": "Inconclusive",
        "ResultRegularExpressionPattern": "([0-9.]+)",
        "Behavior": "GroupsAsResults",
        "DimensionTitles": "Voltage",
    }


def test_dimension_titles_omitted_when_empty():
    step = ScpiStep(result_regex_pattern=EnabledValue("(.*)", True))
    params = step_parameters(step)
    assert params["Behavior"] == "GroupsAsDimensions"
    assert "DimensionTitles" not in params


def test_unknown_step_object_is_described_as_unknown(caplog):
    class Mystery:
        pass

    with caplog.at_level("WARNING"):
        assert step_type_name(Mystery()) == "Unknown"
    assert "Mystery" in caplog.text
    assert step_parameters(Mystery()) == {}


def test_serialized_json_uses_wire_keys():
    document = json.loads(serialize_to_json(TestPlan(child_steps=[DelayStep(delay_secs=2.0)])))
    assert document == {
        "Steps": [{"StepOrder": 1, "StepType": "Delay", "Parameters": {"DelaySecs": 2.0}}],
        "Explanation": [],
    }


# ------------------------------------------------------------
# Round trip: build, describe, rebuild
# ------------------------------------------------------------

def test_round_trip_preserves_types_parameters_and_nesting(plan_json, instrument_binding):
    original = parse_plan(plan_json)
    first = TestPlan()
    synthesize(first, original, instrument_binding, "DMM")

    described = serialize(first)
    assert validate_plan(described).is_valid
    assert _shape(described.steps) == _shape(original.steps)

    second = TestPlan()
    synthesize(second, parse_plan(serialize_to_json(first)), instrument_binding, "DMM")
    assert _shape(serialize(second).steps) == _shape(described.steps)


def test_identity_query_scenario(instrument_binding):
    response = json.dumps(
        {
            "Steps": [
                {"StepOrder": 1, "StepType": "SCPI", "Parameters": {"Action": "Query", "Query": "*IDN?", "Instrument": "DMM"}},
                {"StepOrder": 2, "StepType": "Delay", "Parameters": {"DelaySecs": 2}},
            ],
            "Explanation": ["Identify, then wait.", "Ask who it is.", "Pause."],
        }
    )
    test_plan = TestPlan()
    synthesize(test_plan, parse_plan(response), instrument_binding, "DMM")

    described = serialize(test_plan)
    assert [(s.order, s.step_type) for s in described.steps] == [(1, "SCPI"), (2, "Delay")]
    assert described.steps[0].parameters == {"Action": "Query", "Query": "*IDN?", "Instrument": "DMM"}
    assert described.steps[1].parameters == {"DelaySecs": 2.0}
