from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .live_tree import DelayStep, LiveStep, ScpiStep, TestPlan, TimeGuardStep
from .schemas import (
    P_ACTION,
    P_BEHAVIOR,
    P_DELAY_SECS,
    P_DIMENSION_TITLES,
    P_INSTRUMENT,
    P_QUERY,
    P_REGEX,
    P_RESULT_REGEX,
    P_STOP_ON_TIMEOUT,
    P_TIMEOUT,
    P_TIMEOUT_VERDICT,
    P_VERDICT_ON_MATCH,
    P_VERDICT_ON_NO_MATCH,
    ParamValue,
    PlanDescriptor,
    StepDescriptor,
    StepType,
    dump_plan,
)

logger = logging.getLogger(__name__)

UNKNOWN_TYPE = "Unknown"


def serialize(test_plan: TestPlan) -> PlanDescriptor:
    """Describe the current plan so it can be sent back to the model as context."""
    # explanations are regenerated by the model every round
    return PlanDescriptor(steps=_serialize_steps(test_plan.child_steps), explanations=[])


def serialize_to_json(test_plan: TestPlan) -> str:
    return dump_plan(serialize(test_plan))


def _serialize_steps(steps: Sequence[LiveStep]) -> List[StepDescriptor]:
    descriptors = []
    for position, step in enumerate(steps, start=1):
        children: List[StepDescriptor] = []
        if isinstance(step, TimeGuardStep):
            children = _serialize_steps(step.child_steps)
        descriptors.append(
            StepDescriptor(
                order=position,
                step_type=step_type_name(step),
                parameters=step_parameters(step),
                children=children,
            )
        )
    return descriptors


def step_type_name(step: object) -> str:
    if isinstance(step, ScpiStep):
        return StepType.MEASUREMENT.value
    if isinstance(step, DelayStep):
        return StepType.DELAY.value
    if isinstance(step, TimeGuardStep):
        return StepType.GUARD.value
    logger.warning("Cannot describe step of type %s", type(step).__name__)
    return UNKNOWN_TYPE


def step_parameters(step: object) -> Dict[str, ParamValue]:
    if isinstance(step, ScpiStep):
        parameters: Dict[str, ParamValue] = {
            P_ACTION: step.action.value,
            P_QUERY: step.query,
        }
        if step.instrument is not None and step.instrument_name:
            parameters[P_INSTRUMENT] = step.instrument_name

        if step.regex_pattern.is_enabled:
            parameters[P_REGEX] = step.regex_pattern.value
            parameters[P_VERDICT_ON_MATCH] = step.verdict_on_match.value
            parameters[P_VERDICT_ON_NO_MATCH] = step.verdict_on_no_match.value

        if step.result_regex_pattern.is_enabled:
            parameters[P_RESULT_REGEX] = step.result_regex_pattern.value
            parameters[P_BEHAVIOR] = step.behavior.value
            if step.dimension_titles:
                parameters[P_DIMENSION_TITLES] = step.dimension_titles
        return parameters

    if isinstance(step, DelayStep):
        return {P_DELAY_SECS: step.delay_secs}

    if isinstance(step, TimeGuardStep):
        return {
            P_TIMEOUT: step.timeout,
            P_STOP_ON_TIMEOUT: step.stop_on_timeout,
            P_TIMEOUT_VERDICT: step.timeout_verdict.value,
        }
    return {}


__all__ = ["serialize", "serialize_to_json", "step_type_name", "step_parameters"]
