from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

# Scalar value carried in a step's parameter map.
ParamValue = Union[str, int, float, bool]

# Wire keys used by the model's JSON and by the serialized current plan.
KEY_STEPS = "Steps"
KEY_EXPLANATION = "Explanation"
KEY_ORDER = "StepOrder"
KEY_TYPE = "StepType"
KEY_PARAMETERS = "Parameters"
KEY_CHILDREN = "ChildSteps"

# Parameter keys.
P_ACTION = "Action"
P_QUERY = "Query"
P_INSTRUMENT = "Instrument"
P_REGEX = "RegularExpressionPattern"
P_VERDICT_ON_MATCH = "VerdictOnMatch"
P_VERDICT_ON_NO_MATCH = "VerdictOnNoMatch"
P_RESULT_REGEX = "ResultRegularExpressionPattern"
P_BEHAVIOR = "Behavior"
P_DIMENSION_TITLES = "DimensionTitles"
P_DELAY_SECS = "DelaySecs"
P_TIMEOUT = "Timeout"
P_STOP_ON_TIMEOUT = "StopOnTimeout"
P_TIMEOUT_VERDICT = "TimeoutVerdict"


class StepType(str, Enum):
    """Closed set of step kinds. Values are the names used on the wire."""

    MEASUREMENT = "SCPI"
    DELAY = "Delay"
    GUARD = "TimeGuard"

    @classmethod
    def lookup(cls, name: Optional[str]) -> Optional["StepType"]:
        if not isinstance(name, str):
            return None
        return _TYPE_ALIASES.get(name.strip())


_TYPE_ALIASES: Dict[str, StepType] = {
    "SCPI": StepType.MEASUREMENT,
    "Measurement": StepType.MEASUREMENT,
    "Delay": StepType.DELAY,
    "TimeGuard": StepType.GUARD,
    "Guard": StepType.GUARD,
}


# =========================
# Parameter value helpers
# =========================

def as_number(value: Any) -> Optional[float]:
    """Return the numeric value, or None. Booleans are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    return None


def as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    return None


def to_param_value(value: Any) -> Optional[ParamValue]:
    """
    Narrow a decoded JSON value to the scalar union.
    null -> None (caller drops it); arrays/objects are kept as compact JSON text.
    """
    if value is None:
        return None
    if isinstance(value, (bool, int, float, str)):
        return value
    return json.dumps(value, separators=(",", ":"))


# =========================
# Descriptors
# =========================

@dataclass
class StepDescriptor:
    order: int
    step_type: str
    parameters: Dict[str, ParamValue] = field(default_factory=dict)
    children: List["StepDescriptor"] = field(default_factory=list)

    @property
    def kind(self) -> Optional[StepType]:
        return StepType.lookup(self.step_type)

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            KEY_ORDER: self.order,
            KEY_TYPE: self.step_type,
            KEY_PARAMETERS: dict(self.parameters),
        }
        if self.children:
            payload[KEY_CHILDREN] = [child.to_json() for child in self.children]
        return payload


@dataclass
class PlanDescriptor:
    steps: List[StepDescriptor]
    explanations: List[str] = field(default_factory=list)

    def explanation_for(self, index: int) -> Optional[str]:
        """Explanation of root step `index`, if the model supplied one."""
        position = index + 1
        if 0 <= index and position < len(self.explanations):
            return self.explanations[position]
        return None

    def to_json(self) -> Dict[str, Any]:
        return {
            KEY_STEPS: [step.to_json() for step in self.steps],
            KEY_EXPLANATION: list(self.explanations),
        }


def dump_plan(plan: PlanDescriptor) -> str:
    return json.dumps(plan.to_json(), indent=2, ensure_ascii=False)


__all__ = [
    "ParamValue",
    "StepType",
    "StepDescriptor",
    "PlanDescriptor",
    "as_number",
    "as_bool",
    "as_text",
    "to_param_value",
    "dump_plan",
]
