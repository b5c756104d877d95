from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .schemas import (
    KEY_CHILDREN,
    KEY_EXPLANATION,
    KEY_ORDER,
    KEY_PARAMETERS,
    KEY_STEPS,
    KEY_TYPE,
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
    PlanDescriptor,
    StepDescriptor,
    StepType,
    as_bool,
    as_number,
    to_param_value,
)

logger = logging.getLogger(__name__)


# =========================
# Errors
# =========================

class ParseErrorKind(str, Enum):
    MALFORMED_JSON = "malformed_json"
    MISSING_STEPS = "missing_steps"
    MALFORMED_STEP = "malformed_step"


class ParseError(ValueError):
    """The extracted text is not a plan document."""

    def __init__(self, kind: ParseErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass
class ValidationIssue:
    path: str
    order: Optional[int]
    step_type: str
    rule: str
    message: str
    parameter: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.path} ({self.step_type}): {self.message}"

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "path": self.path,
            "order": self.order,
            "step_type": self.step_type,
            "rule": self.rule,
            "message": self.message,
        }
        if self.parameter is not None:
            payload["parameter"] = self.parameter
        return payload


@dataclass
class ValidationReport:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return "; ".join(str(issue) for issue in self.errors)


class PlanValidationError(ValueError):
    """Raised by ensure_valid when any hard rule fails."""

    def __init__(self, report: ValidationReport) -> None:
        super().__init__(f"Plan failed validation: {report.summary()}")
        self.report = report


# =========================
# Parsing
# =========================

def parse_plan(json_text: str) -> PlanDescriptor:
    try:
        document = json.loads(json_text)
    except (TypeError, json.JSONDecodeError) as exc:
        logger.error("JSON parsing error: %s", exc)
        raise ParseError(ParseErrorKind.MALFORMED_JSON, f"Malformed JSON: {exc}") from exc

    if not isinstance(document, dict) or document.get(KEY_STEPS) is None:
        logger.error("JSON is missing the %s property", KEY_STEPS)
        raise ParseError(ParseErrorKind.MISSING_STEPS, f"JSON is missing the '{KEY_STEPS}' property")

    steps = _parse_steps(document[KEY_STEPS], KEY_STEPS)

    explanation = document.get(KEY_EXPLANATION)
    if isinstance(explanation, list):
        explanations = [str(item) for item in explanation]
    else:
        explanations = default_explanations(steps)

    return PlanDescriptor(steps=steps, explanations=explanations)


def default_explanations(steps: Sequence[StepDescriptor]) -> List[str]:
    explanations = [
        f"This test plan consists of {len(steps)} step(s) designed for the connected instrument."
    ]
    for step in steps:
        explanations.append(f"Step {step.order}: Executes a {step.step_type} operation.")
    return explanations


def _parse_steps(raw: Any, path: str) -> List[StepDescriptor]:
    if not isinstance(raw, list):
        raise ParseError(ParseErrorKind.MALFORMED_STEP, f"'{path}' must be an array")
    return [_parse_step(item, f"{path}[{index}]") for index, item in enumerate(raw)]


def _parse_step(raw: Any, path: str) -> StepDescriptor:
    if not isinstance(raw, dict):
        raise ParseError(ParseErrorKind.MALFORMED_STEP, f"{path} must be an object")

    order = raw.get(KEY_ORDER)
    is_number = isinstance(order, (int, float)) and not isinstance(order, bool)
    if not is_number or not math.isfinite(order) or order != int(order):
        raise ParseError(ParseErrorKind.MALFORMED_STEP, f"{path} has no integer '{KEY_ORDER}'")

    step_type = raw.get(KEY_TYPE)
    step_type = str(step_type) if step_type is not None else ""

    parameters: Dict[str, Any] = {}
    raw_parameters = raw.get(KEY_PARAMETERS)
    if isinstance(raw_parameters, dict):
        for key, value in raw_parameters.items():
            converted = to_param_value(value)
            if converted is not None:
                parameters[str(key)] = converted

    children: List[StepDescriptor] = []
    raw_children = raw.get(KEY_CHILDREN)
    if raw_children is not None:
        if StepType.lookup(step_type) is StepType.GUARD:
            children = _parse_steps(raw_children, f"{path}.{KEY_CHILDREN}")
        elif raw_children:
            logger.warning("%s: ignoring %s on non-container step type '%s'", path, KEY_CHILDREN, step_type)

    return StepDescriptor(order=int(order), step_type=step_type, parameters=parameters, children=children)


# =========================
# Validation
# =========================

def validate_plan(plan: PlanDescriptor) -> ValidationReport:
    report = ValidationReport()
    if not plan.steps:
        report.errors.append(
            ValidationIssue(KEY_STEPS, None, "", "non_empty_plan", "Plan must contain at least one step")
        )
    for index, step in enumerate(plan.steps):
        _validate_step(step, f"{KEY_STEPS}[{index}]", report)

    for issue in report.warnings:
        logger.warning("%s", issue)
    for issue in report.errors:
        logger.error("%s", issue)
    return report


def ensure_valid(plan: PlanDescriptor) -> ValidationReport:
    report = validate_plan(plan)
    if not report.is_valid:
        raise PlanValidationError(report)
    return report


def _validate_step(step: StepDescriptor, path: str, report: ValidationReport) -> None:
    def error(rule: str, message: str, parameter: Optional[str] = None) -> None:
        report.errors.append(ValidationIssue(path, step.order, step.step_type, rule, message, parameter))

    def warn(rule: str, message: str, parameter: Optional[str] = None) -> None:
        report.warnings.append(ValidationIssue(path, step.order, step.step_type, rule, message, parameter))

    def require(*names: str) -> None:
        for name in names:
            if name not in step.parameters:
                error("required_parameter", f"missing required parameter '{name}'", name)

    kind = step.kind
    if kind is None:
        error("known_type", f"unknown step type '{step.step_type}'")
        return

    if kind is not StepType.GUARD and step.children:
        error("children_only_on_guard", f"'{step.step_type}' steps cannot have child steps")

    params = step.parameters
    if kind is StepType.MEASUREMENT:
        require(P_ACTION, P_QUERY, P_INSTRUMENT)

        if P_REGEX in params and (P_VERDICT_ON_MATCH not in params or P_VERDICT_ON_NO_MATCH not in params):
            warn("regex_verdicts", f"'{P_REGEX}' given without both verdict parameters", P_REGEX)
        if P_RESULT_REGEX in params and P_BEHAVIOR not in params:
            warn("result_regex_behavior", f"'{P_RESULT_REGEX}' given without '{P_BEHAVIOR}'", P_BEHAVIOR)
        if P_DIMENSION_TITLES in params:
            if P_RESULT_REGEX not in params:
                warn("dimension_titles_pattern", f"'{P_DIMENSION_TITLES}' given without '{P_RESULT_REGEX}'", P_RESULT_REGEX)
            if P_BEHAVIOR not in params:
                warn("dimension_titles_behavior", f"'{P_DIMENSION_TITLES}' given without '{P_BEHAVIOR}'", P_BEHAVIOR)

    elif kind is StepType.DELAY:
        if P_DELAY_SECS not in params:
            error("required_parameter", f"missing required parameter '{P_DELAY_SECS}'", P_DELAY_SECS)
        elif as_number(params[P_DELAY_SECS]) is None:
            error("numeric_parameter", f"'{P_DELAY_SECS}' must be a number", P_DELAY_SECS)

    elif kind is StepType.GUARD:
        require(P_TIMEOUT, P_STOP_ON_TIMEOUT, P_TIMEOUT_VERDICT)
        if P_TIMEOUT in params and as_number(params[P_TIMEOUT]) is None:
            error("numeric_parameter", f"'{P_TIMEOUT}' must be a number", P_TIMEOUT)
        if P_STOP_ON_TIMEOUT in params and as_bool(params[P_STOP_ON_TIMEOUT]) is None:
            error("boolean_parameter", f"'{P_STOP_ON_TIMEOUT}' must be true or false", P_STOP_ON_TIMEOUT)
        if not step.children:
            error("guard_children", f"'{step.step_type}' step must contain at least one child step", KEY_CHILDREN)
        for index, child in enumerate(step.children):
            _validate_step(child, f"{path}.{KEY_CHILDREN}[{index}]", report)


__all__ = [
    "ParseErrorKind",
    "ParseError",
    "ValidationIssue",
    "ValidationReport",
    "PlanValidationError",
    "parse_plan",
    "default_explanations",
    "validate_plan",
    "ensure_valid",
]
