from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union

from .live_tree import (
    DelayStep,
    InstrumentBinding,
    LiveStep,
    RegexBehavior,
    ScpiAction,
    ScpiStep,
    TestPlan,
    TimeGuardStep,
    Verdict,
)
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
    PlanDescriptor,
    StepDescriptor,
    StepType,
    as_bool,
    as_number,
    as_text,
)

logger = logging.getLogger(__name__)

LABEL_QUERY_LIMIT = 20

Instruments = Union[InstrumentBinding, Iterable[Tuple[str, Any]]]


class SynthesisError(ValueError):
    """A single step could not be built; the step is skipped."""


@dataclass
class SynthesisWarning:
    order: int
    step_type: str
    message: str
    skipped: bool = False

    def __str__(self) -> str:
        prefix = "Skipped" if self.skipped else "Warning for"
        return f"{prefix} {self.step_type} step {self.order}: {self.message}"


def sanitize_scpi_command(command: Optional[str]) -> str:
    """Strip inline `#` and `//` comments and surrounding whitespace."""
    if not command:
        return ""
    if "#" in command:
        command = command[:command.index("#")].strip()
    if "//" in command:
        command = command[:command.index("//")].strip()
    return command.strip()


def synthesize(
    test_plan: TestPlan,
    plan: PlanDescriptor,
    instruments: Instruments,
    default_instrument_name: Optional[str],
) -> List[SynthesisWarning]:
    """
    Replace every top-level step of `test_plan` with steps built from `plan`.

    Steps are built in `order`, not array position. A step that cannot be built is
    skipped and reported; the rest of the plan still goes in. Returns the warnings.
    """
    binding = instruments if isinstance(instruments, InstrumentBinding) else InstrumentBinding(instruments)
    builder = _StepBuilder(binding, default_instrument_name)

    test_plan.child_steps.clear()
    builder.build_into(test_plan.child_steps, plan.steps)
    logger.info(
        "Synthesized %s top-level step(s) with %s warning(s)",
        len(test_plan.child_steps),
        len(builder.warnings),
    )
    return builder.warnings


class _StepBuilder:
    def __init__(self, instruments: InstrumentBinding, default_instrument_name: Optional[str]) -> None:
        self.instruments = instruments
        self.default_instrument_name = default_instrument_name
        self.warnings: List[SynthesisWarning] = []

    def build_into(self, container: List[LiveStep], descriptors: Iterable[StepDescriptor]) -> None:
        for descriptor in sorted(descriptors, key=lambda d: d.order):
            try:
                step = self.build(descriptor)
            except SynthesisError as exc:
                self._warn(descriptor, str(exc), skipped=True)
                continue
            container.append(step)

    def build(self, descriptor: StepDescriptor) -> LiveStep:
        kind = descriptor.kind
        if kind is StepType.MEASUREMENT:
            return self._scpi(descriptor)
        if kind is StepType.DELAY:
            return self._delay(descriptor)
        if kind is StepType.GUARD:
            return self._time_guard(descriptor)
        raise SynthesisError(f"unknown step type '{descriptor.step_type}'")

    # -------------------------------------------------

    def _scpi(self, descriptor: StepDescriptor) -> ScpiStep:
        params = descriptor.parameters
        step = ScpiStep()

        if P_ACTION in params:
            step.action = _symbol(ScpiAction, params[P_ACTION], P_ACTION)
        query = as_text(params.get(P_QUERY))
        if query is not None:
            step.query = sanitize_scpi_command(query)

        pattern = as_text(params.get(P_REGEX))
        if pattern:
            step.regex_pattern.value = pattern
            step.regex_pattern.is_enabled = True
            if params.get(P_VERDICT_ON_MATCH):
                step.verdict_on_match = _symbol(Verdict, params[P_VERDICT_ON_MATCH], P_VERDICT_ON_MATCH)
            if params.get(P_VERDICT_ON_NO_MATCH):
                step.verdict_on_no_match = _symbol(Verdict, params[P_VERDICT_ON_NO_MATCH], P_VERDICT_ON_NO_MATCH)

        result_pattern = as_text(params.get(P_RESULT_REGEX))
        if result_pattern:
            step.result_regex_pattern.value = result_pattern
            step.result_regex_pattern.is_enabled = True
            if params.get(P_BEHAVIOR):
                step.behavior = _symbol(RegexBehavior, params[P_BEHAVIOR], P_BEHAVIOR)
            titles = as_text(params.get(P_DIMENSION_TITLES))
            if titles:
                step.dimension_titles = titles

        step.name = scpi_label(step.action, step.query)

        requested = as_text(params.get(P_INSTRUMENT))
        bound = self.instruments.resolve(requested, self.default_instrument_name)
        if bound is None:
            self._warn(
                descriptor,
                f"neither instrument '{requested}' nor default '{self.default_instrument_name}' is configured",
            )
        else:
            step.instrument_name, step.instrument = bound
            if bound[0] == requested:
                logger.debug("Using specified instrument %s for %s", requested, step.name)
            else:
                logger.debug("Using default instrument %s for %s", bound[0], step.name)
        return step

    def _delay(self, descriptor: StepDescriptor) -> DelayStep:
        step = DelayStep()
        if P_DELAY_SECS in descriptor.parameters:
            step.delay_secs = _number(descriptor.parameters[P_DELAY_SECS], P_DELAY_SECS)
        step.name = f"Delay {format_seconds(step.delay_secs)} seconds"
        return step

    def _time_guard(self, descriptor: StepDescriptor) -> TimeGuardStep:
        params = descriptor.parameters
        step = TimeGuardStep()
        if P_TIMEOUT in params:
            step.timeout = _number(params[P_TIMEOUT], P_TIMEOUT)
        if P_STOP_ON_TIMEOUT in params:
            stop = as_bool(params[P_STOP_ON_TIMEOUT])
            if stop is None:
                raise SynthesisError(f"'{P_STOP_ON_TIMEOUT}' must be true or false")
            step.stop_on_timeout = stop
        if P_TIMEOUT_VERDICT in params:
            step.timeout_verdict = _symbol(Verdict, params[P_TIMEOUT_VERDICT], P_TIMEOUT_VERDICT)
        step.name = f"Time Guard ({format_seconds(step.timeout)}s)"

        self.build_into(step.child_steps, descriptor.children)
        if descriptor.children and not step.child_steps:
            self._warn(descriptor, "every child step was skipped")
        return step

    def _warn(self, descriptor: StepDescriptor, message: str, *, skipped: bool = False) -> None:
        warning = SynthesisWarning(descriptor.order, descriptor.step_type, message, skipped)
        logger.warning("%s", warning)
        self.warnings.append(warning)


# =========================
# Helpers
# =========================

def _symbol(enum_cls, value: Any, parameter: str):
    try:
        return enum_cls.parse(value)
    except ValueError as exc:
        raise SynthesisError(f"'{parameter}': {exc}") from exc


def _number(value: Any, parameter: str) -> float:
    number = as_number(value)
    if number is None:
        raise SynthesisError(f"'{parameter}' must be a number, got {value!r}")
    return number


def format_seconds(value: float) -> str:
    return f"{value:g}"


def scpi_label(action: ScpiAction, query: str) -> str:
    shown = query if len(query) <= LABEL_QUERY_LIMIT else query[:LABEL_QUERY_LIMIT] + "..."
    return f"SCPI {action.value}: {shown}"


__all__ = [
    "SynthesisError",
    "SynthesisWarning",
    "sanitize_scpi_command",
    "synthesize",
    "scpi_label",
    "format_seconds",
]
