from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import EMPTY_RESPONSE_ERROR, RetryPolicy
from .extractor import extract_json
from .formatter import format_plan_display
from .live_tree import InstrumentBinding, TestPlan
from .retry import Ask, Sleep, get_response_with_retry, is_error_response
from .schemas import PlanDescriptor
from .synthesizer import SynthesisWarning, synthesize
from .validator import ParseError, ValidationReport, parse_plan, validate_plan

logger = logging.getLogger(__name__)

EXTRACTION_FAILED = "Error: Could not extract JSON from AI response."
INVALID_STRUCTURE = "Error: Invalid JSON structure in AI response."
NO_INSTRUMENTS = "Error: No instruments found in settings."


@dataclass
class PipelineResult:
    """Outcome of one response round. `messages` are ready to show to the user."""
    ok: bool
    messages: List[str] = field(default_factory=list)
    plan: Optional[PlanDescriptor] = None
    report: Optional[ValidationReport] = None
    warnings: List[SynthesisWarning] = field(default_factory=list)
    raw_response: str = ""
    raw_json: Optional[str] = None

    @property
    def error(self) -> Optional[str]:
        if self.ok or not self.messages:
            return None
        return self.messages[0]

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok, "messages": list(self.messages)}
        if self.plan is not None:
            payload["plan"] = self.plan.to_json()
        if self.report is not None:
            payload["errors"] = [issue.to_json() for issue in self.report.errors]
            payload["validation_warnings"] = [issue.to_json() for issue in self.report.warnings]
        if self.warnings:
            payload["synthesis_warnings"] = [str(w) for w in self.warnings]
        return payload


def process_response(
    response: str,
    test_plan: TestPlan,
    instruments: Iterable[Tuple[str, Any]],
    default_instrument_name: Optional[str] = None,
    *,
    manufacturer: str = "Unknown",
    model: str = "Unknown",
) -> PipelineResult:
    """
    Turn one model response into live steps.

    Extraction, parsing and validation are all-or-nothing: any failure leaves
    `test_plan` untouched. Synthesis then skips individual steps it cannot build.
    """
    result = PipelineResult(ok=False, raw_response=response or "")

    if is_error_response(response):
        result.messages.append(response or EMPTY_RESPONSE_ERROR)
        return result

    json_text = extract_json(response)
    if json_text is None:
        result.messages += [EXTRACTION_FAILED, f"Original response: {response}"]
        return result
    result.raw_json = json_text

    try:
        plan = parse_plan(json_text)
    except ParseError as exc:
        result.messages += [INVALID_STRUCTURE, str(exc), f"Raw JSON: {json_text}"]
        return result
    result.plan = plan

    report = validate_plan(plan)
    result.report = report
    if not report.is_valid:
        result.messages.append(INVALID_STRUCTURE)
        result.messages += [str(issue) for issue in report.errors]
        result.messages.append(f"Raw JSON: {json_text}")
        return result

    binding = instruments if isinstance(instruments, InstrumentBinding) else InstrumentBinding(instruments)
    if not len(binding):
        result.messages.append(NO_INSTRUMENTS)
        return result
    if default_instrument_name is None:
        default_instrument_name = binding.names()[0]

    result.messages.append(format_plan_display(plan, manufacturer, model))
    result.warnings = synthesize(test_plan, plan, binding, default_instrument_name)
    result.messages += [str(w) for w in result.warnings]
    result.ok = True
    logger.info("Test plan updated with %s top-level step(s)", len(test_plan.child_steps))
    return result


async def request_plan(
    prompt: str,
    ask: Ask,
    test_plan: TestPlan,
    instruments: Iterable[Tuple[str, Any]],
    default_instrument_name: Optional[str] = None,
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
    **display: str,
) -> PipelineResult:
    """Ask the model (with retries) and apply its answer to `test_plan`."""
    response = await get_response_with_retry(prompt, ask, policy=policy, sleep=sleep)
    return process_response(response, test_plan, instruments, default_instrument_name, **display)


__all__ = [
    "EXTRACTION_FAILED",
    "INVALID_STRUCTURE",
    "NO_INSTRUMENTS",
    "PipelineResult",
    "process_response",
    "request_plan",
]
