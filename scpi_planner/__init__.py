"""Turn language-model responses into validated instrument test plans."""

from .extractor import ExtractionFailure, extract_json
from .live_tree import InstrumentBinding, TestPlan
from .pipeline import PipelineResult, process_response, request_plan
from .retry import get_response_with_retry
from .schemas import PlanDescriptor, StepDescriptor, StepType
from .serializer import serialize
from .synthesizer import synthesize
from .validator import ParseError, PlanValidationError, parse_plan, validate_plan

__all__ = [
    "ExtractionFailure",
    "extract_json",
    "InstrumentBinding",
    "TestPlan",
    "PipelineResult",
    "process_response",
    "request_plan",
    "get_response_with_retry",
    "PlanDescriptor",
    "StepDescriptor",
    "StepType",
    "serialize",
    "synthesize",
    "ParseError",
    "PlanValidationError",
    "parse_plan",
    "validate_plan",
]
