from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from .schemas import KEY_EXPLANATION, KEY_STEPS

logger = logging.getLogger(__name__)

FENCE = "```"
_STEPS_ANCHOR = f'"{KEY_STEPS}"'
_EXPLANATION_ANCHOR = f'"{KEY_EXPLANATION}"'


class ExtractionFailure(ValueError):
    """Raised when no strategy could locate a JSON document in the response."""


def extract_json(response: Optional[str]) -> Optional[str]:
    """
    Pull the best candidate JSON document out of free-form model output.
    Strategies run in priority order; the first hit wins. Returns None when all fail.
    """
    if not response:
        logger.error("Model response was empty")
        return None

    for label, strategy in _STRATEGIES:
        extracted = strategy(response)
        if extracted is not None:
            logger.debug("Extracted JSON using %s", label)
            return extracted

    logger.error("Failed to extract JSON using any available strategy")
    return None


def require_json(response: Optional[str]) -> str:
    extracted = extract_json(response)
    if extracted is None:
        raise ExtractionFailure("Could not extract JSON from AI response.")
    return extracted


# =========================
# Strategies
# =========================

def from_code_fence(response: str) -> Optional[str]:
    start = response.find(FENCE)
    if start == -1:
        return None
    start += len(FENCE)

    # skip a language tag such as ```json
    if response[start:].lstrip().lower().startswith("json"):
        newline = response.find("\n", start)
        if newline != -1:
            start = newline + 1

    end = response.find(FENCE, start)
    if end == -1:
        return None
    return response[start:end].strip()


def from_plan_keys(response: str) -> Optional[str]:
    steps_at = response.find(_STEPS_ANCHOR)
    explanation_at = response.find(_EXPLANATION_ANCHOR)
    if steps_at == -1 or explanation_at == -1:
        return None

    start = min(steps_at, explanation_at)
    while start >= 0 and not _is_open_brace(response, start):
        start -= 1
    if start < 0:
        return None

    depth = 1
    end = start + 1
    while end < len(response) and depth > 0:
        ch = response[end]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        end += 1

    if depth != 0:
        return None
    return response[start:end]


def _is_open_brace(text: str, index: int) -> bool:
    return text[index] == "{" and (index == 0 or text[index - 1] != "\\")


def from_outer_braces(response: str) -> Optional[str]:
    first = response.find("{")
    last = response.rfind("}")
    if first == -1 or last <= first:
        return None
    return response[first:last + 1]


_STRATEGIES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("code fence", from_code_fence),
    ("Steps/Explanation keys", from_plan_keys),
    ("outermost braces", from_outer_braces),
]


__all__ = [
    "ExtractionFailure",
    "extract_json",
    "require_json",
    "from_code_fence",
    "from_plan_keys",
    "from_outer_braces",
]
