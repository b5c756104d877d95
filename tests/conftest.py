# tests/conftest.py
# ============================================================
# Shared pytest fixtures for all tests under tests/:
#   - instruments / instrument_binding: configured instrument handles
#   - plan_document: a well-formed plan as a decoded JSON document
#   - plan_json: the same plan as JSON text
#   - fake_sleep: records retry waits instead of sleeping
# ============================================================

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest


# ---------- Ensure project root is importable ----------
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scpi_planner.live_tree import InstrumentBinding  # noqa: E402


class FakeInstrument:
    """Stand-in for an instrument handle; only identity matters."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"FakeInstrument({self.name!r})"


@pytest.fixture
def instruments() -> List[Tuple[str, FakeInstrument]]:
    return [
        ("DMM", FakeInstrument("DMM")),
        ("Power Supply", FakeInstrument("Power Supply")),
    ]


@pytest.fixture
def instrument_binding(instruments) -> InstrumentBinding:
    return InstrumentBinding(instruments)


@pytest.fixture
def plan_document() -> Dict[str, Any]:
    return {
        "Steps": [
            {
                "StepOrder": 1,
                "StepType": "SCPI",
                "Parameters": {"Action": "Command", "Query": "OUTP ON", "Instrument": "Power Supply"},
            },
            {
                "StepOrder": 2,
                "StepType": "Delay",
                "Parameters": {"DelaySecs": 1.5},
            },
            {
                "StepOrder": 3,
                "StepType": "TimeGuard",
                "Parameters": {"Timeout": 10.0, "StopOnTimeout": True, "TimeoutVerdict": "Error"},
                "ChildSteps": [
                    {
                        "StepOrder": 1,
                        "StepType": "SCPI",
                        "Parameters": {"Action": "Query", "Query": "MEAS:VOLT:DC?", "Instrument": "DMM"},
                    }
                ],
            },
        ],
        "Explanation": [
            "Powers the DUT and measures its output voltage.",
            "Turn the supply output on.",
            "Let the output settle.",
            "Measure within a time limit.",
        ],
    }


@pytest.fixture
def plan_json(plan_document) -> str:
    return json.dumps(plan_document, indent=2)


@pytest.fixture
def fake_sleep():
    """
    Returns (sleep, waits): an async sleep that only records the requested delays.
    """
    waits: List[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    return _sleep, waits
