"""
In-memory live step tree.

These are the executable step objects the synthesizer populates and the serializer
reads back. They carry configuration only; running them belongs to the test executive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, Iterable, Iterator, List, Mapping, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _SymbolEnum(str, Enum):
    """String enum whose members can be looked up by name, ignoring case."""

    @classmethod
    def parse(cls, symbol: str):
        if not isinstance(symbol, str):
            raise ValueError(f"{cls.__name__} expects a string, got {type(symbol).__name__}")
        wanted = symbol.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ValueError(f"'{symbol}' is not a valid {cls.__name__}")


class Verdict(_SymbolEnum):
    NOT_SET = "NotSet"
    PASS = "Pass"
    INCONCLUSIVE = "Inconclusive"
    FAIL = "Fail"
    ABORTED = "Aborted"
    ERROR = "Error"


class ScpiAction(_SymbolEnum):
    COMMAND = "Command"
    QUERY = "Query"


class RegexBehavior(_SymbolEnum):
    GROUPS_AS_DIMENSIONS = "GroupsAsDimensions"
    GROUPS_AS_RESULTS = "GroupsAsResults"


@dataclass
class EnabledValue(Generic[T]):
    """A setting that only applies when switched on."""
    value: T
    is_enabled: bool = False


# =========================
# Steps
# =========================

@dataclass
class ScpiStep:
    name: str = "SCPI"
    action: ScpiAction = ScpiAction.COMMAND
    query: str = ""
    instrument: Optional[Any] = None
    instrument_name: Optional[str] = None
    regex_pattern: EnabledValue[str] = field(default_factory=lambda: EnabledValue("(.*)"))
    verdict_on_match: Verdict = Verdict.PASS
    verdict_on_no_match: Verdict = Verdict.FAIL
    result_regex_pattern: EnabledValue[str] = field(default_factory=lambda: EnabledValue("(.*)"))
    behavior: RegexBehavior = RegexBehavior.GROUPS_AS_DIMENSIONS
    dimension_titles: str = ""


@dataclass
class DelayStep:
    name: str = "Delay"
    delay_secs: float = 0.1


@dataclass
class TimeGuardStep:
    name: str = "Time Guard"
    timeout: float = 30.0
    stop_on_timeout: bool = False
    timeout_verdict: Verdict = Verdict.ERROR
    child_steps: List["LiveStep"] = field(default_factory=list)


LiveStep = Union[ScpiStep, DelayStep, TimeGuardStep]


@dataclass
class TestPlan:
    name: str = "Untitled"
    child_steps: List[LiveStep] = field(default_factory=list)

    __test__ = False  # not a pytest test class

    def walk(self) -> Iterator[LiveStep]:
        """Depth-first iteration over every step in the plan."""
        stack = list(reversed(self.child_steps))
        while stack:
            step = stack.pop()
            yield step
            if isinstance(step, TimeGuardStep):
                stack.extend(reversed(step.child_steps))


# =========================
# Instrument binding
# =========================

class InstrumentBinding:
    """Read-only lookup from instrument name to an opaque instrument handle."""

    def __init__(self, pairs: Iterable[Tuple[str, Any]]) -> None:
        table = {}
        for name, handle in pairs:
            if name in table:
                logger.warning("Duplicate instrument name '%s'; keeping the first one", name)
                continue
            table[name] = handle
        self._table: Mapping[str, Any] = MappingProxyType(table)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "InstrumentBinding":
        return cls(mapping.items())

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def get(self, name: Optional[str]) -> Optional[Any]:
        if not name:
            return None
        return self._table.get(name)

    def names(self) -> List[str]:
        return list(self._table)

    def resolve(self, name: Optional[str], default_name: Optional[str]) -> Optional[Tuple[str, Any]]:
        """Bind `name` if configured, else `default_name`, else None."""
        if name and name in self._table:
            return name, self._table[name]
        if default_name and default_name in self._table:
            return default_name, self._table[default_name]
        return None


__all__ = [
    "Verdict",
    "ScpiAction",
    "RegexBehavior",
    "EnabledValue",
    "ScpiStep",
    "DelayStep",
    "TimeGuardStep",
    "LiveStep",
    "TestPlan",
    "InstrumentBinding",
]
