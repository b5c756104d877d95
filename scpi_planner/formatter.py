from __future__ import annotations

from typing import List

from .live_tree import ScpiStep, TestPlan, TimeGuardStep
from .schemas import PlanDescriptor, StepDescriptor

DELIMITER = "-" * 40
NESTED_DELIMITER = "      " + "-" * 30
SCPI_LIST_HEADER = "SCPI Steps in Test Plan:"


def format_plan_display(plan: PlanDescriptor, manufacturer: str = "Unknown", model: str = "Unknown") -> str:
    """Render a plan for the chat window: context line, then one block per step."""
    lines: List[str] = []

    if plan.explanations:
        lines.append(plan.explanations[0])
    else:
        lines.append(f"This test plan consists of {len(plan.steps)} step(s) designed for a {manufacturer} {model}.")
    lines.append("")

    for index, step in enumerate(plan.steps):
        explanation = plan.explanation_for(index) or f"Performs a {step.step_type} operation."
        lines.append(f"Step {step.order}: {explanation}")
        lines.append("")
        lines.append(f"Operation: {step.step_type}")
        lines.append(DELIMITER)
        for key, value in step.parameters.items():
            lines.append(f"    {key}: {_display_value(value)}")
        lines.extend(_nested_lines(step))
        lines.append(DELIMITER)
        lines.append("")

    return "\n".join(lines).rstrip()


def _nested_lines(step: StepDescriptor) -> List[str]:
    if not step.children:
        return []
    lines = ["    Nested Operations:"]
    for child in step.children:
        lines.append(f"      {child.step_type}:")
        lines.append(NESTED_DELIMITER)
        for key, value in child.parameters.items():
            lines.append(f"         {key}: {_display_value(value)}")
        lines.append(NESTED_DELIMITER)
    return lines


def _display_value(value: object) -> str:
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def scpi_steps_context(test_plan: TestPlan) -> str:
    """List the SCPI steps of a plan, including those one level down in containers."""
    if test_plan is None:
        return "No test plan or steps available."

    lines: List[str] = []
    for position, step in enumerate(test_plan.child_steps, start=1):
        if isinstance(step, ScpiStep):
            lines.extend(_scpi_lines(f"Step {position}", step))
        elif isinstance(step, TimeGuardStep):
            scpi_children = [child for child in step.child_steps if isinstance(child, ScpiStep)]
            for child_position, child in enumerate(scpi_children, start=1):
                lines.extend(_scpi_lines(f"Step {position} Child {child_position}", child))

    if not lines:
        return "No SCPI steps found in the test plan."
    return "\n".join([SCPI_LIST_HEADER, ""] + lines).rstrip()


def _scpi_lines(label: str, step: ScpiStep) -> List[str]:
    return [
        f"{label}: SCPI {step.action.value}: {step.name}",
        f"  Action: {step.action.value}",
        f"  Query: {step.query}",
        "",
    ]


__all__ = ["format_plan_display", "scpi_steps_context"]
