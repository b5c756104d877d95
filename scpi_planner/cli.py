from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .adapter import OllamaAsker
from .config import PlannerSettings
from .live_tree import TestPlan
from .pipeline import PipelineResult, process_response, request_plan
from .serializer import serialize_to_json
from .synthesizer import synthesize
from .validator import ParseError, PlanValidationError, ensure_valid, parse_plan


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turn a model response into an instrument test plan.")
    parser.add_argument("--model", help="Ollama model id (defaults to PLANNER_MODEL or gpt-oss:20b)")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--prompt", help="Prompt text to send to the model")
    source.add_argument("--response-file", help="Process a saved model response instead of asking the model")
    parser.add_argument(
        "--instrument",
        dest="instruments",
        action="append",
        default=[],
        help="Configured instrument name (repeatable); the first one is the default",
    )
    parser.add_argument("--default-instrument", help="Instrument used when a step names an unknown one")
    parser.add_argument("--current-plan", help="JSON file describing the plan to start from")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    settings = PlannerSettings.from_env()
    if args.model:
        settings = settings.model_copy(update={"model": args.model})

    # instrument handles are just their names outside a test executive
    instruments = [(name, name) for name in args.instruments]
    default_instrument = args.default_instrument or (args.instruments[0] if args.instruments else None)
    test_plan = TestPlan()

    if args.current_plan:
        try:
            current = parse_plan(Path(args.current_plan).read_text(encoding="utf-8"))
            ensure_valid(current)
        except (OSError, ParseError, PlanValidationError) as exc:
            print(f"Error: Could not load current plan {args.current_plan}: {exc}")
            return 1
        for warning in synthesize(test_plan, current, instruments, default_instrument):
            print(warning)

    if args.response_file:
        try:
            response = Path(args.response_file).read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Error: Could not read response file {args.response_file}: {exc}")
            return 1
        result = process_response(response, test_plan, instruments, default_instrument)
    else:
        prompt = _with_current_plan(args.prompt, test_plan)
        asker = OllamaAsker.from_settings(settings, verbose=args.verbose)
        result = asyncio.run(
            request_plan(prompt, asker, test_plan, instruments, default_instrument, policy=settings.retry)
        )

    _print_result(result)
    if result.ok:
        print("\n[Current Plan]")
        print(serialize_to_json(test_plan))
    return 0 if result.ok else 1


def _with_current_plan(prompt: str, test_plan: TestPlan) -> str:
    if not test_plan.child_steps:
        return prompt
    return f"{prompt}\n\nCurrent test plan:\n{serialize_to_json(test_plan)}"


def _print_result(result: PipelineResult) -> None:
    for line in result.messages:
        print(line)
        print()


if __name__ == "__main__":
    raise SystemExit(main())
