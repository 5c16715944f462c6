from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import SettingsError, load_settings, parse_halt_states
from .machine import StepLimitExceeded, TuringMachine
from .transitions import parse_transitions
from .visualizer import format_state


def _read_source(path: str) -> str:
    source_path = Path(path)
    if not source_path.exists():
        raise FileNotFoundError(f"Rule file not found: {path}")
    return source_path.read_text(encoding="utf-8")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="TinyTM Turing machine runner")
    parser.add_argument("rules", help="Path to a transition rule file")
    parser.add_argument("--input", default=None, help="Initial tape content (default from settings)")
    parser.add_argument("--start", default=None, help="Start state (default from settings)")
    parser.add_argument(
        "--halt",
        action="append",
        default=None,
        metavar="STATE[=accept|reject]",
        help="Halt state, repeatable; a bare name accepts when it contains 'accept'",
    )
    parser.add_argument("--max-steps", type=int, default=None, help="Abort after this many steps")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only parse the rules and report how many were read",
    )
    parser.add_argument("--trace", action="store_true", help="Print every configuration")
    parser.add_argument("--config", default=None, help="JSON settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings(args.config)
        halt_states = parse_halt_states(args.halt) if args.halt else dict(settings.halt_states)
    except SettingsError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    try:
        source_text = _read_source(args.rules)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    result = parse_transitions(source_text)
    if result.error is not None:
        print(f"Parse error: {result.error}", file=sys.stderr)
        return 1
    if args.check:
        sys.stdout.write(f"Transitions parsed ({result.rule_count} rules).\n")
        return 0

    machine = TuringMachine(
        table=result.unwrap(),
        halt_states=halt_states,
        tape_input=settings.tape if args.input is None else args.input,
        start_state=args.start or settings.start_state,
    )
    max_steps = args.max_steps if args.max_steps is not None else settings.max_steps
    try:
        if args.trace:
            print(format_state(machine.configuration))
            for config in machine.steps(max_steps):
                print(format_state(config))
        else:
            machine.run(max_steps)
    except StepLimitExceeded as exc:
        print(f"Run error: {exc}", file=sys.stderr)
        return 1

    final = machine.configuration
    sys.stdout.write(f"{final.message}\n")
    sys.stdout.write(f"state={final.current_state} status={final.status.value} steps={final.steps}\n")
    sys.stdout.write(f"tape={final.tape_text()} head={final.head_position}\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
