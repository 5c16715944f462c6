from __future__ import annotations

import argparse
import logging
import shlex
import sys
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import SettingsError, load_settings, parse_halt_states
from .engine import Status, Verdict, resolve_halt_states
from .machine import MachineConfiguration, StepLimitExceeded, advance
from .transitions import ParseResult, TransitionParseError, TransitionTable, parse_transitions

logger = logging.getLogger(__name__)


class MachineNotReady(RuntimeError):
    """Raised when stepping is requested without a valid transition table."""


@dataclass
class SimulatorSession:
    rules: str
    tape_input: str = ""
    start_state: str = "q0"
    halt_states: Dict[str, Verdict] = field(default_factory=dict)
    max_steps: Optional[int] = None
    history_limit: int = 200

    def __post_init__(self) -> None:
        self.halt_states = resolve_halt_states(self.halt_states)
        self.breakpoints: set[str] = set()
        self.history: List[MachineConfiguration] = []
        self.hit_breakpoint: Optional[str] = None
        self.lock = threading.RLock()
        self.parse_result: ParseResult = parse_transitions(self.rules)
        self.table: Optional[TransitionTable] = self.parse_result.table
        self.restart()

    @property
    def parse_error(self) -> Optional[TransitionParseError]:
        return self.parse_result.error

    def _mark_parse_error(self, result: ParseResult) -> None:
        self.last_state = replace(
            self.last_state,
            status=Status.ERROR,
            message=f"Parse Error: {result.error}",
        )
        if self.history:
            self.history[-1] = self.last_state

    def update_rules(self, rules: str) -> ParseResult:
        with self.lock:
            self.rules = rules
            result = parse_transitions(rules)
            self.parse_result = result
            if not result.ok:
                logger.info("rules rejected: %s", result.error)
                self.table = None
                self._mark_parse_error(result)
                return result

            self.table = result.table
            status = self.last_state.status
            if status is Status.ERROR:
                status = Status.IDLE
            self.last_state = replace(
                self.last_state,
                status=status,
                message=f"Transitions parsed ({result.rule_count} rules). Press Reset or Run.",
            )
            if self.history:
                self.history[-1] = self.last_state
            return result

    def restart(self) -> None:
        with self.lock:
            self.history.clear()
            self.hit_breakpoint = None
            self.finished = False
            initial = MachineConfiguration.initial(self.tape_input, self.start_state, self.halt_states)
            self._record_state(initial)
            self.finished = initial.halted
            if not self.parse_result.ok:
                self._mark_parse_error(self.parse_result)

    def _record_state(self, state: MachineConfiguration) -> None:
        self.history.append(state)
        if len(self.history) > self.history_limit:
            self.history.pop(0)
        self.last_state = state

    def set_status(self, status: Status, message: str) -> None:
        with self.lock:
            if self.last_state.halted:
                return
            self.last_state = replace(self.last_state, status=status, message=message)
            if self.history:
                self.history[-1] = self.last_state

    def is_ready(self) -> bool:
        return self.table is not None

    def step_forward(self, count: int = 1) -> Sequence[MachineConfiguration]:
        states: List[MachineConfiguration] = []
        if count <= 0:
            return states
        with self.lock:
            if self.table is None:
                raise MachineNotReady("No valid transition table; fix the rules first")
            self.hit_breakpoint = None
            for _ in range(count):
                if self.finished:
                    break
                if self.max_steps is not None and self.last_state.steps >= self.max_steps:
                    self.finished = True
                    raise StepLimitExceeded(
                        f"Turing machine exceeded the step limit of {self.max_steps}"
                    )
                state = advance(self.last_state, self.table, self.halt_states)
                self._record_state(state)
                states.append(state)
                if state.halted:
                    logger.debug("machine halted after %d steps: %s", state.steps, state.message)
                    self.finished = True
                    break
                if state.current_state in self.breakpoints:
                    self.hit_breakpoint = state.current_state
                    break
        return states

    def run_until_break(self, limit: Optional[int] = None) -> Sequence[MachineConfiguration]:
        states: List[MachineConfiguration] = []
        executed = 0
        while limit is None or executed < limit:
            step_states = self.step_forward(1)
            if not step_states:
                break
            states.extend(step_states)
            executed += 1
            if self.hit_breakpoint is not None:
                break
        return states

    def current_state(self) -> MachineConfiguration:
        return self.last_state

    def add_breakpoint(self, state: str) -> None:
        self.breakpoints.add(state)

    def remove_breakpoint(self, state: str) -> bool:
        if state in self.breakpoints:
            self.breakpoints.remove(state)
            return True
        return False

    def clear_breakpoints(self) -> None:
        self.breakpoints.clear()

    def list_breakpoints(self) -> List[str]:
        return sorted(self.breakpoints)

    def is_finished(self) -> bool:
        return self.finished


def format_state(state: MachineConfiguration, window: Optional[int] = None) -> str:
    lines: List[str] = []
    lines.append(
        f"step={state.steps} state={state.current_state!r} head={state.head_position} status={state.status.value}"
    )
    if state.message:
        lines.append(f"message={state.message}")
    start = 0
    end = len(state.tape)
    if window is not None:
        start = max(0, state.head_position - window)
        end = min(len(state.tape), state.head_position + window + 1)
    cells: List[str] = []
    for index in range(start, end):
        symbol = state.tape[index]
        if index == state.head_position:
            cells.append(f"[{symbol}]")
        else:
            cells.append(f" {symbol} ")
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(state.tape) else ""
    lines.append("tape=" + prefix + "".join(cells) + suffix)
    return "\n".join(lines)


def run_repl(session: SimulatorSession, window: Optional[int] = None) -> None:
    print("TinyTM stepper (type 'help' for commands)")
    _print_state(session.current_state(), window)
    while True:
        try:
            line = input("(tm) ").strip()
        except EOFError:
            print()
            break
        if not line:
            continue
        try:
            parts = shlex.split(line)
        except ValueError as exc:
            print(f"Invalid input: {exc}", file=sys.stderr)
            continue
        command = parts[0].lower()
        args = parts[1:]
        try:
            if command in {"n", "next"}:
                count = 1
                if args:
                    count = max(1, int(args[0]))
                states = session.step_forward(count)
                if states:
                    _print_state(states[-1], window)
                elif session.is_finished():
                    print("The machine has already halted.")
            elif command in {"r", "run"}:
                limit = int(args[0]) if args else None
                try:
                    states = session.run_until_break(limit)
                except StepLimitExceeded as exc:
                    print(str(exc), file=sys.stderr)
                    continue
                if states:
                    _print_state(states[-1], window)
                    if session.hit_breakpoint is not None:
                        print(f"Reached breakpoint state {session.hit_breakpoint!r}.")
                        session.hit_breakpoint = None
                elif session.is_finished():
                    print("The machine has halted.")
            elif command == "state":
                _print_state(session.current_state(), window)
            elif command == "history":
                count = int(args[0]) if args else 10
                for state in session.history[-count:]:
                    print("-" * 40)
                    print(format_state(state, window))
            elif command == "break":
                if not args:
                    print("Give a state name to break on.")
                    continue
                session.add_breakpoint(args[0])
                print(f"Breakpoint set on state {args[0]!r}.")
            elif command == "breaks":
                points = session.list_breakpoints()
                if not points:
                    print("No breakpoints.")
                else:
                    print("Breakpoints:", ", ".join(points))
            elif command == "clear":
                if not args:
                    session.clear_breakpoints()
                    print("All breakpoints removed.")
                elif session.remove_breakpoint(args[0]):
                    print(f"Breakpoint on {args[0]!r} removed.")
                else:
                    print(f"No breakpoint on {args[0]!r}.")
            elif command == "restart":
                session.restart()
                print("Session reset.")
                _print_state(session.current_state(), window)
            elif command in {"quit", "exit"}:
                break
            elif command == "help":
                _print_help()
            else:
                print("Unknown command. See 'help'.")
        except ValueError:
            print("Invalid number.", file=sys.stderr)
        except (MachineNotReady, StepLimitExceeded) as exc:
            print(str(exc), file=sys.stderr)


def _print_state(state: MachineConfiguration, window: Optional[int] = None) -> None:
    print("-" * 40)
    print(format_state(state, window))


def _print_help() -> None:
    print(
        "Commands:\n"
        "  next [N]     : advance N steps (default 1)\n"
        "  run [N]      : run until halt, a breakpoint or N steps\n"
        "  state        : show the current configuration\n"
        "  history [N]  : show the last N configurations\n"
        "  break STATE  : stop when the machine enters STATE\n"
        "  breaks       : list breakpoints\n"
        "  clear [STATE]: remove a breakpoint (all when omitted)\n"
        "  restart      : reset to the initial configuration\n"
        "  quit/exit    : leave\n"
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="TinyTM interactive stepper")
    parser.add_argument("rules", help="Path to a transition rule file")
    parser.add_argument("--input", default=None, help="Initial tape content")
    parser.add_argument("--start", default=None, help="Start state")
    parser.add_argument(
        "--halt",
        action="append",
        default=None,
        metavar="STATE[=accept|reject]",
        help="Halt state (repeatable, default from settings)",
    )
    parser.add_argument("--max-steps", type=int, default=None, help="Step limit")
    parser.add_argument("--window", type=int, default=15, help="Cells shown on each side of the head")
    parser.add_argument("--history-limit", type=int, default=None, help="Configurations kept in history")
    parser.add_argument("--config", default=None, help="JSON settings file")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
        halt_states = parse_halt_states(args.halt) if args.halt else dict(settings.halt_states)
    except SettingsError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    try:
        rules = Path(args.rules).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot open rule file: {exc}", file=sys.stderr)
        return 1

    session = SimulatorSession(
        rules,
        tape_input=settings.tape if args.input is None else args.input,
        start_state=args.start or settings.start_state,
        halt_states=halt_states,
        max_steps=args.max_steps if args.max_steps is not None else settings.max_steps,
        history_limit=args.history_limit or settings.history_limit,
    )
    if session.parse_error is not None:
        print(f"Parse error: {session.parse_error}", file=sys.stderr)
        return 1

    run_repl(session, args.window)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
