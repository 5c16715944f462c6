from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .transitions import Transition

BLANK_SYMBOL = "b"

Tape = Tuple[str, ...]


class Status(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    HALTED_ACCEPT = "halted-accept"
    HALTED_REJECT = "halted-reject"
    ERROR = "error"

    @property
    def is_halted(self) -> bool:
        return self in (Status.HALTED_ACCEPT, Status.HALTED_REJECT)


class Verdict(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"

    @property
    def status(self) -> Status:
        return Status.HALTED_ACCEPT if self is Verdict.ACCEPT else Status.HALTED_REJECT


HaltStatesLike = Union[Mapping[str, Verdict], Iterable[str]]


def verdict_for_label(label: str) -> Verdict:
    """Legacy classification: a halt state accepts when its name mentions "accept"."""
    return Verdict.ACCEPT if "accept" in label.lower() else Verdict.REJECT


def halt_states_from_labels(labels: Iterable[str]) -> Dict[str, Verdict]:
    return {label: verdict_for_label(label) for label in labels}


def resolve_halt_states(halt_states: HaltStatesLike) -> Dict[str, Verdict]:
    """Accept either an explicit ``label -> verdict`` mapping or bare labels."""
    if isinstance(halt_states, Mapping):
        return {label: Verdict(verdict) for label, verdict in halt_states.items()}
    if isinstance(halt_states, str):
        raise TypeError("halt_states must be a mapping or a collection of labels, not a str")
    return halt_states_from_labels(halt_states)


@dataclass(frozen=True)
class StepResult:
    next_state: str
    tape: Tape
    head_position: int
    status: Status
    message: str
    read_symbol: str
    transition: Optional[Transition] = None


def initialize_tape(text: str) -> Tape:
    if not text:
        return (BLANK_SYMBOL,)
    return tuple(text)


def _normalize(cells: List[str], head_position: int) -> int:
    if head_position < 0:
        cells[:0] = [BLANK_SYMBOL] * -head_position
        head_position = 0
    if head_position >= len(cells):
        cells.extend([BLANK_SYMBOL] * (head_position - len(cells) + 1))
    return head_position


def step(
    state: str,
    tape: Sequence[str],
    head_position: int,
    table: Mapping,
    halt_states: HaltStatesLike,
) -> Optional[StepResult]:
    """Compute one transition of the machine.

    Returns ``None`` when ``state`` is already a halt state. A missing rule is
    reported as a ``halted-reject`` result, never raised. The given tape is
    left untouched; the result carries a padded copy.
    """
    verdicts = resolve_halt_states(halt_states)
    if state in verdicts:
        return None

    cells = list(tape)
    head = _normalize(cells, head_position)
    read_symbol = cells[head]

    transition: Optional[Transition] = table.get((state, read_symbol))
    if transition is None:
        return StepResult(
            next_state=state,
            tape=tuple(cells),
            head_position=head,
            status=Status.HALTED_REJECT,
            message=f'Halted (Reject): No transition found for state "{state}" and symbol "{read_symbol}".',
            read_symbol=read_symbol,
        )

    cells[head] = transition.write_symbol
    head = _normalize(cells, head + transition.move.offset)

    next_state = transition.next_state
    status = Status.RUNNING
    message = (
        f"Step: Read '{read_symbol}', Write '{transition.write_symbol}', "
        f"Move {transition.move.value}"
    )
    verdict = verdicts.get(next_state)
    if verdict is not None:
        status = verdict.status
        message = f'Halted ({verdict.value}): Reached halt state "{next_state}".'

    return StepResult(
        next_state=next_state,
        tape=tuple(cells),
        head_position=head,
        status=status,
        message=message,
        read_symbol=read_symbol,
        transition=transition,
    )


__all__ = [
    "BLANK_SYMBOL",
    "HaltStatesLike",
    "Status",
    "StepResult",
    "Tape",
    "Verdict",
    "halt_states_from_labels",
    "initialize_tape",
    "resolve_halt_states",
    "step",
    "verdict_for_label",
]
