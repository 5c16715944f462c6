from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, Optional

from .engine import (
    HaltStatesLike,
    Status,
    Tape,
    Verdict,
    initialize_tape,
    resolve_halt_states,
    step,
)
from .transitions import TransitionTable


class StepLimitExceeded(RuntimeError):
    """Raised when a machine keeps running past the configured step budget."""


@dataclass(frozen=True)
class MachineConfiguration:
    tape: Tape
    head_position: int
    current_state: str
    steps: int = 0
    halted: bool = False
    status: Status = Status.IDLE
    message: str = ""

    @classmethod
    def initial(
        cls,
        tape_input: str,
        start_state: str,
        halt_states: HaltStatesLike,
    ) -> "MachineConfiguration":
        return cls(
            tape=initialize_tape(tape_input),
            head_position=0,
            current_state=start_state,
            steps=0,
            halted=start_state in resolve_halt_states(halt_states),
            status=Status.IDLE,
            message="Reset to initial configuration. Ready.",
        )

    def tape_text(self) -> str:
        return "".join(self.tape)


def advance(
    config: MachineConfiguration,
    table: TransitionTable,
    halt_states: HaltStatesLike,
) -> MachineConfiguration:
    """Return the configuration that follows ``config``.

    Halted configurations are returned as they are.
    """
    if config.halted:
        return config

    verdicts = resolve_halt_states(halt_states)
    result = step(config.current_state, config.tape, config.head_position, table, verdicts)
    if result is None:
        verdict = verdicts.get(config.current_state, Verdict.REJECT)
        return replace(
            config,
            halted=True,
            status=verdict.status,
            message=f'Already halted: State "{config.current_state}" is a halt state.',
        )

    return MachineConfiguration(
        tape=result.tape,
        head_position=result.head_position,
        current_state=result.next_state,
        steps=config.steps + 1,
        halted=result.status.is_halted,
        status=result.status,
        message=result.message,
    )


@dataclass
class TuringMachine:
    table: TransitionTable
    halt_states: HaltStatesLike
    tape_input: str = ""
    start_state: str = "q0"

    configuration: MachineConfiguration = field(init=False)
    _verdicts: Dict[str, Verdict] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._verdicts = resolve_halt_states(self.halt_states)
        self.reset()

    @property
    def verdicts(self) -> Dict[str, Verdict]:
        return dict(self._verdicts)

    def reset(self, tape_input: Optional[str] = None, start_state: Optional[str] = None) -> MachineConfiguration:
        if tape_input is not None:
            self.tape_input = tape_input
        if start_state is not None:
            self.start_state = start_state
        self.configuration = MachineConfiguration.initial(
            self.tape_input,
            self.start_state,
            self._verdicts,
        )
        return self.configuration

    def is_halted(self) -> bool:
        return self.configuration.halted

    def advance(self) -> MachineConfiguration:
        self.configuration = advance(self.configuration, self.table, self._verdicts)
        return self.configuration

    def steps(self, max_steps: Optional[int] = None) -> Iterator[MachineConfiguration]:
        executed = 0
        while not self.configuration.halted:
            if max_steps is not None and executed >= max_steps:
                raise StepLimitExceeded(
                    f"Turing machine did not halt within {max_steps} steps "
                    f'(state "{self.configuration.current_state}")'
                )
            yield self.advance()
            executed += 1

    def run(self, max_steps: Optional[int] = None) -> MachineConfiguration:
        for _ in self.steps(max_steps):
            pass
        return self.configuration


__all__ = [
    "MachineConfiguration",
    "StepLimitExceeded",
    "TuringMachine",
    "advance",
]
