from .engine import BLANK_SYMBOL, Status, StepResult, Verdict, initialize_tape, step
from .machine import MachineConfiguration, StepLimitExceeded, TuringMachine, advance
from .transitions import (
    DuplicateKeyError,
    Move,
    ParseResult,
    RuleSyntaxError,
    SymbolLengthError,
    Transition,
    TransitionParseError,
    TransitionTable,
    parse_transitions,
)
from .visualizer import MachineNotReady, SimulatorSession

__all__ = [
    "BLANK_SYMBOL",
    "DuplicateKeyError",
    "MachineConfiguration",
    "MachineNotReady",
    "Move",
    "ParseResult",
    "RuleSyntaxError",
    "SimulatorSession",
    "Status",
    "StepLimitExceeded",
    "StepResult",
    "SymbolLengthError",
    "Transition",
    "TransitionParseError",
    "TransitionTable",
    "TuringMachine",
    "Verdict",
    "advance",
    "initialize_tape",
    "parse_transitions",
    "step",
]
