from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

COMMENT_PREFIXES = ("//", "#")

_RULE_PATTERN = re.compile(
    r"^\(\s*(?P<state>[^,()\s][^,()]*?)\s*,(?P<read>[^)]*)\)"
    r"\s*->\s*"
    r"\(\s*(?P<next_state>[^,()\s][^,()]*?)\s*,(?P<write>[^,]*),\s*(?P<move>[LRS])\s*\)$"
)


class Move(str, Enum):
    LEFT = "L"
    RIGHT = "R"
    STAY = "S"

    @property
    def offset(self) -> int:
        if self is Move.LEFT:
            return -1
        if self is Move.RIGHT:
            return 1
        return 0


@dataclass(frozen=True)
class Transition:
    next_state: str
    write_symbol: str
    move: Move


TransitionKey = Tuple[str, str]


class TransitionParseError(Exception):
    """Base class for problems found in a transition rule listing."""

    def __init__(self, line: int, line_text: str, message: str) -> None:
        super().__init__(message)
        self.line = line
        self.line_text = line_text
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransitionParseError):
            return NotImplemented
        return type(self) is type(other) and self.args == other.args and self.line == other.line

    def __hash__(self) -> int:
        return hash((type(self), self.line, self.message))


class RuleSyntaxError(TransitionParseError):
    def __init__(self, line: int, line_text: str) -> None:
        super().__init__(line, line_text, f'Invalid transition format on line {line}: "{line_text}"')


class SymbolLengthError(TransitionParseError):
    def __init__(self, line: int, line_text: str, field: str, value: str) -> None:
        super().__init__(
            line,
            line_text,
            f'{field.capitalize()} symbol must be a single character on line {line}: "{value}"',
        )
        self.field = field
        self.value = value


class DuplicateKeyError(TransitionParseError):
    def __init__(self, line: int, line_text: str, state: str, symbol: str) -> None:
        super().__init__(line, line_text, f"Duplicate transition key on line {line}: ({state}, {symbol})")
        self.state = state
        self.symbol = symbol


class TransitionTable(Mapping):
    """Read-only mapping of ``(state, symbol)`` to :class:`Transition`."""

    def __init__(
        self,
        rules: Optional[Dict[TransitionKey, Transition]] = None,
        lines: Optional[Dict[TransitionKey, int]] = None,
    ) -> None:
        self._rules: Dict[TransitionKey, Transition] = dict(rules or {})
        self._lines: Dict[TransitionKey, int] = dict(lines or {})

    def __getitem__(self, key: TransitionKey) -> Transition:
        return self._rules[key]

    def __iter__(self) -> Iterator[TransitionKey]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"TransitionTable({self._rules!r})"

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def source_line(self, key: TransitionKey) -> Optional[int]:
        return self._lines.get(key)

    def states(self) -> List[str]:
        seen: Dict[str, None] = {}
        for (state, _), transition in self._rules.items():
            seen.setdefault(state)
            seen.setdefault(transition.next_state)
        return list(seen)

    def to_text(self) -> str:
        ordered = sorted(self._rules.items(), key=lambda item: self._lines.get(item[0], 0))
        return "\n".join(
            f"({state}, {symbol}) -> ({rule.next_state}, {rule.write_symbol}, {rule.move.value})"
            for (state, symbol), rule in ordered
        )


@dataclass(frozen=True)
class ParseResult:
    table: Optional[TransitionTable] = None
    error: Optional[TransitionParseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.table is not None

    @property
    def rule_count(self) -> int:
        return self.table.rule_count if self.table is not None else 0

    def unwrap(self) -> TransitionTable:
        if self.error is not None:
            raise self.error
        assert self.table is not None
        return self.table


def is_skipped_line(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith(COMMENT_PREFIXES)


def parse_transitions(text: str) -> ParseResult:
    """Build a transition table from rule text.

    Parsing stops at the first offending line and the error is returned in the
    result instead of being raised.
    """
    rules: Dict[TransitionKey, Transition] = {}
    lines: Dict[TransitionKey, int] = {}

    for number, raw_line in enumerate(text.splitlines(), start=1):
        if is_skipped_line(raw_line):
            continue
        line = raw_line.strip()

        match = _RULE_PATTERN.match(line)
        if match is None:
            return ParseResult(error=RuleSyntaxError(number, line))

        state = match.group("state")
        read_symbol = match.group("read").strip()
        next_state = match.group("next_state")
        write_symbol = match.group("write").strip()

        if len(read_symbol) != 1:
            return ParseResult(error=SymbolLengthError(number, line, "read", read_symbol))
        if len(write_symbol) != 1:
            return ParseResult(error=SymbolLengthError(number, line, "write", write_symbol))

        key = (state, read_symbol)
        if key in rules:
            return ParseResult(error=DuplicateKeyError(number, line, state, read_symbol))

        rules[key] = Transition(
            next_state=next_state,
            write_symbol=write_symbol,
            move=Move(match.group("move")),
        )
        lines[key] = number

    return ParseResult(table=TransitionTable(rules, lines))


__all__ = [
    "COMMENT_PREFIXES",
    "DuplicateKeyError",
    "Move",
    "ParseResult",
    "RuleSyntaxError",
    "SymbolLengthError",
    "Transition",
    "TransitionKey",
    "TransitionParseError",
    "TransitionTable",
    "is_skipped_line",
    "parse_transitions",
]
