from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .engine import BLANK_SYMBOL, Verdict, verdict_for_label

CONFIG_ENV_VAR = "TINYTM_CONFIG"

DEFAULT_RULES = f"""\
// Example transitions for a simple Turing machine
// This machine flips 1s to 0s and halts on blank
(q0, 1) -> (q1, 0, R)
(q0, 0) -> (q1, 1, R)
(q1, 1) -> (q0, 0, R)
(q1, 0) -> (q0, 1, R)
(q1, {BLANK_SYMBOL}) -> (halt-accept, {BLANK_SYMBOL}, S)
(q0, {BLANK_SYMBOL}) -> (halt-accept, {BLANK_SYMBOL}, S)"""


class SettingsError(ValueError):
    """Raised when a settings file cannot be read or does not validate."""


def _default_halt_states() -> Dict[str, Verdict]:
    return {
        "halt-accept": Verdict.ACCEPT,
        "halt-reject": Verdict.REJECT,
        "q2": Verdict.REJECT,
    }


class SimulatorSettings(BaseModel):
    rules: str = DEFAULT_RULES
    tape: str = "1011"
    start_state: str = "q0"
    halt_states: Dict[str, Verdict] = Field(default_factory=_default_halt_states)
    interval_ms: int = Field(default=200, ge=10, le=1000)
    history_limit: int = Field(default=200, ge=1)
    max_steps: Optional[int] = Field(default=None, ge=1)

    @field_validator("start_state")
    @classmethod
    def validate_start_state(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("start_state must not be empty")
        return value

    @field_validator("halt_states", mode="before")
    @classmethod
    def validate_halt_states(cls, value):
        if isinstance(value, (list, tuple, set)):
            return {label: verdict_for_label(label) for label in value}
        return value


def parse_halt_states(items: Iterable[str]) -> Dict[str, Verdict]:
    """Turn ``name`` or ``name=accept|reject`` options into a verdict mapping.

    A bare name is classified by whether it mentions "accept".
    """
    halt_states: Dict[str, Verdict] = {}
    for item in items:
        label, sep, verdict = item.partition("=")
        label = label.strip()
        if not label:
            raise SettingsError(f"Empty halt state in {item!r}")
        if not sep:
            halt_states[label] = verdict_for_label(label)
            continue
        try:
            halt_states[label] = Verdict(verdict.strip().lower())
        except ValueError as exc:
            raise SettingsError(
                f"Unknown verdict {verdict!r} for halt state {label!r} (use 'accept' or 'reject')"
            ) from exc
    return halt_states


def load_settings(path: Optional[str] = None) -> SimulatorSettings:
    """Load settings, overlaying a JSON file on the defaults.

    Without an explicit ``path`` the ``TINYTM_CONFIG`` environment variable is
    consulted; with neither the defaults are returned.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return SimulatorSettings()

    config_path = Path(path)
    if not config_path.exists():
        raise SettingsError(f"Configuration file not found at: {path}")
    try:
        overrides = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Configuration file {path} is not valid JSON: {exc}") from exc
    if not isinstance(overrides, dict):
        raise SettingsError(f"Configuration file {path} must contain a JSON object")

    merged = SimulatorSettings().model_dump()
    merged.update(overrides)
    try:
        return SimulatorSettings(**merged)
    except ValidationError as exc:
        raise SettingsError(f"Invalid configuration in {path}: {exc}") from exc


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_RULES",
    "SettingsError",
    "SimulatorSettings",
    "load_settings",
    "parse_halt_states",
]
