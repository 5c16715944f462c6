from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator

from tinytm.config import SimulatorSettings
from tinytm.engine import Verdict, halt_states_from_labels
from tinytm.machine import MachineConfiguration, StepLimitExceeded
from tinytm.transitions import TransitionParseError, parse_transitions
from tinytm.visualizer import MachineNotReady

from .session import SessionRecord, SessionStore

logger = logging.getLogger(__name__)


def _configuration_to_dict(config: MachineConfiguration) -> dict:
    return {
        "tape": list(config.tape),
        "head_position": config.head_position,
        "current_state": config.current_state,
        "steps": config.steps,
        "halted": config.halted,
        "status": config.status.value,
        "message": config.message,
    }


def _parse_error_to_dict(error: TransitionParseError) -> dict:
    detail = {
        "kind": error.kind,
        "line": error.line,
        "line_text": error.line_text,
        "message": error.message,
    }
    for attribute in ("field", "value", "state", "symbol"):
        if hasattr(error, attribute):
            detail[attribute] = getattr(error, attribute)
    return detail


def _labels_to_verdicts(value):
    if isinstance(value, (list, tuple, set)):
        return halt_states_from_labels(value)
    return value


class RulesPayload(BaseModel):
    rules: str


class ParseErrorDetail(BaseModel):
    kind: str
    line: int
    line_text: str
    message: str
    field: Optional[str] = None
    value: Optional[str] = None
    state: Optional[str] = None
    symbol: Optional[str] = None


class RuleEntry(BaseModel):
    state: str
    read: str
    next_state: str
    write: str
    move: str
    line: Optional[int]


class ParseResponse(BaseModel):
    rule_count: int
    rules: List[RuleEntry]
    text: str


class SessionConfiguration(BaseModel):
    rules: Optional[str] = None
    tape: Optional[str] = None
    start_state: Optional[str] = None
    halt_states: Optional[Dict[str, Verdict]] = None
    interval_ms: Optional[int] = Field(default=None, ge=10, le=1000)
    history_limit: Optional[int] = Field(default=None, ge=1)
    max_steps: Optional[int] = Field(default=None, ge=1)

    @field_validator("halt_states", mode="before")
    @classmethod
    def validate_halt_states(cls, value):
        return _labels_to_verdicts(value)

    @field_validator("start_state")
    @classmethod
    def validate_start_state(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("start_state must not be empty")
        return value


class SessionState(BaseModel):
    tape: List[str]
    head_position: int
    current_state: str
    steps: int
    halted: bool
    status: str
    message: str


class SessionPayload(BaseModel):
    session_id: str
    rules: str
    rule_count: int
    parse_error: Optional[ParseErrorDetail]
    tape_input: str
    start_state: str
    halt_states: Dict[str, Verdict]
    state: SessionState
    history: List[SessionState]
    finished: bool
    running: bool
    history_size: int
    breakpoints: List[str]
    hit_breakpoint: Optional[str]
    interval_ms: int


class StepResponse(SessionPayload):
    states: List[SessionState]


class StepRequest(BaseModel):
    count: int = Field(default=1, ge=1)


class RunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    ignore_breakpoints: bool = False


class PlayRequest(BaseModel):
    interval_ms: Optional[int] = Field(default=None, ge=10, le=1000)


class BreakpointRequest(BaseModel):
    state: str = Field(min_length=1)


def create_app(
    store: Optional[SessionStore] = None,
    *,
    settings: Optional[SimulatorSettings] = None,
) -> FastAPI:
    session_store = store or SessionStore()
    defaults = settings or SimulatorSettings()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        session_store.clear()

    app = FastAPI(title="TinyTM API", version="0.1.0", lifespan=lifespan)

    def _get_record(session_id: str) -> SessionRecord:
        try:
            return session_store.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    def _payload_fields(record: SessionRecord) -> dict:
        session = record.session
        error = session.parse_error
        return {
            "session_id": record.session_id,
            "rules": session.rules,
            "rule_count": session.parse_result.rule_count,
            "parse_error": _parse_error_to_dict(error) if error is not None else None,
            "tape_input": session.tape_input,
            "start_state": session.start_state,
            "halt_states": dict(session.halt_states),
            "state": SessionState(**_configuration_to_dict(session.current_state())),
            "history": [SessionState(**_configuration_to_dict(item)) for item in session.history],
            "finished": session.is_finished(),
            "running": record.scheduler.running,
            "history_size": len(session.history),
            "breakpoints": session.list_breakpoints(),
            "hit_breakpoint": session.hit_breakpoint,
            "interval_ms": record.scheduler.interval_ms,
        }

    def _build_payload(record: SessionRecord) -> SessionPayload:
        return SessionPayload(**_payload_fields(record))

    def _build_step_response(record: SessionRecord, states: List[MachineConfiguration]) -> StepResponse:
        return StepResponse(
            states=[SessionState(**_configuration_to_dict(item)) for item in states],
            **_payload_fields(record),
        )

    def _ensure_paused(record: SessionRecord) -> None:
        if record.scheduler.running:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Session is running; pause it first",
            )

    @app.post("/api/parse", response_model=ParseResponse)
    def parse_rules(payload: RulesPayload) -> ParseResponse:
        result = parse_transitions(payload.rules)
        if result.error is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=_parse_error_to_dict(result.error),
            )
        table = result.unwrap()
        rules = [
            RuleEntry(
                state=state,
                read=symbol,
                next_state=rule.next_state,
                write=rule.write_symbol,
                move=rule.move.value,
                line=table.source_line((state, symbol)),
            )
            for (state, symbol), rule in table.items()
        ]
        return ParseResponse(rule_count=result.rule_count, rules=rules, text=table.to_text())

    @app.post("/api/session", response_model=SessionPayload, status_code=status.HTTP_201_CREATED)
    def create_session(payload: SessionConfiguration) -> SessionPayload:
        rules = defaults.rules if payload.rules is None else payload.rules
        result = parse_transitions(rules)
        if result.error is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=_parse_error_to_dict(result.error),
            )

        record = session_store.create_session(
            rules=rules,
            tape_input=defaults.tape if payload.tape is None else payload.tape,
            start_state=payload.start_state or defaults.start_state,
            halt_states=payload.halt_states if payload.halt_states is not None else defaults.halt_states,
            max_steps=payload.max_steps if payload.max_steps is not None else defaults.max_steps,
            history_limit=payload.history_limit or defaults.history_limit,
            interval_ms=payload.interval_ms or defaults.interval_ms,
        )
        logger.info("created session %s (%d rules)", record.session_id, result.rule_count)
        return _build_payload(record)

    @app.get("/api/session/{session_id}", response_model=SessionPayload)
    def get_session(session_id: str) -> SessionPayload:
        return _build_payload(_get_record(session_id))

    @app.put("/api/session/{session_id}/rules", response_model=SessionPayload)
    def update_rules(session_id: str, payload: RulesPayload) -> SessionPayload:
        record = _get_record(session_id)
        record.scheduler.pause()
        result = record.session.update_rules(payload.rules)
        if result.error is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=_parse_error_to_dict(result.error),
            )
        return _build_payload(record)

    @app.post("/api/session/{session_id}/reset", response_model=SessionPayload)
    def reset_session(session_id: str) -> SessionPayload:
        try:
            record = session_store.reset(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return _build_payload(record)

    @app.post("/api/session/{session_id}/step", response_model=StepResponse)
    def step_session(session_id: str, payload: StepRequest) -> StepResponse:
        record = _get_record(session_id)
        _ensure_paused(record)
        try:
            states = record.session.step_forward(payload.count)
        except (StepLimitExceeded, MachineNotReady) as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return _build_step_response(record, list(states))

    @app.post("/api/session/{session_id}/run", response_model=StepResponse)
    def run_session(session_id: str, payload: RunRequest) -> StepResponse:
        record = _get_record(session_id)
        _ensure_paused(record)
        session = record.session
        original_breakpoints: Optional[set[str]] = None
        if payload.ignore_breakpoints:
            original_breakpoints = set(session.breakpoints)
            session.clear_breakpoints()
            session.hit_breakpoint = None

        try:
            states = list(session.run_until_break(payload.limit))
        except (StepLimitExceeded, MachineNotReady) as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        finally:
            if original_breakpoints is not None:
                session.breakpoints = set(original_breakpoints)
                session.hit_breakpoint = None

        return _build_step_response(record, states)

    @app.post("/api/session/{session_id}/play", response_model=SessionPayload)
    def play_session(session_id: str, payload: PlayRequest) -> SessionPayload:
        record = _get_record(session_id)
        if not record.session.is_ready():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="No valid transition table; fix the rules first",
            )
        if not record.scheduler.run(payload.interval_ms):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Session is already running or has halted",
            )
        return _build_payload(record)

    @app.post("/api/session/{session_id}/pause", response_model=SessionPayload)
    def pause_session(session_id: str) -> SessionPayload:
        record = _get_record(session_id)
        record.scheduler.pause()
        return _build_payload(record)

    @app.post("/api/session/{session_id}/breakpoints", response_model=SessionPayload)
    def add_breakpoint(session_id: str, payload: BreakpointRequest) -> SessionPayload:
        record = _get_record(session_id)
        record.session.add_breakpoint(payload.state)
        return _build_payload(record)

    @app.delete("/api/session/{session_id}/breakpoints/{state}", response_model=SessionPayload)
    def remove_breakpoint(session_id: str, state: str) -> SessionPayload:
        record = _get_record(session_id)
        removed = record.session.remove_breakpoint(state)
        if not removed:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Breakpoint not found for state={state}",
            )
        return _build_payload(record)

    @app.delete("/api/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_session(session_id: str) -> Response:
        removed = session_store.remove(session_id)
        if not removed:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown session id: {session_id}",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app"]
