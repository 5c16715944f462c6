from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from tinytm.engine import HaltStatesLike
from tinytm.runner import RunScheduler
from tinytm.visualizer import SimulatorSession


@dataclass
class SessionRecord:
    session_id: str
    session: SimulatorSession
    scheduler: RunScheduler


class SessionStore:
    """Thread-safe registry for SimulatorSession instances."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    def create_session(
        self,
        *,
        rules: str,
        tape_input: str,
        start_state: str,
        halt_states: HaltStatesLike,
        max_steps: Optional[int] = None,
        history_limit: int = 200,
        interval_ms: int = 200,
    ) -> SessionRecord:
        session = SimulatorSession(
            rules=rules,
            tape_input=tape_input,
            start_state=start_state,
            halt_states=halt_states,
            max_steps=max_steps,
            history_limit=history_limit,
        )
        session_id = uuid.uuid4().hex
        record = SessionRecord(
            session_id=session_id,
            session=session,
            scheduler=RunScheduler(session, interval_ms=interval_ms),
        )
        with self._lock:
            self._sessions[session_id] = record
        return record

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            try:
                return self._sessions[session_id]
            except KeyError as exc:
                raise KeyError(f"Unknown session id: {session_id}") from exc

    def reset(self, session_id: str) -> SessionRecord:
        record = self.get(session_id)
        record.session.clear_breakpoints()
        record.scheduler.reset()
        return record

    def remove(self, session_id: str) -> bool:
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is None:
            return False
        record.scheduler.close()
        return True

    def clear(self) -> None:
        with self._lock:
            records = list(self._sessions.values())
            self._sessions.clear()
        for record in records:
            record.scheduler.close()


__all__ = ["SessionRecord", "SessionStore"]
