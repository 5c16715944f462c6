from __future__ import annotations

import time
import unittest

from fastapi.testclient import TestClient

from tinytm.config import DEFAULT_RULES
from tinytm.webui import SessionStore, create_app


class WebUISessionApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = SessionStore()
        self.addCleanup(self.store.clear)
        self.client = TestClient(create_app(self.store))

    def _create_session(self, **payload):
        response = self.client.post("/api/session", json=payload)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_create_session_uses_defaults(self) -> None:
        data = self._create_session()
        self.assertIn("session_id", data)
        self.assertEqual(data["rules"], DEFAULT_RULES)
        self.assertEqual(data["rule_count"], 6)
        self.assertIsNone(data["parse_error"])
        self.assertEqual(data["tape_input"], "1011")
        self.assertEqual(data["start_state"], "q0")
        self.assertEqual(data["halt_states"]["halt-accept"], "accept")
        self.assertEqual(data["state"]["steps"], 0)
        self.assertEqual(data["state"]["status"], "idle")
        self.assertEqual(len(data["history"]), data["history_size"])
        self.assertFalse(data["finished"])
        self.assertFalse(data["running"])

    def test_create_session_rejects_bad_rules(self) -> None:
        response = self.client.post(
            "/api/session",
            json={"rules": "(q0,1) -> (q1,0,R)\n(q0,1) -> (q2,1,L)"},
        )
        self.assertEqual(response.status_code, 422, response.text)
        detail = response.json()["detail"]
        self.assertEqual(detail["kind"], "DuplicateKeyError")
        self.assertEqual(detail["line"], 2)
        self.assertEqual(detail["state"], "q0")
        self.assertEqual(detail["symbol"], "1")

    def test_halt_states_list_is_accepted(self) -> None:
        data = self._create_session(halt_states=["halt-accept", "q2"])
        self.assertEqual(data["halt_states"], {"halt-accept": "accept", "q2": "reject"})

    def test_step_advances_state(self) -> None:
        session_id = self._create_session()["session_id"]
        response = self.client.post(f"/api/session/{session_id}/step", json={"count": 2})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual([state["steps"] for state in payload["states"]], [1, 2])
        self.assertEqual(payload["state"]["tape"], ["0", "1", "1", "1"])
        self.assertEqual(payload["history"][-1]["steps"], 2)
        self.assertFalse(payload["finished"])

    def test_run_to_completion(self) -> None:
        session_id = self._create_session()["session_id"]
        response = self.client.post(f"/api/session/{session_id}/run", json={})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertTrue(payload["finished"])
        self.assertEqual(payload["state"]["status"], "halted-accept")
        self.assertEqual(payload["state"]["current_state"], "halt-accept")
        self.assertEqual(payload["state"]["steps"], 5)
        self.assertEqual("".join(payload["state"]["tape"]), "0100b")
        self.assertEqual(payload["state"]["head_position"], 4)

    def test_run_until_break_hits_breakpoint(self) -> None:
        session_id = self._create_session()["session_id"]
        added = self.client.post(f"/api/session/{session_id}/breakpoints", json={"state": "q0"})
        self.assertEqual(added.status_code, 200, added.text)
        response = self.client.post(f"/api/session/{session_id}/run", json={"limit": 10})
        payload = response.json()
        self.assertEqual(payload["hit_breakpoint"], "q0")
        self.assertFalse(payload["finished"])

    def test_run_ignoring_breakpoints(self) -> None:
        session_id = self._create_session()["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"state": "q0"})
        response = self.client.post(
            f"/api/session/{session_id}/run",
            json={"ignore_breakpoints": True},
        )
        payload = response.json()
        self.assertTrue(payload["finished"])
        self.assertEqual(payload["breakpoints"], ["q0"])

    def test_add_and_remove_breakpoint(self) -> None:
        session_id = self._create_session()["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"state": "q1"})
        removed = self.client.delete(f"/api/session/{session_id}/breakpoints/q1")
        self.assertEqual(removed.status_code, 200, removed.text)
        self.assertEqual(removed.json()["breakpoints"], [])
        missing = self.client.delete(f"/api/session/{session_id}/breakpoints/q1")
        self.assertEqual(missing.status_code, 404)

    def test_reset_restores_initial_state(self) -> None:
        session_id = self._create_session()["session_id"]
        self.client.post(f"/api/session/{session_id}/breakpoints", json={"state": "q1"})
        self.client.post(f"/api/session/{session_id}/step", json={"count": 3})
        response = self.client.post(f"/api/session/{session_id}/reset")
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["state"]["steps"], 0)
        self.assertEqual(payload["history_size"], 1)
        self.assertEqual(payload["breakpoints"], [])

    def test_step_limit_conflict(self) -> None:
        session_id = self._create_session(max_steps=1)["session_id"]
        ok = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(ok.status_code, 200, ok.text)
        conflict = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(conflict.status_code, 409, conflict.text)

    def test_update_rules(self) -> None:
        session_id = self._create_session()["session_id"]
        response = self.client.put(
            f"/api/session/{session_id}/rules",
            json={"rules": "(q0, 1) -> (halt-reject, 1, S)"},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["rule_count"], 1)

        bad = self.client.put(f"/api/session/{session_id}/rules", json={"rules": "(q0, 1) -> (q1, 0)"})
        self.assertEqual(bad.status_code, 422, bad.text)
        self.assertEqual(bad.json()["detail"]["kind"], "RuleSyntaxError")

        current = self.client.get(f"/api/session/{session_id}").json()
        self.assertEqual(current["state"]["status"], "error")
        self.assertEqual(current["parse_error"]["line"], 1)

        conflict = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(conflict.status_code, 409)

    def test_play_runs_in_background(self) -> None:
        session_id = self._create_session(interval_ms=10)["session_id"]
        response = self.client.post(f"/api/session/{session_id}/play", json={})
        self.assertEqual(response.status_code, 200, response.text)

        deadline = time.monotonic() + 5
        payload = self.client.get(f"/api/session/{session_id}").json()
        while not payload["finished"] and time.monotonic() < deadline:
            time.sleep(0.02)
            payload = self.client.get(f"/api/session/{session_id}").json()
        self.assertTrue(payload["finished"])
        self.assertEqual(payload["state"]["status"], "halted-accept")

        again = self.client.post(f"/api/session/{session_id}/play", json={})
        self.assertEqual(again.status_code, 409)

    def test_pause_stops_background_run(self) -> None:
        session_id = self._create_session(
            rules="(loop, b) -> (loop, b, R)",
            tape="",
            start_state="loop",
            interval_ms=10,
        )["session_id"]
        self.client.post(f"/api/session/{session_id}/play", json={})
        blocked = self.client.post(f"/api/session/{session_id}/step", json={"count": 1})
        self.assertEqual(blocked.status_code, 409)

        paused = self.client.post(f"/api/session/{session_id}/pause")
        self.assertEqual(paused.status_code, 200, paused.text)
        payload = paused.json()
        self.assertFalse(payload["running"])
        self.assertEqual(payload["state"]["message"], "Paused.")

    def test_parse_endpoint(self) -> None:
        response = self.client.post("/api/parse", json={"rules": DEFAULT_RULES})
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["rule_count"], 6)
        self.assertEqual(payload["rules"][0]["state"], "q0")
        self.assertEqual(payload["rules"][0]["line"], 3)

        bad = self.client.post("/api/parse", json={"rules": "(q0,11) -> (q1,0,R)"})
        self.assertEqual(bad.status_code, 422)
        detail = bad.json()["detail"]
        self.assertEqual(detail["kind"], "SymbolLengthError")
        self.assertEqual(detail["value"], "11")

    def test_unknown_session(self) -> None:
        self.assertEqual(self.client.get("/api/session/missing").status_code, 404)
        self.assertEqual(self.client.post("/api/session/missing/reset").status_code, 404)

    def test_shutdown_stops_running_sessions(self) -> None:
        store = SessionStore()
        with TestClient(create_app(store)) as client:
            response = client.post(
                "/api/session",
                json={
                    "rules": "(loop, b) -> (loop, b, R)",
                    "tape": "",
                    "start_state": "loop",
                    "interval_ms": 10,
                },
            )
            session_id = response.json()["session_id"]
            client.post(f"/api/session/{session_id}/play", json={})
            record = store.get(session_id)
            self.assertTrue(record.scheduler.running)
        self.assertFalse(record.scheduler.running)
        with self.assertRaises(KeyError):
            store.get(session_id)

    def test_delete_session(self) -> None:
        session_id = self._create_session()["session_id"]
        self.assertEqual(self.client.delete(f"/api/session/{session_id}").status_code, 204)
        self.assertEqual(self.client.delete(f"/api/session/{session_id}").status_code, 404)


if __name__ == "__main__":
    unittest.main()
