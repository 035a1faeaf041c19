"""Tests for play sessions: start, events, finish, cancel, proofs."""

import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient
from server.app import app
from server.config import Settings
from server.db.models import ProofRecord
from server.db.session import get_db, init_db, reset_engine
from server.dependencies import get_settings
from gameplay.result_log import read_result_log
from scoring.proof import verify_receipt


RUNTIME = {
    "name": "Budget Crisis",
    "competency": "Crisis Management",
    "questions": [
        {"question_id": "q1", "question": "Which KPI tracks money coming in?", "acceptableAnswers": ["revenue; income"]},
        {"question_id": "q2", "question": "What should the team protect first?", "acceptableAnswers": ["customer satisfaction"]},
    ],
    "config": {"time_limit_s": 90, "thresholds": {"sessions_required": 2}},
}

GOOD_ANSWERS = [
    {"question_id": "q1", "user_answer": "Revenue"},
    {"question_id": "q2", "user_answer": "client happiness"},
]


def _settings(tmp):
    reset_engine()
    settings = Settings(
        database_url=f"sqlite:///{Path(tmp) / 'test.db'}",
        result_log_path=Path(tmp) / "results.jsonl",
    )
    init_db(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    return settings


def _start(client, mode="training", player_id="player-1"):
    runtime_id = client.post("/runtimes", json=RUNTIME).json()["id"]
    r = client.post("/sessions", json={"runtime_id": runtime_id, "player_id": player_id, "mode": mode})
    assert r.status_code == 200
    return runtime_id, r.json()


def test_start_session_hides_answers():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, body = _start(client)
            assert body["status"] == "active"
            assert body["session_count"] == 1
            assert body["questions"] == [
                {"question_id": "q1", "question": "Which KPI tracks money coming in?"},
                {"question_id": "q2", "question": "What should the team protect first?"},
            ]
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_start_session_unknown_runtime_is_404():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            r = client.post("/sessions", json={"runtime_id": "nope", "player_id": "p"})
            assert r.status_code == 404
            r = client.post("/sessions", json={"runtime_id": "nope", "player_id": "p", "mode": "exam"})
            assert r.status_code == 422
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_events_are_logged_while_active():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client)
            r = client.post(f"/sessions/{s['session_id']}/events",
                            json={"event_type": "edge_case_shown", "payload": {"at_s": 60}})
            assert r.status_code == 200
            assert r.json()["event_type"] == "edge_case_shown"
            assert client.post("/sessions/nope/events", json={"event_type": "x"}).status_code == 404
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_finish_training_session():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            client = TestClient(app)
            runtime_id, s = _start(client)
            r = client.post(f"/sessions/{s['session_id']}/finish",
                            json={"answers": GOOD_ANSWERS, "elapsed_s": 60, "edge_case_score": 0.9})
            assert r.status_code == 200
            body = r.json()
            assert body["status"] == "completed"
            assert body["accuracy_pct"] == 100
            assert body["level"] == 2  # first session, Mastery needs two
            assert body["xp"] == 0
            assert body["receipt"] is None
            assert body["metrics"]["session_count"] == 1

            records = read_result_log(settings.result_log_path)
            assert len(records) == 1
            assert records[0]["validator_id"] == runtime_id
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_session_count_unlocks_mastery_and_testing_emits_proof():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            client = TestClient(app)
            runtime_id, s1 = _start(client)
            client.post(f"/sessions/{s1['session_id']}/finish",
                        json={"answers": GOOD_ANSWERS, "elapsed_s": 60, "edge_case_score": 0.9})

            r = client.post("/sessions", json={"runtime_id": runtime_id, "player_id": "player-1", "mode": "testing"})
            s2 = r.json()
            assert s2["session_count"] == 2

            r = client.post(f"/sessions/{s2['session_id']}/finish",
                            json={"answers": GOOD_ANSWERS, "elapsed_s": 60, "edge_case_score": 0.9})
            body = r.json()
            assert body["level"] == 3
            assert body["xp"] == 500
            receipt = body["receipt"]
            assert receipt["receipt_id"].startswith("PRF-")
            assert receipt["competency"] == "Crisis Management"
            assert verify_receipt(receipt)

            with get_db(settings) as db:
                proof = db.get(ProofRecord, receipt["receipt_id"])
                assert proof is not None
                assert proof.session_id == s2["session_id"]
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_failing_testing_session_has_no_proof():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client, mode="testing")
            r = client.post(f"/sessions/{s['session_id']}/finish",
                            json={"answers": [{"question_id": "q1", "user_answer": "banana"}], "elapsed_s": 30})
            body = r.json()
            assert body["level"] == 1
            assert body["passed"] is False
            assert body["xp"] == 0
            assert body["receipt"] is None
            assert body["question_results"][1]["detail"] == "empty user answer"
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_finish_rejects_unknown_question():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client)
            r = client.post(f"/sessions/{s['session_id']}/finish",
                            json={"answers": [{"question_id": "q9", "user_answer": "x"}]})
            assert r.status_code == 400
            # Still active after the rejected finish
            r = client.post(f"/sessions/{s['session_id']}/finish", json={"answers": GOOD_ANSWERS, "elapsed_s": 10})
            assert r.status_code == 200
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_finish_twice_is_409():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client)
            url = f"/sessions/{s['session_id']}/finish"
            assert client.post(url, json={"answers": GOOD_ANSWERS, "elapsed_s": 10}).status_code == 200
            assert client.post(url, json={"answers": GOOD_ANSWERS, "elapsed_s": 10}).status_code == 409
            assert client.post(f"/sessions/{s['session_id']}/cancel").status_code == 409
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_cancel_discards_session():
    with tempfile.TemporaryDirectory() as tmp:
        settings = _settings(tmp)
        try:
            client = TestClient(app)
            runtime_id, s = _start(client)
            r = client.post(f"/sessions/{s['session_id']}/cancel")
            assert r.status_code == 200
            assert r.json()["status"] == "cancelled"

            assert client.post(f"/sessions/{s['session_id']}/finish", json={"answers": []}).status_code == 409
            assert client.post(f"/sessions/{s['session_id']}/events", json={"event_type": "x"}).status_code == 409
            assert client.post("/sessions/nope/cancel").status_code == 404

            # Cancelled sessions do not count toward mastery
            r = client.post("/sessions", json={"runtime_id": runtime_id, "player_id": "player-1"})
            assert r.json()["session_count"] == 1
            assert read_result_log(settings.result_log_path) == []
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_finish_past_time_limit_is_timeout():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client, mode="testing")
            r = client.post(f"/sessions/{s['session_id']}/finish",
                            json={"answers": GOOD_ANSWERS, "elapsed_s": 500, "edge_case_score": 1.0})
            assert r.status_code == 200
            body = r.json()
            assert body["accuracy_pct"] == 100
            assert body["end_reason"] == "timeout"
            assert body["metrics"]["elapsed_s"] == 90
            assert body["metrics"]["timed_out"] is True
            assert body["level"] == 1
            assert body["xp"] == 0
            assert body["receipt"] is None
        finally:
            app.dependency_overrides.clear()
            reset_engine()


def test_finish_within_time_limit_is_submitted():
    with tempfile.TemporaryDirectory() as tmp:
        _settings(tmp)
        try:
            client = TestClient(app)
            _, s = _start(client)
            r = client.post(f"/sessions/{s['session_id']}/finish",
                            json={"answers": GOOD_ANSWERS, "elapsed_s": 90})
            body = r.json()
            assert body["end_reason"] == "submitted"
            assert body["metrics"]["timed_out"] is False
            assert body["level"] == 2
        finally:
            app.dependency_overrides.clear()
            reset_engine()
