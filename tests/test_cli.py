"""Tests for scoring/cli.py -- validate, classify, stress-test, simulate."""

import json
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# Import after path setup
import scoring.cli as cli


def _run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["playops", *argv])
    cli.main()


def test_validate_single_answer(monkeypatch, capsys):
    _run(monkeypatch, "validate", "--answer", "client happiness",
         "--accept", "customer satisfaction; client happiness")
    out = capsys.readouterr().out
    assert "Accuracy: 1/1 (100%)" in out


def test_validate_batch_json(monkeypatch, capsys):
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "answers.json"
        path.write_text(json.dumps([
            {"question": "a", "userAnswer": "revenue", "correctAnswers": ["revenue"]},
            {"question": "b", "userAnswer": "rev", "correctAnswers": ["roi"]},
        ]), encoding="utf-8")
        _run(monkeypatch, "validate", "--questions", str(path), "--json")
    body = json.loads(capsys.readouterr().out)
    assert body["accuracy_pct"] == 50


def test_validate_without_input_exits(monkeypatch):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, "validate")
    assert exc.value.code == 2


def test_classify(monkeypatch, capsys):
    _run(monkeypatch, "classify", "--accuracy", "0.96", "--time", "70",
         "--edge", "0.9", "--sessions", "3", "--mode", "testing")
    out = capsys.readouterr().out
    assert "Level 3: Mastery" in out
    assert "xp(testing)=500" in out


def test_classify_with_time_limit(monkeypatch, capsys):
    _run(monkeypatch, "classify", "--accuracy", "0.92", "--time", "170", "--time-limit", "180")
    assert "Level 2: Proficient" in capsys.readouterr().out


def test_stress_test_passes(monkeypatch, capsys):
    _run(monkeypatch, "stress-test")
    assert "Overall: passed" in capsys.readouterr().out


def test_stress_test_failure_exits_1(monkeypatch, capsys):
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "bad.jsonl"
        path.write_text(json.dumps({
            "label": "bad", "expected_accuracy": 100,
            "questions": [{"question": "q", "userAnswer": "banana", "correctAnswers": ["revenue"]}],
        }) + "\n", encoding="utf-8")
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch, "stress-test", "--scenarios", str(path))
    assert exc.value.code == 1
    assert "diverged: bad" in capsys.readouterr().out


def test_simulate_logs_and_counts_sessions(monkeypatch, capsys):
    with tempfile.TemporaryDirectory() as tmp:
        log = Path(tmp) / "results.jsonl"
        _run(monkeypatch, "simulate", "--log", str(log), "--submit-at", "140")
        _run(monkeypatch, "simulate", "--log", str(log), "--submit-at", "140", "--mode", "testing")
        _run(monkeypatch, "simulate", "--log", str(log), "--submit-at", "140", "--mode", "testing")
        records = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]

    assert [r["session_count"] for r in records] == [1, 2, 3]
    assert all(r["accuracy_pct"] == 100 for r in records)
    assert all(r["edge_score"] == 1.0 for r in records)
    assert records[0]["level_label"] == "Proficient"
    assert records[2]["level_label"] == "Mastery"
    assert records[2]["xp"] == 500
    assert "Logged to" in capsys.readouterr().out


def test_simulate_blank_answers_needs_work(monkeypatch):
    with tempfile.TemporaryDirectory() as tmp:
        log = Path(tmp) / "results.jsonl"
        _run(monkeypatch, "simulate", "--log", str(log), "--blank")
        record = json.loads(log.read_text(encoding="utf-8").strip())
    assert record["level"] == 1
    assert record["end_reason"] == "timeout"
    assert record["time_s"] == 180


def test_simulate_without_submit_times_out_as_needs_work(monkeypatch, capsys):
    with tempfile.TemporaryDirectory() as tmp:
        log = Path(tmp) / "results.jsonl"
        _run(monkeypatch, "simulate", "--log", str(log), "--mode", "testing")
        record = json.loads(log.read_text(encoding="utf-8").strip())
    assert record["accuracy_pct"] == 100
    assert record["end_reason"] == "timeout"
    assert record["level"] == 1
    assert record["passed"] is False
    assert record["xp"] == 0
    assert "ended by timeout" in capsys.readouterr().out


def test_classify_timed_out_session(monkeypatch, capsys):
    _run(monkeypatch, "classify", "--accuracy", "1.0", "--time", "90",
         "--edge", "1.0", "--sessions", "5", "--timed-out")
    assert "Level 1: Needs Work" in capsys.readouterr().out
