"""Play sessions: start, learning events, finish with classification, cancel."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from sqlalchemy.orm import Session as DBSession

from gameplay.controller import SessionResult, SessionStateError
from gameplay.result_log import log_result
from scoring.classifier import classify, is_passing, xp_for
from scoring.models import EdgeCaseEvent, SessionMetrics
from scoring.proof import make_receipt
from scoring.validator import validate_answer
from server.config import Settings
from server.db.models import LearningEvent, PlaySession, ProofRecord
from server.services.runtime_service import get_runtime, runtime_questions, runtime_thresholds

logger = logging.getLogger("playops.sessions")

MODES = ("training", "testing")


class SessionNotFoundError(LookupError):
    """No play session with that id."""


def _utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _get_session(db: DBSession, session_id: str) -> PlaySession:
    row = db.get(PlaySession, session_id)
    if row is None:
        raise SessionNotFoundError(f"Session not found: {session_id}")
    return row


def _require_active(row: PlaySession) -> None:
    if row.status != "active":
        raise SessionStateError(f"Session {row.id} is {row.status}")


def completed_sessions(db: DBSession, player_id: str, runtime_id: str) -> int:
    return (
        db.query(PlaySession)
        .filter(
            PlaySession.player_id == player_id,
            PlaySession.runtime_id == runtime_id,
            PlaySession.status == "completed",
        )
        .count()
    )


def start_session(db: DBSession, runtime_id: str, player_id: str, mode: str = "training") -> Dict[str, Any]:
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}")
    runtime = get_runtime(db, runtime_id)
    row = PlaySession(runtime_id=runtime.id, player_id=player_id, mode=mode, status="active")
    db.add(row)
    db.flush()
    logger.info("Session %s started: player=%s runtime=%s mode=%s", row.id, player_id, runtime.id, mode)
    return {
        "session_id": row.id,
        "runtime_id": runtime.id,
        "player_id": player_id,
        "mode": mode,
        "status": row.status,
        "session_count": completed_sessions(db, player_id, runtime.id) + 1,
        "questions": [
            {"question_id": q.question_id, "question": q.question}
            for q in runtime_questions(runtime)
        ],
    }


def record_event(db: DBSession, session_id: str, event_type: str, payload: Optional[Mapping[str, Any]] = None) -> LearningEvent:
    """Append a learning event to an active session's log."""
    row = _get_session(db, session_id)
    _require_active(row)
    event = LearningEvent(session_id=row.id, event_type=event_type, payload=dict(payload or {}))
    db.add(event)
    db.flush()
    logger.debug("Session %s event %s", row.id, event_type)
    return event


def finish_session(
    db: DBSession,
    settings: Settings,
    session_id: str,
    answers: Iterable[Mapping[str, Any]],
    elapsed_s: Optional[float] = None,
    edge_case_score: Optional[float] = None,
    recovered_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Grade the submitted answers and classify the session.

    Unanswered questions count as incorrect. elapsed_s defaults to the time
    since the session started; past the time limit it is clamped to the
    limit and the session ends as a timeout. The session count is the
    player's earlier completed sessions on this runtime plus this one. A
    passing testing-mode session earns XP and a proof receipt.
    """
    row = _get_session(db, session_id)
    _require_active(row)
    runtime = get_runtime(db, row.runtime_id)
    questions = runtime_questions(runtime)
    known = {q.question_id for q in questions}

    submitted: Dict[str, Any] = {}
    for a in answers:
        qid = str(a.get("question_id"))
        if qid not in known:
            raise ValueError(f"Unknown question id: {qid}")
        submitted[qid] = a.get("user_answer")

    results = tuple(
        validate_answer(q.question, submitted.get(q.question_id), q.acceptable_answers)
        for q in questions
    )
    correct = sum(1 for r in results if r.is_correct)

    if elapsed_s is None:
        elapsed_s = (datetime.now(timezone.utc) - _utc(row.started_at)).total_seconds()
    edge_case = None
    if edge_case_score is not None:
        edge_case_score = min(max(float(edge_case_score), 0.0), 1.0)
        edge_case = EdgeCaseEvent(recovered_by=recovered_by, score=edge_case_score)

    thresholds = runtime_thresholds(runtime, settings)
    timed_out = float(elapsed_s) > thresholds.time_limit_s
    metrics = SessionMetrics(
        accuracy=correct / len(results) if results else 0.0,
        elapsed_s=min(float(elapsed_s), thresholds.time_limit_s),
        edge_case_score=edge_case_score,
        session_count=completed_sessions(db, row.player_id, runtime.id) + 1,
        timed_out=timed_out,
    )
    level = classify(metrics, thresholds)
    result = SessionResult(
        metrics=metrics,
        level=level,
        passed=is_passing(level),
        xp=xp_for(level, row.mode),
        end_reason="timeout" if timed_out else "submitted",
        question_results=results,
        edge_case=edge_case,
    )

    row.status = "completed"
    row.finished_at = datetime.now(timezone.utc)
    row.accuracy = metrics.accuracy
    row.elapsed_s = metrics.elapsed_s
    row.edge_case_score = metrics.edge_case_score
    row.session_count = metrics.session_count
    row.level = int(level)
    row.xp = result.xp
    row.result_json = result.to_dict()

    receipt = None
    if row.mode == "testing" and result.passed:
        receipt = make_receipt(
            player_id=row.player_id,
            validator_id=runtime.id,
            competency=runtime.competency,
            level=level,
            metrics=metrics,
            xp=result.xp,
        )
        db.add(ProofRecord(
            id=receipt["receipt_id"],
            session_id=row.id,
            player_id=row.player_id,
            runtime_id=runtime.id,
            level=int(level),
            digest=receipt["digest"],
            receipt=receipt,
        ))
    db.flush()
    logger.info("Session %s finished: level %d (%s), accuracy %d%%, session #%d",
                row.id, level, level.label, result.accuracy_pct, metrics.session_count)

    try:
        log_result(settings.result_log_path, result, row.player_id, runtime.id, mode=row.mode)
    except OSError:
        logger.exception("Could not append session %s to the result log", row.id)

    return {
        "session_id": row.id,
        "status": row.status,
        "mode": row.mode,
        "receipt": receipt,
        **result.to_dict(),
    }


def cancel_session(db: DBSession, session_id: str) -> Dict[str, Any]:
    """Discard an active session. No classification, no result."""
    row = _get_session(db, session_id)
    _require_active(row)
    row.status = "cancelled"
    row.finished_at = datetime.now(timezone.utc)
    db.flush()
    logger.info("Session %s cancelled", row.id)
    return {"session_id": row.id, "status": row.status}
