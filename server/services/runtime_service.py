"""Validator runtimes: creation, stress-test certification and the publish gate."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session as DBSession

from eval.scenarios import DEFAULT_SCENARIOS, scenarios_for_questions
from eval.stress_test import failed_scenarios, run_stress_test
from scoring.classifier import Thresholds
from scoring.models import QuestionSpec
from server.config import Settings
from server.db.models import StressTestRecord, ValidatorRuntime

logger = logging.getLogger("playops.runtimes")


class RuntimeNotFoundError(LookupError):
    """No validator runtime with that id."""


class PublishRejectedError(RuntimeError):
    """The runtime has no passing stress test on record."""


def create_runtime(
    db: DBSession,
    name: str,
    competency: str,
    questions: List[Mapping[str, Any]],
    config: Optional[Mapping[str, Any]] = None,
) -> ValidatorRuntime:
    """
    Store a draft runtime. Questions are normalized to
    {question_id, question, acceptable_answers} on the way in.
    """
    specs = [QuestionSpec.from_dict(q, i) for i, q in enumerate(questions)]
    ids = [s.question_id for s in specs]
    if len(set(ids)) != len(ids):
        raise ValueError("Duplicate question ids")
    row = ValidatorRuntime(
        name=name,
        competency=competency,
        questions=[s.to_dict() for s in specs],
        config=dict(config or {}),
    )
    db.add(row)
    db.flush()
    logger.info("Runtime %s created (%d questions)", row.id, len(specs))
    return row


def get_runtime(db: DBSession, runtime_id: str) -> ValidatorRuntime:
    row = db.get(ValidatorRuntime, runtime_id)
    if row is None:
        raise RuntimeNotFoundError(f"Runtime not found: {runtime_id}")
    return row


def runtime_questions(runtime: ValidatorRuntime) -> List[QuestionSpec]:
    return [QuestionSpec.from_dict(q, i) for i, q in enumerate(runtime.questions or [])]


def runtime_thresholds(runtime: ValidatorRuntime, settings: Settings) -> Thresholds:
    """
    Thresholds for a runtime.

    config.time_limit_s (or the server default) sets the limit and its tight
    limit; config.thresholds overrides individual cutoffs.
    """
    config = runtime.config or {}
    try:
        time_limit = float(config.get("time_limit_s") or settings.default_time_limit_s)
    except (TypeError, ValueError):
        time_limit = settings.default_time_limit_s
    base = Thresholds.for_time_limit(
        time_limit,
        edge_case_threshold=settings.default_edge_threshold,
        sessions_required=settings.default_sessions_required,
    )
    return base.overlay(config.get("thresholds"))


def runtime_to_dict(runtime: ValidatorRuntime, settings: Settings) -> Dict[str, Any]:
    return {
        "id": runtime.id,
        "name": runtime.name,
        "competency": runtime.competency,
        "status": runtime.status,
        "approved_for_publish": bool(runtime.approved_for_publish),
        "questions": list(runtime.questions or []),
        "config": dict(runtime.config or {}),
        "thresholds": runtime_thresholds(runtime, settings).to_dict(),
    }


def stress_test_runtime(db: DBSession, runtime_id: str) -> Dict[str, Any]:
    """
    Run the built-in battery plus the runtime's own answer-key scenarios.

    Stores a StressTestRecord and sets approved_for_publish to the outcome.
    """
    runtime = get_runtime(db, runtime_id)
    scenarios = list(DEFAULT_SCENARIOS) + scenarios_for_questions(runtime_questions(runtime))
    report = run_stress_test(scenarios)
    failures = failed_scenarios(report)
    record = StressTestRecord(
        runtime_id=runtime.id,
        overall_status=report["overall_status"],
        passed_count=report["passed_count"],
        failed_count=report["failed_count"],
        report=report,
        notes=", ".join(f["label"] for f in failures) or None,
    )
    db.add(record)
    runtime.approved_for_publish = report["overall_status"] == "passed"
    db.flush()
    if failures:
        logger.warning("Runtime %s failed stress test: %s", runtime.id, record.notes)
    return {
        "runtime_id": runtime.id,
        "approved_for_publish": runtime.approved_for_publish,
        "failures": failures,
        **report,
    }


def latest_stress_test(db: DBSession, runtime_id: str) -> Optional[StressTestRecord]:
    return (
        db.query(StressTestRecord)
        .filter(StressTestRecord.runtime_id == runtime_id)
        .order_by(StressTestRecord.id.desc())
        .first()
    )


def publish_runtime(db: DBSession, runtime_id: str) -> ValidatorRuntime:
    """Publish a runtime whose most recent stress test passed."""
    runtime = get_runtime(db, runtime_id)
    last = latest_stress_test(db, runtime_id)
    if last is None or last.overall_status != "passed":
        raise PublishRejectedError("Runtime must pass a stress test before publishing")
    runtime.status = "published"
    db.flush()
    logger.info("Runtime %s published", runtime.id)
    return runtime
