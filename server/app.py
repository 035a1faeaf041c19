"""FastAPI application -- routes for the PlayOps competency validator."""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session as DBSession

from eval.scenarios import TestScenario
from eval.stress_test import failed_scenarios, run_stress_test
from gameplay.controller import SessionStateError
from scoring.classifier import Thresholds, classify, is_passing, xp_for
from scoring.models import SessionMetrics
from scoring.validator import validate_session
from server.__version__ import __version__
from server.config import Settings
from server.dependencies import get_db_session, get_settings
from server.schemas import (
    ClassifyRequest,
    ClassifyResponse,
    LearningEventRequest,
    LearningEventResponse,
    RuntimeCreateRequest,
    RuntimeResponse,
    RuntimeStressTestResponse,
    SessionCancelResponse,
    SessionFinishRequest,
    SessionFinishResponse,
    SessionStartRequest,
    SessionStartResponse,
    StressTestRequest,
    StressTestResponse,
    ValidateRequest,
    ValidateResponse,
)
from server.services import runtime_service, session_service
from server.services.runtime_service import PublishRejectedError, RuntimeNotFoundError
from server.services.session_service import SessionNotFoundError

logger = logging.getLogger("playops")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: create tables, nothing else."""
    from server.db.session import init_db
    init_db(get_settings())
    ts = datetime.utcnow().isoformat() + "Z"
    logger.info("[%s] Startup: database ready", ts)
    yield
    logger.info("[%s] Shutdown: complete", datetime.utcnow().isoformat() + "Z")


app = FastAPI(title="PlayOps Validator", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


# ---- Scoring engine ----

@app.post("/answers/validate", response_model=ValidateResponse)
def answers_validate(body: ValidateRequest):
    summary = validate_session(q.model_dump() for q in body.questions)
    return summary.to_dict()


@app.post("/classify", response_model=ClassifyResponse)
def classify_session(body: ClassifyRequest):
    thresholds = Thresholds.from_dict(body.thresholds)
    metrics = SessionMetrics(
        accuracy=body.accuracy,
        elapsed_s=body.elapsed_s,
        edge_case_score=body.edge_case_score,
        session_count=body.session_count,
        timed_out=body.timed_out,
    )
    level = classify(metrics, thresholds)
    return ClassifyResponse(
        level=int(level),
        level_label=level.label,
        passed=is_passing(level),
        xp=xp_for(level, body.mode),
        thresholds=thresholds.to_dict(),
    )


@app.post("/stress-test", response_model=StressTestResponse)
def stress_test(body: StressTestRequest = StressTestRequest()):
    scenarios = None
    if body.scenarios is not None:
        scenarios = [TestScenario.from_dict(s.model_dump()) for s in body.scenarios]
    report = run_stress_test(scenarios)
    return {**report, "failures": failed_scenarios(report)}


# ---- Runtimes ----

@app.post("/runtimes", response_model=RuntimeResponse)
def runtimes_create(
    body: RuntimeCreateRequest,
    db: DBSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    try:
        runtime = runtime_service.create_runtime(db, body.name, body.competency, body.questions, body.config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return runtime_service.runtime_to_dict(runtime, settings)


@app.get("/runtimes/{runtime_id}", response_model=RuntimeResponse)
def runtimes_get(
    runtime_id: str,
    db: DBSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    try:
        runtime = runtime_service.get_runtime(db, runtime_id)
    except RuntimeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return runtime_service.runtime_to_dict(runtime, settings)


@app.post("/runtimes/{runtime_id}/stress-test", response_model=RuntimeStressTestResponse)
def runtimes_stress_test(runtime_id: str, db: DBSession = Depends(get_db_session)):
    try:
        return runtime_service.stress_test_runtime(db, runtime_id)
    except RuntimeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/runtimes/{runtime_id}/publish", response_model=RuntimeResponse)
def runtimes_publish(
    runtime_id: str,
    db: DBSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    try:
        runtime = runtime_service.publish_runtime(db, runtime_id)
    except RuntimeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PublishRejectedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return runtime_service.runtime_to_dict(runtime, settings)


# ---- Sessions ----

@app.post("/sessions", response_model=SessionStartResponse)
def sessions_start(body: SessionStartRequest, db: DBSession = Depends(get_db_session)):
    try:
        return session_service.start_session(db, body.runtime_id, body.player_id, body.mode)
    except RuntimeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/sessions/{session_id}/events", response_model=LearningEventResponse)
def sessions_event(session_id: str, body: LearningEventRequest, db: DBSession = Depends(get_db_session)):
    try:
        event = session_service.record_event(db, session_id, body.event_type, body.payload)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return LearningEventResponse(event_id=event.id, session_id=session_id, event_type=event.event_type)


@app.post("/sessions/{session_id}/finish", response_model=SessionFinishResponse)
def sessions_finish(
    session_id: str,
    body: SessionFinishRequest,
    db: DBSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
):
    try:
        return session_service.finish_session(
            db,
            settings,
            session_id,
            [a.model_dump() for a in body.answers],
            elapsed_s=body.elapsed_s,
            edge_case_score=body.edge_case_score,
            recovered_by=body.recovered_by,
        )
    except (SessionNotFoundError, RuntimeNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/sessions/{session_id}/cancel", response_model=SessionCancelResponse)
def sessions_cancel(session_id: str, db: DBSession = Depends(get_db_session)):
    try:
        return session_service.cancel_session(db, session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
