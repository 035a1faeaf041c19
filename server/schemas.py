"""Pydantic request/response schemas for the PlayOps validator API."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ---- Answer validation ----

class QuestionAnswer(BaseModel):
    question: str = ""
    user_answer: Optional[str] = None
    acceptable_answers: List[str] = Field(default_factory=list)


class ValidateRequest(BaseModel):
    questions: List[QuestionAnswer] = Field(default_factory=list)


class QuestionResultSchema(BaseModel):
    question: str
    user_answer: Optional[str] = None
    acceptable_answers: List[str]
    is_correct: bool
    reason: str
    detail: str
    matched_answer: Optional[str] = None


class ValidateResponse(BaseModel):
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    accuracy: float
    accuracy_pct: int
    details: List[QuestionResultSchema]


# ---- Classification ----

class ClassifyRequest(BaseModel):
    accuracy: float = Field(..., ge=0.0, le=1.0)
    elapsed_s: float = Field(..., ge=0.0)
    edge_case_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    session_count: int = Field(default=1, ge=0)
    timed_out: bool = False
    mode: str = Field(default="training", pattern="^(training|testing)$")
    thresholds: Dict[str, Any] = Field(default_factory=dict)


class ClassifyResponse(BaseModel):
    level: int
    level_label: str
    passed: bool
    xp: int
    thresholds: Dict[str, Any]


# ---- Stress test ----

class ScenarioSchema(BaseModel):
    label: str
    questions: List[Dict[str, Any]] = Field(default_factory=list)
    expected_accuracy: int = Field(..., ge=0, le=100)
    expected_outcome: str = "match"


class StressTestRequest(BaseModel):
    scenarios: Optional[List[ScenarioSchema]] = None


class StressTestResponse(BaseModel):
    overall_status: str
    passed_count: int
    failed_count: int
    failures: List[Dict[str, Any]]
    scenarios: List[Dict[str, Any]]


# ---- Runtimes ----

class RuntimeCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    competency: str = Field(..., min_length=1, max_length=255)
    questions: List[Dict[str, Any]] = Field(..., min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)


class RuntimeResponse(BaseModel):
    id: str
    name: str
    competency: str
    status: str
    approved_for_publish: bool
    questions: List[Dict[str, Any]]
    config: Dict[str, Any]
    thresholds: Dict[str, Any]


class RuntimeStressTestResponse(StressTestResponse):
    runtime_id: str
    approved_for_publish: bool


# ---- Sessions ----

class SessionStartRequest(BaseModel):
    runtime_id: str
    player_id: str = Field(..., min_length=1, max_length=255)
    mode: str = Field(default="training", pattern="^(training|testing)$")


class SessionStartResponse(BaseModel):
    session_id: str
    runtime_id: str
    player_id: str
    mode: str
    status: str
    session_count: int
    questions: List[Dict[str, Any]]


class LearningEventRequest(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=64)
    payload: Dict[str, Any] = Field(default_factory=dict)


class LearningEventResponse(BaseModel):
    event_id: int
    session_id: str
    event_type: str


class SubmittedAnswer(BaseModel):
    question_id: str
    user_answer: Optional[str] = None


class SessionFinishRequest(BaseModel):
    answers: List[SubmittedAnswer] = Field(default_factory=list)
    elapsed_s: Optional[float] = Field(default=None, ge=0.0)
    edge_case_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    recovered_by: Optional[str] = None


class SessionFinishResponse(BaseModel):
    session_id: str
    status: str
    mode: str
    level: int
    level_label: str
    passed: bool
    xp: int
    end_reason: str
    accuracy_pct: int
    metrics: Dict[str, Any]
    question_results: List[Dict[str, Any]]
    edge_case: Optional[Dict[str, Any]] = None
    receipt: Optional[Dict[str, Any]] = None


class SessionCancelResponse(BaseModel):
    session_id: str
    status: str
