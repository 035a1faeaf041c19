"""Data models for the scoring engine: questions, results, session metrics."""

from dataclasses import dataclass, field, asdict
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ProficiencyLevel(IntEnum):
    """Ordinal proficiency tiers. Higher is better."""
    NEEDS_WORK = 1
    PROFICIENT = 2
    MASTERY = 3

    @property
    def label(self) -> str:
        return _LEVEL_LABELS[self]


_LEVEL_LABELS = {
    ProficiencyLevel.NEEDS_WORK: 'Needs Work',
    ProficiencyLevel.PROFICIENT: 'Proficient',
    ProficiencyLevel.MASTERY: 'Mastery',
}


@dataclass(frozen=True)
class QuestionSpec:
    """One question of a competency's question set."""
    question_id: str
    question: str
    acceptable_answers: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> 'QuestionSpec':
        answers = (
            data.get('acceptable_answers')
            or data.get('acceptableAnswers')
            or data.get('correct_answers')
            or data.get('correctAnswers')
            or ()
        )
        if isinstance(answers, str):
            answers = (answers,)
        qid = data.get('question_id') or data.get('questionId') or data.get('id') or f'q{index + 1}'
        return cls(
            question_id=str(qid),
            question=str(data.get('question', '')),
            acceptable_answers=tuple(a for a in answers if a is not None),
        )

    def to_dict(self) -> Dict:
        return {
            'question_id': self.question_id,
            'question': self.question,
            'acceptable_answers': list(self.acceptable_answers),
        }


@dataclass(frozen=True)
class QuestionResult:
    """Verdict for one question. Immutable once computed."""
    question: str
    user_answer: Optional[str]
    acceptable_answers: Tuple[str, ...]
    is_correct: bool
    reason: str
    detail: str
    matched_answer: Optional[str] = None

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['acceptable_answers'] = list(self.acceptable_answers)
        return d


@dataclass
class ValidationSummary:
    """Aggregate over a list of QuestionResults."""
    total_questions: int
    correct_answers: int
    details: List[QuestionResult] = field(default_factory=list)

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers

    @property
    def accuracy(self) -> float:
        if self.total_questions <= 0:
            return 0.0
        return self.correct_answers / self.total_questions

    @property
    def accuracy_pct(self) -> int:
        """Integer percentage, for reporting only."""
        return int(round(self.accuracy * 100))

    def to_dict(self) -> Dict:
        return {
            'total_questions': self.total_questions,
            'correct_answers': self.correct_answers,
            'incorrect_answers': self.incorrect_answers,
            'accuracy': self.accuracy,
            'accuracy_pct': self.accuracy_pct,
            'details': [d.to_dict() for d in self.details],
        }


@dataclass(frozen=True)
class EdgeCaseEvent:
    """The single scripted disruption of a session."""
    triggered: bool = True
    triggered_at_s: float = 0.0
    recovered_by: Optional[str] = None
    score: float = 0.0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class SessionMetrics:
    """
    Signals the classifier consumes. Frozen at finalization.

    edge_case_score is None when the session never reached its edge case.
    timed_out is set when the clock ran out before the player submitted;
    elapsed_s is then the time limit itself.
    """
    accuracy: float
    elapsed_s: float
    edge_case_score: Optional[float] = None
    session_count: int = 1
    timed_out: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SessionMetrics':
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})
