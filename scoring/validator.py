"""Per-question answer validation and session accuracy."""

import logging
from typing import Any, Iterable, List, Mapping, Optional

from scoring.matching import MatchReason, expand_answers, is_match, normalize
from scoring.models import QuestionResult, QuestionSpec, ValidationSummary

logger = logging.getLogger("playops.scoring")


def validate_answer(
    question: str,
    user_answer: Optional[str],
    acceptable_answers: Optional[Iterable[str]],
) -> QuestionResult:
    """
    Check one user answer against every acceptable answer of a question.

    Acceptable answers are expanded on ; , | delimiters. The first positive
    verdict wins. An empty answer key is a content defect: the question is
    marked incorrect with a diagnostic, never passed.

    Returns:
        QuestionResult (reason is a MatchReason value, detail is human-readable)
    """
    answers = tuple(a for a in (acceptable_answers or ()) if a is not None)
    expanded = expand_answers(answers)

    if not expanded:
        logger.warning("No acceptable answers defined for question: %s", question[:80])
        return QuestionResult(
            question=question,
            user_answer=user_answer,
            acceptable_answers=answers,
            is_correct=False,
            reason=MatchReason.NO_MATCH.value,
            detail='no acceptable answers defined',
        )

    user_norm = normalize(user_answer)
    verdict = None
    for candidate in expanded:
        verdict = is_match(user_norm, normalize(candidate))
        logger.debug("  %r vs %r -> %s (%s)", user_norm, candidate,
                     verdict.reason.value, verdict.detail)
        if verdict.is_match:
            return QuestionResult(
                question=question,
                user_answer=user_answer,
                acceptable_answers=answers,
                is_correct=True,
                reason=verdict.reason.value,
                detail=verdict.detail,
                matched_answer=candidate,
            )

    return QuestionResult(
        question=question,
        user_answer=user_answer,
        acceptable_answers=answers,
        is_correct=False,
        reason=verdict.reason.value,
        detail=verdict.detail,
    )


def _coerce_question(item: Mapping[str, Any]):
    answer = item.get('user_answer', item.get('userAnswer'))
    q = QuestionSpec.from_dict(item)
    return q.question, answer, q.acceptable_answers


def validate_session(questions: Iterable[Mapping[str, Any]]) -> ValidationSummary:
    """
    Validate a batch of {question, userAnswer, correctAnswers} items.

    Accuracy is correct / total as a fraction; accuracy_pct is the rounded
    integer percentage used in reports.
    """
    details: List[QuestionResult] = []
    for item in questions:
        question, answer, acceptable = _coerce_question(item)
        details.append(validate_answer(question, answer, acceptable))

    summary = ValidationSummary(
        total_questions=len(details),
        correct_answers=sum(1 for d in details if d.is_correct),
        details=details,
    )
    logger.info("Validated %d question(s): %d correct (%d%%)",
                summary.total_questions, summary.correct_answers, summary.accuracy_pct)
    return summary
