"""Fixed stress-test scenarios for the answer validator."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from scoring.matching import expand_answers
from scoring.models import QuestionSpec


@dataclass(frozen=True)
class ScenarioQuestion:
    question: str
    user_answer: str
    correct_answers: Tuple[str, ...]

    def to_input(self) -> Dict[str, Any]:
        """Fresh validator input (new containers on every call)."""
        return {
            'question': self.question,
            'userAnswer': self.user_answer,
            'correctAnswers': list(self.correct_answers),
        }


@dataclass(frozen=True)
class TestScenario:
    """
    A labelled batch of questions with the accuracy (integer %) it must produce.

    expected_outcome is descriptive: 'match', 'no_match' or 'mixed'.
    """
    __test__ = False  # not a pytest class

    label: str
    questions: Tuple[ScenarioQuestion, ...]
    expected_accuracy: int
    expected_outcome: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TestScenario':
        questions = tuple(
            ScenarioQuestion(
                question=str(q.get('question', '')),
                user_answer=q.get('userAnswer', q.get('user_answer', '')) or '',
                correct_answers=tuple(q.get('correctAnswers', q.get('correct_answers', ())) or ()),
            )
            for q in data.get('questions', ())
        )
        return cls(
            label=str(data['label']),
            questions=questions,
            expected_accuracy=int(data['expected_accuracy']),
            expected_outcome=str(data.get('expected_outcome', 'match')),
        )


def _q(question: str, user_answer: str, *correct: str) -> ScenarioQuestion:
    return ScenarioQuestion(question, user_answer, tuple(correct))


DEFAULT_SCENARIOS: Tuple[TestScenario, ...] = (
    TestScenario(
        label='exact_match',
        questions=(
            _q('Which KPI tracks money coming in?', 'revenue', 'revenue'),
            _q('What should the team protect first?', 'customer satisfaction', 'customer satisfaction'),
        ),
        expected_accuracy=100,
        expected_outcome='match',
    ),
    TestScenario(
        label='case_and_whitespace_noise',
        questions=(
            _q('Which KPI tracks money coming in?', '  REVENUE  ', 'revenue'),
            _q('What should the team protect first?', 'The Customer   Satisfaction.', 'customer satisfaction'),
        ),
        expected_accuracy=100,
        expected_outcome='match',
    ),
    TestScenario(
        label='synonym_list',
        questions=(
            _q('What should the team protect first?', 'client happiness',
               'customer satisfaction; client happiness; user contentment'),
            _q('Which KPI tracks money coming in?', 'income', 'revenue | income | earnings'),
        ),
        expected_accuracy=100,
        expected_outcome='match',
    ),
    TestScenario(
        label='high_word_overlap',
        questions=(
            _q('Which metric should rise?', 'customer satisfaction rate improvement',
               'customer satisfaction rate'),
            _q('What is the budget response?', 'reduce operational cost quickly',
               'reduce operational cost'),
        ),
        expected_accuracy=100,
        expected_outcome='match',
    ),
    TestScenario(
        label='borderline_semantic_overlap',
        questions=(
            _q('How do you keep users?', 'boost customer retention rate',
               'improve customer retention rate'),
            _q('What should the team protect first?', 'customer happiness', 'customer satisfaction'),
        ),
        expected_accuracy=100,
        expected_outcome='match',
    ),
    TestScenario(
        label='mixed_results',
        questions=(
            _q('Which KPI tracks money coming in?', 'revenue', 'revenue'),
            _q('Which KPI grows when shortcuts pile up?', 'morale', 'tech debt'),
        ),
        expected_accuracy=50,
        expected_outcome='mixed',
    ),
    # Negative scenarios: these must never match
    TestScenario(
        label='wrong_answer',
        questions=(
            _q('Which KPI tracks money coming in?', 'banana', 'revenue'),
            _q('What is the growth lever?', 'decrease costs', 'increase revenue'),
        ),
        expected_accuracy=0,
        expected_outcome='no_match',
    ),
    TestScenario(
        label='empty_answer',
        questions=(
            _q('Which KPI tracks money coming in?', '', 'revenue'),
            _q('What should the team protect first?', '   ', 'customer satisfaction'),
        ),
        expected_accuracy=0,
        expected_outcome='no_match',
    ),
    TestScenario(
        label='gibberish_low_overlap',
        questions=(
            _q('What should the team protect first?', 'asdf qwerty zxcv', 'customer satisfaction'),
            _q('How do you keep users?', 'customer churn dashboard', 'improve customer retention rate'),
            _q('Which ratio compares gain to spend?', 'rev', 'roi'),
        ),
        expected_accuracy=0,
        expected_outcome='no_match',
    ),
)


def scenarios_for_questions(
    questions: Iterable[QuestionSpec],
    label_prefix: str = 'answer_key',
) -> List[TestScenario]:
    """
    Self-check scenarios for a runtime's own answer key.

    Replaying the first acceptable answer of every question must score 100%,
    and blank answers must score 0%. An empty or unmatchable key fails the
    first scenario.
    """
    gold = []
    blank = []
    for q in questions:
        expanded = expand_answers(q.acceptable_answers)
        first = expanded[0] if expanded else ''
        gold.append(ScenarioQuestion(q.question, first, tuple(q.acceptable_answers)))
        blank.append(ScenarioQuestion(q.question, '', tuple(q.acceptable_answers)))
    return [
        TestScenario(f'{label_prefix}_replay', tuple(gold), 100, 'match'),
        TestScenario(f'{label_prefix}_blank', tuple(blank), 0, 'no_match'),
    ]


def load_scenarios(path: Path) -> List[TestScenario]:
    """Load scenarios from a JSONL fixture file."""
    scenarios = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                scenarios.append(TestScenario.from_dict(json.loads(line)))
    return scenarios
