"""Per-session controller: drives the phase machine from a clock and scores the session."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from gameplay.clock import Clock, MonotonicClock
from gameplay.indicators import DEFAULT_INDICATORS, IndicatorBoard
from gameplay.phases import (
    ClockCorrection,
    ContinueAfterEdgeCase,
    Recover,
    SessionConfig,
    SessionState,
    Stage,
    Start,
    Submit,
    Cancel,
    step,
)
from scoring.classifier import classify, is_passing, xp_for
from scoring.models import (
    EdgeCaseEvent,
    ProficiencyLevel,
    QuestionResult,
    QuestionSpec,
    SessionMetrics,
)
from scoring.validator import validate_answer

logger = logging.getLogger("playops.gameplay")


class SessionStateError(RuntimeError):
    """Operation not allowed in the session's current stage."""


class SessionClosedError(SessionStateError):
    """The session already reached results or was cancelled."""


@dataclass(frozen=True)
class SessionResult:
    """Terminal artifact of a session, handed to the persistence collaborator."""
    metrics: SessionMetrics
    level: ProficiencyLevel
    passed: bool
    xp: int
    end_reason: str
    question_results: Tuple[QuestionResult, ...]
    edge_case: Optional[EdgeCaseEvent]

    @property
    def accuracy_pct(self) -> int:
        return int(round(self.metrics.accuracy * 100))

    def to_dict(self) -> Dict:
        return {
            'metrics': self.metrics.to_dict(),
            'level': int(self.level),
            'level_label': self.level.label,
            'passed': self.passed,
            'xp': self.xp,
            'end_reason': self.end_reason,
            'accuracy_pct': self.accuracy_pct,
            'question_results': [r.to_dict() for r in self.question_results],
            'edge_case': self.edge_case.to_dict() if self.edge_case else None,
        }


class RoundController:
    """
    Owns one session: its state, its answers, its clock.

    poll() converts the clock time since the last processed tick into whole
    ticks and applies them in a single coalesced step. Overlapping polls are
    dropped, never queued. Every path into the results stage goes through
    _finalize(), which runs once.
    """

    def __init__(
        self,
        config: SessionConfig,
        questions: Iterable[Union[QuestionSpec, Mapping]],
        clock: Optional[Clock] = None,
        *,
        session_count: int = 1,
        mode: str = 'training',
        indicators: Optional[Mapping[str, float]] = None,
        rng_seed: Optional[int] = None,
        result_sink: Optional[Callable[[SessionResult], None]] = None,
    ):
        self.config = config
        self.questions: List[QuestionSpec] = [
            q if isinstance(q, QuestionSpec) else QuestionSpec.from_dict(q, i)
            for i, q in enumerate(questions)
        ]
        self._by_id = {q.question_id: q for q in self.questions}
        self.session_count = session_count
        self.mode = mode
        self._clock = clock or MonotonicClock()
        self._result_sink = result_sink

        self._lock = threading.Lock()
        self._state = SessionState()
        self._answers: Dict[str, QuestionResult] = {}
        self._last_tick_at: Optional[float] = None
        self._ticks = 0
        self._result: Optional[SessionResult] = None
        self._board = IndicatorBoard(
            indicators if indicators is not None else DEFAULT_INDICATORS,
            rng=np.random.default_rng(rng_seed),
        )
        # (kind, elapsed_s) notifications, in order
        self.transitions: List[Tuple[str, float]] = []

    # ----------------------------
    # Read-only views
    # ----------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    @property
    def indicators(self) -> Dict[str, float]:
        return self._board.snapshot()

    @property
    def time_remaining_s(self) -> float:
        return self._state.remaining_s(self.config)

    # ----------------------------
    # Scheduler entry point
    # ----------------------------
    def start(self) -> SessionState:
        with self._lock:
            if self._state.stage is not Stage.INTRO:
                return self._state
            self._last_tick_at = self._clock.now()
            self._transition(events=(Start(),))
            return self._state

    def poll(self) -> SessionState:
        """Process whole ticks elapsed on the clock. Drops if another tick is running."""
        if not self._lock.acquire(blocking=False):
            logger.debug("Tick dropped: previous tick still running")
            return self._state
        try:
            self._catch_up()
            return self._state
        finally:
            self._lock.release()

    # ----------------------------
    # Player actions
    # ----------------------------
    def answer(self, question_id: str, user_answer: Optional[str]) -> QuestionResult:
        """Grade one answer as it arrives. The latest answer per question counts."""
        with self._lock:
            self._require_running()
            question = self._by_id.get(question_id)
            if question is None:
                raise KeyError(f"Unknown question: {question_id}")
            result = validate_answer(question.question, user_answer, question.acceptable_answers)
            self._answers[question_id] = result
            return result

    def recover(self, action: str, score: Optional[float] = None) -> SessionState:
        with self._lock:
            self._require_running()
            self._transition(events=(Recover(action, score),))
            return self._state

    def continue_after_edge_case(self) -> SessionState:
        with self._lock:
            self._require_running()
            self._transition(events=(ContinueAfterEdgeCase(),))
            return self._state

    def correct_clock(self, elapsed_s: float) -> SessionState:
        """Resync the session clock. Never reopens a passed phase or edge case."""
        with self._lock:
            self._require_running()
            self._transition(events=(ClockCorrection(elapsed_s),))
            return self._state

    def submit(self) -> Optional[SessionResult]:
        """Explicit early submission. Returns the result (None if never started)."""
        with self._lock:
            if self._state.stage is Stage.CANCELLED:
                raise SessionClosedError("Session was cancelled")
            if self._state.is_terminal:
                return self._result
            self._catch_up()
            self._transition(events=(Submit(),))
            return self._result

    def cancel(self) -> SessionState:
        """Host torn down: discard the session without classification."""
        with self._lock:
            self._transition(events=(Cancel(),))
            return self._state

    # ----------------------------
    # Internals
    # ----------------------------
    def _require_running(self) -> None:
        if self._state.is_terminal:
            raise SessionClosedError(f"Session is {self._state.stage.value}")
        if self._state.stage is Stage.INTRO:
            raise SessionStateError("Session has not started")

    def _catch_up(self) -> None:
        if self._last_tick_at is None or self._state.stage not in (Stage.PLAYING, Stage.EDGE_CASE):
            return
        interval = self.config.tick_interval_s
        ticks = int((self._clock.now() - self._last_tick_at) // interval)
        if ticks <= 0:
            return
        self._last_tick_at += ticks * interval
        before = self._ticks
        self._ticks += ticks
        self._transition(ticks=ticks)

        every = max(1, self.config.indicator_interval_ticks)
        if self._ticks // every > before // every and not self._state.is_terminal:
            phase = self._state.phase(self.config)
            self._board.jitter(phase.volatility if phase else 0.0)

    def _transition(self, ticks: int = 0, events: Tuple[object, ...] = ()) -> None:
        before = self._state
        after = step(before, self.config, ticks, events)
        self._state = after
        self._record(before, after)
        if after.stage is Stage.RESULTS and self._result is None:
            self._finalize()

    def _record(self, before: SessionState, after: SessionState) -> None:
        if after.phase_index != before.phase_index and after.phase_index >= 0:
            name = self.config.phases[after.phase_index].name
            logger.info("Phase %d (%s) at %.0fs", after.phase_index + 1, name, after.elapsed_s)
            self.transitions.append(('phase', after.elapsed_s))
        if after.edge_case_triggered and not before.edge_case_triggered:
            logger.info("Edge case triggered at %.0fs", after.elapsed_s)
            self.transitions.append(('edge_case', after.elapsed_s))
        if after.stage is not before.stage and after.stage in (Stage.RESULTS, Stage.CANCELLED):
            logger.info("Session %s (%s) at %.0fs", after.stage.value, after.end_reason, after.elapsed_s)
            self.transitions.append((after.stage.value, after.elapsed_s))

    def _finalize(self) -> None:
        state = self._state
        results = []
        for q in self.questions:
            r = self._answers.get(q.question_id)
            if r is None:
                r = validate_answer(q.question, None, q.acceptable_answers)
            results.append(r)

        total = len(results)
        correct = sum(1 for r in results if r.is_correct)
        metrics = SessionMetrics(
            accuracy=correct / total if total else 0.0,
            elapsed_s=min(state.elapsed_s, self.config.time_limit_s),
            edge_case_score=state.edge_case.score if state.edge_case else None,
            session_count=self.session_count,
            timed_out=state.end_reason == 'timeout',
        )
        level = classify(metrics, self.config.thresholds)
        self._result = SessionResult(
            metrics=metrics,
            level=level,
            passed=is_passing(level),
            xp=xp_for(level, self.mode),
            end_reason=state.end_reason or 'submitted',
            question_results=tuple(results),
            edge_case=state.edge_case,
        )
        logger.info("Session finalized: level %d (%s), accuracy %d%%, %.0fs",
                    level, level.label, self._result.accuracy_pct, metrics.elapsed_s)

        if self._result_sink is not None:
            try:
                self._result_sink(self._result)
            except Exception:
                logger.exception("Result sink failed; result is still valid")


def run_until_done(
    controller: RoundController,
    sleep_fn: Callable[[float], None] = time.sleep,
    on_tick: Optional[Callable[[RoundController], None]] = None,
    max_polls: Optional[int] = None,
) -> Optional[SessionResult]:
    """
    Sequential scheduler: poll, let the host act, sleep one interval, repeat.

    Each poll finishes before the next one starts.
    """
    controller.start()
    polls = 0
    while not controller.state.is_terminal:
        if max_polls is not None and polls >= max_polls:
            break
        sleep_fn(controller.config.tick_interval_s)
        controller.poll()
        polls += 1
        if on_tick is not None and not controller.state.is_terminal:
            on_tick(controller)
    return controller.result
