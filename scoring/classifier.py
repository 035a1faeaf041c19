"""Proficiency classification over session metrics."""

import math
from dataclasses import dataclass, fields, asdict, replace
from typing import Any, Dict, Mapping, Optional

from scoring.models import ProficiencyLevel, SessionMetrics


# XP awarded per level in testing mode (passing levels only)
XP_BY_LEVEL = {
    ProficiencyLevel.NEEDS_WORK: 0,
    ProficiencyLevel.PROFICIENT: 250,
    ProficiencyLevel.MASTERY: 500,
}

# Tight limit as a fraction of the time limit (75s for a 90s limit)
TIGHT_TIME_RATIO = 0.83


@dataclass(frozen=True)
class Thresholds:
    """
    Classifier cutoffs, overridable per competency or session type.

    needs_work_accuracy is the reported floor only; anything that is not
    Mastery or Proficient is Needs Work regardless.
    """
    mastery_accuracy: float = 0.95
    proficient_accuracy: float = 0.90
    needs_work_accuracy: float = 0.85
    time_limit_s: float = 90.0
    tight_time_limit_s: float = 75.0
    edge_case_threshold: float = 0.80
    sessions_required: int = 3

    @classmethod
    def _parse(cls, data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """The usable entries of a config mapping: numeric, not None, not NaN."""
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = (data or {}).get(f.name)
            if raw is None or isinstance(raw, bool):
                continue
            try:
                num = float(raw)
            except (TypeError, ValueError):
                continue
            if math.isnan(num):
                continue
            values[f.name] = int(num) if f.name == 'sessions_required' else num
        return values

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'Thresholds':
        """Build from config; missing, None or non-numeric values use the defaults."""
        return cls(**cls._parse(data))

    def overlay(self, data: Optional[Mapping[str, Any]]) -> 'Thresholds':
        """Copy with the usable entries of data replacing ours; the rest is kept."""
        return replace(self, **self._parse(data))

    @classmethod
    def for_time_limit(
        cls,
        time_limit_s: float,
        tight_ratio: float = TIGHT_TIME_RATIO,
        **overrides,
    ) -> 'Thresholds':
        return cls(
            time_limit_s=float(time_limit_s),
            tight_time_limit_s=round(time_limit_s * tight_ratio, 2),
            **overrides,
        )

    def to_dict(self) -> Dict:
        return asdict(self)


def _at_least(value, floor) -> bool:
    if value is None:
        return False
    try:
        return not math.isnan(value) and value >= floor
    except TypeError:
        return False


def _at_most(value, ceiling) -> bool:
    if value is None:
        return False
    try:
        return not math.isnan(value) and value <= ceiling
    except TypeError:
        return False


def is_mastery(metrics: SessionMetrics, t: Thresholds) -> bool:
    return (
        _at_least(metrics.accuracy, t.mastery_accuracy)
        and _at_most(metrics.elapsed_s, t.tight_time_limit_s)
        and _at_least(metrics.edge_case_score, t.edge_case_threshold)
        and _at_least(metrics.session_count, t.sessions_required)
    )


def is_proficient(metrics: SessionMetrics, t: Thresholds) -> bool:
    return (
        _at_least(metrics.accuracy, t.proficient_accuracy)
        and _at_most(metrics.elapsed_s, t.time_limit_s)
    )


def classify(
    metrics: SessionMetrics,
    thresholds: Optional[Thresholds] = None,
) -> ProficiencyLevel:
    """
    Map session metrics to a proficiency level.

    Mastery is checked first, then Proficient; everything else, including
    incomplete or malformed signals, falls back to Needs Work. A session
    that ran out of time is Needs Work whatever its other numbers say.
    """
    t = thresholds or Thresholds()
    if metrics.timed_out:
        return ProficiencyLevel.NEEDS_WORK
    if is_mastery(metrics, t):
        return ProficiencyLevel.MASTERY
    if is_proficient(metrics, t):
        return ProficiencyLevel.PROFICIENT
    return ProficiencyLevel.NEEDS_WORK


def is_passing(level: ProficiencyLevel) -> bool:
    return level >= ProficiencyLevel.PROFICIENT


def xp_for(level: ProficiencyLevel, mode: str) -> int:
    """XP for a finished session. Only testing-mode passes earn XP."""
    if mode != 'testing' or not is_passing(level):
        return 0
    return XP_BY_LEVEL[level]
