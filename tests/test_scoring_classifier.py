"""Tests for scoring/classifier.py -- proficiency levels, thresholds and XP."""

import math
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scoring.classifier import Thresholds, classify, is_passing, xp_for
from scoring.models import ProficiencyLevel, SessionMetrics


def _m(accuracy, elapsed, edge=None, sessions=1):
    return SessionMetrics(accuracy=accuracy, elapsed_s=elapsed, edge_case_score=edge, session_count=sessions)


def test_mastery_requires_every_signal():
    assert classify(_m(0.96, 70, 0.9, 3)) is ProficiencyLevel.MASTERY


def test_mastery_blocked_by_session_count_falls_to_proficient():
    assert classify(_m(0.96, 70, 0.9, 2)) is ProficiencyLevel.PROFICIENT


def test_mastery_blocked_by_slow_time():
    assert classify(_m(0.96, 80, 0.9, 3)) is ProficiencyLevel.PROFICIENT


def test_mastery_blocked_by_missing_edge_score():
    assert classify(_m(0.99, 60, None, 5)) is ProficiencyLevel.PROFICIENT


def test_proficient_boundaries_are_inclusive():
    assert classify(_m(0.90, 90)) is ProficiencyLevel.PROFICIENT
    assert classify(_m(0.95, 75, 0.80, 3)) is ProficiencyLevel.MASTERY


def test_needs_work_below_accuracy():
    assert classify(_m(0.89, 30)) is ProficiencyLevel.NEEDS_WORK


def test_needs_work_over_time_limit():
    assert classify(_m(1.0, 91, 1.0, 10)) is ProficiencyLevel.NEEDS_WORK


def test_malformed_signals_fall_back_to_needs_work():
    assert classify(_m(float("nan"), 30)) is ProficiencyLevel.NEEDS_WORK
    assert classify(_m(0.99, float("nan"))) is ProficiencyLevel.NEEDS_WORK
    assert classify(_m(None, 30)) is ProficiencyLevel.NEEDS_WORK
    assert classify(_m("high", 30)) is ProficiencyLevel.NEEDS_WORK


def test_classify_is_deterministic():
    m = _m(0.93, 60, 0.5, 4)
    assert {classify(m) for _ in range(10)} == {ProficiencyLevel.PROFICIENT}


def test_higher_accuracy_never_lowers_level():
    levels = [classify(_m(a / 100, 70, 0.9, 3)) for a in range(0, 101)]
    assert levels == sorted(levels)


def test_levels_are_ordered():
    assert ProficiencyLevel.NEEDS_WORK < ProficiencyLevel.PROFICIENT < ProficiencyLevel.MASTERY
    assert ProficiencyLevel.MASTERY.label == "Mastery"


def test_custom_thresholds_change_cutoffs():
    t = Thresholds(proficient_accuracy=0.5, time_limit_s=300)
    assert classify(_m(0.6, 200), t) is ProficiencyLevel.PROFICIENT
    assert classify(_m(0.6, 200)) is ProficiencyLevel.NEEDS_WORK


def test_thresholds_from_dict_ignores_bad_values():
    t = Thresholds.from_dict({
        "mastery_accuracy": "0.97",
        "time_limit_s": None,
        "edge_case_threshold": "high",
        "sessions_required": 2.0,
        "tight_time_limit_s": float("nan"),
        "proficient_accuracy": True,
        "unknown": 1,
    })
    assert t.mastery_accuracy == 0.97
    assert t.time_limit_s == 90.0
    assert t.edge_case_threshold == 0.80
    assert t.sessions_required == 2
    assert t.tight_time_limit_s == 75.0
    assert t.proficient_accuracy == 0.90


def test_thresholds_from_empty():
    assert Thresholds.from_dict(None) == Thresholds()
    assert Thresholds.from_dict({}) == Thresholds()


def test_for_time_limit_derives_tight_limit():
    t = Thresholds.for_time_limit(180)
    assert t.time_limit_s == 180.0
    assert math.isclose(t.tight_time_limit_s, 149.4)
    assert Thresholds.for_time_limit(90, sessions_required=5).sessions_required == 5


def test_is_passing():
    assert not is_passing(ProficiencyLevel.NEEDS_WORK)
    assert is_passing(ProficiencyLevel.PROFICIENT)
    assert is_passing(ProficiencyLevel.MASTERY)


def test_xp_only_for_testing_mode_passes():
    assert xp_for(ProficiencyLevel.MASTERY, "testing") == 500
    assert xp_for(ProficiencyLevel.PROFICIENT, "testing") == 250
    assert xp_for(ProficiencyLevel.NEEDS_WORK, "testing") == 0
    assert xp_for(ProficiencyLevel.MASTERY, "training") == 0


def test_timed_out_session_is_needs_work():
    m = SessionMetrics(accuracy=1.0, elapsed_s=90, edge_case_score=1.0, session_count=5, timed_out=True)
    assert classify(m) is ProficiencyLevel.NEEDS_WORK
    assert classify(SessionMetrics.from_dict(m.to_dict())) is ProficiencyLevel.NEEDS_WORK
    assert not SessionMetrics.from_dict({"accuracy": 1.0, "elapsed_s": 60}).timed_out


def test_overlay_replaces_only_usable_keys():
    base = Thresholds.for_time_limit(180, sessions_required=2)
    t = base.overlay({"sessions_required": 1, "mastery_accuracy": None, "time_limit_s": "slow"})
    assert t.sessions_required == 1
    assert t.mastery_accuracy == 0.95
    assert t.time_limit_s == 180.0
    assert math.isclose(t.tight_time_limit_s, 149.4)
    assert base.overlay(None) == base
