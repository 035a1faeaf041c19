"""
Round/phase state machine for a play session.

The machine is a pure function: step(state, config, ticks, events) returns a
new SessionState and never mutates its input. A scheduler (see
gameplay.controller) decides when to call it.

Stages:
    intro -> playing <-> edge_case (once) -> results
    any non-terminal stage -> cancelled

Phase index advances with the session clock and never goes back. The edge
case is raised the first time the clock reaches the start of the configured
phase; the edge_case_triggered flag, not the time comparison, keeps it from
firing twice.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Tuple

from scoring.classifier import Thresholds
from scoring.models import EdgeCaseEvent


class Stage(str, Enum):
    INTRO = "intro"
    PLAYING = "playing"
    EDGE_CASE = "edge_case"
    RESULTS = "results"
    CANCELLED = "cancelled"


_TERMINAL = (Stage.RESULTS, Stage.CANCELLED)
_CLOCK_RUNNING = (Stage.PLAYING, Stage.EDGE_CASE)


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class PhaseSpec:
    """One timed phase. volatility drives the live indicator jitter."""
    name: str
    duration_s: float
    volatility: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PhaseSpec':
        return cls(
            name=str(data.get('name', 'phase')),
            duration_s=float(data['duration_s']),
            volatility=float(data.get('volatility', 0.0)),
        )


@dataclass(frozen=True)
class SessionConfig:
    """
    Session-type configuration. The engine treats every number here as opaque.

    edge_case_phase is the index of the phase whose start triggers the edge
    case (None disables it). interstitial_s, when set, auto-dismisses the
    edge-case interstitial after that many seconds.
    """
    phases: Tuple[PhaseSpec, ...]
    edge_case_phase: Optional[int] = None
    interstitial: bool = True
    interstitial_s: Optional[float] = None
    tick_interval_s: float = 1.0
    indicator_interval_ticks: int = 2
    recovery_actions: Tuple[str, ...] = ()
    thresholds: Thresholds = field(default_factory=Thresholds)

    def __post_init__(self):
        if not self.phases:
            raise ValueError("SessionConfig needs at least one phase")
        if any(p.duration_s <= 0 for p in self.phases):
            raise ValueError("Phase durations must be positive")
        if self.tick_interval_s <= 0:
            raise ValueError("tick_interval_s must be positive")
        if self.edge_case_phase is not None and not (0 <= self.edge_case_phase < len(self.phases)):
            raise ValueError(f"edge_case_phase out of range: {self.edge_case_phase}")

    @property
    def time_limit_s(self) -> float:
        return sum(p.duration_s for p in self.phases)

    @property
    def edge_case_boundary_s(self) -> Optional[float]:
        if self.edge_case_phase is None:
            return None
        return sum(p.duration_s for p in self.phases[:self.edge_case_phase])

    def phase_at(self, elapsed_s: float) -> int:
        """Index of the phase running at elapsed_s (last phase once time is up)."""
        start = 0.0
        for i, phase in enumerate(self.phases):
            start += phase.duration_s
            if elapsed_s < start:
                return i
        return len(self.phases) - 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SessionConfig':
        phases = tuple(PhaseSpec.from_dict(p) for p in data.get('phases', ()))
        interstitial_s = data.get('interstitial_s')
        return cls(
            phases=phases,
            edge_case_phase=data.get('edge_case_phase'),
            interstitial=bool(data.get('interstitial', True)),
            interstitial_s=float(interstitial_s) if interstitial_s is not None else None,
            tick_interval_s=float(data.get('tick_interval_s', 1.0)),
            indicator_interval_ticks=int(data.get('indicator_interval_ticks', 2)),
            recovery_actions=tuple(data.get('recovery_actions', ())),
            thresholds=Thresholds.for_time_limit(
                sum(p.duration_s for p in phases)
            ).overlay(data.get('thresholds')),
        )

    def to_dict(self) -> dict:
        return {
            'phases': [
                {'name': p.name, 'duration_s': p.duration_s, 'volatility': p.volatility}
                for p in self.phases
            ],
            'edge_case_phase': self.edge_case_phase,
            'interstitial': self.interstitial,
            'interstitial_s': self.interstitial_s,
            'tick_interval_s': self.tick_interval_s,
            'indicator_interval_ticks': self.indicator_interval_ticks,
            'recovery_actions': list(self.recovery_actions),
            'thresholds': self.thresholds.to_dict(),
        }


def default_session_config() -> SessionConfig:
    """Three 60-second rounds; the crisis hits at the start of round 3."""
    phases = (
        PhaseSpec('Baseline', 60, volatility=2.0),
        PhaseSpec('Volatility', 60, volatility=5.0),
        PhaseSpec('Edge Case', 60, volatility=8.0),
    )
    return SessionConfig(
        phases=phases,
        edge_case_phase=2,
        thresholds=Thresholds.for_time_limit(sum(p.duration_s for p in phases)),
    )


# ============================================================================
# State and events
# ============================================================================

@dataclass(frozen=True)
class SessionState:
    stage: Stage = Stage.INTRO
    phase_index: int = -1
    elapsed_s: float = 0.0
    edge_case: Optional[EdgeCaseEvent] = None
    edge_case_triggered: bool = False
    interstitial_used: bool = False
    interstitial_elapsed_s: float = 0.0
    end_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in _TERMINAL

    def remaining_s(self, config: SessionConfig) -> float:
        return max(0.0, config.time_limit_s - self.elapsed_s)

    def phase(self, config: SessionConfig) -> Optional[PhaseSpec]:
        if self.phase_index < 0:
            return None
        return config.phases[self.phase_index]


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class ContinueAfterEdgeCase:
    pass


@dataclass(frozen=True)
class Recover:
    """Player's response to the edge case. score overrides the action lookup."""
    action: str
    score: Optional[float] = None


@dataclass(frozen=True)
class ClockCorrection:
    """Host resets the session clock (e.g. after a resync)."""
    elapsed_s: float


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


# ============================================================================
# Transition function
# ============================================================================

def step(
    state: SessionState,
    config: SessionConfig,
    ticks: int = 0,
    events: Iterable[object] = (),
) -> SessionState:
    """
    Apply events (in order), then advance the clock by `ticks` intervals.

    Terminal states are returned unchanged.
    """
    s = state
    for event in events:
        if s.is_terminal:
            return s
        s = _apply(s, config, event)
    if ticks > 0 and s.stage in _CLOCK_RUNNING:
        s = _advance(s, config, ticks * config.tick_interval_s)
    return s


def _apply(s: SessionState, config: SessionConfig, event: object) -> SessionState:
    if isinstance(event, Start):
        if s.stage is not Stage.INTRO:
            return s
        return _sync(replace(s, stage=Stage.PLAYING, phase_index=0, elapsed_s=0.0), config)

    if isinstance(event, ContinueAfterEdgeCase):
        if s.stage is not Stage.EDGE_CASE:
            return s
        return replace(s, stage=Stage.PLAYING, interstitial_used=True)

    if isinstance(event, Recover):
        return _recover(s, config, event)

    if isinstance(event, ClockCorrection):
        if s.stage not in _CLOCK_RUNNING:
            return s
        elapsed = min(max(float(event.elapsed_s), 0.0), config.time_limit_s)
        return _sync(replace(s, elapsed_s=elapsed), config)

    if isinstance(event, Submit):
        if s.stage not in _CLOCK_RUNNING:
            return s
        return replace(s, stage=Stage.RESULTS, end_reason='submitted')

    if isinstance(event, Cancel):
        return replace(s, stage=Stage.CANCELLED, end_reason='cancelled')

    raise TypeError(f"Unknown session event: {event!r}")


def _recover(s: SessionState, config: SessionConfig, event: Recover) -> SessionState:
    if s.stage not in _CLOCK_RUNNING or s.edge_case is None:
        return s
    if s.edge_case.recovered_by is not None:
        return s
    if event.score is not None:
        score = min(max(float(event.score), 0.0), 1.0)
    else:
        score = 1.0 if event.action in config.recovery_actions else 0.0
    return replace(s, edge_case=replace(s.edge_case, recovered_by=event.action, score=score))


def _advance(s: SessionState, config: SessionConfig, dt: float) -> SessionState:
    elapsed = min(s.elapsed_s + dt, config.time_limit_s)
    s = replace(s, elapsed_s=elapsed)
    if s.stage is Stage.EDGE_CASE:
        waited = s.interstitial_elapsed_s + dt
        s = replace(s, interstitial_elapsed_s=waited)
        if config.interstitial_s is not None and waited >= config.interstitial_s:
            s = replace(s, stage=Stage.PLAYING, interstitial_used=True)
    return _sync(s, config)


def _sync(s: SessionState, config: SessionConfig) -> SessionState:
    """Bring phase, edge case and timeout in line with the clock."""
    s = replace(s, phase_index=max(s.phase_index, config.phase_at(s.elapsed_s)))

    boundary = config.edge_case_boundary_s
    if boundary is not None and not s.edge_case_triggered and s.elapsed_s >= boundary:
        s = replace(
            s,
            edge_case_triggered=True,
            edge_case=EdgeCaseEvent(triggered=True, triggered_at_s=s.elapsed_s),
        )
        if config.interstitial and not s.interstitial_used:
            s = replace(s, stage=Stage.EDGE_CASE, interstitial_elapsed_s=0.0)

    if s.elapsed_s >= config.time_limit_s:
        s = replace(s, stage=Stage.RESULTS, end_reason='timeout')
    return s
