"""Live numeric indicators shown to the player, perturbed by phase volatility.

Purely environmental: scoring never reads these values.
"""

from typing import Dict, Mapping, Optional

import numpy as np


class IndicatorBoard:
    """
    A set of named values in [low, high] that drift as a bounded random walk.

    Each jitter moves every value by (u - 0.5) * volatility with u ~ U[0, 1),
    then clamps to the valid range.
    """

    def __init__(
        self,
        values: Mapping[str, float],
        low: float = 0.0,
        high: float = 100.0,
        rng: Optional[np.random.Generator] = None,
    ):
        if low > high:
            raise ValueError("low must not exceed high")
        self.names = list(values.keys())
        self.low = low
        self.high = high
        self._rng = rng if rng is not None else np.random.default_rng()
        self._values = np.clip(
            np.array([float(values[n]) for n in self.names], dtype=float), low, high,
        )

    def jitter(self, volatility: float) -> Dict[str, float]:
        if volatility > 0 and self.names:
            noise = (self._rng.random(len(self.names)) - 0.5) * volatility
            self._values = np.clip(self._values + noise, self.low, self.high)
        return self.snapshot()

    def snapshot(self) -> Dict[str, float]:
        return {n: float(v) for n, v in zip(self.names, self._values)}


# KPI board from the prioritization demo
DEFAULT_INDICATORS = {
    'User Retention': 78.0,
    'Revenue': 92.0,
    'Bug Count': 45.0,
    'Feature Completion': 67.0,
    'Team Morale': 83.0,
    'Tech Debt': 56.0,
}
