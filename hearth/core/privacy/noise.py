from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np


class NoiseGenerator(ABC):
    """
    Pluggable noise mechanism: `sample(epsilon, sensitivity) -> float`.

    `scale(epsilon, sensitivity)` is the mechanism's spread; it strictly
    decreases as epsilon grows, so a smaller privacy budget means more noise.
    """

    name: str = "noise"

    def __init__(self, *, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    @abstractmethod
    def scale(self, epsilon: float, sensitivity: float = 1.0) -> float:
        raise NotImplementedError

    @abstractmethod
    def sample(self, epsilon: float, sensitivity: float = 1.0) -> float:
        raise NotImplementedError

    @staticmethod
    def _check(epsilon: float, sensitivity: float) -> None:
        if not (epsilon > 0) or not math.isfinite(epsilon):
            raise ValueError("epsilon must be a positive finite number")
        if not (sensitivity > 0) or not math.isfinite(sensitivity):
            raise ValueError("sensitivity must be a positive finite number")


class LaplaceNoise(NoiseGenerator):
    """Laplace(0, sensitivity / epsilon)."""

    name = "laplace"

    def scale(self, epsilon: float, sensitivity: float = 1.0) -> float:
        self._check(epsilon, sensitivity)
        return float(sensitivity) / float(epsilon)

    def sample(self, epsilon: float, sensitivity: float = 1.0) -> float:
        return float(self._rng.laplace(0.0, self.scale(epsilon, sensitivity)))


class GaussianNoise(NoiseGenerator):
    """Gaussian mechanism for (epsilon, delta)-differential privacy."""

    name = "gaussian"

    def __init__(self, *, delta: float = 1e-5, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        super().__init__(seed=seed, rng=rng)
        if not (0.0 < float(delta) < 1.0):
            raise ValueError("delta must be in (0, 1)")
        self.delta = float(delta)

    def scale(self, epsilon: float, sensitivity: float = 1.0) -> float:
        self._check(epsilon, sensitivity)
        return float(sensitivity) * math.sqrt(2.0 * math.log(1.25 / self.delta)) / float(epsilon)

    def sample(self, epsilon: float, sensitivity: float = 1.0) -> float:
        return float(self._rng.normal(0.0, self.scale(epsilon, sensitivity)))


def build_noise_generator(mechanism: str, *, delta: float = 1e-5, seed: Optional[int] = None) -> NoiseGenerator:
    m = str(mechanism or "laplace").strip().lower()
    if m == "laplace":
        return LaplaceNoise(seed=seed)
    if m == "gaussian":
        return GaussianNoise(delta=delta, seed=seed)
    raise ValueError(f"Unknown noise mechanism: {mechanism}")
