from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np

from oqtools.baths.base import Bath, _scalar_or_array
from oqtools.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelegraphNoise:
    """
    One realisation of a sum of telegraph processes, n(t) = Σ_k b_k x_k(t).

    x_k starts at ``signs[k]`` (±1) and flips at each of ``flips[k]``. The
    realisation is right-continuous: at a flip time it already holds the new
    value.
    """

    amplitudes: Tuple[float, ...]
    signs: Tuple[int, ...]
    flips: Tuple[Tuple[float, ...], ...]

    @property
    def switching_times(self) -> Tuple[float, ...]:
        return tuple(sorted({t for times in self.flips for t in times}))

    def value(self, t: float) -> float:
        total = 0.0
        for b, x0, times in zip(self.amplitudes, self.signs, self.flips):
            n = int(np.searchsorted(times, t, side="right"))
            total += b * x0 * (-1 if n % 2 else 1)
        return total


class FluctuatorEnsemble(Bath):
    """
    Classical 1/f-like noise from independent two-state fluctuators.

    Fluctuator k switches between ±b_k at Poisson rate γ_k. The bath
    functions are the ensemble averages:

        C(τ) = Σ_k b_k² e^{-2γ_k|τ|}
        γ(ω) = Σ_k b_k² · 4γ_k / (ω² + 4γ_k²)
        S(ω) = Σ_k b_k² · ω / (ω² + 4γ_k²)

    Stochastic solvers do not use these; they draw explicit realisations with
    :meth:`sample`.
    """

    def __init__(self, b: Sequence[float], gamma: Sequence[float]) -> None:
        b_arr = np.atleast_1d(np.asarray(b, dtype=float))
        g_arr = np.atleast_1d(np.asarray(gamma, dtype=float))
        if b_arr.shape != g_arr.shape:
            raise ConfigurationError(
                f"Got {b_arr.size} amplitudes for {g_arr.size} switching rates"
            )
        if np.any(g_arr <= 0.0):
            raise ConfigurationError("Switching rates must be > 0")
        self.b = b_arr
        self.gamma = g_arr

    def __len__(self) -> int:
        return int(self.b.size)

    def __repr__(self) -> str:
        return f"FluctuatorEnsemble(n={len(self)})"

    def correlation(self, tau: float) -> complex:
        return complex(np.sum(self.b**2 * np.exp(-2.0 * self.gamma * abs(float(tau)))))

    def spectral_density(self, omega: Any) -> Any:
        w = np.asarray(omega, dtype=float)[..., None]
        a = 2.0 * self.gamma
        out = np.sum(self.b**2 * 2.0 * a / (w**2 + a**2), axis=-1)
        return _scalar_or_array(omega, out)

    def lamb_shift(self, omega: Any) -> Any:
        w = np.asarray(omega, dtype=float)[..., None]
        a = 2.0 * self.gamma
        out = np.sum(self.b**2 * w / (w**2 + a**2), axis=-1)
        return _scalar_or_array(omega, out)

    def sample(self, rng: np.random.Generator, t_span: Tuple[float, float]) -> TelegraphNoise:
        """Draw one realisation over ``t_span`` (equiprobable initial signs)."""
        t0, t1 = float(t_span[0]), float(t_span[1])
        signs = []
        flips = []
        for rate in self.gamma:
            signs.append(1 if rng.random() < 0.5 else -1)
            times = []
            t = t0
            while True:
                t += rng.exponential(1.0 / rate)
                if t >= t1:
                    break
                times.append(t)
            flips.append(tuple(times))
        return TelegraphNoise(
            amplitudes=tuple(float(x) for x in self.b),
            signs=tuple(signs),
            flips=tuple(flips),
        )


def one_over_f_fluctuators(
    b: float, fmin: float, fmax: float, num: int, *, total: bool = False
) -> FluctuatorEnsemble:
    """
    Fluctuators with log-spaced switching rates in ``[fmin, fmax]``.

    An ensemble of equal-amplitude fluctuators with rates uniform in log γ has
    a 1/f spectrum between the extreme rates. With ``total=True`` the
    amplitudes are rescaled so that Σ b_k² = b².
    """
    if not (0.0 < fmin < fmax) or num < 1:
        raise ConfigurationError("one_over_f_fluctuators needs 0 < fmin < fmax and num >= 1")
    gamma = np.geomspace(fmin, fmax, int(num)) if num > 1 else np.array([math.sqrt(fmin * fmax)])
    amp = b / math.sqrt(num) if total else b
    return FluctuatorEnsemble(np.full(int(num), amp), gamma)
