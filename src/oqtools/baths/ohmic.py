from __future__ import annotations

import logging
import math
from typing import Any

import numpy as np
from scipy.integrate import quad

from oqtools.baths.base import (
    Bath,
    TabulatedCorrelation,
    _scalar_or_array,
    correlation_grid,
)
from oqtools.core.units import frequency_to_angular, temperature_to_beta

logger = logging.getLogger(__name__)

# window half-width for the principal-value integral, in units of the cutoff
_PV_WINDOW = 30.0


class OhmicBath(Bath):
    """
    Ohmic bath with exponential cutoff.

        γ(ω) = 2π η ω e^{-|ω|/ωc} / (1 - e^{-βω}),   γ(0) = 2π η / β

    Parameters
    ----------
    eta:
        Dimensionless coupling strength.
    fc:
        Cutoff frequency (GHz, or a pint frequency quantity); ωc = 2π fc.
    T:
        Temperature (mK, or a pint temperature quantity).
    """

    def __init__(self, eta: float, fc: Any, T: Any) -> None:
        self.eta = float(eta)
        self.omega_c = frequency_to_angular(fc)
        self.beta = temperature_to_beta(T)
        if self.eta < 0.0 or self.omega_c <= 0.0 or self.beta <= 0.0:
            raise ValueError("OhmicBath requires eta >= 0, fc > 0 and T > 0")

    def __repr__(self) -> str:
        return (
            f"OhmicBath(eta={self.eta:g}, omega_c={self.omega_c:g} rad/ns, "
            f"beta={self.beta:g} ns)"
        )

    def spectral_density(self, omega: Any) -> Any:
        w = np.asarray(omega, dtype=float)
        out = np.empty_like(w)
        small = np.abs(w) < 1e-12
        out[small] = 2.0 * math.pi * self.eta / self.beta
        ws = w[~small]
        with np.errstate(over="ignore"):
            out[~small] = (
                2.0 * math.pi * self.eta * ws * np.exp(-np.abs(ws) / self.omega_c)
                / (-np.expm1(-self.beta * ws))
            )
        return _scalar_or_array(omega, out)

    def _thermal_part(self, w: float) -> float:
        # ω e^{-ω/ωc} · 2 / (e^{βω} - 1), written with e^{-βω} so large βω
        # underflows to 0
        if w < 1e-12:
            return 2.0 / self.beta
        x = self.beta * w
        return w * math.exp(-w / self.omega_c) * 2.0 * math.exp(-x) / -math.expm1(-x)

    def correlation(self, tau: float) -> complex:
        """
        C(τ) by quadrature.

        The zero-temperature part has the closed form
        η (a² - τ² - 2iaτ) / (a² + τ²)² with a = 1/ωc; the thermal part is a
        Fourier-cosine integral of a smooth, exponentially decaying integrand.
        """
        t = float(tau)
        if t < 0.0:
            return self.correlation(-t).conjugate()
        a = 1.0 / self.omega_c
        denom = (a * a + t * t) ** 2
        vacuum = self.eta * complex(a * a - t * t, -2.0 * a * t) / denom
        if t == 0.0:
            thermal, _ = quad(self._thermal_part, 0.0, np.inf, limit=200)
        else:
            thermal, _ = quad(self._thermal_part, 0.0, np.inf, weight="cos", wvar=t, limlst=100)
        return vacuum + self.eta * thermal

    def correlation_function(self, tmax: float, *, num: int = 801) -> TabulatedCorrelation:
        scale = max(1.0 / self.omega_c, self.beta / (2.0 * math.pi))
        return TabulatedCorrelation.from_function(
            self.correlation, correlation_grid(tmax, scale, num)
        )

    def _lamb_shift_scalar(self, w: float) -> float:
        gamma = self.spectral_density
        half = max(self.omega_c, abs(w))
        lo = min(w, 0.0) - _PV_WINDOW * self.omega_c
        hi = max(w, 0.0) + _PV_WINDOW * self.omega_c
        # P∫ γ(x)/(x - w) dx on [w - half, w + half]
        core, _ = quad(gamma, w - half, w + half, weight="cauchy", wvar=w, limit=200)

        def tail(x: float) -> float:
            return gamma(x) / (x - w)

        left = right = 0.0
        if lo < w - half:
            left, _ = quad(tail, lo, w - half, limit=200)
        if w + half < hi:
            right, _ = quad(tail, w + half, hi, limit=200)
        return -(core + left + right) / (2.0 * math.pi)

    def lamb_shift(self, omega: Any) -> Any:
        w = np.asarray(omega, dtype=float)
        out = np.array([self._lamb_shift_scalar(float(x)) for x in w.reshape(-1)])
        return _scalar_or_array(omega, out.reshape(w.shape))
