from __future__ import annotations

import logging
import math
from typing import Any, Optional

import numpy as np
from scipy.integrate import quad
from scipy.interpolate import CubicSpline

from oqtools.baths.base import (
    SPECTRAL_DENSITY,
    Bath,
    _scalar_or_array,
    correlation_grid,
    require_bath,
)
from oqtools.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ULEBath(Bath):
    """
    Bath wrapper carrying the jump correlator of the universal Lindblad
    equation,

        g(t) = (1/2π) ∫ √γ(ω) e^{-iωt} dω,   g(-t) = g(t)*.

    The table of g on ``[0, tmax]`` is built lazily on first use, then
    interpolated with a cubic spline; beyond ``tmax`` the boundary value is
    held. ``tmax`` must cover the memory depth used by the solver.
    Correlation, spectral density and Lamb shift are delegated to the
    wrapped bath.

    Parameters
    ----------
    bath:
        Any bath providing ``spectral_density``.
    tmax:
        Extent of the tabulated grid (ns).
    scale:
        Time scale on which g varies fastest; defaults to the wrapped bath's
        cutoff and thermal times when it is Ohmic, else ``tmax / 100``.
    num:
        Grid size.
    """

    def __init__(
        self,
        bath: Any,
        tmax: float,
        *,
        scale: Optional[float] = None,
        num: int = 801,
    ) -> None:
        require_bath(bath, SPECTRAL_DENSITY, solver="ULEBath")
        self.bath = bath
        self.tmax = float(tmax)
        if self.tmax <= 0.0:
            raise ConfigurationError(f"tmax must be > 0, got {tmax}")
        if scale is None:
            omega_c = getattr(bath, "omega_c", None)
            beta = getattr(bath, "beta", None)
            if omega_c is not None and beta is not None:
                scale = max(1.0 / omega_c, beta / (2.0 * math.pi))
            else:
                scale = self.tmax / 100.0
        self.scale = float(scale)
        self.num = int(num)
        self.num_channels = getattr(bath, "num_channels", None)
        self._table: Optional[tuple] = None

    def __repr__(self) -> str:
        return f"ULEBath({self.bath!r}, tmax={self.tmax:g})"

    def _sqrt_gamma(self, w: float) -> float:
        return math.sqrt(max(float(self.bath.spectral_density(w)), 0.0))

    def _g_exact(self, t: float) -> complex:
        even = lambda w: self._sqrt_gamma(w) + self._sqrt_gamma(-w)  # noqa: E731
        odd = lambda w: self._sqrt_gamma(w) - self._sqrt_gamma(-w)  # noqa: E731
        if t == 0.0:
            re, _ = quad(even, 0.0, np.inf, limit=200)
            return complex(re / (2.0 * math.pi), 0.0)
        re, _ = quad(even, 0.0, np.inf, weight="cos", wvar=t, limlst=100)
        im, _ = quad(odd, 0.0, np.inf, weight="sin", wvar=t, limlst=100)
        return complex(re, -im) / (2.0 * math.pi)

    def _ensure_table(self) -> tuple:
        if self._table is None:
            tau = correlation_grid(self.tmax, self.scale, self.num)
            logger.debug("Building jump correlator table: %d points up to %g ns", tau.size, self.tmax)
            vals = np.array([self._g_exact(float(t)) for t in tau])
            self._table = (CubicSpline(tau, vals.real), CubicSpline(tau, vals.imag))
        return self._table

    def jump_correlator(self, t: Any) -> Any:
        re, im = self._ensure_table()
        tt = np.asarray(t, dtype=float)
        a = np.clip(np.abs(tt), 0.0, self.tmax)
        val = re(a) + 1j * im(a)
        val = np.where(tt < 0.0, np.conj(val), val)
        return _scalar_or_array(t, np.asarray(val, dtype=complex))

    def correlation(self, tau: float) -> complex:
        return self.bath.correlation(tau)

    def correlation_function(self, tmax: float):
        if hasattr(self.bath, "correlation_function"):
            return self.bath.correlation_function(tmax)
        return self.bath.correlation

    def spectral_density(self, omega: Any) -> Any:
        return self.bath.spectral_density(omega)

    def lamb_shift(self, omega: Any) -> Any:
        return self.bath.lamb_shift(omega)

    def provides(self, capability: str) -> bool:
        if isinstance(self.bath, Bath):
            return self.bath.provides(capability)
        return callable(getattr(self.bath, capability, None))
