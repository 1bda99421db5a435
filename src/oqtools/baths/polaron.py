from __future__ import annotations

import logging
import math
from typing import Any, Optional

import numpy as np
from scipy.integrate import cumulative_trapezoid

from oqtools.baths.base import CORRELATION, TabulatedCorrelation, correlation_grid, require_bath
from oqtools.baths.correlated import CorrelatedBath

logger = logging.getLogger(__name__)


def polaron_correlation(
    bath: Any, tmax: float, *, scale: Optional[float] = None, num: int = 2001
) -> TabulatedCorrelation:
    """
    Polaron-frame correlation exp(-4 K(t)) with K(t) = ∫_0^t (t - τ) C(τ) dτ.

    K is accumulated on a grid as t ∫_0^t C - ∫_0^t τ C, using the
    trapezoidal rule.
    """
    require_bath(bath, CORRELATION, solver="polaron_correlation")
    if scale is None:
        omega_c = getattr(bath, "omega_c", None)
        beta = getattr(bath, "beta", None)
        if omega_c is not None and beta is not None:
            scale = max(1.0 / omega_c, beta / (2.0 * math.pi))
        else:
            scale = float(tmax) / 100.0
    tau = correlation_grid(tmax, scale, num)
    logger.debug("Building polaron correlation on %d points up to %g ns", tau.size, tau[-1])
    C = np.array([complex(bath.correlation(float(t))) for t in tau])
    I0 = cumulative_trapezoid(C, tau, initial=0.0)
    I1 = cumulative_trapezoid(tau * C, tau, initial=0.0)
    K = tau * I0 - I1
    return TabulatedCorrelation(tau, np.exp(-4.0 * K))


def polaron_bath(bath: Any, tmax: float, **kwargs: Any) -> CorrelatedBath:
    """
    Two-channel bath for the polaron-transformed Redfield equation.

    Pairs with couplings ``[Δ/2 σ+, Δ/2 σ-]``; only the cross pairs
    ``(0, 1)`` and ``(1, 0)`` are non-zero.
    """
    cfun = polaron_correlation(bath, tmax, **kwargs)
    return CorrelatedBath({(0, 1): cfun, (1, 0): cfun}, num_channels=2)
