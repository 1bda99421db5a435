from __future__ import annotations

from typing import Any, Callable, Optional

import numpy as np

from oqtools.baths.base import (
    CORRELATION,
    LAMB_SHIFT,
    SPECTRAL_DENSITY,
    Bath,
    _scalar_or_array,
)


class CustomBath(Bath):
    """
    Bath assembled from caller-supplied functions.

    Any subset of ``correlation``, ``spectral_density`` and ``lamb_shift`` may
    be given; solvers that need a missing one fail with a configuration
    error before integrating. The functions follow the :class:`Bath` sign
    conventions and take scalars.
    """

    def __init__(
        self,
        *,
        correlation: Optional[Callable[[float], complex]] = None,
        spectral_density: Optional[Callable[[float], float]] = None,
        lamb_shift: Optional[Callable[[float], float]] = None,
        num_channels: Optional[int] = None,
    ) -> None:
        self._cfun = correlation
        self._gamma = spectral_density
        self._shift = lamb_shift
        self.num_channels = num_channels
        given = {
            CORRELATION: correlation,
            SPECTRAL_DENSITY: spectral_density,
            LAMB_SHIFT: lamb_shift,
        }
        self.capabilities = frozenset(k for k, fn in given.items() if fn is not None)

    def correlation(self, tau: float) -> complex:
        self.require(CORRELATION)
        return complex(self._cfun(tau))

    def spectral_density(self, omega: Any) -> Any:
        self.require(SPECTRAL_DENSITY)
        w = np.asarray(omega, dtype=float)
        out = np.array([float(self._gamma(float(x))) for x in w.reshape(-1)])
        return _scalar_or_array(omega, out.reshape(w.shape))

    def lamb_shift(self, omega: Any) -> Any:
        self.require(LAMB_SHIFT)
        w = np.asarray(omega, dtype=float)
        out = np.array([float(self._shift(float(x))) for x in w.reshape(-1)])
        return _scalar_or_array(omega, out.reshape(w.shape))

    def __repr__(self) -> str:
        return f"CustomBath(capabilities={sorted(self.capabilities)})"
