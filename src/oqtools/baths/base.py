from __future__ import annotations

import abc
import logging
from typing import Any, Callable, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import CubicSpline

from oqtools.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CORRELATION = "correlation"
SPECTRAL_DENSITY = "spectral_density"
LAMB_SHIFT = "lamb_shift"
ALL_CAPABILITIES: FrozenSet[str] = frozenset({CORRELATION, SPECTRAL_DENSITY, LAMB_SHIFT})


def _scalar_or_array(x: Any, out: np.ndarray) -> Any:
    return out.item() if np.ndim(x) == 0 else out


def correlation_grid(tmax: float, scale: float, num: int = 801) -> np.ndarray:
    """
    Non-uniform grid on ``[0, tmax]``: half the points within ``20 * scale`` of
    the origin, where bath correlations vary fastest, the rest spread evenly
    over the remainder.
    """
    tmax = float(tmax)
    if tmax <= 0.0:
        raise ConfigurationError(f"tmax must be > 0, got {tmax}")
    split = min(tmax, 20.0 * float(scale))
    n_fine = max(int(num) // 2, 2)
    fine = np.linspace(0.0, split, n_fine)
    if split >= tmax:
        return fine
    coarse = np.linspace(split, tmax, max(int(num) - n_fine, 2))
    return np.concatenate([fine, coarse[1:]])


class TabulatedCorrelation:
    """
    Spline interpolant of a correlation function sampled on ``[0, tmax]``.

    Negative arguments use C(-τ) = C(τ)*; beyond ``tmax`` the value is held
    at the boundary (flat extrapolation).
    """

    def __init__(self, tau: Sequence[float], values: Sequence[complex]) -> None:
        tau = np.asarray(tau, dtype=float)
        values = np.asarray(values, dtype=complex)
        if tau.ndim != 1 or tau.shape != values.shape or tau.size < 2:
            raise ValueError("tau and values must be 1D arrays of equal length >= 2")
        if tau[0] != 0.0 or np.any(np.diff(tau) <= 0.0):
            raise ValueError("tau grid must start at 0 and increase strictly")
        self.tau = tau
        self.values = values
        self.tmax = float(tau[-1])
        self._re = CubicSpline(tau, values.real)
        self._im = CubicSpline(tau, values.imag)

    @classmethod
    def from_function(
        cls, fn: Callable[[float], complex], tau: Sequence[float]
    ) -> "TabulatedCorrelation":
        tau = np.asarray(tau, dtype=float)
        logger.debug("Tabulating correlation on %d points up to tau=%g", tau.size, tau[-1])
        return cls(tau, [complex(fn(float(t))) for t in tau])

    def __call__(self, tau: Any) -> Any:
        t = np.asarray(tau, dtype=float)
        a = np.clip(np.abs(t), 0.0, self.tmax)
        val = self._re(a) + 1j * self._im(a)
        val = np.where(t < 0.0, np.conj(val), val)
        return _scalar_or_array(tau, np.asarray(val, dtype=complex))


class Bath(abc.ABC):
    """
    Environment characterised by its two-point statistics.

    Conventions (angular frequencies, physical time):

    - ``correlation(τ)``: C(τ), with C(-τ) = C(τ)*
    - ``spectral_density(ω)``: γ(ω) = ∫ C(τ) e^{iωτ} dτ
    - ``lamb_shift(ω)``: S(ω) = (1/2π) P∫ γ(x) / (ω - x) dx

    ``num_channels`` is ``None`` when the same statistics apply to every
    coupling operator independently.
    """

    num_channels: Optional[int] = None
    capabilities: FrozenSet[str] = ALL_CAPABILITIES

    def provides(self, capability: str) -> bool:
        return capability in self.capabilities

    def require(self, *capabilities: str, solver: str = "") -> None:
        missing = [c for c in capabilities if not self.provides(c)]
        if missing:
            who = f" for {solver}" if solver else ""
            raise ConfigurationError(
                f"{type(self).__name__} does not provide {', '.join(missing)}{who}"
            )

    @abc.abstractmethod
    def correlation(self, tau: float) -> complex:
        """Two-point correlation C(τ)."""

    @abc.abstractmethod
    def spectral_density(self, omega: Any) -> Any:
        """γ(ω); accepts scalars and arrays."""

    @abc.abstractmethod
    def lamb_shift(self, omega: Any) -> Any:
        """S(ω); accepts scalars and arrays."""

    def correlation_function(self, tmax: float) -> Callable[[float], complex]:
        """
        Callable used inside solver generators for lags up to ``tmax``.

        Baths with closed forms return the exact function; quadrature-backed
        baths return a :class:`TabulatedCorrelation`.
        """
        return self.correlation

    def correlation_pairs(
        self, num_couplings: int, *, tmax: float
    ) -> List[Tuple[int, int, Callable[[float], complex]]]:
        if self.num_channels is not None and self.num_channels != num_couplings:
            raise ConfigurationError(
                f"Bath has {self.num_channels} channels but {num_couplings} couplings were given"
            )
        C = self.correlation_function(tmax)
        return [(a, a, C) for a in range(num_couplings)]


def require_bath(bath: Any, *capabilities: str, solver: str = "") -> None:
    """Capability check that also accepts duck-typed baths."""
    if isinstance(bath, Bath):
        bath.require(*capabilities, solver=solver)
        return
    missing = [c for c in capabilities if not callable(getattr(bath, c, None))]
    if missing:
        raise ConfigurationError(
            f"{type(bath).__name__} does not provide {', '.join(missing)}"
            + (f" for {solver}" if solver else "")
        )


def correlation_pairs(
    bath: Any, num_couplings: int, *, tmax: float
) -> List[Tuple[int, int, Callable[[float], complex]]]:
    if hasattr(bath, "correlation_pairs"):
        return list(bath.correlation_pairs(num_couplings, tmax=tmax))
    return [(a, a, bath.correlation) for a in range(num_couplings)]
