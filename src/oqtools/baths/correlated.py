from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from oqtools.baths.base import CORRELATION, Bath
from oqtools.core.errors import ConfigurationError

PairFunctions = Union[
    Mapping[Tuple[int, int], Callable[[float], complex]],
    Sequence[Sequence[Optional[Callable[[float], complex]]]],
]


def _as_pair_dict(correlations: PairFunctions) -> Dict[Tuple[int, int], Callable]:
    if isinstance(correlations, Mapping):
        return {(int(a), int(b)): fn for (a, b), fn in correlations.items()}
    out: Dict[Tuple[int, int], Callable] = {}
    for a, row in enumerate(correlations):
        for b, fn in enumerate(row):
            if fn is not None:
                out[(a, b)] = fn
    return out


class CorrelatedBath(Bath):
    """
    Bath whose channels cross-correlate.

    ``correlations`` maps ``(alpha, beta)`` to C_αβ(τ), either as a dict or as
    a matrix of callables with ``None`` for absent pairs. ``(i, j)`` and
    ``(j, i)`` are independent entries; give both when both are non-zero.
    Only the correlation capability is available, so this bath drives the
    Redfield family of solvers.
    """

    capabilities = frozenset({CORRELATION})

    def __init__(self, correlations: PairFunctions, *, num_channels: Optional[int] = None) -> None:
        pairs = _as_pair_dict(correlations)
        if not pairs:
            raise ConfigurationError("CorrelatedBath needs at least one channel pair")
        highest = max(max(a, b) for a, b in pairs) + 1
        n = highest if num_channels is None else int(num_channels)
        if n < highest or min(min(a, b) for a, b in pairs) < 0:
            raise ConfigurationError(
                f"Channel pairs {sorted(pairs)} do not fit {n} channels"
            )
        for key, fn in pairs.items():
            if not callable(fn):
                raise ConfigurationError(f"Correlation for pair {key} is not callable")
        self._pairs = pairs
        self.num_channels = n

    @property
    def channel_pairs(self) -> List[Tuple[int, int]]:
        return sorted(self._pairs)

    def correlation(self, tau: float, alpha: int = 0, beta: int = 0) -> complex:
        try:
            fn = self._pairs[(alpha, beta)]
        except KeyError:
            return 0j
        return complex(fn(tau))

    def spectral_density(self, omega: Any) -> Any:
        self.require("spectral_density")

    def lamb_shift(self, omega: Any) -> Any:
        self.require("lamb_shift")

    def correlation_pairs(
        self, num_couplings: int, *, tmax: float
    ) -> List[Tuple[int, int, Callable[[float], complex]]]:
        if num_couplings != self.num_channels:
            raise ConfigurationError(
                f"Bath has {self.num_channels} channels but {num_couplings} couplings were given"
            )
        return [(a, b, self._pairs[(a, b)]) for a, b in self.channel_pairs]

    def __repr__(self) -> str:
        return f"CorrelatedBath(num_channels={self.num_channels}, pairs={self.channel_pairs})"
