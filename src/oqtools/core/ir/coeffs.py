from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class CoeffProto(Protocol):
    def __call__(self, s: float) -> complex:
        """
        Scalar coefficient at annealing parameter s.
        """
        ...

    def eval(self, slist: np.ndarray) -> np.ndarray:
        """
        Returns complex array of shape (len(slist),).
        """
        ...


@dataclass(frozen=True)
class ConstCoeff:
    value: complex

    def __call__(self, s: float) -> complex:
        return complex(self.value)

    def eval(self, slist: np.ndarray) -> np.ndarray:
        out = np.empty(len(slist), dtype=complex)
        out[:] = self.value
        return out


@dataclass(frozen=True)
class CallableCoeff:
    fn: Callable[[float], Any]

    def __call__(self, s: float) -> complex:
        return complex(self.fn(s))

    def eval(self, slist: np.ndarray) -> np.ndarray:
        return np.asarray([self.fn(float(s)) for s in slist], dtype=complex)


@dataclass(frozen=True)
class ScaledCoeff:
    base: CoeffProto
    factor: complex

    def __call__(self, s: float) -> complex:
        return self.factor * self.base(s)

    def eval(self, slist: np.ndarray) -> np.ndarray:
        return self.factor * self.base.eval(slist)


def as_coeff(c: Any) -> CoeffProto:
    """
    Coerce numbers and plain callables of ``s`` to the coefficient protocol.
    """
    if isinstance(c, CoeffProto):
        return c
    if callable(c):
        return CallableCoeff(c)
    if np.isscalar(c):
        return ConstCoeff(complex(c))
    raise TypeError(f"Unsupported coeff type: {type(c)!r}")


def scale_coeff(coeff: CoeffProto | None, factor: complex) -> CoeffProto:
    if coeff is None:
        return ConstCoeff(factor)
    if isinstance(coeff, ConstCoeff):
        return ConstCoeff(factor * coeff.value)
    return ScaledCoeff(coeff, complex(factor))


def eval_coeff_any(coeff: Any, slist: np.ndarray) -> np.ndarray:
    if coeff is None:
        out = np.empty(len(slist), dtype=complex)
        out[:] = 1.0 + 0.0j
        return out
    return np.asarray(as_coeff(coeff).eval(slist), dtype=complex).reshape(len(slist))
