from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.linalg import eigh
from scipy.sparse.linalg import eigsh

from oqtools.core.errors import ConfigurationError
from oqtools.core.ir.coeffs import CoeffProto, ConstCoeff, as_coeff
from oqtools.core.model.protocols import EigenSolverProto
from oqtools.core.units import ANGULAR, LINEAR, normalize_unit, unit_scale

logger = logging.getLogger(__name__)


def dense_eigensolver(matrix: Any, s: float, lvl: int) -> Tuple[np.ndarray, np.ndarray]:
    """Default strategy; sparse inputs are converted to dense first."""
    m = matrix.toarray() if sp.issparse(matrix) else np.asarray(matrix)
    return eigh(m, subset_by_index=(0, int(lvl) - 1))


def sparse_eigensolver(matrix: Any, s: float, lvl: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Lanczos strategy for large sparse operators.

    ``eigsh`` cannot return every eigenpair, so ``lvl`` must be smaller than
    the dimension.
    """
    m = sp.csr_matrix(matrix)
    v0 = np.ones(m.shape[0], dtype=m.dtype)
    w, v = eigsh(m, k=int(lvl), which="SA", v0=v0)
    order = np.argsort(w)
    return w[order], v[:, order]


@dataclass
class EigenCache:
    """
    Last decomposition computed by a Hamiltonian.

    Owned by exactly one Hamiltonian instance; concurrent trajectories get
    their own through :meth:`Hamiltonian.clone`.
    """

    s: float = math.nan
    lvl: int = 0
    values: Optional[np.ndarray] = None
    vectors: Optional[np.ndarray] = None

    def matches(self, s: float, lvl: int) -> bool:
        return self.values is not None and self.s == s and self.lvl == lvl


def _as_matrix(m: Any, scale: float) -> Any:
    if sp.issparse(m):
        return sp.csr_matrix(m, dtype=complex) * scale
    return np.asarray(m, dtype=complex) * scale


class Operator:
    """
    Time-dependent linear operator O(s) = Σ_i f_i(s) M_i.

    ``s`` is the annealing parameter. The unit flag rescales the matrices once,
    here; evaluation never rescales again.
    """

    def __init__(
        self,
        coeffs: Sequence[Any],
        mats: Sequence[Any],
        *,
        unit: str = ANGULAR,
    ) -> None:
        if len(coeffs) != len(mats):
            raise ConfigurationError(
                f"Got {len(coeffs)} coefficients for {len(mats)} matrices"
            )
        if not mats:
            raise ConfigurationError("Operator requires at least one term")

        self.unit = normalize_unit(unit)
        scale = unit_scale(self.unit)
        self.coeffs: Tuple[CoeffProto, ...] = tuple(as_coeff(c) for c in coeffs)
        self.mats: Tuple[Any, ...] = tuple(_as_matrix(m, scale) for m in mats)

        shape = self.mats[0].shape
        if len(shape) != 2 or shape[0] != shape[1]:
            raise ConfigurationError(f"Operator matrices must be square, got {shape}")
        for idx, m in enumerate(self.mats):
            if m.shape != shape:
                raise ConfigurationError(
                    f"Term {idx} has shape {m.shape}, expected {shape}"
                )
        self.is_sparse = sp.issparse(self.mats[0])

    @property
    def dim(self) -> int:
        return int(self.mats[0].shape[0])

    @property
    def is_constant(self) -> bool:
        return all(isinstance(c, ConstCoeff) for c in self.coeffs)

    def __call__(self, s: float) -> Any:
        return self.evaluate(s)

    def evaluate(self, s: float) -> Any:
        if self.is_sparse:
            out = self.coeffs[0](s) * self.mats[0]
            for c, m in zip(self.coeffs[1:], self.mats[1:]):
                out = out + c(s) * m
            return out
        out = np.zeros((self.dim, self.dim), dtype=complex)
        for c, m in zip(self.coeffs, self.mats):
            out += c(s) * m
        return out

    def dense(self, s: float) -> np.ndarray:
        out = self.evaluate(s)
        return out.toarray() if sp.issparse(out) else out

    def _merged_terms(self, other: "Operator") -> Tuple[tuple, tuple]:
        if other.dim != self.dim:
            raise ConfigurationError(
                f"Cannot add operators of dimension {self.dim} and {other.dim}"
            )
        return self.coeffs + other.coeffs, self.mats + other.mats

    def __add__(self, other: "Operator") -> "Operator":
        coeffs, mats = self._merged_terms(other)
        # matrices are already scaled
        return Operator(coeffs, mats, unit=ANGULAR)

    def __repr__(self) -> str:
        kind = "sparse" if self.is_sparse else "dense"
        return f"{type(self).__name__}(dim={self.dim}, terms={len(self.mats)}, {kind})"


class Hamiltonian(Operator):
    """
    Operator with a cached, on-demand spectral decomposition.

    H(s) = Σ_i f_i(s) M_i. With ``unit="h"`` (default) the matrices are given
    in GHz and stored in rad/ns.

    Examples
    --------
    >>> from oqtools.core.ir.ops import PAULI
    >>> H = Hamiltonian([lambda s: 1 - s, lambda s: s], [-PAULI["X"] / 2, -PAULI["Z"] / 2])
    >>> w, v = H.eigen_decompose(0.5, lvl=2)
    """

    def __init__(
        self,
        coeffs: Sequence[Any],
        mats: Sequence[Any],
        *,
        unit: str = LINEAR,
        eigensolver: Optional[EigenSolverProto] = None,
    ) -> None:
        super().__init__(coeffs, mats, unit=unit)
        self.eigensolver: EigenSolverProto = eigensolver or dense_eigensolver
        self._cache = EigenCache()

    @property
    def cache(self) -> EigenCache:
        return self._cache

    def eigen_decompose(
        self, s: float, lvl: Optional[int] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Lowest ``lvl`` eigenpairs of H(s), ascending.

        The cache is reused only when ``s`` and ``lvl`` match the last call
        exactly; otherwise it is overwritten. Eigensolver failures propagate.
        """
        lvl = self.dim if lvl is None else int(lvl)
        if lvl < 1 or lvl > self.dim:
            raise ConfigurationError(f"lvl must be in [1, {self.dim}], got {lvl}")

        s = float(s)
        if not self._cache.matches(s, lvl):
            logger.debug("eigen_decompose: refreshing cache at s=%g lvl=%d", s, lvl)
            values, vectors = self.eigensolver(self.evaluate(s), s, lvl)
            values = np.asarray(values, dtype=float)
            vectors = np.asarray(vectors)
            if values.shape != (lvl,) or vectors.shape != (self.dim, lvl):
                raise ConfigurationError(
                    f"Eigensolver returned shapes {values.shape}, {vectors.shape}; "
                    f"expected {(lvl,)}, {(self.dim, lvl)}"
                )
            self._cache = EigenCache(s=s, lvl=lvl, values=values, vectors=vectors)
        return self._cache.values.copy(), self._cache.vectors.copy()

    def clone(self) -> "Hamiltonian":
        """Shallow copy sharing the (immutable) terms, with a fresh cache."""
        out = copy.copy(self)
        out._cache = EigenCache()
        return out

    def __add__(self, other: Operator) -> "Hamiltonian":
        coeffs, mats = self._merged_terms(other)
        return Hamiltonian(coeffs, mats, unit=ANGULAR, eigensolver=self.eigensolver)
