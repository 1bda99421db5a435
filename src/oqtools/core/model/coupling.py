from __future__ import annotations

from typing import Any, Iterator, List, Sequence

import numpy as np

from oqtools.core.errors import ConfigurationError
from oqtools.core.ir.coeffs import ConstCoeff
from oqtools.core.ir.ops import collective_operator, pauli_string
from oqtools.core.model.hamiltonian import Operator
from oqtools.core.units import ANGULAR


def _as_operator(op: Any, unit: str) -> Operator:
    if isinstance(op, Operator):
        return op
    if isinstance(op, str):
        op = pauli_string(op)
    return Operator([ConstCoeff(1.0)], [op], unit=unit)


class CouplingSet:
    """
    Ordered system operators; index ``i`` pairs with bath channel ``i``.
    """

    def __init__(self, operators: Sequence[Any], *, unit: str = ANGULAR) -> None:
        ops = [_as_operator(op, unit) for op in operators]
        if not ops:
            raise ConfigurationError("CouplingSet requires at least one operator")
        dims = {op.dim for op in ops}
        if len(dims) != 1:
            raise ConfigurationError(f"Coupling operators disagree on dimension: {sorted(dims)}")
        self._ops: tuple[Operator, ...] = tuple(ops)

    @property
    def dim(self) -> int:
        return self._ops[0].dim

    @property
    def is_constant(self) -> bool:
        return all(op.is_constant for op in self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __iter__(self) -> Iterator[Operator]:
        return iter(self._ops)

    def __getitem__(self, i: int) -> Operator:
        return self._ops[i]

    def __call__(self, s: float) -> List[np.ndarray]:
        return [op.dense(s) for op in self._ops]

    def __repr__(self) -> str:
        return f"CouplingSet(n={len(self)}, dim={self.dim})"


def ConstantCouplings(ops: Sequence[Any], *, unit: str = ANGULAR) -> CouplingSet:
    """
    Constant couplings from matrices or Pauli words (``["ZI", "IZ"]``).
    """
    return CouplingSet(list(ops), unit=unit)


def CustomCouplings(operators: Sequence[Operator]) -> CouplingSet:
    """Couplings from already-built (possibly time-dependent) operators."""
    for op in operators:
        if not isinstance(op, Operator):
            raise TypeError(f"Expected Operator, got {type(op)!r}")
    return CouplingSet(list(operators))


def collective_coupling(symbol: str, num_qubits: int, *, unit: str = ANGULAR) -> CouplingSet:
    """One channel coupled to Σ_i σ_i."""
    return CouplingSet([collective_operator(symbol, num_qubits)], unit=unit)
