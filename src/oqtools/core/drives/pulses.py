from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Tuple

import numpy as np

from oqtools.core.errors import ConfigurationError
from oqtools.core.ir.ops import pauli_string

# how a pulse acts on each state representation
KET = "ket"
DENSITY = "density"
UNITARY = "unitary"


@dataclass(frozen=True)
class InstPulse:
    """
    Instantaneous unitary kick applied at exactly ``time``.

    ``op`` is a unitary matrix or a Pauli word (``"X"``, ``"XI"``). Pulses are
    discontinuous updates between two integration segments, never a term of
    the generator.
    """

    time: float
    op: Any
    label: str = ""
    meta: Mapping[str, Any] = field(default_factory=dict)

    def matrix(self) -> np.ndarray:
        if isinstance(self.op, str):
            return pauli_string(self.op)
        return np.asarray(self.op, dtype=complex)

    def apply(self, state: np.ndarray, kind: str) -> np.ndarray:
        U = self.matrix()
        if kind == KET:
            return U @ state
        if kind == DENSITY:
            return U @ state @ U.conj().T
        if kind == UNITARY:
            return U @ state
        raise ValueError(f"Unknown state kind: {kind}")


def validate_pulses(
    pulses: Sequence[InstPulse], dim: int, t_span: Tuple[float, float]
) -> Tuple[InstPulse, ...]:
    """Sort pulses by time and check shapes and times."""
    t0, t1 = t_span
    out = sorted(pulses, key=lambda p: float(p.time))
    for p in out:
        U = p.matrix()
        if U.shape != (dim, dim):
            raise ConfigurationError(
                f"Pulse {p.label or p.time} has shape {U.shape}, expected {(dim, dim)}"
            )
        if not (t0 < float(p.time) < t1):
            raise ConfigurationError(
                f"Pulse time {p.time} must lie strictly inside ({t0}, {t1})"
            )
    return tuple(out)


def hahn_echo(tf: float, op: Any = "X") -> Tuple[InstPulse, ...]:
    """Single refocusing pulse at tf/2."""
    return (InstPulse(time=0.5 * float(tf), op=op, label="echo"),)
