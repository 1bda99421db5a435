from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from oqtools.core.errors import ConfigurationError
from oqtools.core.model.coupling import CouplingSet
from oqtools.core.model.hamiltonian import Hamiltonian


@dataclass(frozen=True)
class Annealing:
    """
    Immutable description of one physical evolution.

    hamiltonian: H(s), s ∈ [0, 1]
    u0: initial state vector (D,) or density matrix (D, D)
    coupling: optional system operators, one per bath channel
    bath: optional bath model; channel count must match the coupling when the
        bath declares one

    All consistency checks run here so solvers can rely on them.
    """

    hamiltonian: Hamiltonian
    u0: np.ndarray
    coupling: Optional[CouplingSet] = None
    bath: Optional[Any] = None

    def __post_init__(self) -> None:
        u0 = np.array(self.u0, dtype=complex)
        u0.setflags(write=False)
        object.__setattr__(self, "u0", u0)

        D = self.hamiltonian.dim
        if u0.shape not in ((D,), (D, D)):
            raise ConfigurationError(
                f"Initial state has shape {u0.shape}; expected {(D,)} or {(D, D)}"
            )
        if self.coupling is not None and self.coupling.dim != D:
            raise ConfigurationError(
                f"Coupling dimension {self.coupling.dim} does not match Hamiltonian dimension {D}"
            )
        n_channels = getattr(self.bath, "num_channels", None)
        if n_channels is not None and self.coupling is not None:
            if int(n_channels) != len(self.coupling):
                raise ConfigurationError(
                    f"Bath has {n_channels} channels but {len(self.coupling)} couplings were given"
                )

    @property
    def dim(self) -> int:
        return self.hamiltonian.dim

    @property
    def is_density_matrix(self) -> bool:
        return self.u0.ndim == 2

    def density_matrix(self) -> np.ndarray:
        if self.is_density_matrix:
            return np.array(self.u0)
        psi = np.asarray(self.u0)
        return np.outer(psi, psi.conj())

    def state_vector(self) -> np.ndarray:
        if self.is_density_matrix:
            raise ConfigurationError("This solver needs a state vector as initial state")
        return np.array(self.u0)

    def require_open_system(self) -> None:
        if self.coupling is None:
            raise ConfigurationError("Open-system solvers need a coupling")
        if self.bath is None:
            raise ConfigurationError("Open-system solvers need a bath")
