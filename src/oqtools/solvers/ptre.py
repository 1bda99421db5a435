from __future__ import annotations

from typing import Any, Callable, Optional

import numpy as np

from oqtools.baths.correlated import CorrelatedBath
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.types import Solution
from oqtools.core.types import Annealing
from oqtools.solvers.redfield import solve_redfield


def solve_ptre(
    annealing: Annealing,
    tf: float,
    unitary: Optional[Callable[[float], np.ndarray]] = None,
    *,
    memory_depth: Optional[float] = None,
    **kw: Any,
) -> Solution:
    """
    Polaron-transformed Redfield equation.

    The annealing must already be in the polaron frame: transformed
    Hamiltonian, couplings ``[Δ/2 σ+, Δ/2 σ-]`` and the bath from
    :func:`~oqtools.baths.polaron.polaron_bath`. Integration is the Redfield
    code path, unchanged.
    """
    if not isinstance(annealing.bath, CorrelatedBath):
        raise ConfigurationError("PTRE needs a CorrelatedBath, e.g. from polaron_bath()")
    return solve_redfield(annealing, tf, unitary, memory_depth=memory_depth, **kw)
