from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np

from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.audit import AuditOptions, audit_annealing
from oqtools.core.sim.protocols import ReferenceAdapterProto
from oqtools.core.sim.types import ReferenceResult, Solution, SolverOptions
from oqtools.core.types import Annealing
from oqtools.ensemble import EnsembleProblem, build_ensembles
from oqtools.solvers import (
    solve_ame,
    solve_ame_trajectory,
    solve_cgme,
    solve_ptre,
    solve_redfield,
    solve_schrodinger,
    solve_stochastic_schrodinger,
    solve_ule,
    solve_unitary,
    solve_von_neumann,
)

logger = logging.getLogger(__name__)

SOLVERS: Dict[str, Callable[..., Solution]] = {
    "schrodinger": solve_schrodinger,
    "von_neumann": solve_von_neumann,
    "unitary": solve_unitary,
    "redfield": solve_redfield,
    "ame": solve_ame,
    "cgme": solve_cgme,
    "ule": solve_ule,
    "ptre": solve_ptre,
    "stochastic": solve_stochastic_schrodinger,
    "ame_trajectory": solve_ame_trajectory,
}

# solvers that take the closed-system propagator as third argument
_NEEDS_UNITARY = frozenset({"redfield", "cgme", "ule", "ptre"})


def _default_adapter() -> ReferenceAdapterProto:
    # Late import to avoid core depending on QuTiP
    from oqtools.adapters.qutip.adapter import QuTiPAdapter

    return QuTiPAdapter()


@dataclass
class SimulationEngine:
    """
    Single entry point over every solver.

    ``run`` dispatches on ``kind``; open-system kinds that need U(t) get it
    from :func:`solve_unitary` when none is passed, and the propagator is
    reused for later calls on the same annealing and tf.
    """

    adapter: Optional[ReferenceAdapterProto] = None
    audit: bool = False
    audit_options: Optional[AuditOptions] = None
    options: Optional[SolverOptions] = None

    def __post_init__(self) -> None:
        # id(annealing) -> {tf: U}; entries go when the annealing is collected
        self._unitaries: Dict[int, Dict[float, Solution]] = {}

    def unitary(self, annealing: Annealing, tf: float) -> Solution:
        key = id(annealing)
        per_tf = self._unitaries.get(key)
        if per_tf is None:
            per_tf = self._unitaries[key] = {}
            weakref.finalize(annealing, self._unitaries.pop, key, None)
        U = per_tf.get(float(tf))
        if U is None:
            U = per_tf[float(tf)] = solve_unitary(annealing, tf, options=self.options)
        return U

    def run(self, annealing: Annealing, tf: float, kind: str, **kw: Any) -> Solution:
        try:
            solver = SOLVERS[kind]
        except KeyError as e:
            raise ConfigurationError(
                f"Unknown solver kind {kind!r}; expected one of {sorted(SOLVERS)}"
            ) from e

        if self.audit:
            _ = audit_annealing(annealing, options=self.audit_options)

        kw.setdefault("options", self.options)
        logger.info("SimulationEngine.run: kind=%s tf=%g", kind, tf)
        if kind in _NEEDS_UNITARY:
            unitary = kw.pop("unitary", None) or self.unitary(annealing, tf)
            return solver(annealing, tf, unitary, **kw)
        return solver(annealing, tf, **kw)

    def ensemble(
        self, annealing: Annealing, tf: float, kind: str, *, seed: int = 0, **kw: Any
    ) -> EnsembleProblem:
        if self.audit:
            _ = audit_annealing(annealing, options=self.audit_options)
        kw.setdefault("options", self.options)
        return build_ensembles(annealing, tf, kind, seed=seed, **kw)

    def reference(
        self,
        annealing: Annealing,
        tf: float,
        tlist: np.ndarray,
        *,
        solve_options: Optional[Mapping[str, Any]] = None,
    ) -> ReferenceResult:
        """Closed-system reference from the external backend (QuTiP by default)."""
        if self.audit:
            _ = audit_annealing(annealing, options=self.audit_options)
        adapter = self.adapter or _default_adapter()
        return adapter.solve(annealing, tf, tlist, options=solve_options)
