from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import quad_vec

from oqtools.baths.base import CORRELATION, correlation_pairs, require_bath
from oqtools.core.drives.pulses import DENSITY, InstPulse
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import Sandwich, hamiltonian_sandwiches
from oqtools.core.types import Annealing
from oqtools.solvers.closed import resolve_unitary
from oqtools.solvers.common import (
    check_memory_depth,
    check_tf,
    linear_generator,
    min_eigenvalue,
    run,
    solver_options,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositivityCheck:
    """
    Halt predicate: true once the smallest eigenvalue of ρ drops below
    ``-threshold``.
    """

    dim: int
    threshold: float = 1e-4

    def __call__(self, t: float, y: np.ndarray) -> bool:
        return min_eigenvalue(np.asarray(y).reshape(self.dim, self.dim)) < -self.threshold


def _stack(mats: Sequence[np.ndarray]) -> np.ndarray:
    z = np.stack(mats)
    return np.concatenate([z.real.ravel(), z.imag.ravel()])


def _unstack(v: np.ndarray, n: int, dim: int) -> np.ndarray:
    half = v.size // 2
    return (v[:half] + 1j * v[half:]).reshape(n, dim, dim)


class RedfieldKernel:
    """
    Memory-truncated Redfield operators

        Λ_αβ(t) = ∫_{max(0, t-Ta)}^{t} C_αβ(t - x) U(t,x) S_β(x/tf) U(t,x)† dx

    with U(t, x) = U(t) U(x)†, integrated with ``quad_vec``. All channel pairs
    share one vector-valued quadrature.
    """

    def __init__(
        self,
        annealing: Annealing,
        tf: float,
        unitary: Callable[[float], np.ndarray],
        memory_depth: float,
        pairs: Sequence[Tuple[int, int, Callable[[float], complex]]],
        *,
        epsabs: float = 1e-8,
        epsrel: float = 1e-6,
    ) -> None:
        self.coupling = annealing.coupling
        self.tf = tf
        self.unitary = unitary
        self.memory_depth = memory_depth
        self.pairs = list(pairs)
        self.dim = annealing.dim
        self.epsabs = epsabs
        self.epsrel = epsrel

    def __call__(self, t: float) -> List[np.ndarray]:
        lo = max(0.0, t - self.memory_depth)
        n = len(self.pairs)
        if t <= lo:
            return [np.zeros((self.dim, self.dim), dtype=complex) for _ in range(n)]
        Ut = np.asarray(self.unitary(t))

        def integrand(x: float) -> np.ndarray:
            K = Ut @ np.asarray(self.unitary(x)).conj().T
            S = self.coupling(x / self.tf)
            out = []
            for _, beta, cfun in self.pairs:
                out.append(cfun(t - x) * (K @ S[beta] @ K.conj().T))
            return _stack(out)

        val, _ = quad_vec(integrand, lo, t, epsabs=self.epsabs, epsrel=self.epsrel)
        return list(_unstack(val, n, self.dim))


def redfield_sandwiches(
    S: Sequence[np.ndarray],
    pairs: Sequence[Tuple[int, int, Any]],
    Lambdas: Sequence[np.ndarray],
) -> List[Sandwich]:
    """-Σ_αβ (S_α Λ_αβ ρ - Λ_αβ ρ S_α) + h.c."""
    terms: List[Sandwich] = []
    for (alpha, _, _), L in zip(pairs, Lambdas):
        Sa = S[alpha]
        Sd = Sa.conj().T
        Ld = L.conj().T
        terms.append((-(Sa @ L), None))
        terms.append((L, Sa))
        terms.append((None, -(Ld @ Sd)))
        terms.append((Sd, Ld))
    return terms


def solve_redfield(
    annealing: Annealing,
    tf: float,
    unitary: Optional[Callable[[float], np.ndarray]] = None,
    *,
    memory_depth: Optional[float] = None,
    positivity_check: bool = False,
    positivity_threshold: float = 1e-4,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Time-local Redfield equation with finite memory depth.

        dρ/dt = -i[H, ρ] - Σ_αβ (S_α Λ_αβ ρ - Λ_αβ ρ S_α) + h.c.

    Parameters
    ----------
    unitary:
        Closed-system propagator U(t) on [0, tf], e.g. from ``solve_unitary``;
        computed when omitted.
    memory_depth:
        Ta, the truncation of the memory integral (ns). Required: the right
        value depends on the bath and coupling regime.
    positivity_check:
        Halt once the smallest eigenvalue of ρ falls below
        ``-positivity_threshold``; the returned solution then has status
        ``HALTED_BY_CALLBACK`` and covers [0, t_stop].
    """
    tf = check_tf(tf)
    annealing.require_open_system()
    Ta = check_memory_depth(memory_depth)
    bath = annealing.bath
    require_bath(bath, CORRELATION, solver="Redfield")
    opts = solver_options(options, kw)
    U = resolve_unitary(annealing, tf, unitary, opts)

    D = annealing.dim
    pairs = correlation_pairs(bath, len(annealing.coupling), tmax=Ta)
    kernel = RedfieldKernel(
        annealing, tf, U, Ta, pairs, epsabs=opts.quad_atol, epsrel=opts.quad_rtol
    )
    H = annealing.hamiltonian
    coupling = annealing.coupling

    def sandwiches_at(t: float) -> List[Sandwich]:
        s = t / tf
        terms = hamiltonian_sandwiches(H.dense(s))
        terms += redfield_sandwiches(coupling(s), pairs, kernel(t))
        return terms

    fun, jac = linear_generator(sandwiches_at, D, opts)
    halt = PositivityCheck(D, positivity_threshold) if positivity_check else None
    return run(
        "redfield", fun, annealing.density_matrix(), tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=DENSITY, halt=halt,
        meta={"memory_depth": Ta},
    )
