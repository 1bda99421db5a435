from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import cumulative_trapezoid, trapezoid

from oqtools.baths.base import SPECTRAL_DENSITY, require_bath
from oqtools.baths.ule import ULEBath
from oqtools.core.drives.pulses import DENSITY, InstPulse
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import Sandwich, hamiltonian_sandwiches, lindblad_sandwiches
from oqtools.core.types import Annealing
from oqtools.solvers.closed import resolve_unitary
from oqtools.solvers.common import (
    check_memory_depth,
    check_tf,
    linear_generator,
    run,
    solver_options,
)

logger = logging.getLogger(__name__)


def as_ule_bath(bath: Any, memory_depth: float) -> ULEBath:
    """
    The bath as a :class:`ULEBath` whose table covers ``memory_depth``.

    A ULEBath with a shorter table is a configuration error: the flat
    extrapolation would silently replace the tail of g(t).
    """
    if isinstance(bath, ULEBath):
        if memory_depth > bath.tmax:
            raise ConfigurationError(
                f"memory_depth {memory_depth} exceeds the jump correlator grid (tmax={bath.tmax})"
            )
        return bath
    require_bath(bath, SPECTRAL_DENSITY, solver="ULE")
    return ULEBath(bath, memory_depth)


class ULEKernel:
    """
    Jump operator and Lamb shift of the universal Lindblad equation.

        L(t) = ∫ g(τ) B(τ) dτ
        Λ(t) = (i/2) ∫∫ g*(τ) g(τ') sgn(τ - τ') B(τ) B(τ') dτ dτ'

    with B(τ) = U(t,t-τ) S((t-τ)/tf) U(t,t-τ)† and τ restricted to
    [-Ta, Ta] ∩ [t - tf, t]. Both integrals use the trapezoidal rule on a
    uniform grid of ``quadrature_points``; the double integral reduces to a
    single one through the running integral F(τ) = ∫^τ g B.
    """

    def __init__(
        self,
        annealing: Annealing,
        tf: float,
        unitary: Callable[[float], np.ndarray],
        bath: ULEBath,
        memory_depth: float,
        quadrature_points: int,
        lambshift: bool,
    ) -> None:
        if quadrature_points < 3:
            raise ConfigurationError("quadrature_points must be >= 3")
        self.coupling = annealing.coupling
        self.tf = tf
        self.unitary = unitary
        self.bath = bath
        self.memory_depth = memory_depth
        self.n = int(quadrature_points)
        self.lambshift = lambshift

    def __call__(self, t: float) -> Tuple[List[np.ndarray], np.ndarray]:
        lo = max(-self.memory_depth, t - self.tf)
        hi = min(self.memory_depth, t)
        tau = np.linspace(lo, hi, self.n)
        g = np.asarray(self.bath.jump_correlator(tau))
        Ut = np.asarray(self.unitary(t))

        # B[k, alpha] for every grid point and coupling
        Bs = []
        for x in t - tau:
            K = Ut @ np.asarray(self.unitary(x)).conj().T
            Bs.append([K @ S @ K.conj().T for S in self.coupling(x / self.tf)])
        B = np.asarray(Bs)

        gB = g[:, None, None, None] * B
        jumps = list(trapezoid(gB, tau, axis=0))
        dim = B.shape[-1]
        shift = np.zeros((dim, dim), dtype=complex)
        if self.lambshift:
            F = cumulative_trapezoid(gB, tau, axis=0, initial=0.0)
            inner = 2.0 * F - F[-1][None]
            for alpha in range(B.shape[1]):
                integrand = np.conj(g)[:, None, None] * (B[:, alpha] @ inner[:, alpha])
                shift += 0.5j * trapezoid(integrand, tau, axis=0)
            shift = 0.5 * (shift + shift.conj().T)
        return jumps, shift


def solve_ule(
    annealing: Annealing,
    tf: float,
    unitary: Optional[Callable[[float], np.ndarray]] = None,
    *,
    memory_depth: Optional[float] = None,
    lambshift: bool = True,
    quadrature_points: int = 201,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Universal Lindblad equation.

        dρ/dt = -i[H + Λ, ρ] + Σ_α (L_α ρ L_α† - ½{L_α†L_α, ρ})

    The bath is wrapped in a :class:`ULEBath` (jump correlator table up to
    ``memory_depth``) unless it already is one. The generator is of Lindblad
    form at every instant, so ρ stays positive.
    """
    tf = check_tf(tf)
    annealing.require_open_system()
    Ta = check_memory_depth(memory_depth)
    bath = as_ule_bath(annealing.bath, Ta)
    if getattr(bath, "num_channels", None) not in (None, len(annealing.coupling)):
        raise ConfigurationError("ULE needs one independent bath channel per coupling")
    opts = solver_options(options, kw)
    U = resolve_unitary(annealing, tf, unitary, opts)

    D = annealing.dim
    kernel = ULEKernel(annealing, tf, U, bath, Ta, quadrature_points, lambshift)
    H = annealing.hamiltonian

    def sandwiches_at(t: float) -> List[Sandwich]:
        jumps, shift = kernel(t)
        terms = hamiltonian_sandwiches(H.dense(t / tf) + shift)
        for L in jumps:
            terms += lindblad_sandwiches(L)
        return terms

    fun, jac = linear_generator(sandwiches_at, D, opts)
    return run(
        "ule", fun, annealing.density_matrix(), tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=DENSITY,
        meta={"memory_depth": Ta, "lambshift": lambshift},
    )
