from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np

from oqtools.core.drives.pulses import DENSITY, KET, UNITARY, InstPulse
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import check_method, hamiltonian_sandwiches
from oqtools.core.types import Annealing
from oqtools.solvers.common import check_tf, linear_generator, run, solver_options

logger = logging.getLogger(__name__)


def solve_schrodinger(
    annealing: Annealing,
    tf: float,
    *,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Solve i dψ/dt = H(t/tf) ψ over t ∈ [0, tf].

    The state is already a vector, so every integration method applies; the
    implicit ones receive -iH as Jacobian.
    """
    tf = check_tf(tf)
    opts = solver_options(options, kw)
    check_method(opts.method, True)
    H = annealing.hamiltonian
    psi0 = annealing.state_vector()

    def fun(t: float, y: np.ndarray) -> np.ndarray:
        return -1j * (H.evaluate(t / tf) @ y)

    def jac(t: float, y: np.ndarray) -> np.ndarray:
        return -1j * H.dense(t / tf)

    return run(
        "schrodinger", fun, psi0, tf, opts,
        shape=psi0.shape, jac=jac, pulses=pulses, kind=KET,
    )


def solve_von_neumann(
    annealing: Annealing,
    tf: float,
    *,
    vectorize: Optional[bool] = None,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Solve dρ/dt = -i[H(t/tf), ρ]; a state vector initial condition is turned
    into a density matrix first.
    """
    tf = check_tf(tf)
    opts = solver_options(options, dict(kw, vectorize=vectorize))
    H = annealing.hamiltonian
    rho0 = annealing.density_matrix()
    D = annealing.dim

    fun, jac = linear_generator(
        lambda t: hamiltonian_sandwiches(H.dense(t / tf)), D, opts
    )
    return run(
        "von_neumann", fun, rho0, tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=DENSITY,
        meta={"vectorize": opts.vectorize},
    )


def solve_unitary(
    annealing: Annealing,
    tf: float,
    *,
    vectorize: Optional[bool] = None,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Propagator U(t) with dU/dt = -i H(t/tf) U and U(0) = 1.

    The returned solution is what the open-system solvers expect as their
    ``unitary`` argument.
    """
    tf = check_tf(tf)
    opts = solver_options(options, dict(kw, vectorize=vectorize))
    check_method(opts.method, opts.vectorize)
    H = annealing.hamiltonian
    D = annealing.dim
    eye = np.eye(D, dtype=complex)

    if opts.vectorize:

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            return jac(t, y) @ y

        def jac(t: float, y: np.ndarray) -> np.ndarray:
            return -1j * np.kron(H.dense(t / tf), eye)

    else:
        jac = None

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            return (-1j * (H.evaluate(t / tf) @ y.reshape(D, D))).reshape(-1)

    return run(
        "unitary", fun, eye, tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=UNITARY,
        meta={"vectorize": opts.vectorize},
    )


def resolve_unitary(
    annealing: Annealing, tf: float, unitary: Any, options: Any
) -> Any:
    """Use the given propagator or compute one with the same options."""
    if unitary is None:
        logger.info("No unitary supplied; solving for U(t) first")
        return solve_unitary(annealing, tf, options=options)
    if not callable(unitary):
        raise ConfigurationError("unitary must be callable as U(t)")
    U0 = np.asarray(unitary(0.0))
    if U0.shape != (annealing.dim, annealing.dim):
        raise ConfigurationError(
            f"unitary has shape {U0.shape}, expected {(annealing.dim, annealing.dim)}"
        )
    return unitary
