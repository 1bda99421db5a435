from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from oqtools.baths.fluctuator import FluctuatorEnsemble, TelegraphNoise
from oqtools.core.drives.pulses import KET, InstPulse
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import check_method
from oqtools.core.types import Annealing
from oqtools.solvers.common import check_tf, run, solver_options, state_kind

logger = logging.getLogger(__name__)


def draw_noise(
    annealing: Annealing, tf: float, rng: np.random.Generator
) -> List[TelegraphNoise]:
    """One independent realisation of the fluctuator bath per coupling."""
    bath = annealing.bath
    if not isinstance(bath, FluctuatorEnsemble):
        raise ConfigurationError("Classical-noise trajectories need a FluctuatorEnsemble bath")
    return [bath.sample(rng, (0.0, tf)) for _ in range(len(annealing.coupling))]


def solve_stochastic_schrodinger(
    annealing: Annealing,
    tf: float,
    noise: Optional[Union[TelegraphNoise, Sequence[TelegraphNoise]]] = None,
    *,
    rng: Optional[np.random.Generator] = None,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    One classical-noise trajectory.

        dψ/dt = -i [H(t/tf) + Σ_α n_α(t) S_α(t/tf)] ψ

    ``noise`` holds one realisation per coupling; when omitted it is drawn
    from the annealing's fluctuator bath with ``rng``. Switching times are
    forced stop points and the noise is constant on each piece. A density
    matrix initial state evolves by the corresponding von Neumann equation.
    """
    tf = check_tf(tf)
    if annealing.coupling is None:
        raise ConfigurationError("Classical-noise trajectories need a coupling")
    if noise is None:
        if rng is None:
            raise ConfigurationError("Pass either a noise realisation or an rng")
        noise = draw_noise(annealing, tf, rng)
    elif isinstance(noise, TelegraphNoise):
        noise = [noise]
    noise = list(noise)
    if len(noise) != len(annealing.coupling):
        raise ConfigurationError(
            f"Got {len(noise)} noise realisations for {len(annealing.coupling)} couplings"
        )

    opts = solver_options(options, kw)
    check_method(opts.method, True)
    H = annealing.hamiltonian
    coupling = annealing.coupling
    u0 = np.asarray(annealing.u0)
    shape = u0.shape
    kind = state_kind(u0)
    tstops = sorted({t for n in noise for t in n.switching_times})
    field = {"values": [n.value(0.0) for n in noise]}

    def hook(t0: float, t1: float) -> None:
        mid = 0.5 * (t0 + t1)
        field["values"] = [n.value(mid) for n in noise]

    def total(t: float) -> np.ndarray:
        s = t / tf
        Ht = H.dense(s)
        for v, S in zip(field["values"], coupling(s)):
            Ht = Ht + v * S
        return Ht

    if kind == KET:

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            return -1j * (total(t) @ y)

        def jac(t: float, y: np.ndarray) -> np.ndarray:
            return -1j * total(t)

    else:
        D = shape[0]
        eye = np.eye(D, dtype=complex)

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            Ht = total(t)
            rho = y.reshape(D, D)
            return (-1j * (Ht @ rho - rho @ Ht)).reshape(-1)

        def jac(t: float, y: np.ndarray) -> np.ndarray:
            Ht = total(t)
            return -1j * (np.kron(Ht, eye) - np.kron(eye, Ht.T))

    logger.debug("stochastic trajectory: %d switching times", len(tstops))
    return run(
        "stochastic", fun, u0, tf, opts,
        shape=shape, jac=jac, pulses=pulses, kind=kind,
        tstops=tstops, segment_hook=hook,
        meta={"switches": len(tstops)},
    )
