from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

import numpy as np
from scipy.integrate import quad_vec

from oqtools.baths.base import CORRELATION, correlation_pairs, require_bath
from oqtools.core.drives.pulses import DENSITY, InstPulse
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import check_method
from oqtools.core.types import Annealing
from oqtools.solvers.closed import resolve_unitary
from oqtools.solvers.common import check_memory_depth, check_tf, run, solver_options

logger = logging.getLogger(__name__)

# Looser defaults: every right-hand side evaluation is a nested quadrature.
CGME_DEFAULTS = {"rtol": 1e-4, "atol": 1e-6, "quad_rtol": 1e-4, "quad_atol": 1e-6}


def _pack(z: np.ndarray) -> np.ndarray:
    return np.concatenate([z.real.ravel(), z.imag.ravel()])


def _unpack(v: np.ndarray, shape: tuple) -> np.ndarray:
    half = v.size // 2
    return (v[:half] + 1j * v[half:]).reshape(shape)


def solve_cgme(
    annealing: Annealing,
    tf: float,
    unitary: Optional[Callable[[float], np.ndarray]] = None,
    *,
    memory_depth: Optional[float] = None,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Coarse-grained master equation, integrated in the interaction picture.

    With Ã_α(t) = U(t)† S_α(t/tf) U(t) and the window
    w(t) = [max(0, t - Ta/2), min(tf, t + Ta/2)],

        dρ̃/dt = (1/Ta) ∫∫_{w×w} C_αβ(t1 - t2) [Ã_β(t2) ρ̃ Ã_α(t1)
                                               - ½{Ã_α(t1) Ã_β(t2), ρ̃}] dt1 dt2

    The inner integral M(t1) = ∫ C(t1 - t2) Ã(t2) dt2 and the outer one are
    both done with ``quad_vec``, so each step is far more expensive than a
    Redfield step; tolerances default to ``CGME_DEFAULTS``. Solution states
    are returned in the Schrödinger picture.
    """
    tf = check_tf(tf)
    annealing.require_open_system()
    Ta = check_memory_depth(memory_depth)
    require_bath(annealing.bath, CORRELATION, solver="CGME")
    merged = dict(CGME_DEFAULTS)
    if options is None:
        merged.update(kw)
        opts = solver_options(None, merged)
    else:
        opts = solver_options(options, kw)
    check_method(opts.method, opts.vectorize)
    U = resolve_unitary(annealing, tf, unitary, opts)

    D = annealing.dim
    coupling = annealing.coupling
    pairs = correlation_pairs(annealing.bath, len(coupling), tmax=Ta)
    eye = np.eye(D, dtype=complex)

    def A_tilde(x: float) -> list:
        Ux = np.asarray(U(x))
        return [Ux.conj().T @ S @ Ux for S in coupling(x / tf)]

    def window(t: float) -> tuple:
        return max(0.0, t - 0.5 * Ta), min(tf, t + 0.5 * Ta)

    def inner(t1: float, lo: float, hi: float) -> list:
        def f(t2: float) -> np.ndarray:
            A2 = A_tilde(t2)
            return _pack(np.stack([cfun(t1 - t2) * A2[beta] for _, beta, cfun in pairs]))

        val, _ = quad_vec(f, lo, hi, epsabs=opts.quad_atol, epsrel=opts.quad_rtol)
        return list(_unpack(val, (len(pairs), D, D)))

    def generator(t: float, rho: Optional[np.ndarray]) -> np.ndarray:
        lo, hi = window(t)

        def outer(t1: float) -> np.ndarray:
            A1 = A_tilde(t1)
            Ms = inner(t1, lo, hi)
            if rho is None:
                acc = np.zeros((D * D, D * D), dtype=complex)
            else:
                acc = np.zeros((D, D), dtype=complex)
            for (alpha, _, _), M in zip(pairs, Ms):
                Aa = A1[alpha]
                AM = Aa @ M
                if rho is None:
                    acc += np.kron(M, Aa.T) - 0.5 * (np.kron(AM, eye) + np.kron(eye, AM.T))
                else:
                    acc += M @ rho @ Aa - 0.5 * (AM @ rho + rho @ AM)
            return _pack(acc)

        shape = (D * D, D * D) if rho is None else (D, D)
        val, _ = quad_vec(outer, lo, hi, epsabs=opts.quad_atol, epsrel=opts.quad_rtol)
        return _unpack(val, shape) / Ta

    if opts.vectorize:
        last: dict = {"t": None, "L": None}

        def superop(t: float) -> np.ndarray:
            if last["t"] != t:
                last["L"] = generator(t, None)
                last["t"] = t
            return last["L"]

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            return superop(t) @ y

        def jac(t: float, y: np.ndarray) -> np.ndarray:
            return superop(t)

    else:
        jac = None

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            return generator(t, y.reshape(D, D)).reshape(-1)

    def to_schrodinger(t: float, rho: np.ndarray) -> np.ndarray:
        Ut = np.asarray(U(t))
        return Ut @ rho @ Ut.conj().T

    return run(
        "cgme", fun, annealing.density_matrix(), tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=DENSITY, frame=U,
        transform=to_schrodinger, meta={"memory_depth": Ta},
    )
