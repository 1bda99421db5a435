from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from oqtools.core.drives.pulses import DENSITY, KET, InstPulse, validate_pulses
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.integrate import StateEvent, integrate
from oqtools.core.sim.types import SolverOptions, Solution, Transform, resolve_options
from oqtools.core.sim.vectorize import (
    Sandwich,
    apply_sandwiches,
    check_method,
    sandwich_superop_sum,
)

logger = logging.getLogger(__name__)

Update = Callable[[np.ndarray], np.ndarray]


def check_tf(tf: float) -> float:
    tf = float(tf)
    if not tf > 0.0:
        raise ConfigurationError(f"tf must be > 0, got {tf}")
    return tf


def check_memory_depth(memory_depth: Optional[float]) -> float:
    if memory_depth is None:
        raise ConfigurationError("memory_depth (Ta) is required for this solver")
    Ta = float(memory_depth)
    if not Ta > 0.0:
        raise ConfigurationError(f"memory_depth must be > 0, got {Ta}")
    return Ta


def solver_options(options: Any, overrides: Mapping[str, Any]) -> SolverOptions:
    return resolve_options(options, **dict(overrides))


def pulse_updates(
    pulses: Sequence[InstPulse],
    dim: int,
    t_span: Tuple[float, float],
    shape: Tuple[int, ...],
    kind: str,
    frame: Optional[Callable[[float], np.ndarray]] = None,
) -> Dict[float, List[Update]]:
    """
    Map pulse times to flat-state updates.

    ``frame(t)`` is the propagator of an interaction picture; when given, the
    pulse unitary P acts as U(t)† P U(t) on the interaction-picture state.
    """
    out: Dict[float, List[Update]] = {}
    for p in validate_pulses(pulses, dim, t_span):
        if frame is None:
            fn = lambda y, p=p: p.apply(y.reshape(shape), kind).reshape(-1)  # noqa: E731
        else:
            U = np.asarray(frame(float(p.time)))
            P = U.conj().T @ p.matrix() @ U
            fn = lambda y, P=P: InstPulse(0.0, P).apply(y.reshape(shape), kind).reshape(-1)  # noqa: E731
        out.setdefault(float(p.time), []).append(fn)
    return out


def run(
    name: str,
    fun: Callable[[float, np.ndarray], np.ndarray],
    y0: np.ndarray,
    tf: float,
    opts: SolverOptions,
    *,
    shape: Tuple[int, ...],
    jac: Any = None,
    pulses: Sequence[InstPulse] = (),
    kind: str = DENSITY,
    frame: Optional[Callable[[float], np.ndarray]] = None,
    tstops: Sequence[float] = (),
    state_events: Sequence[StateEvent] = (),
    halt: Optional[Callable[[float, np.ndarray], bool]] = None,
    segment_hook: Optional[Callable[[float, float], None]] = None,
    transform: Optional[Transform] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> Solution:
    """Integrate a flat right-hand side over [0, tf] and wrap the result."""
    dim = shape[0]
    updates = pulse_updates(pulses, dim, (0.0, tf), shape, kind, frame)
    logger.info("%s: tf=%g method=%s pulses=%d", name, tf, opts.method, len(pulses))
    result = integrate(
        fun,
        np.asarray(y0, dtype=complex).reshape(-1),
        (0.0, tf),
        method=opts.method,
        rtol=opts.rtol,
        atol=opts.atol,
        max_step=opts.max_step,
        first_step=opts.first_step,
        jac=jac,
        tstops=tstops,
        pulses=updates,
        state_events=state_events,
        halt=halt,
        segment_hook=segment_hook,
    )
    info = {"solver": name, "tf": tf, "method": opts.method}
    info.update(dict(meta or {}))
    sol = result.to_solution(shape=shape, transform=transform, meta=info)
    logger.info(
        "%s: %s at t=%g after %d steps", name, sol.status.value, sol.t_stop, sol.meta["n_steps"]
    )
    return sol


def linear_generator(
    sandwiches_at: Callable[[float], List[Sandwich]],
    dim: int,
    opts: SolverOptions,
) -> Tuple[Callable[[float, np.ndarray], np.ndarray], Any]:
    """
    Flat right-hand side (and Jacobian) for a generator given as sandwiches.

    Without vectorisation the sandwiches act on the matrix state directly;
    with it they are assembled into a superoperator, which also serves as the
    Jacobian of the implicit methods.
    """
    check_method(opts.method, opts.vectorize)
    if not opts.vectorize:

        def fun(t: float, y: np.ndarray) -> np.ndarray:
            rho = y.reshape(dim, dim)
            return apply_sandwiches(sandwiches_at(t), rho).reshape(-1)

        return fun, None

    last: Dict[str, Any] = {"t": None, "L": None}

    def superop(t: float) -> np.ndarray:
        if last["t"] != t:
            last["L"] = sandwich_superop_sum(sandwiches_at(t), dim)
            last["t"] = t
        return last["L"]

    def fun_vec(t: float, y: np.ndarray) -> np.ndarray:
        return superop(t) @ y

    def jac(t: float, y: np.ndarray) -> np.ndarray:
        return superop(t)

    return fun_vec, jac


def state_kind(u0: np.ndarray) -> str:
    return DENSITY if np.ndim(u0) == 2 else KET


def min_eigenvalue(rho: np.ndarray) -> float:
    rho = 0.5 * (rho + rho.conj().T)
    return float(np.linalg.eigvalsh(rho)[0])
