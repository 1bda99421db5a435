from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import BDF, DOP853, RK23, RK45, OdeSolution, Radau
from scipy.optimize import brentq

from oqtools.core.errors import ConfigurationError, IntegrationError
from oqtools.core.sim.types import IntegrationResult, Segment, SolveStatus

logger = logging.getLogger(__name__)

_METHODS = {
    "RK45": RK45,
    "RK23": RK23,
    "DOP853": DOP853,
    "Radau": Radau,
    "BDF": BDF,
}
EXPLICIT_METHODS = frozenset({"RK45", "RK23", "DOP853"})
IMPLICIT_METHODS = frozenset({"Radau", "BDF"})
# steppers that reject complex states; they run on [Re y, Im y]
REAL_ONLY_METHODS = frozenset({"Radau"})

RHS = Callable[[float, np.ndarray], np.ndarray]
Update = Callable[[np.ndarray], np.ndarray]
Halt = Callable[[float, np.ndarray], bool]


@dataclass
class StateEvent:
    """
    State-dependent discontinuity.

    Fires when ``condition`` goes from > 0 to <= 0 inside an accepted step.
    The crossing is located on the step's dense output, the step is cut there,
    and ``affect(t, y)`` supplies the state the next segment starts from.
    """

    condition: Callable[[float, np.ndarray], float]
    affect: Callable[[float, np.ndarray], np.ndarray]
    xtol: float = 1e-12


def solver_class(method: str) -> Any:
    try:
        return _METHODS[method]
    except KeyError as e:
        raise ConfigurationError(
            f"Unknown integration method {method!r}; expected one of {sorted(_METHODS)}"
        ) from e


def _pack(y: np.ndarray) -> np.ndarray:
    return np.concatenate([y.real, y.imag])


def _unpack(v: np.ndarray) -> np.ndarray:
    n = v.shape[0] // 2
    return v[:n] + 1j * v[n:]


def _real_block(J: Any) -> np.ndarray:
    J = np.asarray(J, dtype=complex)
    return np.block([[J.real, -J.imag], [J.imag, J.real]])


class _ComplexDense:
    """Dense output of a real-packed step, read back as complex."""

    def __init__(self, interp: Any) -> None:
        self.interp = interp

    def __call__(self, t: Any) -> np.ndarray:
        return _unpack(self.interp(t))


def _real_problem(fun: RHS, jac: Any) -> Tuple[RHS, Any]:
    def packed_fun(t: float, v: np.ndarray) -> np.ndarray:
        return _pack(np.asarray(fun(t, _unpack(v)), dtype=complex))

    if jac is None:
        return packed_fun, None
    if callable(jac):
        return packed_fun, lambda t, v: _real_block(jac(t, _unpack(v)))
    return packed_fun, _real_block(jac)


@dataclass
class _Trace:
    t: List[float]
    y: List[np.ndarray]
    segments: List[Segment]
    nfev: int = 0
    n_steps: int = 0
    n_events: int = 0

    def record(self, t: float, y: np.ndarray) -> None:
        self.t.append(float(t))
        self.y.append(np.array(y, copy=True))

    def close_segment(self, ts: List[float], interps: List[Any]) -> None:
        if len(ts) >= 2:
            self.segments.append(Segment(ts[0], ts[-1], OdeSolution(ts, interps)))


def _first_crossing(
    events: Sequence[StateEvent],
    step: Any,
    t_old: float,
    y_old: np.ndarray,
    t_new: float,
    y_new: np.ndarray,
) -> Optional[Tuple[float, StateEvent]]:
    hit: Optional[Tuple[float, StateEvent]] = None
    for ev in events:
        g0 = float(ev.condition(t_old, y_old))
        g1 = float(ev.condition(t_new, y_new))
        if not (g0 > 0.0 and g1 <= 0.0):
            continue
        root = brentq(
            lambda tt: float(ev.condition(tt, step(tt))), t_old, t_new, xtol=ev.xtol
        )
        if hit is None or root < hit[0]:
            hit = (float(root), ev)
    return hit


def integrate(
    fun: RHS,
    y0: np.ndarray,
    t_span: Tuple[float, float],
    *,
    method: str = "RK45",
    rtol: float = 1e-6,
    atol: float = 1e-8,
    max_step: float = np.inf,
    first_step: Optional[float] = None,
    jac: Any = None,
    tstops: Sequence[float] = (),
    pulses: Mapping[float, Sequence[Update]] | None = None,
    state_events: Sequence[StateEvent] = (),
    halt: Optional[Halt] = None,
    segment_hook: Optional[Callable[[float, float], None]] = None,
) -> IntegrationResult:
    """
    Drive a scipy OdeSolver step by step over ``t_span``.

    Stop points (``tstops`` and pulse times) become segment boundaries, so the
    stepper lands on them exactly. Pulse updates run at their boundary, in the
    given order. ``halt(t, y)`` is evaluated after every accepted step; a true
    result ends integration with status HALTED and the solution covers
    ``[t0, t]``. A failed step raises :class:`IntegrationError`; exceptions from
    ``fun`` propagate unchanged. ``segment_hook(t, t_next)`` runs before each
    continuous piece is integrated.
    """
    cls = solver_class(method)
    t0, t_end = float(t_span[0]), float(t_span[1])
    if not t_end > t0:
        raise ConfigurationError(f"Invalid time span ({t0}, {t_end})")

    pulses = {float(k): v for k, v in (pulses or {}).items()}
    stops = {float(x) for x in tstops if t0 < float(x) < t_end}
    stops.update(float(x) for x in pulses if t0 < float(x) < t_end)
    boundaries = sorted(stops) + [t_end]

    real = method in REAL_ONLY_METHODS
    if method not in IMPLICIT_METHODS:
        jac = None
    step_fun, jac = _real_problem(fun, jac) if real else (fun, jac)
    kwargs: Dict[str, Any] = {"rtol": rtol, "atol": atol, "max_step": max_step}
    if jac is not None:
        kwargs["jac"] = jac

    y = np.array(y0, dtype=complex).ravel()
    t = t0
    trace = _Trace(t=[], y=[], segments=[])
    trace.record(t, y)
    status = SolveStatus.SOLVED
    message = "Integration reached the end of the time span."

    logger.debug(
        "integrate: method=%s span=(%g, %g) stops=%d events=%d",
        method, t0, t_end, len(boundaries) - 1, len(state_events),
    )

    for boundary in boundaries:
        while t < boundary:
            step_kwargs = dict(kwargs)
            if first_step is not None:
                step_kwargs["first_step"] = min(float(first_step), boundary - t)
            if segment_hook is not None:
                segment_hook(t, boundary)
            solver = cls(step_fun, t, _pack(y) if real else y, boundary, **step_kwargs)
            ts: List[float] = [t]
            interps: List[Any] = []
            y_old = y
            restarted = False

            while solver.status == "running":
                msg = solver.step()
                if solver.status == "failed":
                    trace.nfev += solver.nfev
                    raise IntegrationError(
                        f"Integration failed at t={solver.t}: {msg}", t=float(solver.t)
                    )
                trace.n_steps += 1
                t_old, t_new = float(solver.t_old), float(solver.t)
                y_new = _unpack(solver.y) if real else solver.y
                step = _ComplexDense(solver.dense_output()) if real else solver.dense_output()

                hit = _first_crossing(state_events, step, t_old, y_old, t_new, y_new)
                if hit is not None:
                    root, ev = hit
                    y_root = step(root)
                    if root > ts[-1]:
                        ts.append(root)
                        interps.append(step)
                    trace.record(root, y_root)
                    y = np.array(ev.affect(root, y_root), dtype=complex).ravel()
                    t = root
                    trace.record(t, y)
                    trace.n_events += 1
                    restarted = True
                    break

                ts.append(t_new)
                interps.append(step)
                trace.record(t_new, y_new)
                y_old = y_new

                if halt is not None and halt(t_new, y_new):
                    trace.nfev += solver.nfev
                    trace.close_segment(ts, interps)
                    status = SolveStatus.HALTED
                    message = f"Integration halted by callback at t={t_new}."
                    logger.warning(message)
                    return _result(trace, status, message)

            trace.nfev += solver.nfev
            trace.close_segment(ts, interps)
            if not restarted:
                t = float(solver.t)
                y = _unpack(solver.y) if real else np.array(solver.y, copy=True)

        for update in pulses.get(boundary, ()):
            y = np.array(update(y), dtype=complex).ravel()
            trace.record(t, y)
            trace.n_events += 1

    return _result(trace, status, message)


def _result(trace: _Trace, status: SolveStatus, message: str) -> IntegrationResult:
    if not trace.segments:
        raise IntegrationError("Integration produced no accepted step")
    return IntegrationResult(
        segments=tuple(trace.segments),
        t=tuple(trace.t),
        y=tuple(trace.y),
        status=status,
        message=message,
        meta={"nfev": trace.nfev, "n_steps": trace.n_steps, "n_events": trace.n_events},
    )
