from __future__ import annotations

import bisect
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.integrate import OdeSolution


class SolveStatus(str, Enum):
    """
    Outcome of a solve. A returned :class:`Solution` is SOLVED or HALTED;
    FAILED travels on the raised :class:`~oqtools.core.errors.IntegrationError`.
    """

    SOLVED = "SOLVED"
    HALTED = "HALTED_BY_CALLBACK"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SolverOptions:
    """
    Integrator and quadrature settings shared by every solver.

    method: scipy OdeSolver name ("RK45", "RK23", "DOP853", "Radau", "BDF")
    vectorize: hand the integrator a flattened state and an explicit
        superoperator (required by the implicit methods)
    quad_rtol / quad_atol: tolerances of the online quadratures used by the
        Redfield and coarse-grained generators
    """

    method: str = "RK45"
    rtol: float = 1e-6
    atol: float = 1e-8
    max_step: float = np.inf
    first_step: Optional[float] = None
    vectorize: bool = False
    quad_rtol: float = 1e-6
    quad_atol: float = 1e-8

    def replace(self, **kwargs: Any) -> "SolverOptions":
        return dataclasses.replace(self, **kwargs)


def resolve_options(
    options: Optional[SolverOptions | Mapping[str, Any]] = None, **overrides: Any
) -> SolverOptions:
    """
    Merge an options object (or mapping) with keyword overrides; ``None``
    overrides are ignored.
    """
    if options is None:
        base = SolverOptions()
    elif isinstance(options, SolverOptions):
        base = options
    else:
        base = SolverOptions(**dict(options))
    extra = {k: v for k, v in overrides.items() if v is not None}
    return base.replace(**extra) if extra else base


@dataclass(frozen=True)
class Segment:
    """
    One continuous integration piece. Discontinuities (pulses, jumps) only
    happen between segments.
    """

    t0: float
    t1: float
    dense: OdeSolution


Transform = Callable[[float, np.ndarray], np.ndarray]


class Solution:
    """
    Dense-output solution over ``[t0, t_stop]``.

    States are stored raw (flat, as the integrator saw them) and brought back
    to their natural shape on read; an optional ``transform(t, state)`` is
    applied after reshaping (normalisation, leaving an interaction picture).
    At a segment boundary the later segment wins, so the solution is
    right-continuous at pulse and jump times.
    """

    def __init__(
        self,
        segments: Sequence[Segment],
        t: Sequence[float],
        y: Sequence[np.ndarray],
        *,
        shape: Tuple[int, ...],
        status: SolveStatus = SolveStatus.SOLVED,
        message: str = "",
        transform: Optional[Transform] = None,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if not segments:
            raise ValueError("Solution requires at least one segment")
        self._segments: Tuple[Segment, ...] = tuple(segments)
        self._starts = [seg.t0 for seg in self._segments]
        self._t = np.asarray(t, dtype=float)
        self._y = [np.asarray(v) for v in y]
        self.shape = tuple(int(x) for x in shape)
        self.status = status
        self.message = message
        self._transform = transform
        self.meta: Mapping[str, Any] = dict(meta or {})

    @property
    def tspan(self) -> Tuple[float, float]:
        return self._segments[0].t0, self._segments[-1].t1

    @property
    def t_stop(self) -> float:
        return self._segments[-1].t1

    @property
    def t(self) -> np.ndarray:
        """Accepted step times (event times appear twice: before and after)."""
        return self._t.copy()

    @property
    def states(self) -> List[np.ndarray]:
        return [self._natural(t, y) for t, y in zip(self._t, self._y)]

    @property
    def final_state(self) -> np.ndarray:
        return self._natural(float(self._t[-1]), self._y[-1])

    def _natural(self, t: float, y: np.ndarray) -> np.ndarray:
        state = np.asarray(y).reshape(self.shape)
        if self._transform is not None:
            state = self._transform(float(t), state)
        return state

    def _segment_for(self, t: float) -> Segment:
        t0, t1 = self.tspan
        span = max(abs(t1 - t0), 1.0)
        if t < t0 - 1e-12 * span or t > t1 + 1e-12 * span:
            raise ValueError(f"t={t} outside solution range [{t0}, {t1}]")
        i = bisect.bisect_right(self._starts, t) - 1
        return self._segments[max(i, 0)]

    def __call__(self, t: float) -> np.ndarray:
        t = float(t)
        seg = self._segment_for(t)
        tt = min(max(t, seg.t0), seg.t1)
        return self._natural(tt, seg.dense(tt))

    def sample(self, tlist: Sequence[float]) -> np.ndarray:
        """Discrete samples at ``tlist``, stacked along a new first axis."""
        return np.stack([self(t) for t in np.asarray(tlist, dtype=float)])

    def __repr__(self) -> str:
        t0, t1 = self.tspan
        return f"Solution(status={self.status.value}, tspan=({t0}, {t1}), shape={self.shape})"


@dataclass(frozen=True)
class IntegrationResult:
    segments: Tuple[Segment, ...]
    t: Tuple[float, ...]
    y: Tuple[np.ndarray, ...]
    status: SolveStatus
    message: str = ""
    meta: Mapping[str, Any] = field(default_factory=dict)

    def to_solution(
        self, *, shape: Tuple[int, ...], transform: Optional[Transform] = None, meta=None
    ) -> Solution:
        merged = dict(self.meta)
        merged.update(dict(meta or {}))
        return Solution(
            self.segments,
            self.t,
            self.y,
            shape=shape,
            status=self.status,
            message=self.message,
            transform=transform,
            meta=merged,
        )


@dataclass(frozen=True)
class ReferenceResult:
    """Samples of a state on ``tlist`` from an external backend."""

    tlist: np.ndarray
    states: np.ndarray
    meta: Mapping[str, Any] = field(default_factory=dict)
