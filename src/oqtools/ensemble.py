from __future__ import annotations

import dataclasses
import functools
import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.types import Solution
from oqtools.core.types import Annealing
from oqtools.solvers.ame import solve_ame_trajectory
from oqtools.solvers.stochastic import solve_stochastic_schrodinger

logger = logging.getLogger(__name__)

AME = "ame"
STOCHASTIC = "stochastic"


@dataclass(frozen=True)
class EnsembleStatistics:
    mean: np.ndarray
    sem: np.ndarray
    n: int


def ensemble_statistics(samples: Any) -> EnsembleStatistics:
    """
    Sample mean and standard error of the mean along the first axis.

    sem = std(ddof=1) / sqrt(N); with a single sample it is NaN.
    """
    x = np.asarray(samples)
    n = int(x.shape[0])
    if n == 0:
        raise ValueError("No samples")
    mean = x.mean(axis=0)
    if n < 2:
        sem = np.full(mean.shape, np.nan)
    else:
        sem = x.std(axis=0, ddof=1) / np.sqrt(n)
    return EnsembleStatistics(mean=mean, sem=sem, n=n)


class ExecutionStrategy(Protocol):
    def map(self, fn: Callable[[int], Any], items: Sequence[int]) -> Iterable[Any]: ...


@dataclass(frozen=True)
class SerialStrategy:
    def map(self, fn: Callable[[int], Any], items: Sequence[int]) -> Iterable[Any]:
        return map(fn, items)


@dataclass(frozen=True)
class ThreadStrategy:
    max_workers: Optional[int] = None

    def map(self, fn: Callable[[int], Any], items: Sequence[int]) -> Iterator[Any]:
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            yield from pool.map(fn, items)


@dataclass(frozen=True)
class ProcessStrategy:
    """
    Worker processes. The problem is pickled, so coefficient functions must
    be module-level callables, not lambdas.
    """

    max_workers: Optional[int] = None
    chunksize: int = 1

    def map(self, fn: Callable[[int], Any], items: Sequence[int]) -> Iterator[Any]:
        with ProcessPoolExecutor(max_workers=self.max_workers) as pool:
            yield from pool.map(fn, items, chunksize=self.chunksize)


@dataclass(frozen=True)
class TrajectoryEnsemble:
    """Outputs of N independent trajectories, in trajectory order."""

    results: Tuple[Any, ...]
    seed: int
    kind: str

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.results)

    def sample(self, observable: Callable[[np.ndarray], Any], tlist: Sequence[float]) -> np.ndarray:
        """observable(state) at every time, one row per trajectory."""
        rows = []
        for sol in self.results:
            if not isinstance(sol, Solution):
                raise TypeError("sample() needs Solution outputs; run without an output function")
            rows.append([observable(state) for state in sol.sample(tlist)])
        return np.asarray(rows)

    def statistics(
        self,
        observable: Optional[Callable[[np.ndarray], Any]] = None,
        tlist: Optional[Sequence[float]] = None,
    ) -> EnsembleStatistics:
        """
        Mean ± SEM over trajectories, either of ``observable`` sampled on
        ``tlist`` or, without arguments, of the stored outputs themselves.
        """
        if observable is None:
            return ensemble_statistics(self.results)
        if tlist is None:
            raise ValueError("tlist is required with an observable")
        return ensemble_statistics(self.sample(observable, tlist))


def trajectory_rng(seed: int, index: int) -> np.random.Generator:
    """Independent stream for trajectory ``index``, derived from ``seed`` only."""
    return np.random.default_rng(np.random.SeedSequence(entropy=seed, spawn_key=(index,)))


@dataclass(frozen=True)
class EnsembleProblem:
    """
    Recipe for N independent trajectories of one annealing.

    Each trajectory gets its own Hamiltonian clone (fresh eigen-cache) and its
    own random stream, so trajectories share nothing mutable whatever the
    execution strategy.
    """

    annealing: Annealing
    tf: float
    kind: str
    seed: int = 0
    options: Mapping[str, Any] = field(default_factory=dict)

    def problem(self, index: int) -> Tuple[Annealing, np.random.Generator]:
        annealing = dataclasses.replace(
            self.annealing, hamiltonian=self.annealing.hamiltonian.clone()
        )
        return annealing, trajectory_rng(self.seed, index)

    def solve_one(self, index: int) -> Solution:
        annealing, rng = self.problem(index)
        if self.kind == AME:
            return solve_ame_trajectory(annealing, self.tf, rng, **dict(self.options))
        return solve_stochastic_schrodinger(annealing, self.tf, rng=rng, **dict(self.options))

    def run(
        self,
        n_trajectories: int,
        *,
        strategy: Optional[ExecutionStrategy] = None,
        output: Optional[Callable[[Solution], Any]] = None,
        progress_bar: bool = False,
    ) -> TrajectoryEnsemble:
        n = int(n_trajectories)
        if n < 1:
            raise ConfigurationError("n_trajectories must be >= 1")
        strategy = strategy or SerialStrategy()
        task = functools.partial(_run_trajectory, self, output)
        logger.info(
            "Running %d %s trajectories with %s", n, self.kind, type(strategy).__name__
        )
        results = list(
            tqdm(
                strategy.map(task, range(n)),
                total=n,
                desc=f"{self.kind} trajectories",
                disable=not progress_bar,
            )
        )
        return TrajectoryEnsemble(results=tuple(results), seed=self.seed, kind=self.kind)


def _run_trajectory(
    problem: EnsembleProblem, output: Optional[Callable[[Solution], Any]], index: int
) -> Any:
    sol = problem.solve_one(index)
    return sol if output is None else output(sol)


def build_ensembles(
    annealing: Annealing, tf: float, kind: str, *, seed: int = 0, **options: Any
) -> EnsembleProblem:
    """
    Trajectory family for ``kind``:

    - ``"ame"``: quantum-jump trajectories of the adiabatic master equation
    - ``"stochastic"``: classical telegraph-noise trajectories of a
      fluctuator bath

    ``options`` are passed to the single-trajectory solver.
    """
    if kind not in (AME, STOCHASTIC):
        raise ConfigurationError(f"Unknown ensemble kind {kind!r}; expected 'ame' or 'stochastic'")
    if kind == AME:
        annealing.require_open_system()
        if annealing.is_density_matrix:
            raise ConfigurationError("Quantum trajectories need a state vector as initial state")
    if kind == STOCHASTIC and annealing.coupling is None:
        raise ConfigurationError("Classical-noise trajectories need a coupling")
    return EnsembleProblem(
        annealing=annealing, tf=float(tf), kind=kind, seed=int(seed), options=dict(options)
    )
