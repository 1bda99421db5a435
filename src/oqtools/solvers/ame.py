from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import CubicSpline

from oqtools.baths.base import LAMB_SHIFT, SPECTRAL_DENSITY, require_bath
from oqtools.core.drives.pulses import DENSITY, KET, InstPulse
from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.integrate import StateEvent
from oqtools.core.sim.types import Solution
from oqtools.core.sim.vectorize import Sandwich, hamiltonian_sandwiches, lindblad_sandwiches
from oqtools.core.types import Annealing
from oqtools.solvers.common import check_tf, linear_generator, run, solver_options

logger = logging.getLogger(__name__)


class LambShiftTable:
    """
    S(ω) pre-tabulated on ``omega_hint`` and spline-interpolated.

    Frequencies outside the tabulated range fall back to the bath's own
    ``lamb_shift``. Without a hint every lookup goes to the bath.
    """

    def __init__(self, bath: Any, omega_hint: Optional[Sequence[float]] = None) -> None:
        self.bath = bath
        self._spline: Optional[CubicSpline] = None
        self._range: Tuple[float, float] = (0.0, 0.0)
        if omega_hint is not None:
            grid = np.unique(np.asarray(omega_hint, dtype=float))
            if grid.size < 4:
                raise ConfigurationError("omega_hint needs at least 4 distinct frequencies")
            logger.debug(
                "Tabulating Lamb shift on %d points in [%g, %g]", grid.size, grid[0], grid[-1]
            )
            self._spline = CubicSpline(grid, np.asarray(bath.lamb_shift(grid), dtype=float))
            self._range = (float(grid[0]), float(grid[-1]))

    def __call__(self, omega: np.ndarray) -> np.ndarray:
        w = np.asarray(omega, dtype=float)
        if self._spline is None:
            return np.asarray(self.bath.lamb_shift(w), dtype=float)
        lo, hi = self._range
        inside = (w >= lo) & (w <= hi)
        out = np.empty_like(w)
        out[inside] = self._spline(w[inside])
        if not np.all(inside):
            out[~inside] = np.asarray(self.bath.lamb_shift(w[~inside]), dtype=float)
        return out


@dataclass(frozen=True)
class AMEOperators:
    """
    Adiabatic master equation pieces at one instant, in the computational
    basis.

    jumps: (rate, L) for every transition b -> a, L = |E_a><E_b|
    dephasing: L = Σ_i A_ii |E_i><E_i| per coupling, with rate γ(0)
    lamb_shift: H_LS
    """

    jumps: Tuple[Tuple[float, np.ndarray], ...]
    dephasing: Tuple[Tuple[float, np.ndarray], ...]
    lamb_shift: np.ndarray

    def lindblad_ops(self) -> List[np.ndarray]:
        return [np.sqrt(r) * L for r, L in self.jumps + self.dephasing if r > 0.0]


class AMEGenerator:
    """
    Builds :class:`AMEOperators` from the instantaneous eigenbasis of H(s).

    With eigenvalues E and eigenvectors V (truncated to ``lvl`` levels),
    Bohr frequencies W_ab = E_b - E_a and A = V† S V:

    - transition b -> a at rate γ(W_ab) |A_ab|²
    - dephasing with γ(0) on the diagonal of A
    - H_LS = Σ_b (Σ_a S(W_ab) |A_ab|²) |E_b><E_b|
    """

    def __init__(
        self,
        annealing: Annealing,
        *,
        lvl: Optional[int] = None,
        omega_hint: Optional[Sequence[float]] = None,
        lambshift: bool = True,
    ) -> None:
        annealing.require_open_system()
        bath = annealing.bath
        needed = (SPECTRAL_DENSITY, LAMB_SHIFT) if lambshift else (SPECTRAL_DENSITY,)
        require_bath(bath, *needed, solver="AME")
        if getattr(bath, "num_channels", None) not in (None, len(annealing.coupling)):
            raise ConfigurationError("AME needs one bath channel per coupling")
        self.hamiltonian = annealing.hamiltonian
        self.coupling = annealing.coupling
        self.bath = bath
        self.lvl = annealing.dim if lvl is None else int(lvl)
        if not 2 <= self.lvl <= annealing.dim:
            raise ConfigurationError(f"lvl must be in [2, {annealing.dim}], got {self.lvl}")
        self.lambshift = lambshift
        self.shift = LambShiftTable(bath, omega_hint) if lambshift else None
        self.gamma0 = float(bath.spectral_density(0.0))

    def operators(self, s: float) -> AMEOperators:
        E, V = self.hamiltonian.eigen_decompose(s, self.lvl)
        W = E[None, :] - E[:, None]
        G = np.asarray(self.bath.spectral_density(W), dtype=float)
        SW = self.shift(W.ravel()).reshape(W.shape) if self.shift is not None else None
        off = ~np.eye(self.lvl, dtype=bool)

        jumps = []
        dephasing = []
        H_ls = np.zeros((self.lvl,), dtype=float)
        for S in self.coupling(s):
            A = V.conj().T @ S @ V
            A2 = np.abs(A) ** 2
            for a, b in zip(*np.nonzero(off)):
                rate = G[a, b] * A2[a, b]
                if rate > 0.0:
                    jumps.append((float(rate), np.outer(V[:, a], V[:, b].conj())))
            d = np.diag(A)
            if self.gamma0 > 0.0 and np.any(np.abs(d) > 0.0):
                dephasing.append((self.gamma0, (V * d[None, :]) @ V.conj().T))
            if SW is not None:
                H_ls += np.sum(SW * A2, axis=0)
        return AMEOperators(
            jumps=tuple(jumps),
            dephasing=tuple(dephasing),
            lamb_shift=(V * H_ls[None, :]) @ V.conj().T,
        )


def solve_ame(
    annealing: Annealing,
    tf: float,
    *,
    omega_hint: Optional[Sequence[float]] = None,
    lvl: Optional[int] = None,
    lambshift: bool = True,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    Adiabatic master equation in Lindblad form.

        dρ/dt = -i[H + H_LS, ρ] + Σ_k (L_k ρ L_k† - ½{L_k†L_k, ρ})

    Parameters
    ----------
    omega_hint:
        Frequencies (rad/ns) on which S(ω) is tabulated before integrating.
        Bohr frequencies of H(s) should fall inside. Optional, but each
        step otherwise evaluates the Lamb-shift quadrature directly.
    lvl:
        Number of instantaneous levels kept.
    lambshift:
        Include H_LS.
    """
    tf = check_tf(tf)
    opts = solver_options(options, kw)
    gen = AMEGenerator(annealing, lvl=lvl, omega_hint=omega_hint, lambshift=lambshift)
    H = annealing.hamiltonian
    D = annealing.dim

    def sandwiches_at(t: float) -> List[Sandwich]:
        s = t / tf
        ops = gen.operators(s)
        terms = hamiltonian_sandwiches(H.dense(s) + ops.lamb_shift)
        for L in ops.lindblad_ops():
            terms += lindblad_sandwiches(L)
        return terms

    fun, jac = linear_generator(sandwiches_at, D, opts)
    return run(
        "ame", fun, annealing.density_matrix(), tf, opts,
        shape=(D, D), jac=jac, pulses=pulses, kind=DENSITY,
        meta={"lvl": gen.lvl, "lambshift": lambshift},
    )


def _normalize(t: float, psi: np.ndarray) -> np.ndarray:
    return psi / np.linalg.norm(psi)


def solve_ame_trajectory(
    annealing: Annealing,
    tf: float,
    rng: np.random.Generator,
    *,
    omega_hint: Optional[Sequence[float]] = None,
    lvl: Optional[int] = None,
    lambshift: bool = True,
    options: Any = None,
    pulses: Sequence[InstPulse] = (),
    **kw: Any,
) -> Solution:
    """
    One quantum-jump trajectory of the adiabatic master equation.

    Between jumps the state follows the effective Hamiltonian
    H + H_LS - (i/2) Σ_k L_k†L_k without renormalisation. A jump happens when
    ‖ψ‖² falls to a uniform random threshold r; the jump operator is chosen
    with probability ∝ ‖L_k ψ‖², the state renormalised and a new r drawn.
    The returned solution reads normalised states. Averaging |ψ><ψ| over
    trajectories reproduces :func:`solve_ame`.
    """
    tf = check_tf(tf)
    opts = solver_options(options, kw)
    gen = AMEGenerator(annealing, lvl=lvl, omega_hint=omega_hint, lambshift=lambshift)
    H = annealing.hamiltonian
    psi0 = annealing.state_vector()
    psi0 = psi0 / np.linalg.norm(psi0)
    threshold = {"r": rng.random(), "jumps": 0}

    def effective(t: float) -> Tuple[np.ndarray, List[np.ndarray]]:
        s = t / tf
        ops = gen.operators(s)
        Ls = ops.lindblad_ops()
        Heff = H.dense(s) + ops.lamb_shift
        for L in Ls:
            Heff = Heff - 0.5j * (L.conj().T @ L)
        return Heff, Ls

    def fun(t: float, y: np.ndarray) -> np.ndarray:
        Heff, _ = effective(t)
        return -1j * (Heff @ y)

    def jac(t: float, y: np.ndarray) -> np.ndarray:
        Heff, _ = effective(t)
        return -1j * Heff

    def condition(t: float, y: np.ndarray) -> float:
        return float(np.vdot(y, y).real) - threshold["r"]

    def affect(t: float, y: np.ndarray) -> np.ndarray:
        _, Ls = effective(t)
        candidates = [L @ y for L in Ls]
        weights = np.array([np.vdot(c, c).real for c in candidates])
        total = weights.sum()
        threshold["r"] = rng.random()
        if total <= 0.0:
            return y / np.linalg.norm(y)
        k = int(rng.choice(len(candidates), p=weights / total))
        threshold["jumps"] += 1
        return candidates[k] / np.sqrt(weights[k])

    sol = run(
        "ame_trajectory", fun, psi0, tf, opts,
        shape=psi0.shape, jac=jac, pulses=pulses, kind=KET,
        state_events=(StateEvent(condition, affect),),
        transform=_normalize,
        meta={"lvl": gen.lvl},
    )
    sol.meta["jumps"] = threshold["jumps"]
    return sol
