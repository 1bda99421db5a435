from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt

from oqtools import (
    Annealing,
    ConstantCouplings,
    FluctuatorEnsemble,
    Hamiltonian,
    ThreadStrategy,
    build_ensembles,
)
from oqtools.core.ir.ops import PAULI


def telegraph_coherence(t: np.ndarray, b: float, gamma: float) -> np.ndarray:
    """<σx(t)> for H = b x(t) σz, x switching at rate gamma, starting in |+>."""
    v = 2.0 * b
    alpha = np.sqrt(complex(gamma**2 - v**2))
    out = np.exp(-gamma * t) * (np.cosh(alpha * t) + gamma / alpha * np.sinh(alpha * t))
    return np.real(out)


def main() -> None:
    b, gamma = 0.2, 1.0
    annealing = Annealing(
        hamiltonian=Hamiltonian([lambda s: 0.0], [np.zeros((2, 2))], unit="hbar"),
        u0=np.array([1.0, 1.0], dtype=complex) / np.sqrt(2.0),
        coupling=ConstantCouplings(["Z"]),
        bath=FluctuatorEnsemble([b], [gamma]),
    )
    tf = 4.0
    tlist = np.linspace(0.0, tf, 41)

    problem = build_ensembles(annealing, tf, "stochastic", seed=1234)
    ensemble = problem.run(400, strategy=ThreadStrategy(max_workers=4), progress_bar=True)
    stats = ensemble.statistics(lambda psi: np.real(np.vdot(psi, PAULI["X"] @ psi)), tlist)

    exact = telegraph_coherence(tlist, b, gamma)
    print("max |mean - exact| / sem:", float(np.max(np.abs(stats.mean - exact)[1:] / stats.sem[1:])))

    plt.figure()
    plt.errorbar(tlist, stats.mean, yerr=stats.sem, fmt=".", label=f"{stats.n} trajectories")
    plt.plot(tlist, exact, label="exact")
    plt.xlabel("t (ns)")
    plt.ylabel("<σx>")
    plt.legend()
    plt.grid(True)
    plt.show()


if __name__ == "__main__":
    main()
