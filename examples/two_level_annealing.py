from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt

from oqtools import (
    Annealing,
    ConstantCouplings,
    Hamiltonian,
    OhmicBath,
    SimulationEngine,
    SolverOptions,
)
from oqtools.core.ir.ops import PAULI


def build_annealing() -> Annealing:
    """
    H(s) = -(1 - s) σx / 2 - s σz / 2, weakly coupled through σz to an
    Ohmic bath (η = 1e-4, fc = 4 GHz, T = 16 mK).
    """
    H = Hamiltonian(
        [lambda s: 1.0 - s, lambda s: s],
        [-PAULI["X"] / 2, -PAULI["Z"] / 2],
        unit="hbar",
    )
    psi0 = np.array([1.0, 1.0], dtype=complex) / np.sqrt(2.0)
    return Annealing(
        hamiltonian=H,
        u0=psi0,
        coupling=ConstantCouplings(["Z"], unit="hbar"),
        bath=OhmicBath(1e-4, 4.0, 16.0),
    )


def ground_population(H: Hamiltonian, s: float, rho: np.ndarray) -> float:
    _, v = H.eigen_decompose(s, lvl=1)
    g = v[:, 0]
    return float(np.real(np.vdot(g, rho @ g)))


def main() -> None:
    annealing = build_annealing()
    tf = 10.0 * np.sqrt(2.0)
    tlist = np.linspace(0.0, tf, 201)

    engine = SimulationEngine(audit=True, options=SolverOptions(rtol=1e-7, atol=1e-9))

    closed = engine.run(annealing, tf, "von_neumann")
    ame = engine.run(annealing, tf, "ame", omega_hint=np.linspace(-2.0, 2.0, 101))

    H = annealing.hamiltonian
    p_closed = [ground_population(H, t / tf, closed(t)) for t in tlist]
    p_ame = [ground_population(H, t / tf, ame(t)) for t in tlist]

    print("closed: P_g(tf) =", p_closed[-1])
    print("AME:    P_g(tf) =", p_ame[-1])

    plt.figure()
    plt.plot(tlist / tf, p_closed, label="closed")
    plt.plot(tlist / tf, p_ame, label="AME")
    plt.xlabel("s")
    plt.ylabel("P_g")
    plt.title("Two-level annealing")
    plt.legend()
    plt.grid(True)
    plt.show()


if __name__ == "__main__":
    main()
