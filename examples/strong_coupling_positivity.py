from __future__ import annotations

import numpy as np
import matplotlib.pyplot as plt

from oqtools import (
    Annealing,
    ConstantCouplings,
    CustomBath,
    Hamiltonian,
    OhmicBath,
    SolveStatus,
    solve_cgme,
    solve_redfield,
    solve_ule,
    solve_unitary,
)
from oqtools.core.ir.ops import PAULI
from oqtools.core.units import beta_to_temperature


def min_eig(rho: np.ndarray) -> float:
    return float(np.linalg.eigvalsh(0.5 * (rho + rho.conj().T))[0])


def main() -> None:
    # β = 4 ns, η = 0.1: Redfield is expected to lose positivity
    T = beta_to_temperature(4.0)
    ohmic = OhmicBath(0.1, 4.0 / (2.0 * np.pi), T)
    H = Hamiltonian([lambda s: 1.0], [-PAULI["Z"] / 2 - PAULI["X"] / 8], unit="hbar")
    rho0 = np.array([[0.5, 0.5], [0.5, 0.5]], dtype=complex)
    annealing = Annealing(
        hamiltonian=H,
        u0=rho0,
        coupling=ConstantCouplings(["X"], unit="hbar"),
        bath=ohmic,
    )
    tf = 20.0
    Ta = 4.0

    U = solve_unitary(annealing, tf)
    redfield = solve_redfield(
        annealing, tf, U, memory_depth=Ta, positivity_check=True, positivity_threshold=1e-3
    )
    if redfield.status is SolveStatus.HALTED:
        print(f"Redfield halted at t={redfield.t_stop:.3f}: {redfield.message}")
    else:
        print("Redfield stayed positive up to tf")

    ule = solve_ule(annealing, tf, U, memory_depth=Ta)
    cgme = solve_cgme(annealing, 4.0, memory_depth=2.0)

    tlist = np.linspace(0.0, tf, 101)
    plt.figure()
    plt.plot(tlist, [min_eig(ule(t)) for t in tlist], label="ULE")
    t_cg = np.linspace(0.0, 4.0, 41)
    plt.plot(t_cg, [min_eig(cgme(t)) for t in t_cg], label="CGME")
    t_rf = np.linspace(0.0, redfield.t_stop, 101)
    plt.plot(t_rf, [min_eig(redfield(t)) for t in t_rf], label="Redfield")
    plt.xlabel("t (ns)")
    plt.ylabel("min eig(ρ)")
    plt.legend()
    plt.grid(True)
    plt.show()

    # a correlation that is negative at every lag breaks positivity quickly
    toy = Annealing(
        hamiltonian=Hamiltonian([lambda s: 1.0], [PAULI["Z"]], unit="hbar"),
        u0=rho0,
        coupling=ConstantCouplings(["Z"]),
        bath=CustomBath(correlation=lambda tau: -0.1),
    )
    sol = solve_redfield(toy, 5.0, memory_depth=5.0, positivity_check=True, positivity_threshold=0.05)
    print(f"toy model: {sol.status.value} at t={sol.t_stop:.3f}")


if __name__ == "__main__":
    main()
