"""Positivity at strong Ohmic coupling: Redfield breaks, ULE and CGME hold."""
from __future__ import annotations

import math

import numpy as np
import pytest

from oqtools import (
    Annealing,
    ConstantCouplings,
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
from oqtools.solvers.common import min_eigenvalue

TF = 20.0
TA = 4.0

pytestmark = pytest.mark.slow


@pytest.fixture(scope="module")
def annealing() -> Annealing:
    ohmic = OhmicBath(0.1, 4.0 / (2.0 * math.pi), beta_to_temperature(4.0))
    return Annealing(
        hamiltonian=Hamiltonian([1.0], [-PAULI["Z"] / 2 - PAULI["X"] / 8], unit="hbar"),
        u0=np.full((2, 2), 0.5, dtype=complex),
        coupling=ConstantCouplings(["X"]),
        bath=ohmic,
    )


@pytest.fixture(scope="module")
def unitary(annealing):
    return solve_unitary(annealing, TF, rtol=1e-9, atol=1e-11)


def test_ohmic_correlation_is_finite_at_zero_lag(annealing):
    c0 = annealing.bath.correlation(0.0)
    assert np.isfinite(c0.real) and c0.real > 0.0
    assert c0.imag == pytest.approx(0.0)


def test_redfield_loses_positivity_before_tf(annealing, unitary):
    sol = solve_redfield(
        annealing, TF, unitary, memory_depth=TA,
        positivity_check=True, positivity_threshold=1e-6,
    )
    assert sol.status is SolveStatus.HALTED
    assert sol.t_stop < TF
    assert min_eigenvalue(sol(sol.t_stop)) < -1e-6


def test_ule_stays_positive_up_to_tf(annealing, unitary):
    sol = solve_ule(annealing, TF, unitary, memory_depth=TA, quadrature_points=101)
    assert sol.status is SolveStatus.SOLVED
    for t in np.linspace(0.0, TF, 41):
        rho = sol(t)
        assert np.trace(rho).real == pytest.approx(1.0, abs=1e-6)
        assert min_eigenvalue(rho) >= -1e-6


def test_cgme_stays_positive(annealing):
    span = 4.0
    sol = solve_cgme(annealing, span, memory_depth=2.0)
    for t in np.linspace(0.0, span, 17):
        rho = sol(t)
        assert np.trace(rho).real == pytest.approx(1.0, abs=1e-4)
        assert min_eigenvalue(rho) >= -1e-4
