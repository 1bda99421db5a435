"""Coarse-grained and universal Lindblad equations."""
from __future__ import annotations

import math

import numpy as np
import pytest

from oqtools import (
    Annealing,
    ConfigurationError,
    ConstantCouplings,
    CustomBath,
    Hamiltonian,
    OhmicBath,
    ULEBath,
    solve_cgme,
    solve_ule,
    solve_unitary,
)
from oqtools.core.ir.ops import PAULI
from oqtools.core.units import beta_to_temperature
from oqtools.solvers.common import min_eigenvalue
from oqtools.solvers.ule import as_ule_bath

EXCITED_RHO = np.diag([0.0, 1.0]).astype(complex)


def relaxation_annealing(bath, u0=EXCITED_RHO) -> Annealing:
    return Annealing(
        hamiltonian=Hamiltonian([1.0], [-PAULI["Z"] / 2], unit="hbar"),
        u0=u0,
        coupling=ConstantCouplings(["X"]),
        bath=bath,
    )


def gaussian_bath() -> CustomBath:
    return CustomBath(spectral_density=lambda w: math.exp(-w * w / 2.0))


def assert_physical(rho, atol=1e-6):
    assert np.trace(rho).real == pytest.approx(1.0, abs=atol)
    np.testing.assert_allclose(rho, rho.conj().T, atol=atol)
    assert min_eigenvalue(rho) >= -atol


def test_ule_bath_must_cover_memory_depth():
    short = ULEBath(gaussian_bath(), 1.0, num=21)
    with pytest.raises(ConfigurationError):
        as_ule_bath(short, 2.0)
    assert as_ule_bath(short, 0.5) is short
    wrapped = as_ule_bath(gaussian_bath(), 2.0)
    assert isinstance(wrapped, ULEBath) and wrapped.tmax == 2.0


def test_ule_requires_spectral_density_and_memory_depth():
    a = relaxation_annealing(CustomBath(correlation=lambda t: 1.0))
    with pytest.raises(ConfigurationError):
        solve_ule(a, 1.0, memory_depth=1.0)
    with pytest.raises(ConfigurationError):
        solve_ule(relaxation_annealing(gaussian_bath()), 1.0)


def test_cgme_requires_correlation_and_memory_depth():
    with pytest.raises(ConfigurationError):
        solve_cgme(relaxation_annealing(gaussian_bath()), 1.0, memory_depth=0.5)
    with pytest.raises(ConfigurationError):
        solve_cgme(relaxation_annealing(CustomBath(correlation=lambda t: 1.0)), 1.0)


@pytest.mark.slow
def test_ule_relaxes_and_stays_positive():
    a = relaxation_annealing(gaussian_bath())
    tf = 3.0
    bath = ULEBath(a.bath, 3.0, scale=0.1, num=201)
    annealing = relaxation_annealing(bath)
    U = solve_unitary(annealing, tf, rtol=1e-9, atol=1e-11)
    sol = solve_ule(annealing, tf, U, memory_depth=3.0)
    pops = [sol(t)[0, 0].real for t in np.linspace(0.0, tf, 7)]
    assert all(q >= p - 1e-6 for p, q in zip(pops, pops[1:]))
    assert 0.3 < pops[-1] < 0.6
    for t in np.linspace(0.0, tf, 7):
        assert_physical(sol(t))
    assert sol.meta["lambshift"] is True


@pytest.mark.slow
def test_ule_strong_ohmic_coupling_stays_positive():
    ohmic = OhmicBath(0.1, 4.0 / (2.0 * math.pi), beta_to_temperature(4.0))
    rho0 = np.full((2, 2), 0.5, dtype=complex)
    bath = ULEBath(ohmic, 1.0, num=201)
    annealing = Annealing(
        hamiltonian=Hamiltonian([1.0], [-PAULI["Z"] / 2 - PAULI["X"] / 8], unit="hbar"),
        u0=rho0,
        coupling=ConstantCouplings(["X"]),
        bath=bath,
    )
    sol = solve_ule(annealing, 2.0, memory_depth=1.0, quadrature_points=101)
    for t in np.linspace(0.0, 2.0, 9):
        assert_physical(sol(t))


@pytest.mark.slow
def test_cgme_is_physical_and_relaxes():
    bath = CustomBath(correlation=lambda t: 0.2 * math.exp(-abs(t)))
    a = relaxation_annealing(bath)
    tf = 1.0
    U = solve_unitary(a, tf, rtol=1e-9, atol=1e-11)
    sol = solve_cgme(a, tf, U, memory_depth=0.5)
    for t in np.linspace(0.0, tf, 5):
        assert_physical(sol(t), atol=1e-4)
    assert sol(tf)[0, 0].real > 1e-3
    assert sol.meta["memory_depth"] == 0.5


@pytest.mark.slow
def test_cgme_vectorized_matches_direct():
    bath = CustomBath(correlation=lambda t: 0.2 * math.exp(-abs(t)))
    a = relaxation_annealing(bath, u0=np.full((2, 2), 0.5, dtype=complex))
    tf = 0.5
    U = solve_unitary(a, tf, rtol=1e-9, atol=1e-11)
    direct = solve_cgme(a, tf, U, memory_depth=0.4)
    vec = solve_cgme(a, tf, U, memory_depth=0.4, vectorize=True, method="Radau")
    np.testing.assert_allclose(vec(tf), direct(tf), atol=1e-3)
