"""Classical telegraph-noise trajectories and ensemble statistics."""
from __future__ import annotations

import numpy as np
import pytest

from oqtools import (
    Annealing,
    ConfigurationError,
    ConstantCouplings,
    FluctuatorEnsemble,
    Hamiltonian,
    OhmicBath,
    SerialStrategy,
    TelegraphNoise,
    ThreadStrategy,
    build_ensembles,
    ensemble_statistics,
    solve_stochastic_schrodinger,
)
from oqtools.core.ir.ops import PAULI
from oqtools.ensemble import trajectory_rng

B, GAMMA = 0.2, 1.0
TF = 4.0
PLUS = np.array([1.0, 1.0], dtype=complex) / np.sqrt(2.0)


def sigma_x(psi):
    return np.real(np.vdot(psi, PAULI["X"] @ psi))


def telegraph_coherence(t, b=B, gamma=GAMMA):
    """<σx(t)> for H = b x(t) σz with x flipping at rate gamma, from |+>."""
    v = 2.0 * b
    alpha = np.sqrt(complex(gamma**2 - v**2))
    t = np.asarray(t, dtype=float)
    return np.real(np.exp(-gamma * t) * (np.cosh(alpha * t) + gamma / alpha * np.sinh(alpha * t)))


def fluctuator_annealing(u0=PLUS) -> Annealing:
    return Annealing(
        hamiltonian=Hamiltonian([0.0], [np.zeros((2, 2))], unit="hbar"),
        u0=u0,
        coupling=ConstantCouplings(["Z"]),
        bath=FluctuatorEnsemble([B], [GAMMA]),
    )


def test_ensemble_statistics_formula():
    x = np.array([[1.0, 2.0], [3.0, 2.0], [5.0, 2.0]])
    stats = ensemble_statistics(x)
    np.testing.assert_allclose(stats.mean, [3.0, 2.0])
    np.testing.assert_allclose(stats.sem, [2.0 / np.sqrt(3.0), 0.0])
    assert stats.n == 3
    single = ensemble_statistics(x[:1])
    assert np.all(np.isnan(single.sem))
    with pytest.raises(ValueError):
        ensemble_statistics(np.empty((0, 2)))


def test_trajectory_streams_are_reproducible_and_distinct():
    a = trajectory_rng(42, 3).random(4)
    b = trajectory_rng(42, 3).random(4)
    c = trajectory_rng(42, 4).random(4)
    np.testing.assert_array_equal(a, b)
    assert not np.allclose(a, c)


def test_single_trajectory_phase_follows_the_noise():
    # x = +1 until t = 1, then -1: accumulated phase 2b (1 - (T - 1))
    noise = TelegraphNoise(amplitudes=(B,), signs=(1,), flips=((1.0,),))
    sol = solve_stochastic_schrodinger(fluctuator_annealing(), TF, noise, rtol=1e-10, atol=1e-12)
    assert 1.0 in sol.t
    for t in (0.5, 1.0, 3.0):
        integral = t if t < 1.0 else 1.0 - (t - 1.0)
        assert sigma_x(sol(t)) == pytest.approx(np.cos(2.0 * B * integral), abs=1e-8)
    assert sol.meta["switches"] == 1


def test_density_matrix_trajectory_matches_ket():
    noise = TelegraphNoise(amplitudes=(B,), signs=(-1,), flips=((0.7, 2.2),))
    ket = solve_stochastic_schrodinger(fluctuator_annealing(), TF, noise, rtol=1e-10, atol=1e-12)
    rho = solve_stochastic_schrodinger(
        fluctuator_annealing(np.outer(PLUS, PLUS.conj())), TF, noise, rtol=1e-10, atol=1e-12
    )
    p = ket(TF)
    np.testing.assert_allclose(rho(TF), np.outer(p, p.conj()), atol=1e-8)


def test_stochastic_configuration_errors():
    a = fluctuator_annealing()
    with pytest.raises(ConfigurationError):
        solve_stochastic_schrodinger(a, TF)
    noise = TelegraphNoise(amplitudes=(B,), signs=(1,), flips=((),))
    with pytest.raises(ConfigurationError):
        solve_stochastic_schrodinger(a, TF, [noise, noise])
    ohmic = Annealing(
        hamiltonian=a.hamiltonian, u0=PLUS, coupling=ConstantCouplings(["Z"]),
        bath=OhmicBath(1e-4, 4.0, 16.0),
    )
    with pytest.raises(ConfigurationError):
        solve_stochastic_schrodinger(ohmic, TF, rng=np.random.default_rng(0))
    with pytest.raises(ConfigurationError):
        build_ensembles(a, TF, "lindblad")
    with pytest.raises(ConfigurationError):
        build_ensembles(a, TF, "stochastic").run(0)


def test_ensemble_mean_matches_telegraph_dephasing():
    tlist = np.linspace(0.0, TF, 21)
    problem = build_ensembles(fluctuator_annealing(), TF, "stochastic", seed=2024)
    ensemble = problem.run(400, strategy=ThreadStrategy(max_workers=4))
    stats = ensemble.statistics(sigma_x, tlist)
    exact = telegraph_coherence(tlist)
    assert stats.mean[0] == pytest.approx(1.0)
    assert np.all(np.abs(stats.mean - exact)[1:] <= 4.0 * stats.sem[1:] + 1e-6)


def test_standard_error_shrinks_as_inverse_square_root():
    tlist = np.array([2.0, 3.0, 4.0])
    small = build_ensembles(fluctuator_annealing(), TF, "stochastic", seed=1).run(100)
    large = build_ensembles(fluctuator_annealing(), TF, "stochastic", seed=2).run(400)
    ratio = small.statistics(sigma_x, tlist).sem / large.statistics(sigma_x, tlist).sem
    assert np.all((ratio > 1.4) & (ratio < 2.8))


def test_same_seed_same_ensemble_whatever_the_strategy():
    problem = build_ensembles(fluctuator_annealing(), TF, "stochastic", seed=9)
    final = lambda sol: sol.final_state  # noqa: E731
    a = problem.run(8, strategy=SerialStrategy(), output=final)
    b = problem.run(8, strategy=ThreadStrategy(max_workers=4), output=final)
    assert len(a) == len(b) == 8
    for x, y in zip(a, b):
        np.testing.assert_array_equal(x, y)
    stats = a.statistics()
    assert stats.mean.shape == (2,)


def test_trajectories_get_their_own_hamiltonian():
    annealing = fluctuator_annealing()
    problem = build_ensembles(annealing, TF, "stochastic")
    first, _ = problem.problem(0)
    second, _ = problem.problem(1)
    assert first.hamiltonian is not annealing.hamiltonian
    assert first.hamiltonian.cache is not second.hamiltonian.cache
    assert first.bath is annealing.bath
