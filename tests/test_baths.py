"""Bath conventions: correlation, spectral density and Lamb shift consistency."""
from __future__ import annotations

import math

import numpy as np
import pytest
from scipy.integrate import quad

from oqtools import (
    ConfigurationError,
    CorrelatedBath,
    CustomBath,
    FluctuatorEnsemble,
    OhmicBath,
    TabulatedCorrelation,
    TelegraphNoise,
    ULEBath,
    one_over_f_fluctuators,
    polaron_bath,
    polaron_correlation,
)
from oqtools.baths.base import correlation_grid
from oqtools.core.units import beta_to_temperature


@pytest.fixture(scope="module")
def ohmic() -> OhmicBath:
    # ωc = 4 rad/ns, β = 2 ns
    return OhmicBath(0.1, 4.0 / (2.0 * math.pi), beta_to_temperature(2.0))


def test_ohmic_parameters(ohmic):
    assert ohmic.omega_c == pytest.approx(4.0)
    assert ohmic.beta == pytest.approx(2.0)


def test_ohmic_zero_frequency_limit(ohmic):
    g0 = ohmic.spectral_density(0.0)
    assert g0 == pytest.approx(2.0 * math.pi * 0.1 / 2.0)
    assert ohmic.spectral_density(1e-7) == pytest.approx(g0, rel=1e-5)
    assert ohmic.spectral_density(-1e-7) == pytest.approx(g0, rel=1e-5)


@pytest.mark.parametrize(
    "bath",
    [
        OhmicBath(0.1, 4.0 / (2.0 * math.pi), beta_to_temperature(2.0)),
        OhmicBath(0.1, 4.0 / (2.0 * math.pi), beta_to_temperature(10.0)),
        OhmicBath(1e-4, 4.0, 16.0),
    ],
    ids=["beta2", "beta10", "canonical"],
)
def test_ohmic_zero_lag_correlation_at_low_temperature(bath):
    # the thermal integrand reaches βω far beyond exp overflow on [0, ∞)
    wc = bath.omega_c
    expected, _ = quad(
        lambda w: bath.spectral_density(w) / (2.0 * math.pi), -40.0 * wc, 40.0 * wc, limit=400
    )
    c0 = bath.correlation(0.0)
    assert c0.real == pytest.approx(expected, rel=1e-5)
    assert c0.imag == 0.0
    table = bath.correlation_function(1.0, num=51)
    assert np.isfinite(table(0.0))


def test_ohmic_detailed_balance(ohmic):
    w = np.array([0.3, 1.0, 2.5])
    np.testing.assert_allclose(
        ohmic.spectral_density(-w), np.exp(-ohmic.beta * w) * ohmic.spectral_density(w), rtol=1e-12
    )


@pytest.mark.parametrize("tau", [0.0, 0.3, 1.2])
def test_ohmic_correlation_is_fourier_transform_of_spectral_density(ohmic, tau):
    L = 40.0 * ohmic.omega_c
    gamma = ohmic.spectral_density
    re, _ = quad(lambda w: gamma(w) * math.cos(w * tau), -L, L, limit=400)
    im, _ = quad(lambda w: -gamma(w) * math.sin(w * tau), -L, L, limit=400)
    expected = complex(re, im) / (2.0 * math.pi)
    got = ohmic.correlation(tau)
    assert abs(got - expected) <= 1e-5 * max(abs(expected), 1e-3)
    assert ohmic.correlation(-tau) == pytest.approx(got.conjugate())


def test_ohmic_lamb_shift_principal_value(ohmic):
    w = 1.0
    L = 40.0 * ohmic.omega_c
    pv, _ = quad(ohmic.spectral_density, -L, L, weight="cauchy", wvar=w, limit=400)
    assert ohmic.lamb_shift(w) == pytest.approx(-pv / (2.0 * math.pi), rel=1e-4)
    out = ohmic.lamb_shift(np.array([0.5, 1.0]))
    assert out.shape == (2,)


def test_ohmic_tabulated_correlation(ohmic):
    table = ohmic.correlation_function(3.0, num=401)
    for tau in (0.05, 0.4, 2.7):
        assert abs(table(tau) - ohmic.correlation(tau)) <= 1e-4 * abs(ohmic.correlation(tau))
    assert table(-0.4) == pytest.approx(np.conj(table(0.4)))


def test_tabulated_correlation_symmetry_and_flat_tail():
    fn = lambda t: math.exp(-t) * complex(1.0, -0.5 * t)  # noqa: E731
    table = TabulatedCorrelation.from_function(fn, np.linspace(0.0, 2.0, 201))
    assert table(0.55) == pytest.approx(fn(0.55), rel=1e-6)
    assert table(-0.55) == pytest.approx(np.conj(fn(0.55)), rel=1e-6)
    assert table(7.0) == pytest.approx(fn(2.0), rel=1e-9)
    assert table(np.array([0.1, -0.1])).shape == (2,)
    with pytest.raises(ValueError):
        TabulatedCorrelation([0.1, 0.2], [1.0, 1.0])


def test_correlation_grid_is_refined_near_origin():
    grid = correlation_grid(10.0, 0.1, num=101)
    assert grid[0] == 0.0 and grid[-1] == pytest.approx(10.0)
    assert np.all(np.diff(grid) > 0.0)
    assert np.sum(grid <= 2.0) >= 50
    with pytest.raises(ConfigurationError):
        correlation_grid(0.0, 0.1)


def test_fluctuator_closed_forms_are_consistent():
    bath = FluctuatorEnsemble([0.3, 0.1], [0.5, 2.0])
    w = 0.7
    ft, _ = quad(lambda t: bath.correlation(t).real, 0.0, np.inf, weight="cos", wvar=w)
    assert bath.spectral_density(w) == pytest.approx(2.0 * ft, rel=1e-6)
    L = 1e4
    pv, _ = quad(bath.spectral_density, -L, L, weight="cauchy", wvar=w, limit=400)
    assert bath.lamb_shift(w) == pytest.approx(-pv / (2.0 * math.pi), abs=1e-5)
    assert bath.correlation(0.0) == pytest.approx(0.3**2 + 0.1**2)


def test_fluctuator_sampling():
    bath = FluctuatorEnsemble([0.2], [1.5])
    rng = np.random.default_rng(7)
    noise = bath.sample(rng, (0.0, 10.0))
    assert noise.signs[0] in (-1, 1)
    times = noise.switching_times
    assert all(0.0 < t < 10.0 for t in times)
    assert len(times) > 0
    # right-continuous: at a flip the new value already holds
    t1 = times[0]
    assert noise.value(t1) == pytest.approx(-noise.value(0.0))
    assert abs(noise.value(0.5 * t1)) == pytest.approx(0.2)


def test_telegraph_noise_sums_processes():
    noise = TelegraphNoise(amplitudes=(1.0, 0.5), signs=(1, -1), flips=((1.0,), (2.0, 3.0)))
    assert noise.value(0.0) == pytest.approx(0.5)
    assert noise.value(1.5) == pytest.approx(-1.5)
    assert noise.value(2.0) == pytest.approx(-0.5)
    assert noise.value(3.5) == pytest.approx(-1.5)
    assert noise.switching_times == (1.0, 2.0, 3.0)


def test_one_over_f_fluctuators():
    bath = one_over_f_fluctuators(0.1, 0.01, 10.0, 5, total=True)
    assert len(bath) == 5
    assert np.sum(bath.b**2) == pytest.approx(0.01)
    assert bath.gamma[0] == pytest.approx(0.01) and bath.gamma[-1] == pytest.approx(10.0)
    with pytest.raises(ConfigurationError):
        one_over_f_fluctuators(0.1, 1.0, 0.1, 3)
    with pytest.raises(ConfigurationError):
        FluctuatorEnsemble([0.1, 0.2], [1.0])


def test_custom_bath_capabilities():
    bath = CustomBath(correlation=lambda t: math.exp(-abs(t)))
    assert bath.provides("correlation")
    assert not bath.provides("spectral_density")
    assert bath.correlation(0.5) == pytest.approx(math.exp(-0.5))
    with pytest.raises(ConfigurationError):
        bath.spectral_density(0.1)
    with pytest.raises(ConfigurationError):
        bath.lamb_shift(0.1)
    full = CustomBath(spectral_density=lambda w: 1.0, lamb_shift=lambda w: 0.0)
    assert full.spectral_density(np.zeros(3)).shape == (3,)


def test_correlated_bath_pairs():
    c01 = lambda t: 0.2  # noqa: E731
    c10 = lambda t: 0.3  # noqa: E731
    bath = CorrelatedBath([[None, c01], [c10, None]])
    assert bath.num_channels == 2
    assert bath.channel_pairs == [(0, 1), (1, 0)]
    assert bath.correlation(0.0, 1, 0) == pytest.approx(0.3)
    assert bath.correlation(0.0, 0, 0) == 0.0
    pairs = bath.correlation_pairs(2, tmax=1.0)
    assert [(a, b) for a, b, _ in pairs] == [(0, 1), (1, 0)]
    with pytest.raises(ConfigurationError):
        bath.correlation_pairs(3, tmax=1.0)
    with pytest.raises(ConfigurationError):
        bath.spectral_density(0.0)
    with pytest.raises(ConfigurationError):
        CorrelatedBath({(0, 2): c01}, num_channels=2)


def test_ule_jump_correlator_for_gaussian_spectrum():
    # √γ = exp(-ω²/4)  =>  g(t) = exp(-t²) / √π
    bath = ULEBath(CustomBath(spectral_density=lambda w: math.exp(-w * w / 2.0)), 4.0,
                   scale=0.1, num=201)
    for t in (0.0, 0.3, 0.7, 1.5):
        assert bath.jump_correlator(t) == pytest.approx(math.exp(-t * t) / math.sqrt(math.pi), abs=1e-6)
    assert bath.jump_correlator(-0.7) == pytest.approx(np.conj(bath.jump_correlator(0.7)))
    assert bath.jump_correlator(9.0) == pytest.approx(bath.jump_correlator(4.0))
    assert bath.provides("spectral_density") and not bath.provides("correlation")
    with pytest.raises(ConfigurationError):
        ULEBath(CustomBath(correlation=lambda t: 1.0), 1.0)


def test_polaron_correlation_for_constant_bath_correlation():
    # C = c  =>  K(t) = c t² / 2 and exp(-4K) = exp(-2 c t²)
    c = 0.1
    table = polaron_correlation(CustomBath(correlation=lambda t: c), 3.0, scale=0.05)
    for t in (0.0, 0.5, 1.5, 2.9):
        assert table(t) == pytest.approx(math.exp(-2.0 * c * t * t), rel=1e-6)


def test_polaron_of_vanishing_bath_is_one():
    table = polaron_correlation(CustomBath(correlation=lambda t: 0.0), 1.0)
    assert table(0.6) == pytest.approx(1.0)
    bath = polaron_bath(CustomBath(correlation=lambda t: 0.0), 1.0)
    assert bath.num_channels == 2
    assert bath.channel_pairs == [(0, 1), (1, 0)]
