"""Segmented integration driver: stop points, pulses, state events, halting."""
from __future__ import annotations

import numpy as np
import pytest

from oqtools import ConfigurationError, IntegrationError, SolveStatus
from oqtools.core.sim.integrate import StateEvent, integrate, solver_class
from oqtools.core.sim.types import SolverOptions, resolve_options


def decay(t, y):
    return -y


def test_plain_decay_matches_exponential():
    res = integrate(decay, np.array([1.0]), (0.0, 2.0), rtol=1e-9, atol=1e-12)
    sol = res.to_solution(shape=(1,))
    assert res.status is SolveStatus.SOLVED
    assert sol(1.3)[0].real == pytest.approx(np.exp(-1.3), rel=1e-6)
    assert sol.t_stop == pytest.approx(2.0)


def test_tstops_are_hit_exactly():
    stops = [0.3, 1.1, 1.7]
    res = integrate(decay, np.array([1.0]), (0.0, 2.0), tstops=stops)
    for s in stops:
        assert s in res.t
    assert len(res.segments) == len(stops) + 1


def test_pulse_is_applied_at_its_time_and_solution_is_right_continuous():
    flip = lambda y: -y  # noqa: E731
    res = integrate(decay, np.array([1.0]), (0.0, 2.0), pulses={1.0: [flip]}, rtol=1e-9, atol=1e-12)
    sol = res.to_solution(shape=(1,))
    assert sol(1.0)[0].real == pytest.approx(-np.exp(-1.0), rel=1e-6)
    assert sol(0.999999)[0].real == pytest.approx(np.exp(-0.999999), rel=1e-5)
    assert sol(2.0)[0].real == pytest.approx(-np.exp(-2.0), rel=1e-6)
    assert res.meta["n_events"] == 1


def test_multiple_updates_at_one_time_run_in_order():
    add = lambda y: y + 1.0  # noqa: E731
    double = lambda y: 2.0 * y  # noqa: E731
    res = integrate(lambda t, y: np.zeros_like(y), np.array([0.0]), (0.0, 1.0),
                    pulses={0.5: [add, double]})
    assert res.to_solution(shape=(1,))(1.0)[0].real == pytest.approx(2.0)


def test_state_event_is_located_and_state_replaced():
    # y' = -y crosses 0.5 at ln 2; the event resets y to 1
    hits = []

    def affect(t, y):
        hits.append(t)
        return np.ones_like(y)

    ev = StateEvent(lambda t, y: float(y[0].real) - 0.5, affect)
    res = integrate(decay, np.array([1.0]), (0.0, 1.0), state_events=[ev], rtol=1e-10, atol=1e-12)
    assert hits[0] == pytest.approx(np.log(2.0), abs=1e-7)
    sol = res.to_solution(shape=(1,))
    assert sol(1.0)[0].real == pytest.approx(np.exp(-(1.0 - hits[0])), rel=1e-6)


def test_halt_truncates_the_solution():
    res = integrate(decay, np.array([1.0]), (0.0, 5.0),
                    halt=lambda t, y: y[0].real < 0.2, max_step=0.01)
    sol = res.to_solution(shape=(1,))
    assert res.status is SolveStatus.HALTED
    assert sol.t_stop == pytest.approx(np.log(5.0), abs=0.02)
    with pytest.raises(ValueError):
        sol(4.0)


def test_segment_hook_sees_every_piece():
    pieces = []
    integrate(decay, np.array([1.0]), (0.0, 1.0), tstops=[0.25, 0.5],
              segment_hook=lambda a, b: pieces.append((a, b)))
    assert pieces == [(0.0, 0.25), (0.25, 0.5), (0.5, 1.0)]


def test_rhs_exceptions_propagate():
    def bad(t, y):
        raise FloatingPointError("boom")

    with pytest.raises(FloatingPointError):
        integrate(bad, np.array([1.0]), (0.0, 1.0))


def test_invalid_configuration():
    with pytest.raises(ConfigurationError):
        solver_class("Euler")
    with pytest.raises(ConfigurationError):
        integrate(decay, np.array([1.0]), (1.0, 1.0))


def test_resolve_options_merges_and_ignores_none():
    opts = resolve_options({"rtol": 1e-3}, atol=None, method="DOP853")
    assert opts == SolverOptions(rtol=1e-3, method="DOP853")
    assert resolve_options(None) == SolverOptions()


@pytest.mark.parametrize("jac", [None, "matrix", "callable"])
def test_radau_integrates_complex_states(jac):
    # y' = -(1 + 2i) y rotates and decays
    rate = 1.0 + 2.0j
    J = np.array([[-rate]])
    jacs = {None: None, "matrix": J, "callable": lambda t, y: J}
    res = integrate(
        lambda t, y: -rate * y, np.array([1.0 + 0.0j]), (0.0, 1.5),
        method="Radau", jac=jacs[jac], tstops=[0.7], rtol=1e-9, atol=1e-12,
    )
    sol = res.to_solution(shape=(1,))
    for t in (0.4, 0.7, 1.5):
        assert sol(t)[0] == pytest.approx(np.exp(-rate * t), rel=1e-6)
    assert np.iscomplexobj(res.y[-1])


def test_radau_locates_state_events_on_complex_output():
    hits = []

    def renormalise(t, y):
        hits.append(t)
        return y / abs(y[0])

    ev = StateEvent(lambda t, y: float(abs(y[0])) - 0.5, renormalise)
    res = integrate(
        lambda t, y: -(1.0 + 3.0j) * y, np.array([1.0 + 0.0j]), (0.0, 1.0),
        method="Radau", state_events=[ev], rtol=1e-10, atol=1e-12,
    )
    assert res.meta["n_events"] == 1
    assert hits[0] == pytest.approx(np.log(2.0), abs=1e-6)
    assert abs(res.y[-1][0]) == pytest.approx(np.exp(-(1.0 - np.log(2.0))), rel=1e-6)


def test_blow_up_raises_integration_error():
    # y' = y² from y(0) = 1 diverges at t = 1
    with pytest.raises(IntegrationError) as info:
        integrate(lambda t, y: y * y, np.array([1.0]), (0.0, 2.0))
    assert info.value.status is SolveStatus.FAILED
    assert 0.9 < info.value.t <= 1.0
