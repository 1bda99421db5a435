"""Operators, Hamiltonian eigen-cache, couplings, units and Annealing checks."""
from __future__ import annotations

import math

import numpy as np
import pytest
import scipy.sparse as sp

from oqtools import (
    Annealing,
    ConfigurationError,
    ConstantCouplings,
    CorrelatedBath,
    CustomCouplings,
    Hamiltonian,
    Operator,
    collective_coupling,
    dense_eigensolver,
    sparse_eigensolver,
)
from oqtools.core.ir.ops import (
    PAULI,
    local_field_term,
    pauli_string,
    single_clause,
    standard_driver,
    two_local_term,
)
from oqtools.core.units import (
    beta_to_temperature,
    frequency_to_angular,
    temperature_to_beta,
    unit_scale,
)


def _annealing_hamiltonian(unit: str = "hbar") -> Hamiltonian:
    return Hamiltonian(
        [lambda s: 1.0 - s, lambda s: s],
        [-PAULI["X"] / 2, -PAULI["Z"] / 2],
        unit=unit,
    )


def test_unit_flag_scales_once_at_construction():
    lin = _annealing_hamiltonian("h")
    ang = _annealing_hamiltonian("hbar")
    np.testing.assert_allclose(lin(0.3), 2.0 * math.pi * ang(0.3))
    assert unit_scale("h") == pytest.approx(2.0 * math.pi)
    assert unit_scale("hbar") == 1.0
    with pytest.raises(ValueError):
        unit_scale("GHz")


def test_temperature_and_frequency_conversions():
    beta = temperature_to_beta(16.0)
    assert beta == pytest.approx(0.4774, rel=1e-3)
    assert beta_to_temperature(beta) == pytest.approx(16.0)
    assert frequency_to_angular(1.0) == pytest.approx(2.0 * math.pi)


def test_eigen_decompose_cache_is_bit_identical_to_direct_call():
    H = _annealing_hamiltonian()
    s = 0.37
    w1, v1 = H.eigen_decompose(s, lvl=2)
    w2, v2 = H.eigen_decompose(s, lvl=2)
    w_ref, v_ref = dense_eigensolver(H(s), s, 2)
    assert np.array_equal(w1, w_ref) and np.array_equal(v1, v_ref)
    assert np.array_equal(w2, w_ref) and np.array_equal(v2, v_ref)
    assert np.all(np.diff(w1) >= 0.0)


def test_eigen_cache_refreshes_on_new_time_and_level():
    H = _annealing_hamiltonian()
    H.eigen_decompose(0.1, lvl=2)
    assert H.cache.s == 0.1
    H.eigen_decompose(0.9, lvl=1)
    assert H.cache.s == 0.9 and H.cache.lvl == 1
    w, _ = H.eigen_decompose(0.9, lvl=2)
    assert w.shape == (2,)


def test_returned_eigenpairs_do_not_alias_the_cache():
    H = _annealing_hamiltonian()
    w, v = H.eigen_decompose(0.5)
    w[:] = 0.0
    v[:] = 0.0
    w2, _ = H.eigen_decompose(0.5)
    assert np.any(w2 != 0.0)


def test_clone_gets_an_independent_cache():
    H = _annealing_hamiltonian()
    H.eigen_decompose(0.2)
    H2 = H.clone()
    assert H2.cache is not H.cache
    assert math.isnan(H2.cache.s)
    H2.eigen_decompose(0.8)
    assert H.cache.s == 0.2


def test_sparse_eigensolver_matches_dense():
    n = 4
    H = Hamiltonian(
        [lambda s: 1.0 - s, lambda s: s],
        [sp.csr_matrix(standard_driver(n)), sp.csr_matrix(two_local_term([1.0] * 3, [(0, 1), (1, 2), (2, 3)], n))],
        unit="hbar",
        eigensolver=sparse_eigensolver,
    )
    assert H.is_sparse
    w, _ = H.eigen_decompose(0.5, lvl=3)
    w_ref, _ = dense_eigensolver(H(0.5), 0.5, 3)
    np.testing.assert_allclose(w, w_ref, atol=1e-8)


def test_eigensolver_errors_propagate_unchanged():
    def broken(matrix, s, lvl):
        raise ArithmeticError("no convergence")

    H = Hamiltonian([1.0], [PAULI["Z"]], eigensolver=broken)
    with pytest.raises(ArithmeticError, match="no convergence"):
        H.eigen_decompose(0.0)


def test_invalid_level_count():
    H = _annealing_hamiltonian()
    with pytest.raises(ConfigurationError):
        H.eigen_decompose(0.0, lvl=3)


def test_hamiltonian_addition_merges_terms():
    H = _annealing_hamiltonian()
    field = Operator([0.25], [PAULI["Y"]])
    total = H + field
    assert isinstance(total, Hamiltonian)
    np.testing.assert_allclose(total(0.4), H(0.4) + 0.25 * PAULI["Y"])


def test_pauli_strings_and_couplings():
    np.testing.assert_allclose(pauli_string("XZ"), np.kron(PAULI["X"], PAULI["Z"]))
    c = ConstantCouplings(["ZI", "IZ"])
    assert len(c) == 2 and c.dim == 4 and c.is_constant
    coll = collective_coupling("Z", 2)
    np.testing.assert_allclose(coll(0.0)[0], pauli_string("ZI") + pauli_string("IZ"))
    td = CustomCouplings([Operator([lambda s: s], [PAULI["X"]])])
    assert not td.is_constant
    np.testing.assert_allclose(td(0.5)[0], 0.5 * PAULI["X"])


def test_clause_helpers():
    np.testing.assert_allclose(single_clause(["X", "Z"], [2, 0], 3), pauli_string("ZIX"))
    np.testing.assert_allclose(
        local_field_term([0.5, -1.0], 2), 0.5 * pauli_string("ZI") - pauli_string("IZ")
    )
    with pytest.raises(ValueError):
        single_clause(["X", "X"], [1, 1], 2)
    with pytest.raises(IndexError):
        single_clause(["X"], [3], 2)
    with pytest.raises(KeyError):
        pauli_string("XQ")


def test_annealing_rejects_inconsistent_dimensions():
    H = _annealing_hamiltonian()
    with pytest.raises(ConfigurationError):
        Annealing(hamiltonian=H, u0=np.ones(3))
    with pytest.raises(ConfigurationError):
        Annealing(hamiltonian=H, u0=np.ones(2), coupling=ConstantCouplings(["ZZ"]))
    bath = CorrelatedBath({(0, 1): lambda t: 1.0, (1, 0): lambda t: 1.0})
    with pytest.raises(ConfigurationError):
        Annealing(hamiltonian=H, u0=np.ones(2), coupling=ConstantCouplings(["Z"]), bath=bath)


def test_annealing_is_immutable():
    H = _annealing_hamiltonian()
    a = Annealing(hamiltonian=H, u0=np.array([1.0, 0.0]))
    with pytest.raises(ValueError):
        a.u0[0] = 2.0
    np.testing.assert_allclose(a.density_matrix(), np.diag([1.0, 0.0]))
