from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from oqtools.core.errors import ConfigurationError
from oqtools.core.sim.integrate import EXPLICIT_METHODS, IMPLICIT_METHODS

# Row-major convention: vec(A X B) = (A ⊗ Bᵀ) vec(X).

# A linear generator as a list of sandwiches: X -> Σ A X B, None standing
# for the identity.
Sandwich = Tuple[Optional[np.ndarray], Optional[np.ndarray]]


def check_method(method: str, vectorize: bool) -> None:
    if method in IMPLICIT_METHODS and not vectorize:
        raise ConfigurationError(
            f"Method {method!r} works on vector states only; pass vectorize=True"
        )
    if method not in EXPLICIT_METHODS and method not in IMPLICIT_METHODS:
        raise ConfigurationError(f"Unknown integration method {method!r}")


def apply_sandwiches(terms: Sequence[Sandwich], X: np.ndarray) -> np.ndarray:
    out = np.zeros_like(X, dtype=complex)
    for A, B in terms:
        Y = X if A is None else A @ X
        out += Y if B is None else Y @ B
    return out


def sandwich_superop_sum(terms: Sequence[Sandwich], dim: int) -> np.ndarray:
    """Dense superoperator of Σ A X B, also the Jacobian of the linear rhs."""
    eye = np.eye(dim, dtype=complex)
    out = np.zeros((dim * dim, dim * dim), dtype=complex)
    for A, B in terms:
        out += np.kron(eye if A is None else A, eye if B is None else B.T)
    return out


def hamiltonian_sandwiches(H: np.ndarray) -> List[Sandwich]:
    """-i [H, X]"""
    return [(-1j * H, None), (None, 1j * H)]


def lindblad_sandwiches(L: np.ndarray) -> List[Sandwich]:
    """L X L† - ½{L†L, X}"""
    Ld = L.conj().T
    LdL = Ld @ L
    return [(L, Ld), (-0.5 * LdL, None), (None, -0.5 * LdL)]
