from __future__ import annotations

from typing import Sequence

import numpy as np

# basis: |0> = [1,0], |1> = [0,1]; Z|0> = |0>
PAULI = {
    "I": np.eye(2, dtype=complex),
    "X": np.array([[0.0, 1.0], [1.0, 0.0]], dtype=complex),
    "Y": np.array([[0.0, -1.0j], [1.0j, 0.0]], dtype=complex),
    "Z": np.array([[1.0, 0.0], [0.0, -1.0]], dtype=complex),
}

# sigma_plus = |1><0| raises the Z-eigenvalue index, sigma_minus = |0><1|
SIGMA_PLUS = np.array([[0.0, 0.0], [1.0, 0.0]], dtype=complex)
SIGMA_MINUS = np.array([[0.0, 1.0], [0.0, 0.0]], dtype=complex)


def _kron_all(mats: Sequence[np.ndarray]) -> np.ndarray:
    out = np.asarray(mats[0], dtype=complex)
    for m in mats[1:]:
        out = np.kron(out, np.asarray(m, dtype=complex))
    return out


def _resolve_local(symbol: str) -> np.ndarray:
    try:
        return PAULI[symbol.upper()]
    except KeyError as e:
        raise KeyError(f"Unknown operator symbol: {symbol}") from e


def pauli_string(word: str) -> np.ndarray:
    """
    Materialize a Pauli word such as ``"XZI"`` into a dense matrix.

    Convention: qubit ordering follows the word, kron(q0, q1, ...).
    """
    word = word.strip()
    if not word:
        raise ValueError("Pauli word must not be empty")
    return _kron_all([_resolve_local(c) for c in word])


def single_clause(symbols: Sequence[str], indices: Sequence[int], num_qubits: int) -> np.ndarray:
    """
    Product of local Pauli operators on selected qubits, identity elsewhere.
    """
    if len(symbols) != len(indices):
        raise ValueError("symbols and indices must have same length")
    if len(set(indices)) != len(indices):
        raise ValueError(f"indices must be unique: {indices}")
    word = ["I"] * num_qubits
    for sym, idx in zip(symbols, indices):
        if idx < 0 or idx >= num_qubits:
            raise IndexError(f"Qubit index out of range: {idx} for n={num_qubits}")
        word[idx] = sym
    return pauli_string("".join(word))


def local_field_term(h: Sequence[float], num_qubits: int, symbol: str = "Z") -> np.ndarray:
    """Σ_i h_i σ_i on ``num_qubits`` qubits."""
    if len(h) != num_qubits:
        raise ValueError(f"Expected {num_qubits} field values, got {len(h)}")
    D = 2**num_qubits
    acc = np.zeros((D, D), dtype=complex)
    for i, hi in enumerate(h):
        acc += complex(hi) * single_clause([symbol], [i], num_qubits)
    return acc


def two_local_term(
    J: Sequence[float],
    pairs: Sequence[tuple[int, int]],
    num_qubits: int,
    symbol: str = "Z",
) -> np.ndarray:
    """Σ_(i,j) J_ij σ_i σ_j on ``num_qubits`` qubits."""
    if len(J) != len(pairs):
        raise ValueError("J and pairs must have same length")
    D = 2**num_qubits
    acc = np.zeros((D, D), dtype=complex)
    for Jij, (i, j) in zip(J, pairs):
        acc += complex(Jij) * single_clause([symbol, symbol], [i, j], num_qubits)
    return acc


def collective_operator(symbol: str, num_qubits: int) -> np.ndarray:
    """Σ_i σ_i for a single Pauli symbol."""
    return local_field_term([1.0] * num_qubits, num_qubits, symbol=symbol)


def standard_driver(num_qubits: int) -> np.ndarray:
    """Transverse-field driver Σ_i X_i."""
    return collective_operator("X", num_qubits)
