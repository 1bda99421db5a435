from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from oqtools.core.errors import ConfigurationError
from oqtools.core.ir.coeffs import eval_coeff_any
from oqtools.core.model.hamiltonian import Operator
from oqtools.core.types import Annealing


@dataclass(frozen=True)
class AuditOptions:
    num_s: int = 101
    max_terms: int = 200
    top_entries: int = 6
    check_hermitian_H: bool = True
    check_state: bool = True
    hermitian_atol: float = 1e-10
    state_atol: float = 1e-8
    coeff_stats: bool = True


def _top_abs_entries(
    mat: np.ndarray, k: int
) -> Sequence[Tuple[float, Tuple[int, int], complex]]:
    m = np.asarray(mat)
    a = np.abs(m).ravel()
    if a.size == 0:
        return []
    k = min(int(k), int(a.size))
    # partial selection then sort those
    idx = np.argpartition(a, -k)[-k:]
    idx = idx[np.argsort(a[idx])[::-1]]
    out = []
    n = m.shape[1]
    for flat in idx:
        i = int(flat // n)
        j = int(flat % n)
        out.append((float(abs(m[i, j])), (i, j), complex(m[i, j])))
    return out


def _dense(m: Any) -> np.ndarray:
    return m.toarray() if sp.issparse(m) else np.asarray(m, dtype=complex)


def _audit_operator(
    kind: str, op: Operator, slist: np.ndarray, opt: AuditOptions
) -> Dict[str, Any]:
    out: Dict[str, Any] = {"kind": kind, "count": len(op.mats), "unit": op.unit, "terms": []}
    n_take = min(opt.max_terms, len(op.mats))
    for idx in range(n_take):
        mat = _dense(op.mats[idx])
        item: Dict[str, Any] = {
            "index": idx,
            "op_shape": tuple(mat.shape),
            "op_fro_norm": float(np.linalg.norm(mat.ravel())),
        }
        if opt.check_hermitian_H:
            herm_err = float(np.max(np.abs(mat - mat.conj().T)))
            item["op_hermitian_max_abs_err"] = herm_err
            item["op_is_hermitian"] = bool(herm_err <= opt.hermitian_atol)
        if opt.coeff_stats:
            coeff = eval_coeff_any(op.coeffs[idx], slist)
            peak_i = int(np.argmax(np.abs(coeff)))
            item["coeff_min_abs"] = float(np.min(np.abs(coeff)))
            item["coeff_max_abs"] = float(np.max(np.abs(coeff)))
            item["coeff_peak_s"] = float(slist[peak_i])
            item["coeff_peak_val"] = complex(coeff[peak_i])
            item["coeff_max_imag"] = float(np.max(np.abs(coeff.imag)))
        item["op_top_entries"] = _top_abs_entries(mat, opt.top_entries)
        out["terms"].append(item)
    if len(op.mats) > n_take:
        out["truncated"] = int(len(op.mats) - n_take)
    return out


def audit_annealing(
    annealing: Annealing,
    *,
    options: Optional[AuditOptions] = None,
) -> Dict[str, Any]:
    """
    Structured report on an annealing before it is solved.

    Catches what ``Annealing`` itself cannot see cheaply:

    - non-Hermitian Hamiltonian terms or complex coefficients
    - initial states that are not normalised (or not Hermitian, unit trace)
    - coefficient ranges and peaks over s ∈ [0, 1]

    Hermiticity and normalisation failures raise ``ConfigurationError``; the
    rest is reported.
    """
    opt = options or AuditOptions()
    slist = np.linspace(0.0, 1.0, int(opt.num_s))

    report: Dict[str, Any] = {
        "D": annealing.dim,
        "u0_shape": tuple(annealing.u0.shape),
        "is_density_matrix": annealing.is_density_matrix,
        "bath": repr(annealing.bath) if annealing.bath is not None else None,
    }

    report["H"] = _audit_operator("H", annealing.hamiltonian, slist, opt)
    if opt.check_hermitian_H:
        bad = [t["index"] for t in report["H"]["terms"] if not t["op_is_hermitian"]]
        if bad:
            raise ConfigurationError(f"Hamiltonian terms {bad} are not Hermitian")
        complex_coeffs = [
            t["index"]
            for t in report["H"]["terms"]
            if t.get("coeff_max_imag", 0.0) > opt.hermitian_atol
        ]
        if complex_coeffs:
            raise ConfigurationError(
                f"Hamiltonian terms {complex_coeffs} have complex coefficients"
            )

    if annealing.coupling is not None:
        report["coupling"] = [
            _audit_operator(f"S{i}", op, slist, opt)
            for i, op in enumerate(annealing.coupling)
        ]

    if opt.check_state:
        u0 = np.asarray(annealing.u0)
        if annealing.is_density_matrix:
            trace = complex(np.trace(u0))
            herm_err = float(np.max(np.abs(u0 - u0.conj().T)))
            report["u0_trace"] = trace
            report["u0_hermitian_max_abs_err"] = herm_err
            if abs(trace - 1.0) > opt.state_atol or herm_err > opt.state_atol:
                raise ConfigurationError(
                    f"Initial density matrix has trace {trace} and Hermiticity error {herm_err}"
                )
        else:
            norm = float(np.linalg.norm(u0))
            report["u0_norm"] = norm
            if abs(norm - 1.0) > opt.state_atol:
                raise ConfigurationError(f"Initial state has norm {norm}")

    return report
