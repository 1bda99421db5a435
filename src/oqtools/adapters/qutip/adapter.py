from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import numpy as np
import scipy.sparse as sp

from oqtools.core.errors import ConfigurationError
from oqtools.core.ir.coeffs import CoeffProto, ConstCoeff
from oqtools.core.sim.protocols import ReferenceAdapterProto
from oqtools.core.sim.types import ReferenceResult
from oqtools.core.types import Annealing


@dataclass
class QuTiPAdapter(ReferenceAdapterProto):
    """
    Closed-system reference backend on QuTiP.

    Conventions:
    - H(t) = Σ_i f_i(t/tf) M_i with the matrices already in angular units
    - state vectors go to ``sesolve``, density matrices to ``mesolve`` without
      collapse operators
    """

    # Storage preferences (QuTiP 5 data layer)
    # e.g. "csr", "dense", or None (no conversion)
    op_dtype: Optional[str] = "csr"
    # often leave rho dense; set to "csr" if desired
    rho_dtype: Optional[str] = None

    def solve(
        self,
        annealing: Annealing,
        tf: float,
        tlist: np.ndarray,
        *,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ReferenceResult:
        import qutip as qt  # type: ignore

        tlist = np.asarray(tlist, dtype=float)
        tf = float(tf)
        if tlist.ndim != 1 or tlist.size < 2 or tlist[0] < 0.0 or tlist[-1] > tf:
            raise ConfigurationError("tlist must be a 1D grid inside [0, tf]")

        dims = [annealing.dim]
        H = self._build_hamiltonian(annealing, tf, qt)
        solve_options: Dict[str, Any] = dict(options or {})
        solve_options.setdefault("store_states", True)

        if annealing.is_density_matrix:
            rho0 = self._toq(qt, np.asarray(annealing.u0), dims=dims, dtype=self.rho_dtype)
            res = qt.mesolve(H, rho0, tlist, [], e_ops=[], args={}, options=solve_options)
        else:
            psi0 = qt.Qobj(np.asarray(annealing.u0).reshape(-1, 1), dims=[dims, [1]])
            res = qt.sesolve(H, psi0, tlist, e_ops=[], args={}, options=solve_options)

        states = []
        for q in res.states:
            # q.full() is dense; kets come back as (D, 1) columns
            arr = np.asarray(q.full(), dtype=complex)
            states.append(arr if annealing.is_density_matrix else arr.reshape(-1))

        return ReferenceResult(
            tlist=tlist,
            states=np.stack(states),
            meta={
                "backend": "qutip",
                "solver": "mesolve" if annealing.is_density_matrix else "sesolve",
                "op_dtype": self.op_dtype,
            },
        )

    def _toq(self, qt: Any, mat: Any, *, dims: list[int], dtype: Optional[str]) -> Any:
        m = mat.toarray() if sp.issparse(mat) else np.asarray(mat, dtype=complex)
        q = qt.Qobj(m, dims=[dims, dims])
        if dtype:
            q = q.to(dtype)
        return q

    def _build_hamiltonian(self, annealing: Annealing, tf: float, qt: Any) -> Any:
        ham = annealing.hamiltonian
        dims = [ham.dim]
        D = ham.dim

        H0 = np.zeros((D, D), dtype=complex)
        H_td = []
        for coeff, mat in zip(ham.coeffs, ham.mats):
            m = mat.toarray() if sp.issparse(mat) else np.asarray(mat)
            if isinstance(coeff, ConstCoeff):
                H0 += complex(coeff.value) * m
            else:
                H_td.append(
                    [self._toq(qt, m, dims=dims, dtype=self.op_dtype), _make_time_func(coeff, tf)]
                )

        if H_td:
            return [self._toq(qt, H0, dims=dims, dtype=self.op_dtype)] + H_td
        return self._toq(qt, H0, dims=dims, dtype=self.op_dtype)


def _make_time_func(coeff: CoeffProto, tf: float) -> Callable[[float, Any], complex]:
    def f(t: float, args: Any) -> complex:
        return complex(coeff(float(t) / tf))

    return f
