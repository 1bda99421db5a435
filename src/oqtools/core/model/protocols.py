from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable

import numpy as np


@runtime_checkable
class EigenSolverProto(Protocol):
    """
    Eigendecomposition strategy.

    Must return the ``lvl`` lowest eigenvalues in ascending order and the
    matching eigenvectors as columns. Dense and sparse implementations are
    interchangeable through this one signature.
    """

    def __call__(
        self, matrix: Any, s: float, lvl: int
    ) -> Tuple[np.ndarray, np.ndarray]: ...
