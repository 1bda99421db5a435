from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

import numpy as np

from oqtools.core.sim.types import ReferenceResult
from oqtools.core.types import Annealing


@runtime_checkable
class ReferenceAdapterProto(Protocol):
    def solve(
        self,
        annealing: Annealing,
        tf: float,
        tlist: np.ndarray,
        *,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ReferenceResult: ...
