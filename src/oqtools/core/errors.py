from __future__ import annotations

from oqtools.core.sim.types import SolveStatus


class ConfigurationError(ValueError):
    """
    Inconsistent problem assembly.

    Raised for dimension mismatches between Hamiltonian, initial state,
    couplings and bath channels, or when a solver needs a bath capability
    the bath does not provide. Never coerced.
    """


class IntegrationError(RuntimeError):
    """The adaptive stepper could not meet the requested tolerance."""

    status = SolveStatus.FAILED

    def __init__(self, message: str, *, t: float | None = None) -> None:
        super().__init__(message)
        self.t = t
