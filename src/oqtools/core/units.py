from __future__ import annotations

import math
from typing import Any, Protocol, cast

import pint
from pint import DimensionalityError

ureg = pint.UnitRegistry()


class QuantityLike(Protocol):
    @property
    def magnitude(self) -> Any: ...
    @property
    def units(self) -> Any: ...
    def to_base_units(self) -> QuantityLike: ...
    def to(self, unit: str) -> QuantityLike: ...
    def __mul__(self, other: Any) -> QuantityLike: ...
    def __rmul__(self, other: Any) -> QuantityLike: ...
    def __truediv__(self, other: Any) -> QuantityLike: ...
    def __rtruediv__(self, other: Any) -> QuantityLike: ...


def Q(value: Any, units: str) -> QuantityLike:
    """Create a quantity (or cast existing) in a single registry."""
    return cast(QuantityLike, ureg.Quantity(value, units))


def as_quantity(x: Any, units: str) -> QuantityLike:
    """
    Coerce x to a pint quantity with given units and verify compatibility.
    - bare numbers: interpreted as `units`
    - pint quantities: converted to `units` (raises if incompatible)
    """
    q = x if hasattr(x, "to") else Q(float(x), units)
    try:
        return cast(QuantityLike, q.to(units))
    except DimensionalityError as e:
        raise TypeError(
            f"Incompatible units: got {getattr(q, 'units', None)}, expected {units}"
        ) from e


def magnitude(x: Any, units: str) -> float:
    """Return float magnitude in requested units (with compatibility check)."""
    q = as_quantity(x, units)
    return float(q.to(units).magnitude)


# CONSTANTS
h = Q(6.62607015e-34, "J*s")
hbar = Q(1.054571817e-34, "J*s")
kB = Q(1.380649e-23, "J/K")

# UNIT FLAGS
LINEAR = "h"
ANGULAR = "hbar"

_UNIT_ALIASES = {
    "h": LINEAR,
    "linear": LINEAR,
    "hbar": ANGULAR,
    "ħ": ANGULAR,
    "angular": ANGULAR,
}


def normalize_unit(unit: str) -> str:
    try:
        return _UNIT_ALIASES[str(unit).strip()]
    except KeyError as e:
        raise ValueError(
            f"Unknown unit flag {unit!r}; expected one of {sorted(_UNIT_ALIASES)}"
        ) from e


def unit_scale(unit: str) -> float:
    """
    Scalar applied once, at construction, to raw operator inputs.

    Internally every rate and energy is an angular frequency (rad/ns with the
    default GHz/ns convention). Inputs given in linear frequency (``"h"``,
    GHz) are multiplied by 2π; angular inputs (``"hbar"``) are kept.
    """
    return 2.0 * math.pi if normalize_unit(unit) == LINEAR else 1.0


def temperature_to_beta(T: Any, *, unit: str = ANGULAR) -> float:
    """
    Inverse temperature in ns.

    Parameters
    ----------
    T:
        Temperature-like (QuantityLike or float assumed to be in mK).
    unit:
        ``"hbar"`` returns ħ/(kB T), the value that pairs with angular
        frequencies; ``"h"`` returns h/(kB T).

    Returns
    -------
    float
        β in ns.
    """
    T_K = as_quantity(T, "mK").to("K")
    planck = hbar if normalize_unit(unit) == ANGULAR else h
    beta = (planck / (kB * T_K)).to("ns")
    return float(beta.magnitude)


def beta_to_temperature(beta: Any, *, unit: str = ANGULAR) -> float:
    """Inverse of :func:`temperature_to_beta`; returns the temperature in mK."""
    beta_q = as_quantity(beta, "ns")
    planck = hbar if normalize_unit(unit) == ANGULAR else h
    T = (planck / (kB * beta_q)).to("mK")
    return float(T.magnitude)


def frequency_to_angular(f: Any) -> float:
    """GHz (bare numbers or quantities) to rad/ns."""
    return 2.0 * math.pi * magnitude(f, "GHz")
