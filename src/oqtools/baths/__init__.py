from oqtools.baths.base import Bath, TabulatedCorrelation, correlation_grid, require_bath
from oqtools.baths.correlated import CorrelatedBath
from oqtools.baths.custom import CustomBath
from oqtools.baths.fluctuator import FluctuatorEnsemble, TelegraphNoise, one_over_f_fluctuators
from oqtools.baths.ohmic import OhmicBath
from oqtools.baths.polaron import polaron_bath, polaron_correlation
from oqtools.baths.ule import ULEBath

__all__ = [
    "Bath",
    "TabulatedCorrelation",
    "correlation_grid",
    "require_bath",
    "CorrelatedBath",
    "CustomBath",
    "FluctuatorEnsemble",
    "TelegraphNoise",
    "one_over_f_fluctuators",
    "OhmicBath",
    "polaron_bath",
    "polaron_correlation",
    "ULEBath",
]
