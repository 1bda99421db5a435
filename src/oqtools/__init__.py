from oqtools.baths import (
    Bath,
    CorrelatedBath,
    CustomBath,
    FluctuatorEnsemble,
    OhmicBath,
    TabulatedCorrelation,
    TelegraphNoise,
    ULEBath,
    one_over_f_fluctuators,
    polaron_bath,
    polaron_correlation,
)
from oqtools.core.drives import InstPulse, hahn_echo
from oqtools.core.errors import ConfigurationError, IntegrationError
from oqtools.core.model.coupling import (
    ConstantCouplings,
    CouplingSet,
    CustomCouplings,
    collective_coupling,
)
from oqtools.core.model.hamiltonian import (
    Hamiltonian,
    Operator,
    dense_eigensolver,
    sparse_eigensolver,
)
from oqtools.core.sim.audit import AuditOptions, audit_annealing
from oqtools.core.sim.types import Solution, SolverOptions, SolveStatus
from oqtools.core.types import Annealing
from oqtools.engine import SimulationEngine
from oqtools.ensemble import (
    EnsembleProblem,
    EnsembleStatistics,
    ProcessStrategy,
    SerialStrategy,
    ThreadStrategy,
    TrajectoryEnsemble,
    build_ensembles,
    ensemble_statistics,
)
from oqtools.solvers import (
    solve_ame,
    solve_ame_trajectory,
    solve_cgme,
    solve_ptre,
    solve_redfield,
    solve_schrodinger,
    solve_stochastic_schrodinger,
    solve_ule,
    solve_unitary,
    solve_von_neumann,
)

__all__ = [
    "Bath",
    "CorrelatedBath",
    "CustomBath",
    "FluctuatorEnsemble",
    "OhmicBath",
    "TabulatedCorrelation",
    "TelegraphNoise",
    "ULEBath",
    "one_over_f_fluctuators",
    "polaron_bath",
    "polaron_correlation",
    "InstPulse",
    "hahn_echo",
    "ConfigurationError",
    "IntegrationError",
    "ConstantCouplings",
    "CouplingSet",
    "CustomCouplings",
    "collective_coupling",
    "Hamiltonian",
    "Operator",
    "dense_eigensolver",
    "sparse_eigensolver",
    "AuditOptions",
    "audit_annealing",
    "Solution",
    "SolverOptions",
    "SolveStatus",
    "Annealing",
    "SimulationEngine",
    "EnsembleProblem",
    "EnsembleStatistics",
    "ProcessStrategy",
    "SerialStrategy",
    "ThreadStrategy",
    "TrajectoryEnsemble",
    "build_ensembles",
    "ensemble_statistics",
    "solve_ame",
    "solve_ame_trajectory",
    "solve_cgme",
    "solve_ptre",
    "solve_redfield",
    "solve_schrodinger",
    "solve_stochastic_schrodinger",
    "solve_ule",
    "solve_unitary",
    "solve_von_neumann",
]
