from oqtools.solvers.ame import LambShiftTable, solve_ame, solve_ame_trajectory
from oqtools.solvers.cgme import solve_cgme
from oqtools.solvers.closed import solve_schrodinger, solve_unitary, solve_von_neumann
from oqtools.solvers.ptre import solve_ptre
from oqtools.solvers.redfield import PositivityCheck, solve_redfield
from oqtools.solvers.stochastic import draw_noise, solve_stochastic_schrodinger
from oqtools.solvers.ule import solve_ule

__all__ = [
    "LambShiftTable",
    "solve_ame",
    "solve_ame_trajectory",
    "solve_cgme",
    "solve_schrodinger",
    "solve_unitary",
    "solve_von_neumann",
    "solve_ptre",
    "PositivityCheck",
    "solve_redfield",
    "draw_noise",
    "solve_stochastic_schrodinger",
    "solve_ule",
]
