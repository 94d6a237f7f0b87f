"""Inverse kinematics module"""

from .solver import IKSolver, SolverKind, solve_chain
from .ccd import solve_ccd
from .fabrik import solve_fabrik, solve_fabrik_constrained, soft_reach_target
from .jacobian import solve_jacobian
from .analytical import solve_analytical

__all__ = [
    "IKSolver", "SolverKind", "solve_chain",
    "solve_ccd", "solve_fabrik", "solve_fabrik_constrained", "soft_reach_target",
    "solve_jacobian", "solve_analytical",
]
