"""
Allocation-path solver.

Hull construction, the greedy global path, bootstrap standard errors and
point queries on the fitted path.
"""

from qinipath.solver.hull import convex_hull, convex_hulls, marginal_ratios
from qinipath.solver.path import AllocationPath, PendingEvent, solve_path
from qinipath.solver.bootstrap import (
    BootstrapResult,
    ReplicateBuffer,
    bootstrap_std_err,
    nan_sd,
)
from qinipath.solver.replay import (
    allocation_matrix,
    gain_at,
    interpolate,
    paired_difference,
)
from qinipath.solver.engine import SolverOutput, solve

__all__ = [
    "convex_hull",
    "convex_hulls",
    "marginal_ratios",
    "AllocationPath",
    "PendingEvent",
    "solve_path",
    "BootstrapResult",
    "ReplicateBuffer",
    "bootstrap_std_err",
    "nan_sd",
    "allocation_matrix",
    "gain_at",
    "interpolate",
    "paired_difference",
    "SolverOutput",
    "solve",
]
