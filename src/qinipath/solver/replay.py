"""
Point queries on a fitted path.

The path is a discrete sequence of allocation events; everything here
interpolates it linearly at an arbitrary spend level.  Below the first
event nothing is allocated.  On a path cut by the budget, the event the
budget cut off is the right bracket for spend between the last event and
the budget, so that unit is partially treated.
"""

from __future__ import annotations

import numpy as np
from scipy import sparse

from qinipath.solver.bootstrap import ReplicateBuffer, nan_sd
from qinipath.solver.path import AllocationPath


def bracket(grid: np.ndarray, spend: float) -> tuple[int, float]:
    """
    Locate ``spend`` on ``grid``.

    Returns the number of grid points at or below ``spend`` and the
    fraction of the way to the next grid point (0 before the first point
    or at or past the last).
    """
    idx = int(np.searchsorted(grid, spend, side="right"))
    if idx == 0 or idx == len(grid):
        return idx, 0.0
    lower, upper = grid[idx - 1], grid[idx]
    if upper <= lower:
        return idx, 0.0
    return idx, float((spend - lower) / (upper - lower))


def interpolate(grid: np.ndarray, values: np.ndarray, spend: float) -> np.ndarray:
    """
    Value of a path at ``spend``.

    Zero before the first grid point, linear between grid points and flat
    after the last one.  ``values`` may carry extra leading axes (e.g.
    replicates); the last axis runs along the grid.
    """
    values = np.asarray(values, dtype=float)
    idx, frac = bracket(grid, spend)
    if idx == 0:
        return np.zeros(values.shape[:-1])
    if idx == len(grid):
        return values[..., -1]
    lo = values[..., idx - 1]
    hi = values[..., idx]
    return lo + (hi - lo) * frac


def _with_pending(path: AllocationPath) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Spend, gain, unit and arm arrays with the budget-cut event appended."""
    if path.pending is None:
        return path.spend, path.gain, path.ipath, path.kpath
    pending = path.pending
    return (
        np.append(path.spend, pending.spend),
        np.append(path.gain, pending.gain),
        np.append(path.ipath, pending.unit),
        np.append(path.kpath, pending.arm),
    )


def allocation_matrix(
    path: AllocationPath,
    spend: float,
    n_units: int,
    n_arms: int,
) -> sparse.csr_matrix:
    """
    Treatment allocation at ``spend`` as an n x K sparse matrix.

    Each allocated unit has a 1 in the column of its latest arm.  When
    ``spend`` falls strictly between two events, the unit of the next event
    is split between its current arm (1 - f) and its next arm (f).
    """
    grid, _, ipath, kpath = _with_pending(path)
    idx, frac = bracket(grid, spend)

    latest: dict[int, int] = {}
    for unit, arm in zip(ipath[:idx], kpath[:idx]):
        latest[int(unit)] = int(arm)

    alloc = {(unit, arm): 1.0 for unit, arm in latest.items()}
    if idx < len(grid) and frac > 0:
        unit = int(ipath[idx])
        arm = int(kpath[idx])
        prev_arm = latest.get(unit)
        if prev_arm is not None:
            alloc[(unit, prev_arm)] = 1.0 - frac
        alloc[(unit, arm)] = frac

    rows = [key[0] for key in alloc]
    cols = [key[1] for key in alloc]
    data = list(alloc.values())
    return sparse.csr_matrix((data, (rows, cols)), shape=(n_units, n_arms))


def gain_at(path: AllocationPath, std_err: np.ndarray, spend: float) -> tuple[float, float]:
    """
    Interpolated (gain, std err) at ``spend``.

    Std errors exist only on the fitted events and stay flat past the last
    one.
    """
    grid, gain, _, _ = _with_pending(path)
    estimate = float(interpolate(grid, gain, spend))
    se = float(interpolate(path.spend, std_err, spend))
    return estimate, se


def paired_difference(
    lhs_path: AllocationPath,
    lhs_replicates: ReplicateBuffer,
    rhs_path: AllocationPath,
    rhs_replicates: ReplicateBuffer,
    spend: float,
) -> float:
    """Standard error of gain(lhs) - gain(rhs) from index-aligned replicate pairs."""
    lhs = interpolate(lhs_path.spend, lhs_replicates.gain, spend)
    rhs = interpolate(rhs_path.spend, rhs_replicates.gain, spend)
    if lhs.size == 0 or rhs.size == 0:
        return 0.0
    return float(nan_sd(lhs - rhs))
