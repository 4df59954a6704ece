"""
Core solver entry point.

Takes already-validated arrays and returns the fitted path together with
its standard errors.  Argument checking and coercion live in
``qinipath.curve``; nothing here re-validates.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import numpy as np
from loguru import logger

from qinipath.solver.bootstrap import (
    BootstrapScheme,
    ReplicateBuffer,
    bootstrap_std_err,
)
from qinipath.solver.path import AllocationPath, solve_path


@dataclass(frozen=True)
class SolverOutput:
    """Fitted path: parallel per-event arrays plus optional replicate paths."""

    path: AllocationPath
    std_err: np.ndarray
    replicates: ReplicateBuffer | None = None

    @property
    def spend(self) -> np.ndarray:
        return self.path.spend

    @property
    def gain(self) -> np.ndarray:
        return self.path.gain

    @property
    def ipath(self) -> np.ndarray:
        return self.path.ipath

    @property
    def kpath(self) -> np.ndarray:
        return self.path.kpath

    @property
    def complete_path(self) -> bool:
        return self.path.complete_path

    @property
    def gain_bs(self) -> np.ndarray | None:
        return None if self.replicates is None else self.replicates.gain


def solve(
    reward: np.ndarray,
    score: np.ndarray,
    cost: np.ndarray,
    sample_weights: np.ndarray,
    tie_breaker: np.ndarray,
    clusters: np.ndarray,
    budget: float,
    target_with_covariates: bool,
    paired_inference: bool,
    n_replicates: int,
    num_threads: int,
    seed: int,
    bootstrap_scheme: BootstrapScheme = "half_sample",
) -> SolverOutput:
    """
    Fit the allocation path and its bootstrap standard errors.

    Empty ``sample_weights`` means uniform weights, empty ``tie_breaker``
    means index order and empty ``clusters`` means one cluster per unit.
    """
    start = time.perf_counter()
    n, n_arms = reward.shape

    weights = np.full(n, 1.0 / n) if len(sample_weights) == 0 else np.asarray(sample_weights, dtype=float)
    ties = None if len(tie_breaker) == 0 else np.asarray(tie_breaker)
    cluster_ids = None if len(clusters) == 0 else np.asarray(clusters, dtype=np.intp)

    logger.info(
        f"Fitting allocation path: n={n}, K={n_arms}, budget={budget:g}, "
        f"targeted={target_with_covariates}, R={n_replicates}"
    )

    path = solve_path(
        reward,
        score,
        cost,
        weights,
        budget,
        tie_breaker=ties,
        target_with_covariates=target_with_covariates,
    )

    boot = bootstrap_std_err(
        path,
        weights,
        cluster_ids,
        n_replicates,
        num_threads=num_threads,
        seed=seed,
        paired_inference=paired_inference,
        scheme=bootstrap_scheme,
    )

    elapsed = time.perf_counter() - start
    final_spend = path.spend[-1] if len(path) else 0.0
    logger.info(
        f"Path fit in {elapsed:.2f}s: {len(path)} events, "
        f"final spend {final_spend:.4g}, complete={path.complete_path}"
    )

    return SolverOutput(path=path, std_err=boot.std_err, replicates=boot.replicates)
