"""
Bootstrap standard errors for an allocation path.

The point-estimate allocation order is held fixed; each replicate only
redraws the sample weights at the cluster level and replays that order.
Replicate gains are interpolated back onto the point-estimate spend grid
and the standard error at each grid point is the standard deviation
across replicates.

Replicates are independent and run on a joblib thread pool.  Replicate
``b`` seeds its own generator from ``(seed, b)``, so the result does not
depend on the number of threads or the scheduling order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np
from joblib import Parallel, delayed
from loguru import logger

from qinipath.solver.path import AllocationPath


BootstrapScheme = Literal["half_sample", "multinomial"]


@dataclass(frozen=True)
class ReplicateBuffer:
    """
    Full per-replicate gain paths, kept for paired comparisons.

    ``gain`` has shape (n_replicates, path length); entry (b, t) is the
    gain of replicate ``b`` at the point-estimate spend ``spend[t]``.
    NaN marks grid points a replicate's path never reached.
    """

    gain: np.ndarray
    seed: int

    @property
    def n_replicates(self) -> int:
        return self.gain.shape[0]

    @property
    def nbytes(self) -> int:
        return self.gain.nbytes


@dataclass(frozen=True)
class BootstrapResult:
    std_err: np.ndarray
    replicates: ReplicateBuffer | None = None


def nan_sd(values: np.ndarray, axis: int = 0) -> np.ndarray:
    """Sample standard deviation ignoring NaN; 0 where fewer than two values remain."""
    values = np.asarray(values, dtype=float)
    valid = ~np.isnan(values)
    count = valid.sum(axis=axis)
    filled = np.where(valid, values, 0.0)
    mean = filled.sum(axis=axis) / np.maximum(count, 1)
    resid = np.where(valid, values - np.expand_dims(mean, axis), 0.0)
    var = (resid ** 2).sum(axis=axis) / np.maximum(count - 1, 1)
    return np.where(count >= 2, np.sqrt(var), 0.0)


def draw_cluster_counts(
    rng: np.random.Generator,
    n_clusters: int,
    scheme: BootstrapScheme = "half_sample",
) -> np.ndarray:
    """
    Draw how many times each cluster enters a replicate.

    ``half_sample`` picks floor(G/2) clusters without replacement, which
    reproduces the full-sample variance of a weighted mean.
    ``multinomial`` is the classical with-replacement bootstrap.
    """
    if scheme == "half_sample":
        counts = np.zeros(n_clusters)
        counts[rng.choice(n_clusters, size=n_clusters // 2, replace=False)] = 1.0
        return counts
    if scheme == "multinomial":
        return np.bincount(
            rng.integers(0, n_clusters, size=n_clusters), minlength=n_clusters
        ).astype(float)
    raise ValueError(f"Unknown bootstrap scheme: {scheme}")


def replay_path(
    path: AllocationPath,
    weights: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Replay the fixed allocation order under other sample weights.

    Events of units with zero weight are skipped, so the returned
    cumulative spend is strictly increasing.
    """
    unit_weight = weights[path.ipath]
    active = unit_weight > 0
    w = unit_weight[active]
    spend = np.cumsum(w * path.delta_cost[active])
    gain = np.cumsum(w * path.delta_score[active])
    return spend, gain


def interpolate_onto_grid(
    grid: np.ndarray,
    spend: np.ndarray,
    gain: np.ndarray,
    complete_path: bool,
) -> np.ndarray:
    """Linear interpolation of a replicate path at the point-estimate spend grid."""
    xp = np.concatenate(([0.0], spend))
    fp = np.concatenate(([0.0], gain))
    out = np.interp(grid, xp, fp)
    if not complete_path:
        out[grid > xp[-1]] = np.nan
    return out


def bootstrap_std_err(
    path: AllocationPath,
    weights: np.ndarray,
    clusters: np.ndarray | None,
    n_replicates: int,
    num_threads: int = 0,
    seed: int = 42,
    paired_inference: bool = True,
    scheme: BootstrapScheme = "half_sample",
) -> BootstrapResult:
    """
    Compute bootstrap standard errors along ``path``.

    Args:
        path:             Point-estimate path; its order is replayed as is.
        weights:          Length-n normalized sample weights.
        clusters:         Length-n cluster ids in 0..G-1, or None for one
                          cluster per unit.
        n_replicates:     Number of replicates R. 0 gives zero std errors.
        num_threads:      Worker threads; 0 uses all available cores.
        seed:             Base seed; replicate ``b`` uses ``(seed, b)``.
        paired_inference: Keep every replicate path in a ReplicateBuffer.
        scheme:           Cluster resampling scheme.

    Returns:
        BootstrapResult with one std error per path event.
    """
    n_steps = len(path)
    if n_replicates == 0 or n_steps == 0:
        buffer = None
        if paired_inference:
            buffer = ReplicateBuffer(gain=np.zeros((n_replicates, n_steps)), seed=seed)
        return BootstrapResult(std_err=np.zeros(n_steps), replicates=buffer)

    if clusters is None:
        clusters = np.arange(len(weights))
    n_clusters = int(clusters.max()) + 1

    gain_bs = np.empty((n_replicates, n_steps))

    def run_replicate(b: int) -> None:
        rng = np.random.default_rng([seed, b])
        counts = draw_cluster_counts(rng, n_clusters, scheme)
        w = weights * counts[clusters]
        w = w / w.sum()
        spend, gain = replay_path(path, w)
        gain_bs[b] = interpolate_onto_grid(path.spend, spend, gain, path.complete_path)

    n_jobs = -1 if num_threads == 0 else num_threads
    logger.debug(
        f"Running {n_replicates} bootstrap replicates ({scheme}) over "
        f"{n_clusters} clusters with n_jobs={n_jobs}"
    )
    Parallel(n_jobs=n_jobs, require="sharedmem")(
        delayed(run_replicate)(b) for b in range(n_replicates)
    )

    if n_replicates < 2:
        logger.warning("Fewer than two bootstrap replicates; standard errors are zero")
    else:
        n_short = int((np.sum(~np.isnan(gain_bs), axis=0) < 2).sum())
        if n_short:
            logger.warning(
                f"{n_short} of {n_steps} path points have fewer than two valid "
                "replicates; their standard errors are zero"
            )
    std_err = nan_sd(gain_bs, axis=0)

    buffer = None
    if paired_inference:
        buffer = ReplicateBuffer(gain=gain_bs, seed=seed)
        logger.debug(f"Keeping replicate paths for paired inference ({buffer.nbytes / 1e6:.1f} MB)")
    return BootstrapResult(std_err=std_err, replicates=buffer)
