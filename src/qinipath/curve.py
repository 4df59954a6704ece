"""
Multi-armed Qini curves.

``fit_qini`` validates and coerces user inputs, runs the solver and wraps
the result in a ``QiniCurve`` that answers point queries: the optimal
treatment allocation, the average gain and paired differences in gain at
any spend level.

Example:
    >>> curve = fit_qini(tau_hat, cost_hat, budget=1.0, scores=dr_scores, R=200)
    >>> curve.average_gain(0.2)
    >>> curve.predict(0.2)
    >>> curve.difference_gain(single_arm_curve, 0.2)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger
from scipy import sparse

from qinipath.config import get_config
from qinipath.exceptions import (
    InputValidationError,
    PairedInferenceError,
    SpendOutOfRangeError,
)
from qinipath.solver.engine import SolverOutput, solve
from qinipath.solver.replay import allocation_matrix, gain_at, paired_difference


@dataclass(frozen=True)
class GainEstimate:
    """A gain (or difference in gain) with its standard error."""

    estimate: float
    std_err: float

    def confidence_interval(self, z: float = 1.96) -> tuple[float, float]:
        return self.estimate - z * self.std_err, self.estimate + z * self.std_err


class QiniCurve:
    """
    A fitted multi-armed Qini curve.

    Built by :func:`fit_qini`; immutable afterwards.  All queries take a
    spend level, the average cost per unit.
    """

    def __init__(
        self,
        output: SolverOutput,
        n_units: int,
        n_arms: int,
        budget: float,
        seed: int,
        n_replicates: int,
        target_with_covariates: bool,
        paired_inference: bool,
    ):
        self._output = output
        self.dim = (n_units, n_arms)
        self.budget = budget
        self.seed = seed
        self.n_replicates = n_replicates
        self.target_with_covariates = target_with_covariates
        self.paired_inference = paired_inference

    # ------------------------------------------------------------------
    # Fitted path
    # ------------------------------------------------------------------

    @property
    def spend(self) -> np.ndarray:
        return self._output.spend

    @property
    def gain(self) -> np.ndarray:
        return self._output.gain

    @property
    def std_err(self) -> np.ndarray:
        return self._output.std_err

    @property
    def complete_path(self) -> bool:
        return self._output.complete_path

    @property
    def output(self) -> SolverOutput:
        return self._output

    def __len__(self) -> int:
        return len(self._output.spend)

    def __repr__(self) -> str:
        return (
            f"QiniCurve fit on {self.dim[0]} units and {self.dim[1]} arms "
            f"with max budget {self.budget:g}"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _check_spend(self, spend: float, label: str = "") -> None:
        if not np.isfinite(spend) or spend < 0:
            raise InputValidationError("spend must be a non-negative number.", field="spend")
        if not self.complete_path and spend > self.budget:
            raise SpendOutOfRangeError(spend, self.budget, label=label)

    def predict(self, spend: float) -> sparse.csr_matrix:
        """Optimal n x K treatment allocation matrix at ``spend``."""
        self._check_spend(spend)
        return allocation_matrix(self._output.path, spend, *self.dim)

    def average_gain(self, spend: float) -> GainEstimate:
        """Estimated average gain at ``spend`` with its standard error."""
        self._check_spend(spend)
        estimate, std_err = gain_at(self._output.path, self._output.std_err, spend)
        return GainEstimate(estimate=estimate, std_err=std_err)

    def difference_gain(self, other: "QiniCurve", spend: float) -> GainEstimate:
        """
        Estimated gain of this curve minus ``other`` at ``spend``.

        The standard error is computed from index-aligned bootstrap
        replicates, which accounts for both curves being evaluated on the
        same data.  Both curves must be fit with paired inference, the
        same seed, the same number of replicates and the same number of
        units.
        """
        self._check_spend(spend, label="lhs")
        other._check_spend(spend, label="rhs")
        if (
            self.seed != other.seed
            or self.n_replicates != other.n_replicates
            or self.dim[0] != other.dim[0]
            or self._output.replicates is None
            or other._output.replicates is None
        ):
            raise PairedInferenceError()

        estimate = self.average_gain(spend).estimate - other.average_gain(spend).estimate
        std_err = paired_difference(
            self._output.path,
            self._output.replicates,
            other._output.path,
            other._output.replicates,
            spend,
        )
        return GainEstimate(estimate=estimate, std_err=std_err)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summary(self) -> pd.DataFrame:
        """The fitted path, one row per allocation event."""
        return pd.DataFrame({
            "spend": self._output.spend,
            "gain": self._output.gain,
            "std_err": self._output.std_err,
            "unit_allocation": self._output.ipath,
            "arm_allocation": self._output.kpath,
        })

    def plot_data(
        self,
        grid_step: int | None = None,
        z: float | None = None,
        extend_to: float | None = None,
    ) -> pd.DataFrame:
        """
        Curve points with confidence bands, ready to hand to a plotting library.

        Args:
            grid_step: Keep every ``grid_step``-th path point. Defaults to a
                       step that keeps at most ``report.max_plot_points``.
            z:         Band half-width in standard errors.
            extend_to: For a complete path, append a flat segment up to
                       this spend.
        """
        report = get_config().report
        z = report.z_value if z is None else z
        n_points = len(self)
        if grid_step is None:
            grid_step = max(n_points // report.max_plot_points, 1)

        idx = np.arange(0, n_points, grid_step)
        spend = self.spend[idx]
        gain = self.gain[idx]
        std_err = self.std_err[idx]

        if extend_to is not None and self.complete_path and n_points > 0 and extend_to > spend[-1]:
            tail = np.linspace(spend[-1], extend_to, 100)
            spend = np.concatenate((spend, tail))
            gain = np.concatenate((gain, np.full(len(tail), gain[-1])))
            std_err = np.concatenate((std_err, np.full(len(tail), std_err[-1])))

        return pd.DataFrame({
            "spend": spend,
            "gain": gain,
            "std_err": std_err,
            "lower": gain - z * std_err,
            "upper": gain + z * std_err,
        })

    def to_dict(self) -> dict[str, Any]:
        return {
            "n_units": self.dim[0],
            "n_arms": self.dim[1],
            "budget": self.budget,
            "seed": self.seed,
            "n_replicates": self.n_replicates,
            "target_with_covariates": self.target_with_covariates,
            "paired_inference": self.paired_inference,
            "complete_path": self.complete_path,
            "path_length": len(self),
            "final_spend": float(self.spend[-1]) if len(self) else 0.0,
            "final_gain": float(self.gain[-1]) if len(self) else 0.0,
        }

    def save(self, path: Path | str) -> None:
        """Save curve metadata to JSON and the path to a CSV alongside it."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        self.summary().to_csv(path.with_suffix(".csv"), index=False)
        logger.info(f"Saved Qini curve to {path}")


# ---------------------------------------------------------------------------
# Fitting
# ---------------------------------------------------------------------------

def _as_matrix(values: Any, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InputValidationError(f"{name} should be a non-empty vector or matrix.", field=name)
    return arr


def _coerce_cost(cost: Any, n: int, n_arms: int, reward_is_vector: bool) -> np.ndarray:
    cost = np.asarray(cost, dtype=float)
    if cost.ndim == 0:
        return np.full((n, n_arms), float(cost))
    if cost.ndim == 1:
        if reward_is_vector:
            if len(cost) == 1:
                return np.full((n, 1), cost[0])
            return cost.reshape(-1, 1)
        if len(cost) == n_arms:
            return np.tile(cost, (n, 1))
    return cost


def _coerce_clusters(clusters: Any, n: int) -> np.ndarray:
    clusters = np.asarray(clusters)
    if clusters.dtype.kind not in "iufb":
        raise InputValidationError(
            "clusters must be able to be coerced to a numeric vector.", field="clusters"
        )
    clusters = clusters.astype(float)
    if np.any(np.isnan(clusters)) or not np.all(clusters == np.floor(clusters)):
        raise InputValidationError(
            "clusters vector cannot contain floating point values.", field="clusters"
        )
    if clusters.ndim != 1 or len(clusters) != n:
        raise InputValidationError("clusters vector has incorrect length.", field="clusters")
    _, codes = np.unique(clusters, return_inverse=True)
    return codes.astype(np.intp)


def _check_bootstrap_units(n_clusters: int) -> None:
    if n_clusters // 2 <= 1:
        raise InputValidationError(
            "Cannot bootstrap sample with only one effective unit.", field="clusters"
        )


def fit_qini(
    reward: Any,
    cost: Any,
    budget: float,
    scores: Any,
    target_with_covariates: bool | None = None,
    R: int | None = None,
    paired_inference: bool | None = None,
    sample_weights: Any = None,
    clusters: Any = None,
    tie_breaker: Any = None,
    num_threads: int | None = None,
    seed: int | None = None,
    bootstrap_scheme: str | None = None,
) -> QiniCurve:
    """
    Fit a multi-armed Qini curve.

    Args:
        reward:       n x K reward (e.g. CATE) estimates used to rank
                      allocations. A vector is treated as a single arm.
        cost:         n x K costs, a length-K vector of per-arm costs shared
                      by all units, or a scalar. Must be > 0.
        budget:       Maximum spend per unit to fit the path on. A large
                      value such as ``cost.sum()`` fits the complete path.
        scores:       n x K evaluation scores (e.g. doubly robust scores)
                      used to estimate gain. For valid inference they must
                      be independent of ``reward`` and ``cost``.
        target_with_covariates: If False, the policy only uses the average
                      reward and cost of each arm.
        R:            Number of bootstrap replicates (0 = point estimates).
        paired_inference: Keep replicate paths to allow
                      :meth:`QiniCurve.difference_gain`. Memory O(R x path).
        sample_weights: Positive per-unit weights; normalized internally.
        clusters:     Integer cluster id per unit; resampled together.
        tie_breaker:  Distinct integers (e.g. a permutation of 0..n-1);
                      on equal marginal ratios the lower value goes first.
        num_threads:  Bootstrap worker threads; 0 uses all cores.
        seed:         Non-negative integer seed for the bootstrap.
        bootstrap_scheme: ``"half_sample"`` or ``"multinomial"``.

    Arguments left as None take their value from the active config.

    Returns:
        Fitted QiniCurve.
    """
    config = get_config()
    if target_with_covariates is None:
        target_with_covariates = config.solver.target_with_covariates
    if paired_inference is None:
        paired_inference = config.solver.paired_inference
    if R is None:
        R = config.bootstrap.n_replicates
    if num_threads is None:
        num_threads = config.bootstrap.num_threads
    if seed is None:
        seed = config.bootstrap.seed
    if bootstrap_scheme is None:
        bootstrap_scheme = config.bootstrap.scheme

    reward_is_vector = np.ndim(reward) == 1
    reward = _as_matrix(reward, "reward")
    scores = _as_matrix(scores, "scores")
    n, n_arms = reward.shape

    if scores.shape != reward.shape or np.isnan(reward).any() or np.isnan(scores).any():
        raise InputValidationError(
            "reward, costs, and evaluation scores should have conformable dimension, "
            "with no missing values.",
            field="scores",
        )

    cost = _coerce_cost(cost, n, n_arms, reward_is_vector)
    if cost.shape != reward.shape or np.isnan(cost).any():
        raise InputValidationError(
            "reward, costs, and evaluation scores should have conformable dimension, "
            "with no missing values.",
            field="cost",
        )
    if np.any(cost <= 0):
        raise InputValidationError("Costs should be > 0.", field="cost")

    if (
        isinstance(budget, bool)
        or not isinstance(budget, (int, float, np.number))
        or not np.isfinite(budget)
        or budget <= 0
    ):
        raise InputValidationError("budget should be a positive number.", field="budget")

    if int(R) != R or R < 0:
        raise InputValidationError(
            "The number of bootstrap replicates R should be a non-negative integer.", field="R"
        )
    R = int(R)

    if sample_weights is None:
        weights = np.empty(0)
    else:
        weights = np.asarray(sample_weights, dtype=float)
        if weights.ndim != 1 or len(weights) != n or np.isnan(weights).any() or np.any(weights <= 0):
            raise InputValidationError(
                "sample_weights should have length=nrow(reward) and be non-missing and positive.",
                field="sample_weights",
            )
        weights = weights / weights.sum()

    if clusters is None:
        cluster_ids = np.empty(0, dtype=np.intp)
        if R > 0:
            _check_bootstrap_units(n)
    else:
        cluster_ids = _coerce_clusters(clusters, n)
        _check_bootstrap_units(int(cluster_ids.max()) + 1)

    if tie_breaker is None:
        ties = np.empty(0, dtype=np.intp)
    else:
        tie_breaker = np.asarray(tie_breaker)
        if tie_breaker.ndim != 1 or len(tie_breaker) != n:
            raise InputValidationError(
                "tie_breaker should have length=nrow(reward).", field="tie_breaker"
            )
        if len(np.unique(tie_breaker)) != n:
            raise InputValidationError(
                "tie_breaker should be a permutation.", field="tie_breaker"
            )
        ties = np.argsort(np.argsort(tie_breaker, kind="stable"), kind="stable")

    if int(num_threads) != num_threads or num_threads < 0:
        raise InputValidationError(
            "num_threads should be a non-negative integer.", field="num_threads"
        )

    if not isinstance(seed, (int, np.integer)) or isinstance(seed, bool) or seed < 0:
        raise InputValidationError("seed should be a non-negative integer.", field="seed")

    if bootstrap_scheme not in ("half_sample", "multinomial"):
        raise InputValidationError(
            f"Unknown bootstrap_scheme '{bootstrap_scheme}'.", field="bootstrap_scheme"
        )

    output = solve(
        reward,
        scores,
        cost,
        weights,
        ties,
        cluster_ids,
        float(budget),
        bool(target_with_covariates),
        bool(paired_inference),
        R,
        int(num_threads),
        int(seed),
        bootstrap_scheme=bootstrap_scheme,
    )

    return QiniCurve(
        output=output,
        n_units=n,
        n_arms=n_arms,
        budget=float(budget),
        seed=int(seed),
        n_replicates=R,
        target_with_covariates=bool(target_with_covariates),
        paired_inference=bool(paired_inference),
    )


def average_gain(curve: QiniCurve, spend: float) -> GainEstimate:
    """Convenience wrapper for :meth:`QiniCurve.average_gain`."""
    return curve.average_gain(spend)


def difference_gain(lhs: QiniCurve, rhs: QiniCurve, spend: float) -> GainEstimate:
    """Convenience wrapper for :meth:`QiniCurve.difference_gain`."""
    return lhs.difference_gain(rhs, spend)
