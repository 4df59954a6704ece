"""
Global allocation path.

Merges every unit's hull sequence into one budget-respecting allocation
order by repeatedly taking the largest available marginal ratio
(reward gained per unit of cost).  Gain along the path is scored with the
evaluation scores, never with the ranking reward.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass

import numpy as np
from loguru import logger

from qinipath.solver.hull import convex_hull, convex_hulls


@dataclass(frozen=True)
class PendingEvent:
    """The first event past the budget: cumulative spend and gain if it were taken."""

    spend: float
    gain: float
    unit: int
    arm: int


@dataclass(frozen=True)
class AllocationPath:
    """
    Point-estimate allocation path.

    Event ``t`` moves unit ``ipath[t]`` to arm ``kpath[t]``.  ``delta_cost``
    and ``delta_score`` hold the unweighted per-unit increments of that
    move so the order can be replayed under other sample weights.
    ``pending`` is the event the budget cut off, None on a complete path.
    """

    spend: np.ndarray
    gain: np.ndarray
    ipath: np.ndarray
    kpath: np.ndarray
    delta_cost: np.ndarray
    delta_score: np.ndarray
    complete_path: bool
    budget: float
    pending: PendingEvent | None = None

    def __len__(self) -> int:
        return len(self.spend)


def solve_path(
    reward: np.ndarray,
    score: np.ndarray,
    cost: np.ndarray,
    weights: np.ndarray,
    budget: float,
    tie_breaker: np.ndarray | None = None,
    target_with_covariates: bool = True,
) -> AllocationPath:
    """
    Compute the optimal allocation path up to ``budget``.

    Args:
        reward:       n x K ranking signal.
        score:        n x K evaluation scores used for the gain.
        cost:         n x K strictly positive costs.
        weights:      Length-n normalized sample weights.
        budget:       Maximum average spend per unit.
        tie_breaker:  Length-n permutation; on equal marginal ratios the
                      unit with the lower value goes first. ``None`` means
                      index order.
        target_with_covariates: If False, rank arms by their weighted
                      averages only and allocate every unit identically.

    Returns:
        AllocationPath whose last spend never exceeds ``budget``.
    """
    if target_with_covariates:
        return _solve_targeted(reward, score, cost, weights, budget, tie_breaker)
    return _solve_average(reward, score, cost, weights, budget)


def _solve_targeted(
    reward: np.ndarray,
    score: np.ndarray,
    cost: np.ndarray,
    weights: np.ndarray,
    budget: float,
    tie_breaker: np.ndarray | None,
) -> AllocationPath:
    n = reward.shape[0]
    rank = np.arange(n) if tie_breaker is None else np.asarray(tie_breaker)
    hulls = convex_hulls(reward, cost)

    # Entries: (-marginal ratio, tie rank, unit, hull position)
    queue: list[tuple[float, int, int, int]] = []
    for i, hull in enumerate(hulls):
        if len(hull) > 0:
            first = hull[0]
            queue.append((-reward[i, first] / cost[i, first], int(rank[i]), i, 0))
    heapq.heapify(queue)

    spend = 0.0
    gain = 0.0
    spend_path: list[float] = []
    gain_path: list[float] = []
    ipath: list[int] = []
    kpath: list[int] = []
    dcost_path: list[float] = []
    dscore_path: list[float] = []

    pending = None
    while queue:
        _, tie_rank, unit, pos = queue[0]
        hull = hulls[unit]
        arm = hull[pos]
        if pos > 0:
            prev = hull[pos - 1]
            d_cost = cost[unit, arm] - cost[unit, prev]
            d_score = score[unit, arm] - score[unit, prev]
        else:
            d_cost = cost[unit, arm]
            d_score = score[unit, arm]

        next_spend = spend + weights[unit] * d_cost
        if next_spend > budget:
            pending = PendingEvent(
                float(next_spend), float(gain + weights[unit] * d_score), unit, int(arm),
            )
            break
        heapq.heappop(queue)

        spend = next_spend
        gain += weights[unit] * d_score
        spend_path.append(spend)
        gain_path.append(gain)
        ipath.append(unit)
        kpath.append(int(arm))
        dcost_path.append(d_cost)
        dscore_path.append(d_score)

        if pos + 1 < len(hull):
            nxt = hull[pos + 1]
            ratio = (reward[unit, nxt] - reward[unit, arm]) / (cost[unit, nxt] - cost[unit, arm])
            heapq.heappush(queue, (-ratio, tie_rank, unit, pos + 1))

    complete = not queue
    logger.debug(f"Targeted path: {len(spend_path)} events, complete={complete}")

    return AllocationPath(
        spend=np.asarray(spend_path, dtype=float),
        gain=np.asarray(gain_path, dtype=float),
        ipath=np.asarray(ipath, dtype=np.intp),
        kpath=np.asarray(kpath, dtype=np.intp),
        delta_cost=np.asarray(dcost_path, dtype=float),
        delta_score=np.asarray(dscore_path, dtype=float),
        complete_path=complete,
        budget=float(budget),
        pending=pending,
    )


def _solve_average(
    reward: np.ndarray,
    score: np.ndarray,
    cost: np.ndarray,
    weights: np.ndarray,
    budget: float,
) -> AllocationPath:
    """Non-personalized policy: one arm ranking applied to every unit in index order."""
    n = reward.shape[0]
    avg_reward = weights @ reward
    avg_cost = weights @ cost
    hull = convex_hull(avg_reward, avg_cost)

    if len(hull) == 0:
        return _empty_path(budget, complete=True)

    prev = np.concatenate(([-1], hull[:-1]))
    step_cost = avg_cost[hull] - np.where(prev >= 0, avg_cost[np.maximum(prev, 0)], 0.0)

    # Hull position major, unit index minor.
    units = np.tile(np.arange(n), len(hull))
    arms = np.repeat(hull, n)
    prev_arms = np.repeat(prev, n)
    d_cost = np.repeat(step_cost, n)
    prev_score = np.where(prev_arms >= 0, score[units, np.maximum(prev_arms, 0)], 0.0)
    d_score = score[units, arms] - prev_score

    spend = np.cumsum(weights[units] * d_cost)
    gain = np.cumsum(weights[units] * d_score)

    n_events = int(np.searchsorted(spend, budget, side="right"))
    complete = n_events == len(spend)
    pending = None
    if not complete:
        pending = PendingEvent(
            float(spend[n_events]), float(gain[n_events]), int(units[n_events]), int(arms[n_events]),
        )
    logger.debug(f"Average path: {n_events} events over {len(hull)} arms, complete={complete}")

    return AllocationPath(
        spend=spend[:n_events],
        gain=gain[:n_events],
        ipath=units[:n_events].astype(np.intp),
        kpath=arms[:n_events].astype(np.intp),
        delta_cost=d_cost[:n_events],
        delta_score=d_score[:n_events],
        complete_path=complete,
        budget=float(budget),
        pending=pending,
    )


def _empty_path(budget: float, complete: bool) -> AllocationPath:
    return AllocationPath(
        spend=np.empty(0),
        gain=np.empty(0),
        ipath=np.empty(0, dtype=np.intp),
        kpath=np.empty(0, dtype=np.intp),
        delta_cost=np.empty(0),
        delta_score=np.empty(0),
        complete_path=complete,
        budget=float(budget),
    )
