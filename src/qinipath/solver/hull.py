"""
Per-unit convex hull of (cost, reward) points.

Reduces a unit's K arm candidates to the sequence of arms lying on the
upper concave envelope of its (cost, reward) points, anchored at the
zero-cost / zero-reward baseline.  Walking the hull forward is the only
way a unit's allocation is ever upgraded.
"""

from __future__ import annotations

import numpy as np


def convex_hull(reward: np.ndarray, cost: np.ndarray) -> np.ndarray:
    """
    Build the hull sequence for a single unit.

    Args:
        reward: Length-K reward (ranking signal) for each arm.
        cost:   Length-K strictly positive cost for each arm.

    Returns:
        Integer array of arm indices in hull order. Cost is strictly
        increasing along it and the marginal ratio is non-increasing.
        Empty if no arm has positive reward.
    """
    reward = np.asarray(reward, dtype=float)
    cost = np.asarray(cost, dtype=float)

    # Ascending cost; on equal cost the higher reward comes first so the
    # dominated duplicate is dropped by the reward check below.
    order = np.lexsort((-reward, cost))

    hull: list[int] = []
    for arm in order:
        prev_cost = cost[hull[-1]] if hull else 0.0
        prev_reward = reward[hull[-1]] if hull else 0.0
        if reward[arm] <= prev_reward or cost[arm] <= prev_cost:
            continue

        while hull:
            last = hull[-1]
            if len(hull) >= 2:
                base_cost, base_reward = cost[hull[-2]], reward[hull[-2]]
            else:
                base_cost, base_reward = 0.0, 0.0
            slope_in = (reward[last] - base_reward) / (cost[last] - base_cost)
            slope_out = (reward[arm] - reward[last]) / (cost[arm] - cost[last])
            if slope_in < slope_out:
                hull.pop()
            else:
                break

        hull.append(int(arm))

    return np.asarray(hull, dtype=np.intp)


def convex_hulls(reward: np.ndarray, cost: np.ndarray) -> list[np.ndarray]:
    """Apply :func:`convex_hull` to every row of an n x K problem."""
    return [convex_hull(reward[i], cost[i]) for i in range(reward.shape[0])]


def marginal_ratios(
    hull: np.ndarray,
    reward: np.ndarray,
    cost: np.ndarray,
) -> np.ndarray:
    """Delta reward / delta cost for each step along ``hull``, starting at the origin."""
    if len(hull) == 0:
        return np.empty(0)
    r = np.concatenate(([0.0], reward[hull]))
    c = np.concatenate(([0.0], cost[hull]))
    return np.diff(r) / np.diff(c)
