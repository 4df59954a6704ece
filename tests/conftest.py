"""Shared fixtures for qinipath tests."""

import numpy as np
import pytest

from qinipath.config import QiniPathConfig, set_config


@pytest.fixture(autouse=True)
def default_config():
    """Reset the global config around every test."""
    set_config(QiniPathConfig())
    yield
    set_config(QiniPathConfig())


@pytest.fixture
def toy_data():
    """Random multi-armed problem: (reward, cost, scores)."""
    rng = np.random.default_rng(123)
    n, K = 200, 3
    reward = 1 + rng.normal(size=(n, K))
    cost = 0.05 + rng.uniform(size=(n, K))
    scores = 1 + rng.normal(size=(n, K))
    return reward, cost, scores
