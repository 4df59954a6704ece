"""
qinipath: Qini curves for multi-armed, costly treatment rules.

Given per-unit reward and cost estimates for K mutually exclusive arms,
fits the optimal budget-constrained allocation path and evaluates it on
independent scores, with bootstrap standard errors and paired
comparisons between curves.

Quickstart::

    from qinipath import fit_qini
    curve = fit_qini(tau_hat, cost_hat, budget=1.0, scores=dr_scores, R=200)
    curve.average_gain(0.2)
"""

from qinipath.curve import (
    GainEstimate,
    QiniCurve,
    average_gain,
    difference_gain,
    fit_qini,
)
from qinipath.exceptions import (
    InputValidationError,
    PairedInferenceError,
    QiniPathError,
    SpendOutOfRangeError,
)

__version__ = "0.1.0"

__all__ = [
    "GainEstimate",
    "QiniCurve",
    "average_gain",
    "difference_gain",
    "fit_qini",
    "InputValidationError",
    "PairedInferenceError",
    "QiniPathError",
    "SpendOutOfRangeError",
]
