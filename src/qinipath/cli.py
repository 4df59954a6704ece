"""
Command-line interface for qinipath.

Fits Qini curves from CSV matrices (one row per unit, one column per arm)
and reports gains and paired differences at chosen spend levels.
"""

from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd
import typer
from loguru import logger

from qinipath.config import load_config
from qinipath.curve import QiniCurve, fit_qini

app = typer.Typer(
    name="qinipath",
    help="Multi-armed Qini curve CLI",
    add_completion=False,
)


def _read_matrix(path: Path) -> np.ndarray:
    return pd.read_csv(path).to_numpy(dtype=float)


def _read_vector(path: Optional[Path]) -> Optional[np.ndarray]:
    if path is None:
        return None
    return pd.read_csv(path).iloc[:, 0].to_numpy()


def _fit_from_files(
    reward: Path,
    cost: Path,
    scores: Path,
    budget: Optional[float],
    replicates: Optional[int],
    weights: Optional[Path],
    clusters: Optional[Path],
    targeted: Optional[bool],
) -> QiniCurve:
    reward_mat = _read_matrix(reward)
    cost_mat = _read_matrix(cost)
    if budget is None:
        budget = float(cost_mat.sum())
        logger.info(f"No budget given, fitting the complete path (budget={budget:g})")

    return fit_qini(
        reward_mat,
        cost_mat,
        budget,
        _read_matrix(scores),
        target_with_covariates=targeted,
        R=replicates,
        sample_weights=_read_vector(weights),
        clusters=_read_vector(clusters),
    )


@app.command()
def fit(
    reward: Path = typer.Option(..., "--reward", "-r", help="CSV of reward estimates"),
    cost: Path = typer.Option(..., "--cost", "-c", help="CSV of cost estimates"),
    scores: Path = typer.Option(..., "--scores", "-s", help="CSV of evaluation scores"),
    budget: Optional[float] = typer.Option(None, "--budget", "-b", help="Max spend per unit"),
    replicates: Optional[int] = typer.Option(None, "--replicates", "-R", help="Bootstrap replicates"),
    weights: Optional[Path] = typer.Option(None, "--weights", help="CSV of sample weights"),
    clusters: Optional[Path] = typer.Option(None, "--clusters", help="CSV of cluster ids"),
    no_targeting: bool = typer.Option(False, "--no-targeting", help="Ignore covariates"),
    spend: Optional[List[float]] = typer.Option(None, "--spend", help="Spend levels to report"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output JSON file"),
):
    """Fit a Qini curve and save its path."""
    config = load_config(config_path)
    targeted = False if no_targeting else None
    curve = _fit_from_files(
        reward, cost, scores, budget, replicates, weights, clusters, targeted,
    )
    logger.info(repr(curve))

    for level in spend or []:
        est = curve.average_gain(level)
        typer.echo(f"spend={level:g} gain={est.estimate:.6g} std_err={est.std_err:.6g}")

    if output is None:
        output = config.report.outputs_path / "qini_curve.json"
    curve.save(output)


@app.command()
def gain(
    reward: Path = typer.Option(..., "--reward", "-r", help="CSV of reward estimates"),
    cost: Path = typer.Option(..., "--cost", "-c", help="CSV of cost estimates"),
    scores: Path = typer.Option(..., "--scores", "-s", help="CSV of evaluation scores"),
    spend: List[float] = typer.Option(..., "--spend", help="Spend levels to report"),
    budget: Optional[float] = typer.Option(None, "--budget", "-b", help="Max spend per unit"),
    replicates: Optional[int] = typer.Option(None, "--replicates", "-R", help="Bootstrap replicates"),
    weights: Optional[Path] = typer.Option(None, "--weights", help="CSV of sample weights"),
    clusters: Optional[Path] = typer.Option(None, "--clusters", help="CSV of cluster ids"),
    no_targeting: bool = typer.Option(False, "--no-targeting", help="Ignore covariates"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
):
    """Print the average gain at each spend level without saving the curve."""
    config = load_config(config_path)
    targeted = False if no_targeting else None
    curve = _fit_from_files(
        reward, cost, scores, budget, replicates, weights, clusters, targeted,
    )

    for level in spend:
        est = curve.average_gain(level)
        lo, hi = est.confidence_interval(config.report.z_value)
        typer.echo(
            f"spend={level:g} gain={est.estimate:.6g} "
            f"std_err={est.std_err:.6g} ci=[{lo:.6g}, {hi:.6g}]"
        )


@app.command()
def compare(
    reward: Path = typer.Option(..., "--reward", "-r", help="CSV of reward estimates"),
    baseline_reward: Path = typer.Option(
        ..., "--baseline-reward", help="CSV of reward estimates for the comparison curve"
    ),
    cost: Path = typer.Option(..., "--cost", "-c", help="CSV of cost estimates"),
    scores: Path = typer.Option(..., "--scores", "-s", help="CSV of evaluation scores"),
    spend: List[float] = typer.Option(..., "--spend", help="Spend levels to compare at"),
    budget: Optional[float] = typer.Option(None, "--budget", "-b", help="Max spend per unit"),
    replicates: int = typer.Option(200, "--replicates", "-R", help="Bootstrap replicates"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
):
    """Paired comparison of two reward estimates evaluated on the same scores."""
    load_config(config_path)
    lhs = _fit_from_files(reward, cost, scores, budget, replicates, None, None, None)
    rhs = _fit_from_files(baseline_reward, cost, scores, budget, replicates, None, None, None)

    for level in spend:
        diff = lhs.difference_gain(rhs, level)
        lo, hi = diff.confidence_interval()
        typer.echo(
            f"spend={level:g} difference={diff.estimate:.6g} "
            f"std_err={diff.std_err:.6g} ci=[{lo:.6g}, {hi:.6g}]"
        )


@app.command()
def generate_demo(
    output: Path = typer.Option(Path("data/raw"), "--output", "-o", help="Output directory"),
    n_units: int = typer.Option(1000, "--units", help="Number of units"),
    n_arms: int = typer.Option(3, "--arms", help="Number of treatment arms"),
    seed: int = typer.Option(42, "--seed", help="Random seed"),
):
    """Generate a synthetic reward / cost / score data set."""
    logger.info(f"Generating demo data: {n_units} units, {n_arms} arms")
    output.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)

    x = rng.uniform(size=(n_units, n_arms))
    tau = x * np.linspace(0.5, 1.5, n_arms)
    reward = tau + rng.normal(scale=0.2, size=tau.shape)
    scores = tau + rng.normal(size=tau.shape)
    cost = 0.05 + rng.uniform(size=tau.shape) * np.linspace(0.5, 1.0, n_arms)

    columns = [f"arm_{k}" for k in range(n_arms)]
    for name, values in [("reward", reward), ("cost", cost), ("scores", scores)]:
        pd.DataFrame(values, columns=columns).to_csv(output / f"{name}.csv", index=False)

    logger.info(f"Demo data written to {output}")


if __name__ == "__main__":
    app()
