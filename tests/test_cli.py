"""Tests for the command-line interface."""

import json

from typer.testing import CliRunner

from qinipath.cli import app

runner = CliRunner()


class TestCli:
    """Test CLI commands end to end on demo data."""

    def _demo(self, tmp_path):
        result = runner.invoke(
            app, ["generate-demo", "--output", str(tmp_path), "--units", "120", "--arms", "2"],
        )
        assert result.exit_code == 0, result.output
        return tmp_path

    def test_fit(self, tmp_path):
        """Fit writes the curve and reports requested gains."""
        data = self._demo(tmp_path)
        out = tmp_path / "out" / "curve.json"

        result = runner.invoke(app, [
            "fit",
            "--reward", str(data / "reward.csv"),
            "--cost", str(data / "cost.csv"),
            "--scores", str(data / "scores.csv"),
            "--replicates", "20",
            "--spend", "0.1",
            "--spend", "0.2",
            "--output", str(out),
        ])

        assert result.exit_code == 0, result.output
        assert result.output.count("spend=") == 2
        with open(out) as f:
            meta = json.load(f)
        assert meta["n_units"] == 120
        assert meta["complete_path"] is True

    def test_compare(self, tmp_path):
        """Compare reports a paired difference per spend level."""
        data = self._demo(tmp_path)

        result = runner.invoke(app, [
            "compare",
            "--reward", str(data / "reward.csv"),
            "--baseline-reward", str(data / "scores.csv"),
            "--cost", str(data / "cost.csv"),
            "--scores", str(data / "scores.csv"),
            "--spend", "0.1",
            "--replicates", "20",
        ])

        assert result.exit_code == 0, result.output
        assert "difference=" in result.output

    def test_gain(self, tmp_path):
        """Gain prints one estimate with an interval per spend level."""
        data = self._demo(tmp_path)

        result = runner.invoke(app, [
            "gain",
            "--reward", str(data / "reward.csv"),
            "--cost", str(data / "cost.csv"),
            "--scores", str(data / "scores.csv"),
            "--spend", "0.05",
            "--spend", "0.1",
            "--spend", "0.3",
            "--replicates", "20",
        ])

        assert result.exit_code == 0, result.output
        assert result.output.count("gain=") == 3
        assert "ci=[" in result.output

    def test_config_targeting_default(self, tmp_path):
        """Without --no-targeting the config file decides whether to target."""
        data = self._demo(tmp_path)
        config_file = tmp_path / "qinipath.yaml"
        config_file.write_text("solver:\n  target_with_covariates: false\n")
        out = tmp_path / "out" / "curve.json"

        result = runner.invoke(app, [
            "fit",
            "--reward", str(data / "reward.csv"),
            "--cost", str(data / "cost.csv"),
            "--scores", str(data / "scores.csv"),
            "--config", str(config_file),
            "--output", str(out),
        ])

        assert result.exit_code == 0, result.output
        with open(out) as f:
            meta = json.load(f)
        assert meta["target_with_covariates"] is False
