"""
Configuration management for qinipath.

Centralized configuration with sensible defaults, loadable from YAML.
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field


class SolverConfig(BaseModel):
    """Path solver configuration."""

    target_with_covariates: bool = Field(
        default=True, description="Personalize the policy; False ranks arms by averages only"
    )
    paired_inference: bool = Field(
        default=True, description="Keep replicate paths for paired comparisons"
    )


class BootstrapConfig(BaseModel):
    """Variance engine configuration."""

    n_replicates: int = Field(default=0, ge=0, description="Number of bootstrap replicates R")
    num_threads: int = Field(default=0, ge=0, description="Worker threads, 0 = all cores")
    seed: int = Field(default=42, ge=0)
    scheme: Literal["half_sample", "multinomial"] = Field(default="half_sample")


class ReportConfig(BaseModel):
    """Summary / plot-data output configuration."""

    z_value: float = Field(default=1.96, gt=0, description="Width of confidence bands")
    max_plot_points: int = Field(default=1000, gt=0)
    outputs_path: Path = Field(default=Path("data/outputs"))


class QiniPathConfig(BaseModel):
    """Root configuration for qinipath."""

    project_name: str = Field(default="qinipath")

    solver: SolverConfig = Field(default_factory=SolverConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "QiniPathConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


# Global config instance (can be overridden)
_config: QiniPathConfig | None = None


def get_config() -> QiniPathConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = QiniPathConfig()
    return _config


def set_config(config: QiniPathConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def load_config(path: Path | str | None = None) -> QiniPathConfig:
    """Load configuration from file or use defaults."""
    global _config

    if path is not None:
        _config = QiniPathConfig.from_yaml(Path(path))
    else:
        for config_path in [Path("qinipath.yaml"), Path("config/qinipath.yaml")]:
            if config_path.exists():
                _config = QiniPathConfig.from_yaml(config_path)
                break
        else:
            _config = QiniPathConfig()

    return _config
