"""Solver configuration.

A flat key/value store backed by an OmegaConf structured config, so unknown
keys and badly typed values are rejected when the configuration is built.
Sources can be plain dicts, YAML files or Hydra ``DictConfig`` nodes.
"""

from dataclasses import dataclass
from pathlib import Path

from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import OmegaConfBaseException

from .exceptions import InvalidArgumentError


# ========================================================
# Parameters (Input Configuration)
# ========================================================


@dataclass
class SolverConfig:
    """Options of the multigroup outer iteration and its CMFD acceleration."""

    # Coarse linear solve
    pc_type: str = "ilu0"
    pc_side: str = "left"
    linear_solver: str = "gmres"
    linear_absolute_tolerance: float = 1e-12
    linear_relative_tolerance: float = 1e-10
    linear_max_iterations: int = 1000
    gmres_restart: int = 30
    richardson_omega: float = 1.0
    monitor_level: int = 0
    monitor_diverge: bool = True

    # Outer iteration
    outer_tolerance: float = 1e-6
    max_outer_iterations: int = 100
    adjoint: bool = False
    multiply: bool = False
    print_level: int = 1
    print_interval: int = 1

    # CMFD
    cmfd_enabled: bool = True
    cmfd_coarse_mesh_level: int = 2
    cmfd_degenerate_policy: str = "skip"
    cmfd_degenerate_tolerance: float = 1e-12


_CHOICES = {
    "pc_type": ("none", "jacobi", "ilu0"),
    "pc_side": ("none", "left", "right"),
    "linear_solver": ("gmres", "richardson", "jacobi"),
    "cmfd_degenerate_policy": ("skip", "raise"),
}


def load_config(source=None, **overrides) -> DictConfig:
    """Build a validated solver configuration.

    Parameters
    ----------
    source : dict, DictConfig, str or Path, optional
        Values merged over the defaults; a string or path is read as YAML.
    **overrides
        Individual keys applied last.

    Raises
    ------
    InvalidArgumentError
        Unknown key, wrong type or out-of-range value.
    """
    cfg = OmegaConf.structured(SolverConfig)
    try:
        if source is not None:
            if isinstance(source, (str, Path)):
                source = OmegaConf.load(source)
            elif not isinstance(source, DictConfig):
                source = OmegaConf.create(dict(source))
            cfg = OmegaConf.merge(cfg, source)
        if overrides:
            cfg = OmegaConf.merge(cfg, overrides)
    except OmegaConfBaseException as exc:
        raise InvalidArgumentError(f"Invalid solver configuration: {exc}") from None
    validate(cfg)
    return cfg


def validate(cfg):
    """Check value ranges; raises InvalidArgumentError on the first violation."""
    for key, choices in _CHOICES.items():
        value = str(cfg[key]).lower()
        if value not in choices:
            raise InvalidArgumentError(f"{key} must be one of {choices}, got '{cfg[key]}'")

    positive = ("outer_tolerance", "max_outer_iterations", "cmfd_coarse_mesh_level",
                "linear_max_iterations", "gmres_restart", "richardson_omega")
    for key in positive:
        if cfg[key] <= 0:
            raise InvalidArgumentError(f"{key} must be positive, got {cfg[key]}")

    non_negative = ("linear_absolute_tolerance", "linear_relative_tolerance",
                    "cmfd_degenerate_tolerance", "print_interval", "print_level")
    for key in non_negative:
        if cfg[key] < 0:
            raise InvalidArgumentError(f"{key} must be non-negative, got {cfg[key]}")

    if cfg.monitor_level not in (0, 1, 2):
        raise InvalidArgumentError(f"monitor_level must be 0, 1 or 2, got {cfg.monitor_level}")


def to_dict(cfg) -> dict:
    """Plain dict of a configuration (e.g. for mlflow.log_params)."""
    return OmegaConf.to_container(cfg, resolve=True)
