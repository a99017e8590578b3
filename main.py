"""
Slab CMFD benchmark - entry point for a multigroup fixed-source solve.

Usage:
    python main.py
    python main.py solver.cmfd_enabled=false
    python main.py solver.cmfd_coarse_mesh_level=4 mlflow.enabled=true
"""

import logging
import os
import sys
from pathlib import Path

import hydra
import mlflow
import numpy as np
from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

load_dotenv()
sys.path.insert(0, str(Path(__file__).parent / "src"))

from mgcmfd import (  # noqa: E402
    CoarseMeshMapping,
    Material,
    Mesh1D,
    MultigroupOuterSolver,
    SlabBoundary,
    estimate_keff,
    load_config,
    save_state,
)
from mgcmfd.cmfd import Homogenizer  # noqa: E402
from mgcmfd.config import to_dict  # noqa: E402

log = logging.getLogger(__name__)


def setup_mlflow(cfg: DictConfig) -> str:
    """Setup MLflow tracking and return experiment name."""
    tracking_uri = cfg.mlflow.get("tracking_uri", "./mlruns")
    os.environ["MLFLOW_TRACKING_URI"] = str(tracking_uri)
    mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(cfg.experiment_name)
    return cfg.experiment_name


def build_problem(problem: DictConfig):
    """Material, mesh, boundary and external source from the problem node."""
    tables = OmegaConf.to_container(problem.material)
    material = Material(**{k: np.asarray(v, dtype=float) for k, v in tables.items()})
    mesh = Mesh1D.from_regions(
        list(problem.region_widths), list(problem.cells_per_region), list(problem.region_materials)
    )
    boundary = SlabBoundary.create(problem.boundary_left, problem.boundary_right)
    source = np.zeros((material.number_groups, mesh.number_cells))
    fuel = mesh.material_map == problem.region_materials[0]
    for g, q in enumerate(problem.external_source):
        source[g, fuel] = q
    return material, mesh, boundary, source


def run_solver(cfg: DictConfig):
    solver_cfg = load_config(cfg.solver)
    material, mesh, boundary, source = build_problem(cfg.problem)
    solver = MultigroupOuterSolver.from_config(solver_cfg, material, mesh, boundary, source)

    log.info(
        f"Solving: {material.number_groups} groups, {mesh.number_cells} cells, "
        f"CMFD={'on' if solver_cfg.cmfd_enabled else 'off'}"
    )
    result = solver.solve(keff=cfg.problem.keff)
    m = result.metrics
    log.info(f"Done: {m.status}, {m.iterations} iter, {m.sweeps} sweeps, time={m.wall_time_seconds:.2f}s")

    if cfg.problem.get("estimate_keff") and material.is_fissile:
        mapping = CoarseMeshMapping.from_mesh(mesh, solver_cfg.cmfd_coarse_mesh_level)
        coarse = Homogenizer(material, mesh, mapping).homogenize(result.flux.phi)
        keff = estimate_keff(coarse, mapping, boundary).eigenvalue
        log.info(f"Coarse-mesh keff estimate: {keff:.6f}")
        if mlflow.active_run():
            mlflow.log_metric("keff_estimate", keff)

    if mlflow.active_run():
        mlflow.log_params(to_dict(solver_cfg))
        mlflow.log_metrics({k: float(v) for k, v in m.to_dataframe().iloc[0].items()
                            if isinstance(v, (int, float, np.number, bool))})

    output_dir = Path(hydra.core.hydra_config.HydraConfig.get().runtime.output_dir)
    save_state(output_dir / cfg.output_file, result.flux, material, mesh,
               status=m.status, iterations=m.iterations, keff=cfg.problem.keff)
    result.time_series.to_dataframe().to_csv(output_dir / "residuals.csv", index_label="iteration")
    if mlflow.active_run():
        mlflow.log_artifacts(str(output_dir / cfg.output_file), artifact_path="state")
    return result


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Main entry point."""
    log.debug(OmegaConf.to_yaml(cfg))
    if not cfg.mlflow.get("enabled", False):
        run_solver(cfg)
        return

    log.info(f"MLflow experiment: {setup_mlflow(cfg)}")
    with mlflow.start_run(run_name=cfg.experiment_name):
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")
        run_solver(cfg)


if __name__ == "__main__":
    main()
