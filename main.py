"""
Liquid simulation runner - Hydra + MLflow integration.

Usage:
    uv run python main.py
    uv run python main.py scene=circle_pour N=64 frames=100
    uv run python main.py -m scene=dam_break,still_pool viscosity=0.0,1.0

MLflow modes:
    local  - file-based ./mlruns (default)
    remote - tracking server (requires .env with credentials)
"""

import logging
import os
import sys
import tempfile
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from hydra.utils import instantiate
from mlflow.tracking import MlflowClient
from omegaconf import DictConfig, OmegaConf

# Load .env file (for MLflow credentials)
load_dotenv()

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

log = logging.getLogger(__name__)


# =============================================================================
# Scene Factory
# =============================================================================


def create_simulation(cfg: DictConfig):
    """Instantiate the scene builder with the common parameters from the root config."""
    scene_cfg = OmegaConf.to_container(cfg.scene, resolve=True)
    scene_cfg.pop("name", None)
    return instantiate(
        scene_cfg,
        ni=cfg.N,
        gravity=cfg.gravity,
        viscosity=cfg.viscosity,
        preconditioner=cfg.preconditioner,
        pressure_tolerance=cfg.pressure_tolerance,
        viscosity_tolerance=cfg.viscosity_tolerance,
        _convert_="partial",
    )


# =============================================================================
# MLflow Logging
# =============================================================================


def setup_mlflow(cfg: DictConfig) -> str:
    """Point MLflow at the configured backend and return the experiment name.

    ``local`` writes to ``cfg.mlflow.tracking_uri``; ``remote`` uses
    ``MLFLOW_TRACKING_URI`` from the environment (.env).
    """
    mode = str(cfg.mlflow.get("mode", "local")).lower()
    if mode == "local":
        tracking_uri = str(cfg.mlflow.get("tracking_uri", "./mlruns"))
    else:
        tracking_uri = os.environ.get("MLFLOW_TRACKING_URI")
        if not tracking_uri:
            raise ValueError(f"MLflow mode '{mode}' needs MLFLOW_TRACKING_URI to be set")
    mlflow.set_tracking_uri(tracking_uri)

    experiment_name = cfg.experiment_name
    project_prefix = cfg.mlflow.get("project_prefix", "")
    if project_prefix:
        experiment_name = f"{project_prefix}/{experiment_name}"
    mlflow.set_experiment(experiment_name)
    return experiment_name


def log_metrics_and_timeseries(sim, run_id: str):
    """Log final metrics and the substep time series to MLflow."""
    mlflow.log_metrics(sim.metrics.to_mlflow())

    batch_metrics = sim.time_series.to_mlflow_batch()
    if batch_metrics:
        MlflowClient().log_batch(run_id=run_id, metrics=batch_metrics)

    with tempfile.TemporaryDirectory() as tmpdir:
        csv_path = Path(tmpdir) / "time_series.csv"
        sim.time_series.to_dataframe().to_csv(csv_path, index=False)
        mlflow.log_artifact(str(csv_path))


def log_fields(sim):
    """Save particles and velocity fields as zarr arrays to MLflow artifacts."""
    import zarr

    arrays = {
        "particles": sim.particles,
        "u": sim.fields.u,
        "v": sim.fields.v,
        "liquid_phi": sim.fields.liquid_phi,
        "nodal_solid_phi": sim.fields.nodal_solid_phi,
        "pressure": sim.pressure,
    }

    with tempfile.TemporaryDirectory() as tmpdir:
        for name, arr in arrays.items():
            zarr_path = Path(tmpdir) / f"{name}.zarr"
            zarr.save(zarr_path, arr)
            mlflow.log_artifact(str(zarr_path), artifact_path="fields")

    log.info(f"Logged fields: {', '.join(arrays)} (zarr)")


# =============================================================================
# Main Entry Point
# =============================================================================


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Hydra entry point - runs a scene with MLflow tracking."""
    scene_name = cfg.scene.name
    log.info(f"Scene: {scene_name}, N={cfg.N}, frames={cfg.frames}, frame_dt={cfg.frame_dt}")

    experiment_name = setup_mlflow(cfg)
    log.info(f"MLflow experiment: {experiment_name}")

    sim = create_simulation(cfg)
    run_name = f"{scene_name}_N{cfg.N}"

    parent_run_id = os.environ.get("MLFLOW_PARENT_RUN_ID")
    run_tags = {"scene": scene_name}
    nested = False
    if parent_run_id:
        run_tags["mlflow.parentRunId"] = parent_run_id
        run_tags["parent_run_id"] = parent_run_id
        run_tags["sweep"] = "child"
        nested = True

    with mlflow.start_run(run_name=run_name, tags=run_tags, nested=nested) as run:
        mlflow.log_params(sim.params.to_mlflow())
        mlflow.log_param("particles", len(sim.particles))
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        log.info("Starting simulation...")
        for _ in range(cfg.frames):
            sim.advance(cfg.frame_dt)

        log_metrics_and_timeseries(sim, run.info.run_id)
        log_fields(sim)

        log.info(
            f"Done: {sim.metrics.frames} frames, {sim.metrics.substeps} substeps, "
            f"failed solves={sim.metrics.failed_pressure_solves + sim.metrics.failed_viscosity_solves}, "
            f"time={sim.metrics.wall_time_seconds:.2f}s"
        )


if __name__ == "__main__":
    main()
