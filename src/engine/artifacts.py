"""Saving and loading published model snapshots.

Snapshots are stored one joblib file per model name so a retrained model can
be shipped without touching the others.
"""

import logging
from pathlib import Path
from typing import List

import joblib

from src.engine.registry import ModelRegistry, ModelSnapshot

# Configure module logger
logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".snapshot.joblib"


def snapshot_path(model_dir: str, name: str) -> Path:
    return Path(model_dir) / f"{name}{SNAPSHOT_SUFFIX}"


def save_snapshots(registry: ModelRegistry, model_dir: str) -> List[Path]:
    """Save every published snapshot to ``model_dir``.

    Args:
        registry: Registry whose current snapshots are saved.
        model_dir: Directory path where artifacts will be saved.

    Returns:
        Paths of the written files.

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(model_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving model snapshots to {model_dir}")

    written = []
    for name, snapshot in registry.snapshots().items():
        path = snapshot_path(model_dir, name)
        joblib.dump(
            {
                "name": snapshot.name,
                "version": snapshot.version,
                "regressor": snapshot.regressor,
                "metadata": dict(snapshot.metadata),
                "trained_at": snapshot.trained_at,
            },
            path,
        )
        logger.info(f"Saved snapshot {name} v{snapshot.version} to {path}")
        written.append(path)

    return written


def load_snapshots(registry: ModelRegistry, model_dir: str) -> List[ModelSnapshot]:
    """Load every snapshot file in ``model_dir`` into the registry.

    Raises:
        FileNotFoundError: If the directory does not exist or holds no snapshots.
    """
    model_path = Path(model_dir)
    if not model_path.exists():
        raise FileNotFoundError(f"Model directory does not exist: {model_dir}")

    files = sorted(model_path.glob(f"*{SNAPSHOT_SUFFIX}"))
    if not files:
        raise FileNotFoundError(f"No model snapshots found in {model_dir}")

    loaded = []
    for path in files:
        data = joblib.load(path)
        snapshot = ModelSnapshot(
            name=data["name"],
            version=data["version"],
            regressor=data["regressor"],
            metadata=data.get("metadata", {}),
            trained_at=data["trained_at"],
        )
        registry.restore(snapshot)
        logger.info(f"Loaded snapshot {snapshot.name} v{snapshot.version} from {path}")
        loaded.append(snapshot)

    return loaded


def check_snapshots_exist(model_dir: str) -> bool:
    """Check if at least one snapshot file exists in ``model_dir``."""
    model_path = Path(model_dir)
    return model_path.is_dir() and any(model_path.glob(f"*{SNAPSHOT_SUFFIX}"))
