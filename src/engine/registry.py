"""Versioned, immutable model snapshots.

A training run fits a brand-new regressor and publishes it as the next
version. Readers grab the current snapshot once and keep using it for the
whole call, so a concurrent publication never changes a prediction midway
and the read path takes no lock.
"""

import logging
import threading
from concurrent.futures import CancelledError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from src.engine.deadline import Deadline

# Configure module logger
logger = logging.getLogger(__name__)

SALES_MODEL = "sales_forecast"
DEMAND_MODEL = "demand"


@dataclass(frozen=True)
class ModelSnapshot:
    """A fitted regressor and everything needed to use it."""

    name: str
    version: int
    regressor: Any
    metadata: Mapping[str, Any] = field(default_factory=dict)
    trained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "regressor": type(self.regressor).__name__,
            "trained_at": self.trained_at.isoformat(),
        }


class ModelRegistry:
    """Holds the latest published snapshot per model name."""

    def __init__(self):
        self._snapshots: Dict[str, ModelSnapshot] = {}
        self._publish_lock = threading.Lock()

    def get(self, name: str) -> Optional[ModelSnapshot]:
        return self._snapshots.get(name)

    def publish(
        self,
        name: str,
        regressor: Any,
        metadata: Optional[Mapping[str, Any]] = None,
        deadline: Optional[Deadline] = None,
    ) -> ModelSnapshot:
        """Publish a fitted regressor as the next version of ``name``.

        The cancellation check happens under the publication lock, so a run
        cancelled at any point before this call is never made visible.

        Raises:
            CancelledError: If the training run was cancelled.
        """
        with self._publish_lock:
            if deadline is not None and deadline.cancelled:
                raise CancelledError(f"Training of '{name}' was cancelled")

            current = self._snapshots.get(name)
            version = 1 if current is None else current.version + 1
            snapshot = ModelSnapshot(
                name=name,
                version=version,
                regressor=regressor,
                metadata=metadata or {},
            )
            # Replace the whole mapping so readers never see it mid-update.
            snapshots = dict(self._snapshots)
            snapshots[name] = snapshot
            self._snapshots = snapshots

        logger.info(
            "Published model snapshot",
            extra={"model_name": name, "version": version},
        )
        return snapshot

    def restore(self, snapshot: ModelSnapshot) -> None:
        """Install a snapshot loaded from disk as-is."""
        with self._publish_lock:
            snapshots = dict(self._snapshots)
            snapshots[snapshot.name] = snapshot
            self._snapshots = snapshots

    def snapshots(self) -> Dict[str, ModelSnapshot]:
        return dict(self._snapshots)

    def versions(self) -> Dict[str, int]:
        return {name: s.version for name, s in self._snapshots.items()}

    def clear(self) -> None:
        with self._publish_lock:
            self._snapshots = {}
