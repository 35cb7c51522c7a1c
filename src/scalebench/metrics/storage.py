"""Latency document sinks.

The local indexer writes one JSON array per measurement::

    collected-metrics-<uuid>/
      nodeReadyLatencyMeasurement-workers-scale.json
      nodeReadyLatencyQuantilesMeasurement-workers-scale.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class LatencyIndexer(Protocol):
    """Destination for latency documents."""

    def index(self, metric_name: str, job_name: str, documents: list[dict[str, Any]]) -> None: ...


class LocalIndexer:
    """Writes documents to local JSON files."""

    def __init__(self, metrics_dir: Path | str):
        self.metrics_dir = Path(metrics_dir)

    def path_for(self, metric_name: str, job_name: str) -> Path:
        return self.metrics_dir / f"{metric_name}-{job_name}.json"

    def index(self, metric_name: str, job_name: str, documents: list[dict[str, Any]]) -> None:
        """Write ``documents`` to ``<metrics_dir>/<metric_name>-<job_name>.json``.

        Raises:
            OSError: If the file cannot be written
        """
        self.metrics_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(metric_name, job_name)
        with open(path, "w") as f:
            json.dump(documents, f, indent=2, default=str)
        logger.info("Indexed %d %s documents to %s", len(documents), metric_name, path)

    def load(self, metric_name: str, job_name: str) -> list[dict[str, Any]]:
        """Read back documents written by :meth:`index`."""
        path = self.path_for(metric_name, job_name)
        if not path.exists():
            return []
        with open(path) as f:
            return json.load(f)
