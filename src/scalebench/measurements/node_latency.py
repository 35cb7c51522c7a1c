"""Node readiness measurement.

Watches Node objects for the duration of a scale operation and records,
per node UID, when the Node object was created and when it turned Ready.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from kubernetes import watch
from kubernetes.client.rest import ApiException

from scalebench.k8s.client import K8sClient

logger = logging.getLogger(__name__)

_WATCH_TIMEOUT_SECONDS = 30


@dataclass
class NodeReadySignal:
    """Creation and Ready times of one Node object."""

    uid: str
    name: str
    created: datetime
    ready: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict)


class NodeLatencyMeasurement(Protocol):
    """Source of node readiness signals."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def get_metrics(self) -> dict[str, NodeReadySignal]: ...


def _utc(ts: datetime | None) -> datetime | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def signal_from_node(node: Any) -> NodeReadySignal | None:
    """Build a NodeReadySignal from a V1Node, or None without a UID."""
    metadata = node.metadata
    if not metadata or not metadata.uid:
        return None

    ready = None
    for condition in (node.status.conditions if node.status else None) or []:
        if condition.type == "Ready" and condition.status == "True":
            ready = _utc(condition.last_transition_time)
            break

    return NodeReadySignal(
        uid=metadata.uid,
        name=metadata.name,
        created=_utc(metadata.creation_timestamp),  # type: ignore[arg-type]
        ready=ready,
        labels=dict(metadata.labels or {}),
    )


class NodeWatcher:
    """Background-thread Node watch.

    Usage::

        watcher = NodeWatcher(client)
        watcher.start()
        ...  # scale
        watcher.stop()
        signals = watcher.get_metrics()
    """

    def __init__(self, client: K8sClient):
        self.client = client
        self._signals: dict[str, NodeReadySignal] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._watch: watch.Watch | None = None

    def _record(self, node: Any) -> None:
        signal = signal_from_node(node)
        if signal is None:
            return
        with self._lock:
            existing = self._signals.get(signal.uid)
            # The first observed Ready transition wins
            if existing is not None and existing.ready is not None:
                signal.ready = existing.ready
            self._signals[signal.uid] = signal

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self._watch = watch.Watch()
            try:
                for event in self._watch.stream(
                    self.client.core_v1.list_node, timeout_seconds=_WATCH_TIMEOUT_SECONDS
                ):
                    if event.get("type") in ("ADDED", "MODIFIED"):
                        self._record(event["object"])
                    if self._stop_event.is_set():
                        break
            except ApiException as e:
                logger.warning("Node watch interrupted: %s", e.reason)
                self._stop_event.wait(1)
            except Exception as e:
                if not self._stop_event.is_set():
                    logger.warning("Node watch interrupted: %s", e)
                    self._stop_event.wait(1)

    def start(self) -> None:
        """Start watching nodes."""
        if self._thread is not None:
            return
        logger.info("Starting node readiness measurement")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="node-watcher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop watching and take a final full node listing."""
        self._stop_event.set()
        if self._watch is not None:
            self._watch.stop()
        if self._thread is not None:
            self._thread.join(timeout=_WATCH_TIMEOUT_SECONDS + 5)
            self._thread = None

        try:
            for node in self.client.list_nodes():
                self._record(node)
        except Exception as e:
            logger.error("Final node listing failed: %s", e)
        logger.info("Stopped node readiness measurement (%d nodes)", len(self._signals))

    def get_metrics(self) -> dict[str, NodeReadySignal]:
        """Return signals keyed by node UID."""
        with self._lock:
            return dict(self._signals)
