"""Tests for latency correlation, quantiles and the local indexer."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest
from tests.conftest import T0

from scalebench.measurements.node_latency import NodeReadySignal
from scalebench.metrics import (
    LocalIndexer,
    calculate_metrics,
    finalize_metrics,
    group_name_for,
    latency_ms,
    new_latency_summary,
    percentile,
)
from scalebench.workerscale.types import GroupMutation, MachineRecord


def _machine(name: str, uid: str, created_s: float = 30, ready_s: float | None = 90) -> MachineRecord:
    return MachineRecord(
        name=name,
        node_uid=uid,
        creation_time=T0 + timedelta(seconds=created_s),
        ready_time=T0 + timedelta(seconds=ready_s) if ready_s is not None else None,
    )


def _signal(uid: str, created_s: float = 120, ready_s: float = 150) -> NodeReadySignal:
    return NodeReadySignal(
        uid=uid,
        name=f"node-{uid}",
        created=T0 + timedelta(seconds=created_s),
        ready=T0 + timedelta(seconds=ready_s),
        labels={"node-role.kubernetes.io/worker": ""},
    )


def _plan():
    return {"ms-a": GroupMutation(1, 2, last_mutation_time=T0)}


class TestLatencyMath:
    """Tests for latency_ms() and percentile()."""

    def test_latency_ms(self):
        assert latency_ms(T0 + timedelta(milliseconds=4200), T0) == 4200

    def test_negative_latency_surfaces(self):
        assert latency_ms(T0 - timedelta(seconds=2), T0) == -2000

    def test_truncates_toward_zero(self):
        assert latency_ms(T0 + timedelta(microseconds=1999), T0) == 1
        assert latency_ms(T0 - timedelta(microseconds=1999), T0) == -1

    def test_percentile_whole_rank(self):
        # rank = 0.5 * 4 = 2 -> second element
        assert percentile([4, 1, 3, 2], 50) == 2

    def test_percentile_fractional_rank(self):
        # rank = 0.5 * 5 = 2.5 -> mean of 2nd and 3rd
        assert percentile([1, 2, 3, 4, 5], 50) == 2.5

    def test_percentile_small_rank(self):
        # rank = 0.5 * 1 = 0.5 -> smallest
        assert percentile([7], 50) == 7

    def test_percentile_empty(self):
        with pytest.raises(ValueError):
            percentile([], 50)

    def test_summary(self):
        s = new_latency_summary([100, 200, 300, 400], "NodeReady")
        assert s.p50 == 200
        # rank 3.96 -> mean of 300 and 400
        assert s.p99 == 350
        assert s.min == 100
        assert s.max == 400
        assert s.avg == 250
        assert s.count == 4

    def test_summary_rounds_half_away_from_zero(self):
        assert new_latency_summary([1, 2], "x").avg == 2
        assert new_latency_summary([-1, -2], "x").avg == -2

    def test_empty_summary(self):
        s = new_latency_summary([], "NodeReady")
        assert (s.p50, s.p99, s.max, s.avg, s.count) == (0, 0, 0, 0, 0)


class TestGroupName:
    """Tests for group_name_for()."""

    def test_truncates_at_last_dash(self):
        assert group_name_for("cluster-abc-worker-us-east-1a-x7k2p") == "cluster-abc-worker-us-east-1a"

    def test_no_dash(self):
        assert group_name_for("machine") is None
        assert group_name_for("-x") is None


class TestCalculateMetrics:
    """Tests for calculate_metrics()."""

    def test_node_ready_latency(self):
        """Node ready at T0 + 4200ms yields 4200."""
        machines = {"ms-a-x1": _machine("ms-a-x1", "uid-1")}
        signals = {"uid-1": _signal("uid-1", ready_s=4.2)}

        records, _ = calculate_metrics(_plan(), machines, signals, uuid="run-1")

        assert len(records) == 1
        assert records[0].node_ready_latency == 4200
        assert records[0].machine_creation_latency == 30000
        assert records[0].machine_ready_latency == 90000
        assert records[0].node_creation_latency == 120000

    def test_machine_without_signal_excluded(self):
        machines = {
            "ms-a-x1": _machine("ms-a-x1", "uid-1"),
            "ms-a-x2": _machine("ms-a-x2", "uid-2", created_s=999),
        }
        signals = {"uid-1": _signal("uid-1")}

        records, quantiles = calculate_metrics(_plan(), machines, signals, uuid="run-1")

        assert [r.machine_name for r in records] == ["ms-a-x1"]
        creation = next(q for q in quantiles if q.quantile_name == "MachineCreation")
        assert creation.max == 30000
        assert creation.count == 1

    def test_epoch_overrides_group_times(self):
        epoch = int((T0 - timedelta(seconds=10)).timestamp())
        machines = {"other-x1": _machine("other-x1", "uid-1")}
        signals = {"uid-1": _signal("uid-1", ready_s=0)}

        records, _ = calculate_metrics(_plan(), machines, signals, uuid="run-1", scale_event_epoch=epoch)

        assert records[0].node_ready_latency == 10000
        assert records[0].scale_event_timestamp == T0 - timedelta(seconds=10)

    def test_unknown_group_skipped(self):
        machines = {"ms-z-x1": _machine("ms-z-x1", "uid-1"), "nodash": _machine("nodash", "uid-2")}
        signals = {"uid-1": _signal("uid-1"), "uid-2": _signal("uid-2")}

        records, _ = calculate_metrics(_plan(), machines, signals, uuid="run-1")
        assert records == []

    def test_missing_machine_ready_excluded_from_one_dimension(self):
        machines = {
            "ms-a-x1": _machine("ms-a-x1", "uid-1"),
            "ms-a-x2": _machine("ms-a-x2", "uid-2", ready_s=None),
        }
        signals = {"uid-1": _signal("uid-1"), "uid-2": _signal("uid-2")}

        records, quantiles = calculate_metrics(_plan(), machines, signals, uuid="run-1")
        by_name = {q.quantile_name: q for q in quantiles}

        assert len(records) == 2
        assert records[1].machine_ready_latency is None
        assert by_name["MachineReady"].count == 1
        assert by_name["NodeReady"].count == 2

    def test_quantile_documents(self):
        machines = {"ms-a-x1": _machine("ms-a-x1", "uid-1")}
        signals = {"uid-1": _signal("uid-1")}

        records, quantiles = calculate_metrics(
            _plan(), machines, signals, uuid="run-1", ami_id="ami-1", metadata={"platform": "AWS"}
        )

        assert [q.quantile_name for q in quantiles] == [
            "MachineCreation",
            "MachineReady",
            "NodeCreation",
            "NodeReady",
        ]
        doc = records[0].to_dict()
        assert doc["metricName"] == "nodeReadyLatencyMeasurement"
        assert doc["amiID"] == "ami-1"
        assert doc["uuid"] == "run-1"
        assert doc["jobName"] == "workers-scale"
        assert doc["nodeName"] == "node-uid-1"
        assert doc["metadata"] == {"platform": "AWS"}
        qdoc = quantiles[0].to_dict()
        assert qdoc["metricName"] == "nodeReadyLatencyQuantilesMeasurement"
        assert {"P50", "P95", "P99", "min", "max", "avg"} <= set(qdoc)


class TestIndexing:
    """Tests for LocalIndexer and finalize_metrics()."""

    def test_local_indexer_writes_files(self, tmp_path):
        machines = {"ms-a-x1": _machine("ms-a-x1", "uid-1")}
        records, quantiles = calculate_metrics(_plan(), machines, {"uid-1": _signal("uid-1")}, uuid="u")
        indexer = LocalIndexer(tmp_path / "out")

        assert finalize_metrics(records, quantiles, indexer) is True

        data = json.loads((tmp_path / "out" / "nodeReadyLatencyMeasurement-workers-scale.json").read_text())
        assert data[0]["nodeReadyLatency"] == 150000
        assert len(indexer.load("nodeReadyLatencyQuantilesMeasurement", "workers-scale")) == 4

    def test_indexing_failure_reported(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        indexer = LocalIndexer(blocker / "sub")

        assert finalize_metrics([], [], indexer) is False
