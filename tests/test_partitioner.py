"""Tests for frame partitioning."""

import pytest

from framecast.exceptions import ConfigurationError
from framecast.render import partitioner
from framecast.render.partitioner import RenderPartition, partition_frames, resolve_worker_count


class TestPartitionFrames:
    """Tests for partition_frames."""

    def test_uneven_split(self):
        """Test 100 frames over 3 workers: the first worker takes the extra frame."""
        parts = partition_frames(100, 3)
        assert [(p.start_frame, p.end_frame) for p in parts] == [(0, 34), (34, 67), (67, 100)]
        assert [p.worker_index for p in parts] == [0, 1, 2]

    @pytest.mark.parametrize("total,workers", [(300, 4), (301, 4), (7, 7), (1, 1), (1000, 16), (0, 3)])
    def test_ranges_cover_every_frame_once(self, total, workers):
        """Test partitions are contiguous, disjoint and cover [0, total)."""
        parts = partition_frames(total, workers)

        assert len(parts) == workers
        covered = [frame for p in parts for frame in p.frames()]
        assert covered == list(range(total))
        sizes = [p.frame_count for p in parts]
        assert max(sizes) - min(sizes) <= 1

    def test_more_workers_than_frames(self):
        """Test trailing partitions are empty."""
        parts = partition_frames(2, 4)

        assert [p.frame_count for p in parts] == [1, 1, 0, 0]
        assert [p.is_empty for p in parts] == [False, False, True, True]
        assert list(parts[3].frames()) == []

    @pytest.mark.parametrize("workers", [0, -2])
    def test_rejects_non_positive_workers(self, workers):
        with pytest.raises(ConfigurationError):
            partition_frames(10, workers)

    def test_rejects_negative_total(self):
        with pytest.raises(ConfigurationError):
            partition_frames(-1, 2)

    def test_to_dict(self):
        assert RenderPartition(1, 34, 67).to_dict() == {
            "worker_index": 1,
            "start_frame": 34,
            "end_frame": 67,
        }


class TestResolveWorkerCount:
    """Tests for resolve_worker_count."""

    def test_explicit_count(self):
        assert resolve_worker_count(3) == 3

    @pytest.mark.parametrize("requested", [None, 0])
    def test_defaults_to_cpu_count(self, requested, monkeypatch):
        """Test 0/None resolve to one worker per CPU."""
        monkeypatch.setattr(partitioner.os, "cpu_count", lambda: 6)
        assert resolve_worker_count(requested) == 6

    def test_unknown_cpu_count(self, monkeypatch):
        monkeypatch.setattr(partitioner.os, "cpu_count", lambda: None)
        assert resolve_worker_count(None) == 1

    def test_negative_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_worker_count(-1)
        assert exc_info.value.location.field == "workers"
