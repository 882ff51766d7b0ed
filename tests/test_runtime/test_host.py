"""Tests for HostMetricsSource — /proc/stat counters, zombie scan, load average."""

from __future__ import annotations

from pathlib import Path

import pytest

from fleetwatch.runtime.host import CpuCounters, HostMetricsSource, cpu_percent


def _proc(tmp_path: Path, stat: str = "cpu  100 0 50 800 50 0 0 0 0 0\ncpu0 1 2 3 4\n") -> Path:
    root = tmp_path / "proc"
    root.mkdir()
    (root / "stat").write_text(stat)
    (root / "loadavg").write_text("0.42 0.30 0.20 1/123 4567\n")
    return root


def _pid(root: Path, pid: int, comm: str, state: str) -> None:
    d = root / str(pid)
    d.mkdir()
    (d / "stat").write_text(f"{pid} ({comm}) {state} 1 {pid} {pid} 0 -1\n")


class TestCpu:
    def test_counters_from_aggregate_line(self, tmp_path: Path) -> None:
        src = HostMetricsSource(_proc(tmp_path))
        assert src.read_cpu_counters() == CpuCounters(total=1000, active=150)

    def test_missing_aggregate_line(self, tmp_path: Path) -> None:
        src = HostMetricsSource(_proc(tmp_path, stat="cpu0 1 2 3 4\n"))
        with pytest.raises(ValueError):
            src.read_cpu_counters()

    def test_percent_from_delta(self) -> None:
        assert cpu_percent(CpuCounters(1000, 150), CpuCounters(1100, 210)) == pytest.approx(60.0)

    def test_percent_no_elapsed_time(self) -> None:
        assert cpu_percent(CpuCounters(1000, 150), CpuCounters(1000, 150)) == 0.0


class TestZombies:
    def test_counts_state_z_only(self, tmp_path: Path) -> None:
        root = _proc(tmp_path)
        _pid(root, 10, "bash", "S")
        _pid(root, 11, "defunct worker", "Z")
        _pid(root, 12, "weird) (name", "Z")
        _pid(root, 13, "ruby", "R")
        (root / "self").mkdir()
        assert HostMetricsSource(root).zombie_count() == 2


class TestLoad:
    def test_load_average(self, tmp_path: Path) -> None:
        assert HostMetricsSource(_proc(tmp_path)).load_average() == "0.42"

    def test_load_average_unavailable(self, tmp_path: Path) -> None:
        assert HostMetricsSource(tmp_path).load_average() == "n/a"
