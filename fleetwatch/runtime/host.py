"""HostMetricsSource — CPU counters, zombie count and load from /proc."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CpuCounters:
    """Cumulative jiffies from the aggregate ``cpu`` line of /proc/stat."""

    total: int
    active: int


def cpu_percent(prev: CpuCounters, cur: CpuCounters) -> float:
    """Utilisation between two readings; 0 when no time has passed."""
    diff_total = cur.total - prev.total
    diff_active = cur.active - prev.active
    if diff_total <= 0:
        return 0.0
    return max(0.0, min(100.0, diff_active * 100.0 / diff_total))


class HostMetricsSource:
    """Reads host metrics from a procfs root (overridable for tests)."""

    def __init__(self, proc_root: str | Path = "/proc") -> None:
        self._root = Path(proc_root)

    def read_cpu_counters(self) -> CpuCounters:
        """Return (total, active) jiffies.

        total = user + nice + system + idle + iowait; active = user + nice + system.
        Raises OSError/ValueError when /proc/stat is unreadable.
        """
        raw = (self._root / "stat").read_text(encoding="utf-8")
        for line in raw.splitlines():
            if not line.startswith("cpu "):
                continue
            nums = [int(p) for p in line.split()[1:6]]
            if len(nums) < 4:
                break
            user, nice, system, idle = nums[:4]
            iowait = nums[4] if len(nums) > 4 else 0
            return CpuCounters(total=user + nice + system + idle + iowait, active=user + nice + system)
        raise ValueError("no aggregate cpu line in /proc/stat")

    def zombie_count(self) -> int:
        """Count processes in state ``Z`` by scanning /proc/<pid>/stat."""
        count = 0
        for entry in self._root.iterdir():
            if not entry.name.isdigit():
                continue
            try:
                raw = (entry / "stat").read_text(encoding="utf-8")
            except OSError:
                continue  # process exited mid-scan
            # comm may contain spaces/parens; state follows the last ')'
            tail = raw.rpartition(")")[2].split()
            if tail and tail[0] == "Z":
                count += 1
        return count

    def load_average(self) -> str:
        try:
            return (self._root / "loadavg").read_text(encoding="utf-8").split()[0]
        except (OSError, IndexError):
            return "n/a"
