"""
localcluster Hardware Detection - Memory Detection Module
"""

from pathlib import Path


class MemoryDetector:
    """Reads physical memory size from /proc/meminfo."""

    MEMINFO_PATH = Path("/proc/meminfo")

    def total_mib(self) -> int:
        """
        Total physical memory in MiB.

        Raises:
            OSError: If /proc/meminfo cannot be read
            ValueError: If MemTotal is missing or malformed
        """
        for line in self.MEMINFO_PATH.read_text().splitlines():
            if line.startswith("MemTotal:"):
                # "MemTotal:       16314616 kB"
                return int(line.split()[1]) // 1024
        raise ValueError(f"MemTotal not found in {self.MEMINFO_PATH}")
