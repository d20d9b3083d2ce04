"""
Linux distribution detection from os-release.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from common.exceptions import OSReleaseError

OS_RELEASE_PATHS = (Path("/etc/os-release"), Path("/usr/lib/os-release"))


class OsType:
    """Distribution IDs with dedicated handling."""
    UBUNTU = "ubuntu"
    RHEL = "rhel"
    CENTOS = "centos"
    FEDORA = "fedora"

    REDHAT_FAMILY = (RHEL, CENTOS, FEDORA)


@dataclass
class OsRelease:
    """Fields of interest from os-release(5)."""
    id: str
    name: str = ""
    version_id: str = ""
    id_like: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, content: str) -> "OsRelease":
        values: Dict[str, str] = {}
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, raw = line.split("=", 1)
            try:
                parts = shlex.split(raw)
            except ValueError:
                parts = [raw.strip("\"'")]
            values[key.strip()] = parts[0] if parts else ""

        return cls(
            id=values.get("ID", "").lower(),
            name=values.get("NAME", ""),
            version_id=values.get("VERSION_ID", ""),
            id_like=values.get("ID_LIKE", "").lower().split(),
        )

    @property
    def is_redhat_family(self) -> bool:
        return self.id in OsType.REDHAT_FAMILY


def get_os_release(path: Optional[Path] = None) -> OsRelease:
    """
    Read os-release.

    Raises:
        OSReleaseError: If no os-release file can be read
    """
    candidates = (path,) if path is not None else OS_RELEASE_PATHS
    last_error = "not found"
    for candidate in candidates:
        try:
            return OsRelease.parse(candidate.read_text(encoding="utf-8"))
        except OSError as e:
            last_error = str(e)
    raise OSReleaseError(str(candidates[-1]), last_error)
