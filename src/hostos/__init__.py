"""
Host operating system primitives: commands, privilege elevation,
distribution detection and libvirt connections.
"""

from .exec import (
    run,
    run_with_default_locale,
    run_with_privilege,
    write_file_as_root,
    remove_file_as_root,
)
from .linux import OsRelease, OsType, get_os_release

__all__ = [
    "run",
    "run_with_default_locale",
    "run_with_privilege",
    "write_file_as_root",
    "remove_file_as_root",
    "OsRelease",
    "OsType",
    "get_os_release",
]
