"""
localcluster Preflight

Host checks run before the VM is started, during setup (with fixes)
and during cleanup.
"""

from .check import Check, CheckFlags
from .registry import (
    PreflightTables,
    build_all_checks,
    build_checks,
    default_tables,
    get_all_preflight_checks,
    get_preflight_checks,
)
from .runner import PreflightRunner

__all__ = [
    "Check",
    "CheckFlags",
    "PreflightTables",
    "build_all_checks",
    "build_checks",
    "default_tables",
    "get_all_preflight_checks",
    "get_preflight_checks",
    "PreflightRunner",
]
