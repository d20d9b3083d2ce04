"""
Platform-independent and POSIX-only preflight checks.
"""

from __future__ import annotations

import logging
import os
from typing import Tuple

from common.config import Config
from common.constants import APP_NAME
from common.exceptions import PreflightCheckError
from hardware_detect import CPUDetector, MemoryDetector

from .check import Check

logger = logging.getLogger(__name__)


def check_memory(required_mib: int) -> None:
    total = MemoryDetector().total_mib()
    logger.debug(f"Physical memory: {total} MiB, required: {required_mib} MiB")
    if total < required_mib:
        raise PreflightCheckError(
            f"Only {total} MiB of memory found, at least {required_mib} MiB are required",
            check="check-ram",
        )


def check_cpus(required: int) -> None:
    threads = CPUDetector().detect().threads
    logger.debug(f"Online CPUs: {threads}, required: {required}")
    if threads < required:
        raise PreflightCheckError(
            f"Only {threads} CPU(s) found, at least {required} are required",
            check="check-cpus",
        )


def check_running_as_non_root() -> None:
    if os.geteuid() == 0:
        raise PreflightCheckError(
            f"{APP_NAME} should be run as a normal user, not as root",
            check="check-root-user",
        )


def generic_checks(config: Config) -> Tuple[Check, ...]:
    """Checks meaningful on every platform."""
    return (
        Check(
            config_key_suffix="check-ram",
            check_description="Checking minimum RAM requirements",
            check=lambda: check_memory(config.memory),
            fix_description="Checking minimum RAM requirements",
            fix=lambda: check_memory(config.memory),
        ),
        Check(
            config_key_suffix="check-cpus",
            check_description="Checking minimum CPU requirements",
            check=lambda: check_cpus(config.cpus),
            fix_description="Checking minimum CPU requirements",
            fix=lambda: check_cpus(config.cpus),
        ),
    )


def non_windows_checks() -> Tuple[Check, ...]:
    """Checks meaningful on POSIX hosts only."""
    return (
        Check(
            config_key_suffix="check-root-user",
            check_description="Checking if running as non-root",
            check=check_running_as_non_root,
            fix_description="Checking if running as non-root",
            fix=check_running_as_non_root,
        ),
    )
