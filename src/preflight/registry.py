"""
Preflight Registry Builder

Decides which checks apply to this host from its distribution and the
configured network mode. When in the run a check fires (setup or
cleanup) is left to the runner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from common.config import Config, NetworkMode
from common.exceptions import OSReleaseError
from hostos.linux import OsType, get_os_release

from .check import Check
from .checks_generic import generic_checks, non_windows_checks
from .checks_libvirt import libvirt_checks, vsock_check
from .checks_redhat import redhat_checks

logger = logging.getLogger(__name__)

UNKNOWN_DISTRO = "unknown"


@dataclass(frozen=True)
class PreflightTables:
    """Read-only check tables, built once and shared by every build."""
    generic: Tuple[Check, ...]
    non_windows: Tuple[Check, ...]
    libvirt: Tuple[Check, ...]
    vsock: Check
    redhat: Tuple[Check, ...]


def default_tables(config: Config, distro: str = "") -> PreflightTables:
    return PreflightTables(
        generic=generic_checks(config),
        non_windows=non_windows_checks(),
        libvirt=libvirt_checks(config.libvirt_uri, distro),
        vsock=vsock_check(),
        redhat=redhat_checks(),
    )


def common_checks(tables: PreflightTables) -> List[Check]:
    return [*tables.generic, *tables.non_windows, *tables.libvirt]


def build_checks(
    tables: PreflightTables,
    distro: str,
    network_mode: NetworkMode,
) -> List[Check]:
    """
    Ordered checks for a distribution and network mode.

    Unrecognized distributions are treated like the Red Hat family.
    """
    checks = common_checks(tables)

    if network_mode == NetworkMode.VSOCK:
        checks.append(tables.vsock)

    if distro == OsType.UBUNTU:
        pass
    elif distro in OsType.REDHAT_FAMILY:
        if network_mode == NetworkMode.DEFAULT:
            checks.extend(tables.redhat)
    else:
        logger.warning(f"distribution-specific preflight checks are not implemented for {distro}")
        if network_mode == NetworkMode.DEFAULT:
            checks.extend(tables.redhat)

    return checks


def build_all_checks(tables: PreflightTables, distro: str) -> List[Check]:
    """
    Every check that can apply to this distribution, regardless of
    network mode. Used to enumerate configurable check keys.
    """
    checks = build_checks(tables, distro, NetworkMode.DEFAULT)
    checks.append(tables.vsock)
    return checks


def detect_distro() -> str:
    try:
        return get_os_release().id or UNKNOWN_DISTRO
    except OSReleaseError as e:
        logger.warning(f"cannot get distribution name: {e}")
        return UNKNOWN_DISTRO


def get_preflight_checks(config: Config, distro: Optional[str] = None) -> List[Check]:
    distro = distro if distro is not None else detect_distro()
    return build_checks(default_tables(config, distro), distro, config.network_mode)


def get_all_preflight_checks(config: Config, distro: Optional[str] = None) -> List[Check]:
    distro = distro if distro is not None else detect_distro()
    return build_all_checks(default_tables(config, distro), distro)
