"""
Preflight checks for Red Hat family hosts (RHEL, CentOS, Fedora).

On these hosts name resolution for the cluster domains goes through
NetworkManager's dnsmasq plugin.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Tuple

from common.constants import (
    CLUSTER_DOMAINS,
    DNSMASQ_CONFIG_PATH,
    NM_CONFIG_PATH,
    VM_IP,
)
from common.exceptions import CommandError, PreflightCheckError
from hostos.exec import (
    remove_file_as_root,
    run_with_default_locale,
    run_with_privilege,
    write_file_as_root,
)

from .check import Check
from .templates import get_template_loader

logger = logging.getLogger(__name__)


def _service_active(service: str) -> bool:
    try:
        stdout, _ = run_with_default_locale("systemctl", "is-active", service)
    except CommandError:
        return False
    return stdout.strip() == "active"


def _reload_network_manager() -> None:
    run_with_privilege("reload NetworkManager", "systemctl", "reload", "NetworkManager")


def _check_file_content(path: Path, expected: str, check: str) -> None:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise PreflightCheckError(f"{path} does not exist", check=check) from None
    if content != expected:
        raise PreflightCheckError(f"{path} has unexpected content", check=check)


def _remove_file(path: Path) -> None:
    if not path.exists():
        logger.debug(f"{path} already removed")
        return
    remove_file_as_root(f"remove {path}", path)
    _reload_network_manager()


def nm_config_content() -> str:
    return get_template_loader().render("nm-dnsmasq.conf.j2")


def dnsmasq_config_content() -> str:
    return get_template_loader().render(
        "dnsmasq.conf.j2", domains=CLUSTER_DOMAINS, vm_ip=VM_IP
    )


def check_systemd_networkd_not_running() -> None:
    if _service_active("systemd-networkd"):
        raise PreflightCheckError(
            "systemd-networkd is running", check="check-systemd-networkd-running"
        )


def fix_systemd_networkd_not_running() -> None:
    raise PreflightCheckError(
        "Network configuration with systemd-networkd is not supported; "
        "disable it with 'systemctl disable --now systemd-networkd'",
        check="check-systemd-networkd-running",
    )


def check_network_manager_installed() -> None:
    if shutil.which("nmcli") is None:
        raise PreflightCheckError(
            "NetworkManager cli nmcli was not found in PATH",
            check="check-network-manager-installed",
        )


def fix_network_manager_installed() -> None:
    raise PreflightCheckError(
        "NetworkManager is required and must be installed manually",
        check="check-network-manager-installed",
    )


def check_network_manager_running() -> None:
    if not _service_active("NetworkManager"):
        raise PreflightCheckError(
            "NetworkManager.service is not running", check="check-network-manager-running"
        )


def fix_network_manager_running() -> None:
    run_with_privilege("start NetworkManager", "systemctl", "start", "NetworkManager")


def check_network_manager_config() -> None:
    _check_file_content(NM_CONFIG_PATH, nm_config_content(), "check-network-manager-config")


def fix_network_manager_config() -> None:
    write_file_as_root(f"write {NM_CONFIG_PATH}", nm_config_content(), NM_CONFIG_PATH)
    _reload_network_manager()


def remove_network_manager_config() -> None:
    _remove_file(NM_CONFIG_PATH)


def check_dnsmasq_config() -> None:
    _check_file_content(
        DNSMASQ_CONFIG_PATH, dnsmasq_config_content(), "check-localcluster-dnsmasq-file"
    )


def fix_dnsmasq_config() -> None:
    write_file_as_root(
        f"write {DNSMASQ_CONFIG_PATH}", dnsmasq_config_content(), DNSMASQ_CONFIG_PATH
    )
    _reload_network_manager()


def remove_dnsmasq_config() -> None:
    _remove_file(DNSMASQ_CONFIG_PATH)


def redhat_checks() -> Tuple[Check, ...]:
    """Package-manager and NetworkManager checks for the Red Hat family."""
    return (
        Check(
            config_key_suffix="check-systemd-networkd-running",
            check_description="Checking if systemd-networkd is running",
            check=check_systemd_networkd_not_running,
            fix_description="Network configuration with systemd-networkd is not supported",
            fix=fix_systemd_networkd_not_running,
        ),
        Check(
            config_key_suffix="check-network-manager-installed",
            check_description="Checking if NetworkManager is installed",
            check=check_network_manager_installed,
            fix_description="Checking if NetworkManager is installed",
            fix=fix_network_manager_installed,
        ),
        Check(
            config_key_suffix="check-network-manager-running",
            check_description="Checking if NetworkManager service is running",
            check=check_network_manager_running,
            fix_description="Starting NetworkManager service",
            fix=fix_network_manager_running,
        ),
        Check(
            config_key_suffix="check-network-manager-config",
            check_description="Checking if NetworkManager dnsmasq plugin is configured",
            check=check_network_manager_config,
            fix_description="Writing NetworkManager config for dnsmasq",
            fix=fix_network_manager_config,
            cleanup_description="Removing NetworkManager config for dnsmasq",
            cleanup=remove_network_manager_config,
        ),
        Check(
            config_key_suffix="check-localcluster-dnsmasq-file",
            check_description="Checking if dnsmasq configuration for the cluster domains exists",
            check=check_dnsmasq_config,
            fix_description="Writing dnsmasq config for the cluster domains",
            fix=fix_dnsmasq_config,
            cleanup_description="Removing dnsmasq config for the cluster domains",
            cleanup=remove_dnsmasq_config,
        ),
    )
