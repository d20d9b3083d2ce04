"""
Preflight checks for the KVM/libvirt virtualization stack.

Covers hardware virtualization, KVM, the libvirt daemon and its
version, the driver plugin, the dedicated virtual network, the vsock
transport, and removal of the managed VM on cleanup.
"""

from __future__ import annotations

import getpass
import grp
import logging
import os
import pwd
import re
import shutil
import sys
import uuid
from functools import partial
from pathlib import Path
from typing import Tuple

from common.constants import (
    APP_NAME,
    DEFAULT_HOST_NAME,
    LIBVIRT_BRIDGE_NAME,
    LIBVIRT_DRIVER_COMMAND,
    LIBVIRT_DRIVER_PATH,
    LIBVIRT_GROUP,
    LIBVIRT_NETWORK_NAME,
    MIN_LIBVIRT_VERSION,
    NETWORK_GATEWAY_IP,
    OBSOLETE_LIBVIRT_DRIVER_PATH,
    VM_IP,
    VM_MAC_ADDRESS,
    VSOCK_DEVICE,
)
from common.exceptions import CommandError, PreflightCheckError
from hardware_detect import CPUDetector
from hostos.exec import run_with_default_locale, run_with_privilege
from hostos.libvirt_connection import (
    lookup_domain,
    lookup_network,
    open_connection,
    undefine_domain,
)
from hostos.linux import OsType
from utils.atomic_write import atomic_write_bytes

from .check import Check, CheckFlags
from .templates import get_template_loader

logger = logging.getLogger(__name__)

KVM_DEVICE = Path("/dev/kvm")
VSOCK_CAPABILITY = "cap_net_bind_service+eip"

UBUNTU_LIBVIRT_PACKAGES = ("libvirt-daemon-system", "libvirt-clients", "qemu-kvm")
REDHAT_LIBVIRT_PACKAGES = ("libvirt", "libvirt-daemon-kvm", "qemu-kvm")


def _version_string(version: Tuple[int, ...]) -> str:
    return ".".join(str(part) for part in version)


def parse_libvirt_version(output: str) -> Tuple[int, int, int]:
    """Parse ``virsh -v`` output such as "6.0.0"."""
    match = re.search(r"(\d+)\.(\d+)\.(\d+)", output)
    if not match:
        raise PreflightCheckError(
            f"Cannot parse libvirt version from {output.strip()!r}",
            check="check-libvirt-version",
        )
    return tuple(int(part) for part in match.groups())


# ============ Virtualization ============

def check_virtualization_enabled() -> None:
    cpu = CPUDetector().detect()
    if not cpu.has_virtualization:
        raise PreflightCheckError(
            "Virtualization is not available for your CPU",
            check="check-virt-enabled",
        )


def fix_virtualization_enabled() -> None:
    raise PreflightCheckError(
        "You need to enable virtualization (VT-x/AMD-V) in your BIOS",
        check="check-virt-enabled",
    )


def check_kvm_enabled() -> None:
    if not KVM_DEVICE.exists():
        raise PreflightCheckError(f"{KVM_DEVICE} is missing", check="check-kvm-enabled")


def fix_kvm_enabled() -> None:
    module = CPUDetector().detect().kvm_module
    run_with_privilege(f"modprobe {module}", "modprobe", module)


# ============ libvirt daemon ============

def check_libvirt_installed() -> None:
    if shutil.which("virsh") is None:
        raise PreflightCheckError(
            "libvirt was not found in PATH", check="check-libvirt-installed"
        )


def fix_libvirt_installed(distro: str) -> None:
    if distro == OsType.UBUNTU:
        run_with_privilege(
            "install libvirt packages", "apt-get", "install", "-y", *UBUNTU_LIBVIRT_PACKAGES
        )
    else:
        run_with_privilege(
            "install libvirt packages", "yum", "install", "-y", *REDHAT_LIBVIRT_PACKAGES
        )


def check_user_part_of_libvirt_group() -> None:
    user = getpass.getuser()
    try:
        group = grp.getgrnam(LIBVIRT_GROUP)
    except KeyError:
        raise PreflightCheckError(
            f"The {LIBVIRT_GROUP!r} group does not exist",
            check="check-user-in-libvirt-group",
        ) from None

    try:
        primary_gid = pwd.getpwnam(user).pw_gid
    except KeyError:
        raise PreflightCheckError(
            f"User {user!r} has no passwd entry",
            check="check-user-in-libvirt-group",
        ) from None

    if group.gr_gid in os.getgrouplist(user, primary_gid):
        return
    raise PreflightCheckError(
        f"{user} is not part of the {LIBVIRT_GROUP!r} group",
        check="check-user-in-libvirt-group",
    )


def fix_user_part_of_libvirt_group() -> None:
    user = getpass.getuser()
    run_with_privilege(
        f"add {user} to the {LIBVIRT_GROUP} group",
        "usermod", "-a", "-G", LIBVIRT_GROUP, user,
    )


def check_libvirt_service_running() -> None:
    try:
        stdout, _ = run_with_default_locale("systemctl", "is-active", "libvirtd")
    except CommandError as e:
        raise PreflightCheckError(
            "libvirtd.service is not running", check="check-libvirt-running", cause=e
        ) from e
    if stdout.strip() != "active":
        raise PreflightCheckError(
            "libvirtd.service is not running", check="check-libvirt-running"
        )


def fix_libvirt_service_running() -> None:
    run_with_privilege("start libvirtd service", "systemctl", "start", "libvirtd")


def check_libvirt_version() -> None:
    stdout, _ = run_with_default_locale("virsh", "-v")
    version = parse_libvirt_version(stdout)
    logger.debug(f"libvirt version: {_version_string(version)}")
    if version < MIN_LIBVIRT_VERSION:
        raise PreflightCheckError(
            f"libvirt v{_version_string(MIN_LIBVIRT_VERSION)} or newer is required "
            f"and {_version_string(version)} is installed",
            check="check-libvirt-version",
        )


def fix_libvirt_version() -> None:
    raise PreflightCheckError(
        f"libvirt v{_version_string(MIN_LIBVIRT_VERSION)} or newer must be installed manually",
        check="check-libvirt-version",
    )


# ============ Driver plugin ============

def check_machine_driver_libvirt_installed() -> None:
    if not LIBVIRT_DRIVER_PATH.is_file() or not os.access(LIBVIRT_DRIVER_PATH, os.X_OK):
        raise PreflightCheckError(
            f"{LIBVIRT_DRIVER_PATH} is missing or not executable",
            check="check-libvirt-driver",
        )


def fix_machine_driver_libvirt_installed() -> None:
    # Release archives ship the plugin next to the CLI entry point
    candidates = [Path(sys.argv[0]).resolve().parent / LIBVIRT_DRIVER_COMMAND]
    on_path = shutil.which(LIBVIRT_DRIVER_COMMAND)
    if on_path:
        candidates.append(Path(on_path))

    for source in candidates:
        if source.is_file() and source.resolve() != LIBVIRT_DRIVER_PATH.resolve():
            logger.debug(f"Installing {source} to {LIBVIRT_DRIVER_PATH}")
            atomic_write_bytes(LIBVIRT_DRIVER_PATH, source.read_bytes(), mode=0o755)
            return

    raise PreflightCheckError(
        f"Cannot find {LIBVIRT_DRIVER_COMMAND} to install",
        check="check-libvirt-driver",
    )


def check_old_machine_driver_libvirt_installed() -> None:
    if OBSOLETE_LIBVIRT_DRIVER_PATH.exists():
        raise PreflightCheckError(
            f"Found obsolete system-wide driver at {OBSOLETE_LIBVIRT_DRIVER_PATH}",
            check="check-obsolete-libvirt-driver",
        )


def fix_old_machine_driver_libvirt_installed() -> None:
    run_with_privilege(
        f"remove {OBSOLETE_LIBVIRT_DRIVER_PATH}",
        "rm", "-f", str(OBSOLETE_LIBVIRT_DRIVER_PATH),
    )


# ============ Virtual network ============

def render_network_xml() -> str:
    return get_template_loader().render(
        "network.xml.j2",
        network_name=LIBVIRT_NETWORK_NAME,
        uuid=str(uuid.uuid4()),
        bridge=LIBVIRT_BRIDGE_NAME,
        gateway=NETWORK_GATEWAY_IP,
        vm_mac=VM_MAC_ADDRESS,
        vm_ip=VM_IP,
    )


def check_libvirt_network_available(uri: str) -> None:
    with open_connection(uri) as conn:
        if lookup_network(conn, LIBVIRT_NETWORK_NAME) is None:
            raise PreflightCheckError(
                f"libvirt network {LIBVIRT_NETWORK_NAME!r} is not defined",
                check="check-localcluster-network",
            )


def fix_libvirt_network_available(uri: str) -> None:
    xml = render_network_xml()
    with open_connection(uri) as conn:
        network = conn.networkDefineXML(xml)
        network.setAutostart(1)
    logger.debug(f"Defined libvirt network {LIBVIRT_NETWORK_NAME!r}")


def remove_libvirt_network(uri: str) -> None:
    with open_connection(uri) as conn:
        network = lookup_network(conn, LIBVIRT_NETWORK_NAME)
        if network is None:
            logger.debug(f"libvirt network {LIBVIRT_NETWORK_NAME!r} does not exist")
            return
        if network.isActive():
            network.destroy()
        network.undefine()


def check_libvirt_network_active(uri: str) -> None:
    with open_connection(uri) as conn:
        network = lookup_network(conn, LIBVIRT_NETWORK_NAME)
        if network is None or not network.isActive():
            raise PreflightCheckError(
                f"libvirt network {LIBVIRT_NETWORK_NAME!r} is not active",
                check="check-localcluster-network-active",
            )


def fix_libvirt_network_active(uri: str) -> None:
    with open_connection(uri) as conn:
        network = lookup_network(conn, LIBVIRT_NETWORK_NAME)
        if network is None:
            raise PreflightCheckError(
                f"libvirt network {LIBVIRT_NETWORK_NAME!r} is not defined",
                check="check-localcluster-network-active",
            )
        network.create()


# ============ Managed VM ============

def remove_vm(uri: str, name: str = DEFAULT_HOST_NAME) -> None:
    with open_connection(uri) as conn:
        domain = lookup_domain(conn, name)
        if domain is None:
            logger.debug(f"VM {name!r} does not exist")
            return
        if domain.isActive():
            domain.destroy()
        undefine_domain(domain)
    logger.debug(f"Removed VM {name!r}")


# ============ vsock ============

def _executable() -> str:
    """
    The localcluster binary that receives the vsock capability.

    Only a standalone build owns its executable. From a Python install
    the process runs the shared interpreter, which must never be given
    the capability.

    Raises:
        PreflightCheckError: If not running as a standalone build
    """
    if not getattr(sys, "frozen", False):
        raise PreflightCheckError(
            f"vsock networking requires the standalone {APP_NAME} binary; "
            f"refusing to grant capabilities to the Python interpreter {sys.executable}",
            check="check-vsock",
        )
    # setcap refuses symlinks
    return os.path.realpath(sys.executable)


def check_vsock() -> None:
    executable = _executable()
    stdout, _ = run_with_default_locale("getcap", executable)
    if VSOCK_CAPABILITY not in stdout:
        raise PreflightCheckError(
            f"capabilities are not correct for {executable}", check="check-vsock"
        )

    info = os.stat(VSOCK_DEVICE)
    try:
        group = grp.getgrgid(info.st_gid).gr_name
    except KeyError:
        raise PreflightCheckError(
            f"{VSOCK_DEVICE} is owned by unknown group {info.st_gid}", check="check-vsock"
        ) from None
    if group != LIBVIRT_GROUP:
        raise PreflightCheckError(
            f"{VSOCK_DEVICE} is not in the right group", check="check-vsock"
        )
    if info.st_mode & 0o060 != 0o060:
        raise PreflightCheckError(
            f"{VSOCK_DEVICE} doesn't have the right permissions", check="check-vsock"
        )


def fix_vsock() -> None:
    executable = _executable()
    run_with_privilege(
        "setcap cap_net_bind_service=+eip", "setcap", "cap_net_bind_service=+eip", executable
    )
    run_with_privilege("modprobe vhost_vsock", "modprobe", "vhost_vsock")
    run_with_privilege(
        f"chown {VSOCK_DEVICE}", "chown", f"root:{LIBVIRT_GROUP}", str(VSOCK_DEVICE)
    )
    run_with_privilege(f"chmod {VSOCK_DEVICE}", "chmod", "g+rw", str(VSOCK_DEVICE))


# ============ Tables ============

def libvirt_checks(uri: str, distro: str) -> Tuple[Check, ...]:
    """Checks for the libvirt stack, in dependency order."""
    return (
        Check(
            config_key_suffix="check-virt-enabled",
            check_description="Checking if Virtualization is enabled",
            check=check_virtualization_enabled,
            fix_description="Setting up virtualization",
            fix=fix_virtualization_enabled,
        ),
        Check(
            config_key_suffix="check-kvm-enabled",
            check_description="Checking if KVM is enabled",
            check=check_kvm_enabled,
            fix_description="Setting up KVM",
            fix=fix_kvm_enabled,
        ),
        Check(
            config_key_suffix="check-libvirt-installed",
            check_description="Checking if libvirt is installed",
            check=check_libvirt_installed,
            fix_description="Installing libvirt service and dependencies",
            fix=partial(fix_libvirt_installed, distro),
        ),
        Check(
            config_key_suffix="check-user-in-libvirt-group",
            check_description="Checking if user is part of libvirt group",
            check=check_user_part_of_libvirt_group,
            fix_description="Adding user to libvirt group",
            fix=fix_user_part_of_libvirt_group,
        ),
        Check(
            config_key_suffix="check-libvirt-running",
            check_description="Checking if libvirt daemon is running",
            check=check_libvirt_service_running,
            fix_description="Starting libvirt service",
            fix=fix_libvirt_service_running,
        ),
        Check(
            config_key_suffix="check-libvirt-version",
            check_description="Checking if a supported libvirt version is installed",
            check=check_libvirt_version,
            fix_description="Installing a supported libvirt version",
            fix=fix_libvirt_version,
        ),
        Check(
            config_key_suffix="check-libvirt-driver",
            check_description=f"Checking if {LIBVIRT_DRIVER_COMMAND} is installed",
            check=check_machine_driver_libvirt_installed,
            fix_description=f"Installing {LIBVIRT_DRIVER_COMMAND}",
            fix=fix_machine_driver_libvirt_installed,
        ),
        Check(
            config_key_suffix="check-obsolete-libvirt-driver",
            check_description=f"Checking for obsolete {LIBVIRT_DRIVER_COMMAND}",
            check=check_old_machine_driver_libvirt_installed,
            fix_description=f"Removing older system-wide {LIBVIRT_DRIVER_COMMAND}",
            fix=fix_old_machine_driver_libvirt_installed,
            flags=CheckFlags.SETUP_ONLY,
        ),
        Check(
            config_key_suffix="check-localcluster-network",
            check_description=f"Checking if libvirt {LIBVIRT_NETWORK_NAME!r} network is available",
            check=partial(check_libvirt_network_available, uri),
            fix_description=f"Setting up libvirt {LIBVIRT_NETWORK_NAME!r} network",
            fix=partial(fix_libvirt_network_available, uri),
            cleanup_description=f"Removing {LIBVIRT_NETWORK_NAME!r} network from libvirt",
            cleanup=partial(remove_libvirt_network, uri),
        ),
        Check(
            config_key_suffix="check-localcluster-network-active",
            check_description=f"Checking if libvirt {LIBVIRT_NETWORK_NAME!r} network is active",
            check=partial(check_libvirt_network_active, uri),
            fix_description=f"Starting libvirt {LIBVIRT_NETWORK_NAME!r} network",
            fix=partial(fix_libvirt_network_active, uri),
        ),
        Check(
            cleanup_description=f"Removing the {DEFAULT_HOST_NAME} VM if exists",
            cleanup=partial(remove_vm, uri),
            flags=CheckFlags.CLEANUP_ONLY,
        ),
    )


def vsock_check() -> Check:
    return Check(
        config_key_suffix="check-vsock",
        check_description="Checking if vsock is correctly configured",
        check=check_vsock,
        fix_description="Setting up vsock support",
        fix=fix_vsock,
    )
