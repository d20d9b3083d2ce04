"""
Names, paths and limits shared across localcluster.
"""

from __future__ import annotations

from pathlib import Path

APP_NAME = "localcluster"

# Managed VM and its libvirt resources
DEFAULT_HOST_NAME = "localcluster"
LIBVIRT_NETWORK_NAME = "localcluster"
LIBVIRT_BRIDGE_NAME = "lcbr0"
LIBVIRT_GROUP = "libvirt"
DEFAULT_LIBVIRT_URI = "qemu:///system"

NETWORK_SUBNET = "192.168.130"
NETWORK_GATEWAY_IP = f"{NETWORK_SUBNET}.1"
VM_IP = f"{NETWORK_SUBNET}.11"
VM_MAC_ADDRESS = "52:fd:fc:07:21:82"
CLUSTER_DOMAINS = ("apps-localcluster.testing", "localcluster.testing")

MIN_LIBVIRT_VERSION = (3, 4, 0)

# Resource defaults (MiB / count)
DEFAULT_MEMORY = 9216
DEFAULT_CPUS = 4

# Per-user state
STATE_DIR = Path.home() / f".{APP_NAME}"
BIN_DIR = STATE_DIR / "bin"
CONFIG_DIR = Path.home() / ".config" / APP_NAME
CONFIG_FILE = CONFIG_DIR / "config.json"

# Driver plugin
LIBVIRT_DRIVER_COMMAND = f"{APP_NAME}-driver-libvirt"
LIBVIRT_DRIVER_PATH = BIN_DIR / LIBVIRT_DRIVER_COMMAND
# Location used by releases that installed the driver system-wide
OBSOLETE_LIBVIRT_DRIVER_PATH = Path("/usr/local/bin") / LIBVIRT_DRIVER_COMMAND

# NetworkManager integration (Red Hat family)
NM_CONFIG_DIR = Path("/etc/NetworkManager/conf.d")
NM_DNSMASQ_CONFIG_DIR = Path("/etc/NetworkManager/dnsmasq.d")
NM_CONFIG_PATH = NM_CONFIG_DIR / f"{APP_NAME}-nm-dnsmasq.conf"
DNSMASQ_CONFIG_PATH = NM_DNSMASQ_CONFIG_DIR / f"{APP_NAME}.conf"

VSOCK_DEVICE = Path("/dev/vsock")
