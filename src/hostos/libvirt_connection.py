"""
Short-lived libvirt connections for environment checks.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

try:
    import libvirt
    LIBVIRT_AVAILABLE = True
except ImportError:
    LIBVIRT_AVAILABLE = False
    libvirt = None

from common.constants import DEFAULT_LIBVIRT_URI
from common.exceptions import LibvirtConnectionError

logger = logging.getLogger(__name__)


def _silence_errors(ctx, error) -> None:
    # libvirt prints every error to stderr unless a handler is installed
    logger.debug(f"libvirt: {error}")


@contextmanager
def open_connection(uri: str = DEFAULT_LIBVIRT_URI) -> Iterator["libvirt.virConnect"]:
    """
    Open a libvirt connection for the duration of a block.

    Usage:
        with open_connection() as conn:
            conn.networkLookupByName("localcluster")

    Raises:
        LibvirtConnectionError: If libvirt-python is missing or the connection fails
    """
    if not LIBVIRT_AVAILABLE:
        raise LibvirtConnectionError(
            uri, RuntimeError("libvirt-python is not installed")
        )

    libvirt.registerErrorHandler(_silence_errors, None)
    try:
        conn = libvirt.open(uri)
    except libvirt.libvirtError as e:
        raise LibvirtConnectionError(uri, e) from e
    if conn is None:
        raise LibvirtConnectionError(uri)

    logger.debug(f"Connected to libvirt: {uri}")
    try:
        yield conn
    finally:
        try:
            conn.close()
        except libvirt.libvirtError as e:
            logger.debug(f"Error closing libvirt connection: {e}")


def lookup_network(conn, name: str):
    """Return the named virtual network, or None if it is not defined."""
    try:
        return conn.networkLookupByName(name)
    except libvirt.libvirtError as e:
        if e.get_error_code() == libvirt.VIR_ERR_NO_NETWORK:
            return None
        raise


def lookup_domain(conn, name: str):
    """Return the named domain, or None if it is not defined."""
    try:
        return conn.lookupByName(name)
    except libvirt.libvirtError as e:
        if e.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN:
            return None
        raise


def undefine_domain(domain) -> None:
    """Undefine a domain together with its NVRAM, if the hypervisor has one."""
    try:
        domain.undefineFlags(libvirt.VIR_DOMAIN_UNDEFINE_NVRAM)
    except libvirt.libvirtError:
        # Not every hypervisor accepts the NVRAM flag
        domain.undefine()
