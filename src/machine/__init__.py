"""
localcluster machine layer

Host lifecycle state machine on top of pluggable virtualization drivers.
"""

from .drivers import Driver, RemoteDriver, machine_in_state
from .host import Host, HostMetadata, HostOptions, validate_host_name
from .plugin import PluginClient
from .state import State
from .wait import CancelToken, wait_for

__all__ = [
    "Driver",
    "RemoteDriver",
    "machine_in_state",
    "Host",
    "HostMetadata",
    "HostOptions",
    "validate_host_name",
    "PluginClient",
    "State",
    "CancelToken",
    "wait_for",
]
