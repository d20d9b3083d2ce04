"""
Driver capability contract.

A driver runs one VM on one virtualization technology. Drivers either
live in-process (subclass Driver directly) or in a separate plugin
process reached through RemoteDriver.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Protocol

from common.exceptions import DriverNotImplementedError, RemoteCallError

from .state import State

logger = logging.getLogger(__name__)

# Text a remote backend sends when it lacks a capability
NOT_IMPLEMENTED_MESSAGE = "Not Implemented"


class Driver(ABC):
    """
    Operations a virtualization backend must provide.

    Actions may return before the VM reaches its new state; callers
    poll get_state() to confirm. get_state() must be cheap and free of
    side effects.
    """

    @abstractmethod
    def driver_name(self) -> str:
        ...

    @abstractmethod
    def start(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def kill(self) -> None:
        ...

    @abstractmethod
    def restart(self) -> None:
        ...

    @abstractmethod
    def get_state(self) -> State:
        ...

    @abstractmethod
    def get_url(self) -> str:
        ...

    def update_config_raw(self, raw_config: bytes) -> None:
        """Apply a serialized driver configuration."""
        raise DriverNotImplementedError("update_config_raw")


def machine_in_state(driver: Driver, desired: State) -> Callable[[], bool]:
    """Predicate reporting whether ``driver`` is currently in ``desired``."""
    def predicate() -> bool:
        return driver.get_state() == desired
    return predicate


class RemoteClient(Protocol):
    """Transport for drivers running out of process."""

    def call(self, method: str, **params: Any) -> Any:
        ...


class RemoteDriver(Driver):
    """
    Driver adapter for a backend behind a remote-procedure client.

    Remote failures arrive as RemoteCallError carrying only text. The
    "Not Implemented" sentinel is turned into DriverNotImplementedError
    here so callers only deal with typed error kinds.
    """

    def __init__(self, client: RemoteClient):
        self._client = client

    def _call(self, method: str, **params: Any) -> Any:
        try:
            return self._client.call(method, **params)
        except RemoteCallError as e:
            if str(e) == NOT_IMPLEMENTED_MESSAGE:
                raise DriverNotImplementedError(method) from e
            raise

    def driver_name(self) -> str:
        return str(self._call("DriverName"))

    def start(self) -> None:
        self._call("Start")

    def stop(self) -> None:
        self._call("Stop")

    def kill(self) -> None:
        self._call("Kill")

    def restart(self) -> None:
        self._call("Restart")

    def get_state(self) -> State:
        return State.from_value(self._call("GetState"))

    def get_url(self) -> str:
        return str(self._call("GetURL"))

    def update_config_raw(self, raw_config: bytes) -> None:
        encoded = base64.b64encode(raw_config).decode("ascii")
        self._call("UpdateConfigRaw", config=encoded)
