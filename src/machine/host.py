"""
Host - a named VM bound to the driver that runs it.

Lifecycle operations guard against no-op transitions, invoke the
driver action, then block until the driver reports the target state.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

from common.exceptions import (
    DriverNotImplementedError,
    HostAlreadyInStateError,
    HostNotImplementedError,
    InvalidHostNameError,
    RemoteCallError,
)

from .drivers import NOT_IMPLEMENTED_MESSAGE, Driver, machine_in_state
from .state import State
from .wait import DEFAULT_DELAY, DEFAULT_MAX_ATTEMPTS, CancelToken, wait_for

logger = logging.getLogger(__name__)

CONFIG_VERSION = 3

VALID_HOST_NAME_PATTERN = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9\-.]*")


def validate_host_name(name: str) -> bool:
    """Return True if ``name`` is a valid host name."""
    return VALID_HOST_NAME_PATTERN.fullmatch(name) is not None


@dataclass
class HostOptions:
    """Creation options, forwarded untouched to drivers and provisioning."""
    driver: str = ""
    memory: int = 0
    disk: int = 0
    engine_options: Dict[str, Any] = field(default_factory=dict)
    swarm_options: Dict[str, Any] = field(default_factory=dict)
    auth_options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostOptions":
        return cls(
            driver=data.get("driver", ""),
            memory=int(data.get("memory", 0)),
            disk=int(data.get("disk", 0)),
            engine_options=dict(data.get("engine_options") or {}),
            swarm_options=dict(data.get("swarm_options") or {}),
            auth_options=dict(data.get("auth_options") or {}),
        )


@dataclass
class HostMetadata:
    """Minimal host description readable without loading a driver."""
    config_version: int
    driver_name: str
    host_options: HostOptions

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostMetadata":
        return cls(
            config_version=int(data.get("config_version", 0)),
            driver_name=data.get("driver_name", ""),
            host_options=HostOptions.from_dict(data.get("host_options") or {}),
        )


class Host:
    """
    A managed VM and its driver.

    A Host is not safe for concurrent use; one caller drives it at a time.

    Attributes:
        config_version: Schema version of the persisted record
        driver: Backend running the VM (owned by this host)
        driver_name: Name of the backend
        driver_path: Location of the backend's plugin executable
        host_options: Creation options
        name: Host name
        raw_driver: Last driver configuration accepted by the driver;
            internal, never serialized
    """

    def __init__(
        self,
        name: str,
        driver: Driver,
        driver_name: str = "",
        driver_path: str = "",
        host_options: Optional[HostOptions] = None,
        raw_driver: bytes = b"",
        config_version: int = CONFIG_VERSION,
        wait_attempts: int = DEFAULT_MAX_ATTEMPTS,
        wait_delay: float = DEFAULT_DELAY,
    ):
        self.config_version = config_version
        self.driver = driver
        self._driver_name = driver_name
        self.driver_path = driver_path
        self._host_options = host_options
        self.name = name
        self.raw_driver = raw_driver
        self.wait_attempts = wait_attempts
        self.wait_delay = wait_delay

    @property
    def driver_name(self) -> str:
        # Asked of the driver on first use; a remote driver starts its plugin here
        if not self._driver_name:
            self._driver_name = self.driver.driver_name()
        return self._driver_name

    @driver_name.setter
    def driver_name(self, value: str) -> None:
        self._driver_name = value

    @property
    def host_options(self) -> HostOptions:
        if self._host_options is None:
            self._host_options = HostOptions(driver=self.driver_name)
        return self._host_options

    @host_options.setter
    def host_options(self, value: HostOptions) -> None:
        self._host_options = value

    @classmethod
    def create(cls, name: str, driver: Driver, **kwargs) -> "Host":
        """
        Build a Host after validating its name.

        Raises:
            InvalidHostNameError: If ``name`` is not a valid host name
        """
        if not validate_host_name(name):
            raise InvalidHostNameError(name)
        return cls(name, driver, **kwargs)

    def __repr__(self) -> str:
        return f"Host(name={self.name!r}, driver_name={self._driver_name!r})"

    def _wait_for_state(self, desired: State, cancel: Optional[CancelToken]) -> None:
        wait_for(
            machine_in_state(self.driver, desired),
            max_attempts=self.wait_attempts,
            delay=self.wait_delay,
            cancel=cancel,
        )

    def _run_action_for_state(
        self,
        action: Callable[[], None],
        desired: State,
        cancel: Optional[CancelToken],
    ) -> None:
        if machine_in_state(self.driver, desired)():
            raise HostAlreadyInStateError(self.name, desired)

        action()

        self._wait_for_state(desired, cancel)

    def start(self, cancel: Optional[CancelToken] = None) -> None:
        """
        Start the VM and wait until it is running.

        Raises:
            HostAlreadyInStateError: If it is already running
            WaitTimeoutError: If it does not reach Running in time
        """
        logger.info(f"Starting {self.name!r}...")
        self._run_action_for_state(self.driver.start, State.RUNNING, cancel)
        logger.info(f"Machine {self.name!r} was started.")

    def stop(self, cancel: Optional[CancelToken] = None) -> None:
        """Stop the VM and wait until it is stopped."""
        logger.info(f"Stopping {self.name!r}...")
        self._run_action_for_state(self.driver.stop, State.STOPPED, cancel)
        logger.info(f"Machine {self.name!r} was stopped.")

    def kill(self, cancel: Optional[CancelToken] = None) -> None:
        """Forcibly power off the VM and wait until it is stopped."""
        logger.info(f"Killing {self.name!r}...")
        self._run_action_for_state(self.driver.kill, State.STOPPED, cancel)
        logger.info(f"Machine {self.name!r} was killed.")

    def restart(self, cancel: Optional[CancelToken] = None) -> None:
        """
        Restart the VM.

        A stopped VM is started; a running VM is restarted by the driver.
        In any other state nothing is done.
        """
        logger.info(f"Restarting {self.name!r}...")
        if machine_in_state(self.driver, State.STOPPED)():
            self.start(cancel)
        elif machine_in_state(self.driver, State.RUNNING)():
            self.driver.restart()
            self._wait_for_state(State.RUNNING, cancel)
        else:
            logger.debug(f"Machine {self.name!r} is neither stopped nor running, not restarting")

    def update_config(self, raw_config: bytes) -> None:
        """
        Hand a new serialized configuration to the driver.

        ``raw_driver`` is only replaced once the driver has accepted it.

        Raises:
            HostNotImplementedError: If the driver cannot be reconfigured
        """
        try:
            self.driver.update_config_raw(raw_config)
        except DriverNotImplementedError as e:
            raise HostNotImplementedError(self.name, "update_config", cause=e) from e
        except RemoteCallError as e:
            if str(e) == NOT_IMPLEMENTED_MESSAGE:
                raise HostNotImplementedError(self.name, "update_config", cause=e) from e
            raise
        self.raw_driver = raw_config

    def url(self) -> str:
        return self.driver.get_url()

    def metadata(self) -> HostMetadata:
        return HostMetadata(
            config_version=self.config_version,
            driver_name=self.driver_name,
            host_options=self.host_options,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the host record, without ``raw_driver``."""
        return {
            "config_version": self.config_version,
            "driver_name": self.driver_name,
            "driver_path": self.driver_path,
            "host_options": self.host_options.to_dict(),
            "name": self.name,
        }
