"""
Tests for the Host lifecycle state machine.
"""

import pytest
from unittest.mock import MagicMock

from conftest import FakeDriver


TARGETS = [
    ("start", "start", "RUNNING"),
    ("stop", "stop", "STOPPED"),
    ("kill", "kill", "STOPPED"),
]


class TestLifecycleGuard:
    """Operations targeting the current state signal instead of acting."""

    @pytest.mark.parametrize("operation,action,target", TARGETS)
    def test_already_in_state(self, make_host, operation, action, target):
        """The driver action is never invoked when the target state holds."""
        from machine.state import State
        from common.exceptions import HostAlreadyInStateError

        driver = FakeDriver(State[target])
        host = make_host(driver)

        with pytest.raises(HostAlreadyInStateError) as exc_info:
            getattr(host, operation)()

        assert exc_info.value.name == "localcluster"
        assert exc_info.value.state is State[target]
        assert action not in driver.calls

    def test_already_running_message(self, make_host):
        """Message names the machine and its state."""
        from machine.state import State
        from common.exceptions import HostAlreadyInStateError

        host = make_host(FakeDriver(State.RUNNING), name="crc")
        with pytest.raises(HostAlreadyInStateError, match="'crc' is already running"):
            host.start()


class TestLifecycleTransitions:
    """Operations toward a different state act once and then wait."""

    @pytest.mark.parametrize("operation,action,target", TARGETS)
    @pytest.mark.parametrize("current", ["PAUSED", "ERROR", "STARTING", "NONE"])
    def test_single_action_then_wait(self, make_host, operation, action, target, current):
        """Exactly one driver action, then the target state is observed."""
        from machine.state import State

        driver = FakeDriver(State[current], lag=2)
        host = make_host(driver)

        getattr(host, operation)()

        assert driver.calls == [action]
        assert driver.get_state() is State[target]

    def test_start_from_stopped(self, make_host, fake_driver):
        """Stopped machine starts."""
        from machine.state import State

        make_host(fake_driver).start()

        assert fake_driver.calls == ["start"]
        assert fake_driver.state is State.RUNNING

    def test_driver_error_propagates_unchanged(self, make_host, fake_driver):
        """A failing driver action surfaces its own error and no wait happens."""
        error = RuntimeError("qemu: could not open /dev/kvm")
        fake_driver.fail_with = error
        host = make_host(fake_driver)

        with pytest.raises(RuntimeError) as exc_info:
            host.start()

        assert exc_info.value is error

    def test_timeout_is_operation_failure(self, make_host):
        """A driver that never reaches the target state times out."""
        from machine.state import State
        from common.exceptions import WaitTimeoutError

        driver = FakeDriver(State.STOPPED, lag=100)
        host = make_host(driver, wait_attempts=3)

        with pytest.raises(WaitTimeoutError) as exc_info:
            host.start()

        assert exc_info.value.attempts == 3
        assert driver.calls == ["start"]

    def test_cancelled_wait(self, make_host):
        """A cancelled token stops the wait."""
        from machine.state import State
        from machine.wait import CancelToken
        from common.exceptions import WaitCancelledError

        token = CancelToken()
        token.cancel()
        driver = FakeDriver(State.STOPPED, lag=100)

        with pytest.raises(WaitCancelledError):
            make_host(driver).start(cancel=token)

        assert driver.calls == ["start"]

    def test_logs_before_and_after(self, make_host, fake_driver, caplog):
        """Start logs progress lines."""
        import logging

        with caplog.at_level(logging.INFO, logger="machine.host"):
            make_host(fake_driver, name="crc").start()

        messages = [r.getMessage() for r in caplog.records]
        assert "Starting 'crc'..." in messages
        assert "Machine 'crc' was started." in messages


class TestRestart:
    """Restart branches on the current state."""

    def test_restart_stopped_is_start(self, make_host):
        """Restarting a stopped machine cold boots it."""
        from machine.state import State

        started = FakeDriver(State.STOPPED)
        restarted = FakeDriver(State.STOPPED)

        make_host(started).start()
        make_host(restarted).restart()

        assert restarted.calls == started.calls == ["start"]
        assert restarted.state is started.state is State.RUNNING

    def test_restart_running(self, make_host):
        """Restarting a running machine calls the driver restart once."""
        from machine.state import State

        driver = FakeDriver(State.RUNNING, lag=1)
        make_host(driver).restart()

        assert driver.calls == ["restart"]
        assert driver.state is State.RUNNING

    @pytest.mark.parametrize("current", ["PAUSED", "ERROR", "STARTING", "STOPPING", "SAVED"])
    def test_restart_other_states_is_noop(self, make_host, current):
        """Neither stopped nor running: no driver action, no error."""
        from machine.state import State

        driver = FakeDriver(State[current])
        make_host(driver).restart()

        assert driver.calls == []
        assert driver.state is State[current]


class TestUpdateConfig:
    """Tests for Host.update_config()."""

    def test_success_replaces_raw_driver(self, make_host, fake_driver):
        """Accepted configuration becomes raw_driver."""
        host = make_host(fake_driver, raw_driver=b'{"Memory": 8192}')

        host.update_config(b'{"Memory": 16384}')

        assert host.raw_driver == b'{"Memory": 16384}'
        assert fake_driver.applied_config == b'{"Memory": 16384}'

    def test_remote_not_implemented_is_typed(self, make_host, fake_driver):
        """The remote "Not Implemented" text becomes HostNotImplementedError."""
        from common.exceptions import HostNotImplementedError, RemoteCallError

        fake_driver.fail_with = RemoteCallError("Not Implemented", "UpdateConfigRaw")
        host = make_host(fake_driver, raw_driver=b"old")

        with pytest.raises(HostNotImplementedError) as exc_info:
            host.update_config(b"new")

        assert exc_info.value.code == "NOT_IMPLEMENTED"
        assert host.raw_driver == b"old"

    def test_driver_without_capability(self, make_host):
        """Drivers that do not override update_config_raw are not reconfigurable."""
        from machine.drivers import Driver
        from machine.state import State
        from common.exceptions import HostNotImplementedError

        class MinimalDriver(Driver):
            def driver_name(self): return "minimal"
            def start(self): pass
            def stop(self): pass
            def kill(self): pass
            def restart(self): pass
            def get_state(self): return State.STOPPED
            def get_url(self): return ""

        host = make_host(MinimalDriver(), raw_driver=b"old")
        with pytest.raises(HostNotImplementedError):
            host.update_config(b"new")
        assert host.raw_driver == b"old"

    def test_other_errors_propagate(self, make_host, fake_driver):
        """Other remote failures pass through and leave raw_driver alone."""
        from common.exceptions import RemoteCallError

        fake_driver.fail_with = RemoteCallError("disk is full", "UpdateConfigRaw")
        host = make_host(fake_driver, raw_driver=b"old")

        with pytest.raises(RemoteCallError, match="disk is full"):
            host.update_config(b"new")
        assert host.raw_driver == b"old"


class TestHostRecord:
    """Tests for URL, metadata and serialization."""

    def test_url_passthrough(self, make_host, fake_driver):
        """url() returns the driver's URL without state changes."""
        from machine.state import State

        host = make_host(fake_driver)
        assert host.url() == "tcp://192.168.130.11:2376"
        assert fake_driver.state is State.STOPPED

    def test_driver_name_resolved_lazily(self, make_host):
        """Constructing a Host never calls the driver."""
        from common.exceptions import RemoteCallError

        class UnreachableDriver(FakeDriver):
            def driver_name(self):
                raise RemoteCallError("driver plugin exited unexpectedly", "DriverName")

        host = make_host(UnreachableDriver())
        assert "Host(name='localcluster'" in repr(host)

        with pytest.raises(RemoteCallError):
            host.driver_name

        named = make_host(UnreachableDriver(), driver_name="libvirt")
        assert named.to_dict()["driver_name"] == "libvirt"
        assert named.host_options.driver == "libvirt"

    def test_driver_name_defaults_to_driver(self, make_host, fake_driver):
        """driver_name comes from the driver when not given."""
        host = make_host(fake_driver)
        assert host.driver_name == "fake"
        assert host.host_options.driver == "fake"

    def test_to_dict_excludes_raw_driver(self, make_host, fake_driver):
        """raw_driver never leaves the process."""
        from machine.host import HostOptions

        host = make_host(
            fake_driver,
            driver_path="/home/user/.localcluster/bin/localcluster-driver-libvirt",
            host_options=HostOptions(driver="libvirt", memory=9216, disk=31),
            raw_driver=b"secret",
        )
        data = host.to_dict()

        assert "raw_driver" not in data
        assert b"secret" not in repr(data).encode()
        assert data["host_options"]["memory"] == 9216
        assert data["config_version"] == 3

    def test_metadata_round_trip(self, make_host, fake_driver):
        """Metadata can be rebuilt from the serialized record."""
        from machine.host import HostMetadata

        host = make_host(fake_driver)
        metadata = HostMetadata.from_dict(host.to_dict())

        assert metadata == host.metadata()


class TestHostNameValidation:
    """Tests for validate_host_name()."""

    @pytest.mark.parametrize("name,valid", [
        ("crc-1", True),
        ("-crc", False),
        ("crc_1", False),
        ("a", True),
        ("crc.testing", True),
        ("", False),
        ("crc 1", False),
    ])
    def test_validate_host_name(self, name, valid):
        """Names must start alphanumeric and contain only [A-Za-z0-9.-]."""
        from machine.host import validate_host_name

        assert validate_host_name(name) is valid

    def test_create_rejects_invalid_name(self, fake_driver):
        """Host.create validates before constructing."""
        from machine.host import Host
        from common.exceptions import InvalidHostNameError

        with pytest.raises(InvalidHostNameError):
            Host.create("crc_1", fake_driver)

    def test_create_accepts_valid_name(self, fake_driver):
        """Host.create passes options through."""
        from machine.host import Host

        host = Host.create("crc-1", fake_driver, wait_delay=0)
        assert host.name == "crc-1"
        assert host.wait_delay == 0
