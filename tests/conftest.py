"""
Pytest configuration and shared fixtures for localcluster tests.

Provides fakes for drivers, libvirt and system-level functionality.
"""

import os
import pytest
from unittest.mock import MagicMock, patch
from pathlib import Path
from typing import Generator, List, Optional
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from machine.drivers import Driver
from machine.state import State


class FakeDriver(Driver):
    """
    In-memory driver.

    Actions move the VM to their target state after ``lag`` further
    get_state() calls. Every call is recorded in ``calls``.
    """

    def __init__(self, state: State = State.STOPPED, lag: int = 0):
        self.state = state
        self.lag = lag
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None
        self._pending: Optional[State] = None
        self._countdown = 0
        self.applied_config: Optional[bytes] = None

    def _act(self, name: str, target: State) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with
        self._pending = target
        self._countdown = self.lag
        if self.lag == 0:
            self.state, self._pending = target, None

    def driver_name(self) -> str:
        return "fake"

    def start(self) -> None:
        self._act("start", State.RUNNING)

    def stop(self) -> None:
        self._act("stop", State.STOPPED)

    def kill(self) -> None:
        self._act("kill", State.STOPPED)

    def restart(self) -> None:
        self._act("restart", State.RUNNING)

    def get_state(self) -> State:
        if self._pending is not None:
            if self._countdown == 0:
                self.state, self._pending = self._pending, None
            else:
                self._countdown -= 1
        return self.state

    def get_url(self) -> str:
        self.calls.append("get_url")
        return "tcp://192.168.130.11:2376"

    def update_config_raw(self, raw_config: bytes) -> None:
        self.calls.append("update_config_raw")
        if self.fail_with is not None:
            raise self.fail_with
        self.applied_config = raw_config


# ============ Environment Fixtures ============

@pytest.fixture
def temp_home(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary home directory for tests."""
    old_home = os.environ.get('HOME')
    os.environ['HOME'] = str(tmp_path)

    (tmp_path / ".config/localcluster").mkdir(parents=True)
    (tmp_path / ".localcluster/bin").mkdir(parents=True)

    yield tmp_path

    if old_home:
        os.environ['HOME'] = old_home
    else:
        os.environ.pop('HOME', None)


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Provide temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def config(temp_config_dir: Path):
    """Configuration isolated from the user's file and environment."""
    from common.config import Config

    return Config(path=temp_config_dir / "config.json", environ={})


# ============ Driver Fixtures ============

@pytest.fixture
def fake_driver() -> FakeDriver:
    """A stopped in-memory driver."""
    return FakeDriver()


@pytest.fixture
def make_host():
    """Build a Host around a driver without sleeping between polls."""
    from machine.host import Host

    def _make(driver: Driver, name: str = "localcluster", **kwargs):
        kwargs.setdefault("wait_delay", 0)
        kwargs.setdefault("wait_attempts", 5)
        return Host(name, driver, **kwargs)

    return _make


# ============ Libvirt Fixtures ============

@pytest.fixture
def mock_connection():
    """Mock libvirt connection handed out by open_connection()."""
    conn = MagicMock()
    network = MagicMock()
    network.isActive.return_value = True
    conn.networkLookupByName.return_value = network
    return conn


@pytest.fixture
def mock_open_connection(mock_connection):
    """Patch the libvirt checks to use ``mock_connection``."""
    with patch("preflight.checks_libvirt.open_connection") as mock_open:
        mock_open.return_value.__enter__.return_value = mock_connection
        mock_open.return_value.__exit__.return_value = False
        yield mock_open


# ============ Subprocess Fixtures ============

@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for tests."""
    with patch('subprocess.run') as mock_run:
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout="",
            stderr="",
        )
        yield mock_run


@pytest.fixture
def mock_subprocess_popen():
    """Mock subprocess.Popen for tests."""
    with patch('subprocess.Popen') as mock_popen:
        mock_proc = MagicMock()
        mock_proc.returncode = None
        mock_proc.poll.return_value = None
        mock_proc.pid = 4242
        mock_proc.wait.return_value = 0
        mock_popen.return_value = mock_proc
        yield mock_popen


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "requires_root: marks tests that need root privileges"
    )
    config.addinivalue_line(
        "markers", "requires_libvirt: marks tests that need libvirt running"
    )
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "hardware: hardware-dependent tests"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on environment."""
    skip_hw = pytest.mark.skip(reason="Hardware tests disabled in CI")
    skip_root = pytest.mark.skip(reason="Requires root privileges")
    skip_libvirt = pytest.mark.skip(reason="Requires libvirt daemon")

    for item in items:
        if "hardware" in item.keywords and os.environ.get("CI"):
            item.add_marker(skip_hw)

        if "requires_root" in item.keywords:
            try:
                if os.getuid() != 0:
                    item.add_marker(skip_root)
            except AttributeError:
                item.add_marker(skip_root)

        if "requires_libvirt" in item.keywords:
            try:
                import libvirt
                conn = libvirt.open("qemu:///system")
                if conn:
                    conn.close()
            except Exception:
                item.add_marker(skip_libvirt)
