"""
Tests for PreflightRunner.
"""

import logging
import pytest
from unittest.mock import MagicMock


def make_check(suffix, check=None, fix=None, cleanup=None, flags=None):
    from preflight.check import Check, CheckFlags

    return Check(
        config_key_suffix=suffix,
        check_description=f"Checking {suffix}",
        check=check,
        fix_description=f"Fixing {suffix}",
        fix=fix,
        cleanup_description=f"Cleaning {suffix}" if cleanup else "",
        cleanup=cleanup,
        flags=flags or CheckFlags.NONE,
    )


def failing(message="broken"):
    from common.exceptions import PreflightCheckError

    return MagicMock(side_effect=PreflightCheckError(message))


class TestCheck:
    """Tests for the Check descriptor."""

    def test_config_keys(self):
        """Skip and warn keys derive from the suffix."""
        check = make_check("check-vsock")

        assert check.skip_config_key == "skip-check-vsock"
        assert check.warn_config_key == "warn-check-vsock"
        assert str(check) == "check-vsock"

    def test_keyless_check(self):
        """Checks without a suffix expose no keys."""
        from preflight.check import Check

        check = Check(cleanup_description="Removing the VM")
        assert check.skip_config_key == ""
        assert str(check) == "Removing the VM"

    @pytest.mark.parametrize("flag,setup,cleanup", [
        ("NONE", True, True),
        ("SETUP_ONLY", True, False),
        ("CLEANUP_ONLY", False, True),
    ])
    def test_applicability(self, flag, setup, cleanup):
        """Flags restrict when a check runs."""
        from preflight.check import CheckFlags

        check = make_check("x", flags=CheckFlags[flag])
        assert check.runs_during_setup is setup
        assert check.runs_during_cleanup is cleanup


class TestStartChecks:
    """Tests for detection-only runs."""

    def test_runs_in_order(self, config):
        """Checks run strictly in list order."""
        from preflight.runner import PreflightRunner

        order = []
        checks = [
            make_check("a", check=lambda: order.append("a")),
            make_check("b", check=lambda: order.append("b")),
        ]
        PreflightRunner(checks, config).start_checks()

        assert order == ["a", "b"]

    def test_first_failure_aborts(self, config):
        """A failing check stops the run and fixes are never attempted."""
        from common.exceptions import PreflightCheckError
        from preflight.runner import PreflightRunner

        fix = MagicMock()
        later = MagicMock()
        checks = [make_check("a", check=failing(), fix=fix), make_check("b", check=later)]

        with pytest.raises(PreflightCheckError, match="broken"):
            PreflightRunner(checks, config).start_checks()

        fix.assert_not_called()
        later.assert_not_called()

    def test_skip_key(self, config, caplog):
        """skip-<suffix> disables a check."""
        from preflight.runner import PreflightRunner

        check = failing()
        config.set("skip-check-ram", True)

        with caplog.at_level(logging.WARNING):
            PreflightRunner([make_check("check-ram", check=check)], config).start_checks()

        check.assert_not_called()
        assert "skip-check-ram" in caplog.text

    def test_warn_key(self, config, caplog):
        """warn-<suffix> downgrades a failure to a warning."""
        from preflight.runner import PreflightRunner

        later = MagicMock()
        config.set("warn-check-ram", "true")
        checks = [make_check("check-ram", check=failing("low memory")), make_check("b", check=later)]

        with caplog.at_level(logging.WARNING):
            PreflightRunner(checks, config).start_checks()

        later.assert_called_once()
        assert "low memory" in caplog.text

    def test_cleanup_only_checks_ignored(self, config):
        """Cleanup-only entries are not part of start checks."""
        from preflight.check import CheckFlags
        from preflight.runner import PreflightRunner

        cleanup = MagicMock()
        checks = [make_check("", cleanup=cleanup, flags=CheckFlags.CLEANUP_ONLY)]
        PreflightRunner(checks, config).start_checks()

        cleanup.assert_not_called()

    def test_log_context(self, config, caplog):
        """Log records carry the check being run."""
        from preflight.runner import PreflightRunner

        with caplog.at_level(logging.INFO, logger="preflight.runner"):
            PreflightRunner([make_check("check-cpus", check=MagicMock())], config).start_checks()

        assert caplog.records[0].context == {"check": "check-cpus"}


class TestSetup:
    """Tests for setup runs."""

    def test_fix_on_failure(self, config):
        """A failing check with a fix is remediated and the run continues."""
        from preflight.runner import PreflightRunner

        fix = MagicMock()
        later = MagicMock()
        checks = [make_check("a", check=failing(), fix=fix), make_check("b", check=later)]

        PreflightRunner(checks, config).setup()

        fix.assert_called_once()
        later.assert_called_once()

    def test_no_fix_when_passing(self, config):
        """Passing checks are left alone."""
        from preflight.runner import PreflightRunner

        fix = MagicMock()
        PreflightRunner([make_check("a", check=MagicMock(), fix=fix)], config).setup()

        fix.assert_not_called()

    def test_unfixable_failure_aborts(self, config):
        """Without a fix the detection error is raised."""
        from common.exceptions import PreflightCheckError
        from preflight.runner import PreflightRunner

        with pytest.raises(PreflightCheckError, match="broken"):
            PreflightRunner([make_check("a", check=failing())], config).setup()

    def test_failed_fix_aborts(self, config):
        """A failing fix stops the run with the fix's error."""
        from common.exceptions import CommandError
        from preflight.runner import PreflightRunner

        error = CommandError(["sudo", "modprobe", "kvm_intel"], 1, "module not found")
        later = MagicMock()
        checks = [
            make_check("a", check=failing(), fix=MagicMock(side_effect=error)),
            make_check("b", check=later),
        ]

        with pytest.raises(CommandError) as exc_info:
            PreflightRunner(checks, config).setup()

        assert exc_info.value is error
        later.assert_not_called()

    def test_setup_only_runs(self, config):
        """Setup-only checks run during setup."""
        from preflight.check import CheckFlags
        from preflight.runner import PreflightRunner

        fix = MagicMock()
        checks = [make_check("a", check=failing(), fix=fix, flags=CheckFlags.SETUP_ONLY)]
        PreflightRunner(checks, config).setup()

        fix.assert_called_once()


class TestCleanup:
    """Tests for best-effort cleanup."""

    def test_runs_all_cleanups(self, config):
        """Every applicable cleanup runs in order."""
        from preflight.check import CheckFlags
        from preflight.runner import PreflightRunner

        order = []
        checks = [
            make_check("a", check=MagicMock(), cleanup=lambda: order.append("a")),
            make_check("b", check=MagicMock()),
            make_check("", cleanup=lambda: order.append("vm"), flags=CheckFlags.CLEANUP_ONLY),
        ]
        PreflightRunner(checks, config).cleanup()

        assert order == ["a", "vm"]

    def test_setup_only_skipped(self, config):
        """Setup-only checks never clean up."""
        from preflight.check import CheckFlags
        from preflight.runner import PreflightRunner

        cleanup = MagicMock()
        checks = [make_check("a", cleanup=cleanup, flags=CheckFlags.SETUP_ONLY)]
        PreflightRunner(checks, config).cleanup()

        cleanup.assert_not_called()

    def test_failure_does_not_stop_others(self, config):
        """A failed cleanup is reported after the remaining ones ran."""
        from common.exceptions import CleanupError
        from preflight.runner import PreflightRunner

        later = MagicMock()
        error = RuntimeError("network busy")
        checks = [
            make_check("a", cleanup=MagicMock(side_effect=error)),
            make_check("b", cleanup=later),
        ]

        with pytest.raises(CleanupError) as exc_info:
            PreflightRunner(checks, config).cleanup()

        later.assert_called_once()
        assert exc_info.value.failures == {"Cleaning a": error}
        assert "network busy" in str(exc_info.value)
