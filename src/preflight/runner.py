"""
Preflight Runner

Runs an ordered list of checks in one of three modes:

- start_checks: detect only, as a gate before starting the VM
- setup: detect, and fix what can be fixed
- cleanup: undo setup, best effort
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from common.config import Config
from common.exceptions import CleanupError
from common.logging_config import LogContext

from .check import Check

logger = logging.getLogger(__name__)


class PreflightRunner:
    """
    Executes checks strictly in order; later checks may rely on
    earlier ones having passed.
    """

    def __init__(self, checks: Sequence[Check], config: Config):
        self.checks: List[Check] = list(checks)
        self.config = config

    def _skipped(self, check: Check) -> bool:
        if self.config.is_check_skipped(check.config_key_suffix):
            logger.warning(f"Skipping above check ({check.skip_config_key} is set)")
            return True
        return False

    def start_checks(self) -> None:
        """
        Run detection for every setup-time check.

        Raises:
            Exception: The first failing check's error, unless its
                warn-<suffix> key downgrades it to a warning
        """
        for check in self.checks:
            if not check.runs_during_setup or check.check is None:
                continue
            with LogContext(check=check.config_key_suffix):
                logger.info(check.check_description)
                if self._skipped(check):
                    continue
                try:
                    check.check()
                except Exception as e:
                    if self.config.is_check_warn_only(check.config_key_suffix):
                        logger.warning(str(e))
                        continue
                    raise

    def setup(self) -> None:
        """
        Run detection and, on failure, remediation for every setup-time check.

        Raises:
            PreflightCheckError: If a failing check cannot be fixed
            Exception: The error of a failed fix
        """
        for check in self.checks:
            if not check.runs_during_setup or check.check is None:
                continue
            with LogContext(check=check.config_key_suffix):
                logger.info(check.check_description)
                if self._skipped(check):
                    continue
                try:
                    check.check()
                    continue
                except Exception as e:
                    if check.fix is None:
                        raise
                    logger.debug(f"{check.config_key_suffix}: {e}")

                logger.info(check.fix_description)
                check.fix()

    def cleanup(self) -> None:
        """
        Run every cleanup step, even after failures.

        Raises:
            CleanupError: After all steps ran, if any of them failed
        """
        failures: Dict[str, Exception] = {}
        for check in self.checks:
            if not check.runs_during_cleanup or check.cleanup is None:
                continue
            with LogContext(check=check.config_key_suffix):
                logger.info(check.cleanup_description)
                try:
                    check.cleanup()
                except Exception as e:
                    logger.error(f"{check.cleanup_description} failed: {e}")
                    failures[check.cleanup_description] = e

        if failures:
            raise CleanupError(failures)
