"""
Preflight Check - one diagnosable host condition.

A check describes how to detect a problem, optionally how to fix it,
and optionally how to undo what setup did.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Flag, auto
from typing import Callable, Optional

from common.config import SKIP_PREFIX, WARN_PREFIX


class CheckFlags(Flag):
    """When a check applies. No flag: both setup and cleanup."""
    NONE = 0
    SETUP_ONLY = auto()
    CLEANUP_ONLY = auto()


CheckFunc = Callable[[], None]


@dataclass(frozen=True)
class Check:
    """
    Declarative description of one preflight condition.

    ``check``, ``fix`` and ``cleanup`` raise on failure; returning means
    success.

    Attributes:
        config_key_suffix: Lets configuration skip ("skip-<suffix>") or
            downgrade to a warning ("warn-<suffix>") this check
        check_description: Shown while detecting
        check: Detection function
        fix_description: Shown while remediating
        fix: Remediation, if the condition can be repaired
        cleanup_description: Shown while tearing down
        cleanup: Teardown of what ``fix`` set up
        flags: Applicability
    """
    config_key_suffix: str = ""
    check_description: str = ""
    check: Optional[CheckFunc] = None
    fix_description: str = ""
    fix: Optional[CheckFunc] = None
    cleanup_description: str = ""
    cleanup: Optional[CheckFunc] = None
    flags: CheckFlags = CheckFlags.NONE

    @property
    def skip_config_key(self) -> str:
        return SKIP_PREFIX + self.config_key_suffix if self.config_key_suffix else ""

    @property
    def warn_config_key(self) -> str:
        return WARN_PREFIX + self.config_key_suffix if self.config_key_suffix else ""

    @property
    def runs_during_setup(self) -> bool:
        return not self.flags & CheckFlags.CLEANUP_ONLY

    @property
    def runs_during_cleanup(self) -> bool:
        return not self.flags & CheckFlags.SETUP_ONLY

    def __str__(self) -> str:
        return self.config_key_suffix or self.cleanup_description or self.check_description
