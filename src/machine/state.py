"""
Machine states as reported by virtualization drivers.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class State(Enum):
    """Lifecycle phase of the VM behind a driver."""
    NONE = 0
    RUNNING = 1
    PAUSED = 2
    SAVED = 3
    STOPPED = 4
    STOPPING = 5
    STARTING = 6
    ERROR = 7
    TIMEOUT = 8

    def __str__(self) -> str:
        return "" if self is State.NONE else self.name.capitalize()

    @classmethod
    def from_value(cls, value: Any) -> "State":
        """
        Parse a state received over a serialization boundary.

        Accepts a State, its integer value, or its name in any case
        ("Running", "running", "RUNNING"). Anything else maps to NONE.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return cls.NONE
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.NONE)
        return cls.NONE
