"""
localcluster Utility Modules

File helpers shared by configuration and preflight code.
"""

from .atomic_write import (
    atomic_write_text,
    atomic_write_json,
    atomic_write_bytes,
)

__all__ = [
    "atomic_write_text",
    "atomic_write_json",
    "atomic_write_bytes",
]
