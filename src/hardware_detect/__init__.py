"""localcluster Hardware Detection Module.

This module provides detection of:
- CPU virtualization capabilities (VT-x/AMD-V)
- Physical memory size
"""

from .cpu_detect import CPUDetector, CPUInfo
from .memory import MemoryDetector

__all__ = [
    "CPUDetector",
    "CPUInfo",
    "MemoryDetector",
]
