"""
localcluster Hardware Detection - CPU Detection Module

Detects CPU capabilities needed to run a KVM guest:
- CPU vendor (Intel/AMD)
- Hardware virtualization extensions (VT-x/AMD-V)
- Kernel module providing KVM for this CPU
- Online CPU count
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class CPUInfo:
    """CPU information relevant to virtualization."""

    vendor: str              # "Intel", "AMD" or "Unknown"
    model_name: str          # Full model name
    threads: int             # Logical CPUs
    has_virtualization: bool # VT-x / AMD-V

    @property
    def is_intel(self) -> bool:
        """Check if Intel CPU."""
        return self.vendor == "Intel"

    @property
    def is_amd(self) -> bool:
        """Check if AMD CPU."""
        return self.vendor == "AMD"

    @property
    def kvm_module(self) -> str:
        """Vendor-specific KVM kernel module."""
        if self.is_intel:
            return "kvm_intel"
        if self.is_amd:
            return "kvm_amd"
        return "kvm"


class CPUDetector:
    """Detects CPU capabilities from /proc/cpuinfo."""

    CPUINFO_PATH = Path("/proc/cpuinfo")

    def detect(self) -> CPUInfo:
        """Detect CPU information."""
        cpuinfo = self._parse_cpuinfo()

        vendor = "Unknown"
        vendor_id = cpuinfo.get("vendor_id", "")
        if "GenuineIntel" in vendor_id:
            vendor = "Intel"
        elif "AuthenticAMD" in vendor_id:
            vendor = "AMD"

        # vmx: Intel VT-x, svm: AMD-V
        flags = cpuinfo.get("flags", "").split()
        has_virt = "vmx" in flags or "svm" in flags

        threads = cpuinfo["_processor_count"] or os.cpu_count() or 1

        return CPUInfo(
            vendor=vendor,
            model_name=cpuinfo.get("model name", "Unknown CPU"),
            threads=threads,
            has_virtualization=has_virt,
        )

    def _parse_cpuinfo(self) -> dict:
        """Parse /proc/cpuinfo into a dictionary of first-seen values."""
        result = {"_processor_count": 0}

        try:
            content = self.CPUINFO_PATH.read_text()
        except OSError:
            return result

        for line in content.split("\n"):
            if line.startswith("processor"):
                result["_processor_count"] += 1

            if ":" in line:
                key, value = line.split(":", 1)
                key = key.strip()
                # All cores report the same values
                if key not in result:
                    result[key] = value.strip()

        return result
