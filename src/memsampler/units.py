"""Unit conversion for report output.

Every value is kept in KiB until it is rendered.
"""

from enum import Enum

BYTES_PER_KIB = 1024
BYTES_PER_MIB = 1024**2
BYTES_PER_GIB = 1024**3


class Unit(Enum):
    """Display unit for report columns."""

    KIB = "K"
    MIB = "M"
    GIB = "G"

    @property
    def label(self) -> str:
        """Human readable unit name."""
        return {"K": "KiB", "M": "MiB", "G": "GiB"}[self.value]

    @property
    def size_bytes(self) -> int:
        """Size of one unit in bytes."""
        return {"K": BYTES_PER_KIB, "M": BYTES_PER_MIB, "G": BYTES_PER_GIB}[self.value]

    def from_kib(self, value: int) -> float:
        """Convert a KiB quantity to this unit."""
        return value * BYTES_PER_KIB / self.size_bytes
