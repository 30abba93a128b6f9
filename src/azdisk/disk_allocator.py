"""Data disk slot (LUN) allocation.

New disks are placed after the highest LUN already in use. Gaps below that
LUN are left alone; nothing here knows about the VM size's attachment limit,
so callers that care must bound the count themselves.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

__all__ = ["DEFAULT_LABEL_PREFIX", "DiskSlot", "allocate_slots", "build_disk_slots"]

DEFAULT_LABEL_PREFIX = "DataDisk"


@dataclass(frozen=True)
class DiskSlot:
    """One attached or to-be-attached data disk."""

    lun: int
    size_gb: int
    label: str


def allocate_slots(existing_slots: Iterable[int], count: int) -> list[int]:
    """Compute the next available LUNs.

    Args:
        existing_slots: LUNs already attached to the VM (may have gaps)
        count: Number of new slots to allocate

    Returns:
        ``count`` consecutive LUNs starting after the highest existing one,
        or starting at 0 when the VM has no data disks

    Raises:
        ValueError: If count is below 1 or an existing LUN is negative

    Examples:
        >>> allocate_slots({0, 1, 3}, 2)
        [4, 5]
        >>> allocate_slots(set(), 3)
        [0, 1, 2]
    """
    if count < 1:
        raise ValueError(f"Disk count must be at least 1, got {count}")

    slots = set(existing_slots)
    if any(lun < 0 for lun in slots):
        raise ValueError(f"LUNs must be non-negative: {sorted(slots)}")

    start = max(slots) + 1 if slots else 0
    return list(range(start, start + count))


def build_disk_slots(
    existing_slots: Iterable[int],
    count: int,
    size_gb: int,
    label_prefix: str = DEFAULT_LABEL_PREFIX,
) -> list[DiskSlot]:
    """Allocate LUNs and describe a new disk for each of them."""
    if size_gb < 1:
        raise ValueError(f"Disk size must be at least 1GB, got {size_gb}")

    return [
        DiskSlot(lun=lun, size_gb=size_gb, label=f"{label_prefix}{lun}")
        for lun in allocate_slots(existing_slots, count)
    ]
