"""Latest OS image resolution for VM provisioning.

This module picks the newest image of a family out of an image catalog,
optionally restricted to images published by the official vendor.

Philosophy:
- Ruthless simplicity: filter, dedupe, sort, take first
- Pure functions: the catalog is passed in, nothing is fetched here
- A missing image is a result (None), not an exception

Public API:
    Image: Immutable catalog entry
    resolve_latest_image: Select the latest image matching a family glob
    parse_published_date: Extract the build date encoded in an image version
    family_from_offer_sku: Build a family display name from offer and SKU
"""

from __future__ import annotations

import fnmatch
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

__all__ = [
    "DEFAULT_OFFICIAL_PUBLISHER",
    "Image",
    "family_from_offer_sku",
    "parse_published_date",
    "resolve_latest_image",
]

# Publisher glob for images released by the OS vendor itself
DEFAULT_OFFICIAL_PUBLISHER = "Microsoft*"

# Sort key for images whose version carries no recognizable date
_UNKNOWN_DATE = datetime.min.replace(tzinfo=UTC)

_YYMMDD = re.compile(r"^(\d{2})(\d{2})(\d{2})$")
_YYYYMMDD = re.compile(r"^(20\d{2})(\d{2})(\d{2})\d*$")


@dataclass(frozen=True)
class Image:
    """Selectable OS image offering from the provider catalog."""

    family: str
    publisher: str
    published_date: datetime
    image_id: str


def _matches(value: str, pattern: str) -> bool:
    """Case-insensitive glob match."""
    return fnmatch.fnmatchcase(value.lower(), pattern.lower())


def resolve_latest_image(
    catalog: Iterable[Image],
    family_filter: str,
    official_only: bool = False,
    official_publisher: str = DEFAULT_OFFICIAL_PUBLISHER,
) -> Image | None:
    """Resolve the most recently published image matching a family glob.

    Matching images are reduced to one representative per family (the newest
    one), then ordered by published date, newest first.

    Args:
        catalog: Images to choose from
        family_filter: Case-insensitive glob matched against the family name
        official_only: Also require the publisher to match official_publisher
        official_publisher: Case-insensitive glob for the official vendor

    Returns:
        The latest matching Image, or None when nothing matches

    Examples:
        >>> resolve_latest_image([], "Windows*") is None
        True
    """
    latest_by_family: dict[str, Image] = {}

    for image in catalog:
        if not _matches(image.family, family_filter):
            continue
        if official_only and not _matches(image.publisher, official_publisher):
            continue

        key = image.family.lower()
        current = latest_by_family.get(key)
        if current is None or image.published_date > current.published_date:
            latest_by_family[key] = image

    if not latest_by_family:
        return None

    candidates = sorted(
        latest_by_family.values(), key=lambda img: img.published_date, reverse=True
    )
    return candidates[0]


def parse_published_date(version: str) -> datetime:
    """Extract the build date encoded in a marketplace image version.

    Marketplace versions end with the build date, either as ``yymmdd``
    (``9600.21620.231004``) or as ``yyyymmdd`` plus a sequence digit
    (``22.04.202310040``).

    Args:
        version: Image version string

    Returns:
        UTC datetime of the build, or datetime.min (UTC) when unrecognized

    Examples:
        >>> parse_published_date("9600.21620.231004").date().isoformat()
        '2023-10-04'
        >>> parse_published_date("latest") == datetime.min.replace(tzinfo=UTC)
        True
    """
    last = version.rsplit(".", 1)[-1]

    for pattern, century in ((_YYYYMMDD, 0), (_YYMMDD, 2000)):
        match = pattern.match(last)
        if not match:
            continue
        year, month, day = (int(part) for part in match.groups())
        try:
            return datetime(year + century, month, day, tzinfo=UTC)
        except ValueError:
            return _UNKNOWN_DATE

    return _UNKNOWN_DATE


def family_from_offer_sku(offer: str, sku: str) -> str:
    """Build an image family name from a marketplace offer and SKU.

    Examples:
        >>> family_from_offer_sku("WindowsServer", "2012-Datacenter")
        'WindowsServer 2012-Datacenter'
    """
    return f"{offer} {sku}"
