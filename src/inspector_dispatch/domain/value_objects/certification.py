"""Certification value object."""

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Certification:
    """Certification held by an inspector.

    Only the name participates in search filtering; expiry is informational.
    """

    name: str
    issuing_authority: str
    expiry_date: Optional[date] = None

    def __post_init__(self) -> None:
        """Validate certification data."""
        if not self.name or not self.name.strip():
            raise ValueError("Certification name cannot be empty")
        if not self.issuing_authority or not self.issuing_authority.strip():
            raise ValueError("Issuing authority cannot be empty")

    @property
    def normalized_name(self) -> str:
        """Case-insensitive name used for matching."""
        return normalize_certification_name(self.name)

    def matches(self, name: str) -> bool:
        """Check whether this certification satisfies a required name."""
        return self.normalized_name == normalize_certification_name(name)


def normalize_certification_name(name: str) -> str:
    """Normalize a certification name for case-insensitive comparison."""
    return " ".join(name.split()).casefold()
