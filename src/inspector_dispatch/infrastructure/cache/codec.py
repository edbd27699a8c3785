"""Serialization of search pages for cache storage."""

import json
import zlib
from datetime import datetime
from typing import Any, Dict

from src.inspector_dispatch.domain.entities.inspector import InspectorStatus
from src.inspector_dispatch.domain.value_objects.page import InspectorSummary, Page


DEFAULT_COMPRESSION_THRESHOLD = 100 * 1024  # 100KB

RAW_MARKER = b"\x00"
COMPRESSED_MARKER = b"\x01"


class CacheCodecError(Exception):
    """Raised when a cached payload cannot be encoded or decoded."""
    pass


class PageCodec:
    """Encode pages to bytes, compressing payloads above a threshold.

    The first byte marks the payload as raw JSON or zlib-compressed JSON.
    """

    def __init__(self, compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD):
        self.compression_threshold = compression_threshold

    def encode(self, page: Page) -> bytes:
        """Serialize a page to a cache payload."""
        try:
            body = json.dumps(_page_to_dict(page), separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise CacheCodecError(f"Failed to serialize page: {exc}") from exc

        if len(body) > self.compression_threshold:
            return COMPRESSED_MARKER + zlib.compress(body)
        return RAW_MARKER + body

    def decode(self, payload: bytes) -> Page:
        """Deserialize a cache payload back to a page."""
        if not payload:
            raise CacheCodecError("Empty cache payload")

        marker, body = payload[:1], payload[1:]
        try:
            if marker == COMPRESSED_MARKER:
                body = zlib.decompress(body)
            elif marker != RAW_MARKER:
                raise CacheCodecError(f"Unknown payload marker {marker!r}")
            return _page_from_dict(json.loads(body.decode("utf-8")))
        except CacheCodecError:
            raise
        except (zlib.error, UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
            raise CacheCodecError(f"Failed to deserialize page: {exc}") from exc


def _page_to_dict(page: Page) -> Dict[str, Any]:
    return {
        "items": [_summary_to_dict(item) for item in page.items],
        "total_count": page.total_count,
        "page_number": page.page_number,
        "page_size": page.page_size,
    }


def _page_from_dict(data: Dict[str, Any]) -> Page:
    return Page(
        items=tuple(_summary_from_dict(item) for item in data["items"]),
        total_count=data["total_count"],
        page_number=data["page_number"],
        page_size=data["page_size"],
    )


def _summary_to_dict(summary: InspectorSummary) -> Dict[str, Any]:
    return {
        "id": summary.id,
        "first_name": summary.first_name,
        "last_name": summary.last_name,
        "badge_number": summary.badge_number,
        "status": summary.status.value,
        "latitude": summary.latitude,
        "longitude": summary.longitude,
        "distance_miles": summary.distance_miles,
        "certifications": list(summary.certifications),
        "last_drug_test_date": (
            summary.last_drug_test_date.isoformat() if summary.last_drug_test_date else None
        ),
        "is_active": summary.is_active,
    }


def _summary_from_dict(data: Dict[str, Any]) -> InspectorSummary:
    last_test = data["last_drug_test_date"]
    return InspectorSummary(
        id=data["id"],
        first_name=data["first_name"],
        last_name=data["last_name"],
        badge_number=data["badge_number"],
        status=InspectorStatus(data["status"]),
        latitude=data["latitude"],
        longitude=data["longitude"],
        distance_miles=data["distance_miles"],
        certifications=tuple(data["certifications"]),
        last_drug_test_date=datetime.fromisoformat(last_test) if last_test else None,
        is_active=data["is_active"],
    )
