"""
Typed views of GitHub Gist API documents.

API responses are parsed into these dataclasses before any filtering or
selection happens, so the rest of the code works on typed fields rather
than raw JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class GistFormatError(ValueError):
    """Raised when an API document does not have the shape of a Gist."""

    pass


def _parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 API timestamp ("2024-01-01T12:00:00Z").

    Timestamps without an offset are taken as UTC so every parsed value
    can be compared with every other.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class GistFile:
    """
    One file entry inside a Gist.

    Attributes:
        filename: Name of the file within the Gist.
        raw_url: Direct download URL for the file content.
        size: Content size in bytes as reported by the API.
        truncated: True if `content` was cut short by the API.
        content: Inline content, present only on single-gist fetches.
    """

    filename: str
    raw_url: str | None = None
    size: int = 0
    truncated: bool = False
    content: str | None = None

    @classmethod
    def from_dict(cls, filename: str, data: dict[str, Any] | None) -> GistFile:
        """Create a file entry from its API representation."""
        data = data or {}
        return cls(
            filename=data.get("filename") or filename,
            raw_url=data.get("raw_url") or None,
            size=int(data.get("size") or 0),
            truncated=bool(data.get("truncated", False)),
            content=data.get("content"),
        )


@dataclass
class GistRecord:
    """
    A Gist document.

    Attributes:
        id: Opaque Gist identifier.
        description: Free-text label; backups carry a fixed marker here.
        public: Visibility flag. Backups are always private.
        created_at: Creation time, None if the API omitted it.
        updated_at: Last update time, None if the API omitted it.
        html_url: Browser URL of the Gist.
        files: Mapping of filename to file entry, in API order.
    """

    id: str
    description: str = ""
    public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    html_url: str | None = None
    files: dict[str, GistFile] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> GistRecord:
        """
        Create a record from an API document.

        Raises:
            GistFormatError: If the document has no id or a malformed file map.
        """
        if not isinstance(data, dict):
            raise GistFormatError(f"Expected a Gist object, got {type(data).__name__}")

        gist_id = data.get("id")
        if not gist_id:
            raise GistFormatError("Gist object has no id")

        raw_files = data.get("files") or {}
        if not isinstance(raw_files, dict):
            raise GistFormatError(f"Gist {gist_id} has a malformed files map")

        return cls(
            id=str(gist_id),
            description=data.get("description") or "",
            public=bool(data.get("public", False)),
            created_at=_parse_timestamp(data.get("created_at")),
            updated_at=_parse_timestamp(data.get("updated_at")),
            html_url=data.get("html_url") or None,
            files={
                name: GistFile.from_dict(name, entry)
                for name, entry in raw_files.items()
            },
        )
