"""
Choosing which Gist and which file to restore from.

Everything here works on pre-fetched GistRecord objects and has no network
or terminal access, so discovery and selection rules can be tested directly.

Discovery rules:
    - Candidates are private, their description contains the backup marker,
      and they hold at least one file ending with the encrypted suffix.
    - The newest candidate by created_at wins. Records without a timestamp
      rank lowest. Ties keep the earliest record in listing order.
"""

from __future__ import annotations

from collections.abc import Iterable

from wrtgist.gist.models import GistFile, GistRecord


class InvalidSelectionError(ValueError):
    """Raised when the operator's menu choice is not a valid option number."""

    pass


def encrypted_files(record: GistRecord, suffix: str) -> list[GistFile]:
    """
    List the encrypted backup files in a record.

    Files are ordered by filename. Backup filenames embed a sortable
    timestamp, so this is also oldest-first.
    """
    return sorted(
        (f for name, f in record.files.items() if name.endswith(suffix)),
        key=lambda f: f.filename,
    )


def is_backup_candidate(record: GistRecord, marker: str, suffix: str) -> bool:
    """Check whether a record looks like a backup made by this tool."""
    if record.public:
        return False
    if marker not in record.description:
        return False
    return any(name.endswith(suffix) for name in record.files)


def find_backup_records(
    records: Iterable[GistRecord],
    marker: str,
    suffix: str,
) -> list[GistRecord]:
    """Filter a listing down to backup candidates, keeping listing order."""
    return [r for r in records if is_backup_candidate(r, marker, suffix)]


def select_latest_backup(
    records: Iterable[GistRecord],
    marker: str,
    suffix: str,
) -> GistRecord | None:
    """
    Pick the newest backup candidate from a listing.

    Returns:
        The candidate with the greatest created_at, or None if no record
        passes the filter.
    """
    latest: GistRecord | None = None
    for record in find_backup_records(records, marker, suffix):
        if latest is None:
            latest = record
            continue
        if record.created_at is None:
            continue
        # Strictly greater: ties go to the record listed first
        if latest.created_at is None or record.created_at > latest.created_at:
            latest = record
    return latest


def parse_selection(raw: str, count: int) -> int:
    """
    Validate a 1-indexed menu choice.

    Args:
        raw: Text entered by the operator.
        count: Number of options that were shown.

    Returns:
        The 0-based index of the chosen option.

    Raises:
        InvalidSelectionError: If raw is not an integer in [1, count].
    """
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidSelectionError(f"Invalid selection {raw!r}: not a number")

    choice = int(text)
    if not 1 <= choice <= count:
        raise InvalidSelectionError(
            f"Invalid selection {choice}: must be between 1 and {count}"
        )
    return choice - 1
