"""
Gist Store access and backup selection.

The client talks to the GitHub API; models and selection are pure and can
be used on pre-fetched data.
"""

from wrtgist.gist.client import (
    GistAuthenticationError,
    GistClient,
    GistConnectionError,
    GistError,
    GistNotFoundError,
    GistRateLimitError,
    GistResponseError,
)
from wrtgist.gist.models import GistFile, GistFormatError, GistRecord
from wrtgist.gist.selection import (
    InvalidSelectionError,
    encrypted_files,
    find_backup_records,
    is_backup_candidate,
    parse_selection,
    select_latest_backup,
)

__all__ = [
    # Client
    "GistClient",
    "GistError",
    "GistAuthenticationError",
    "GistNotFoundError",
    "GistRateLimitError",
    "GistConnectionError",
    "GistResponseError",
    # Models
    "GistRecord",
    "GistFile",
    "GistFormatError",
    # Selection
    "InvalidSelectionError",
    "encrypted_files",
    "find_backup_records",
    "is_backup_candidate",
    "parse_selection",
    "select_latest_backup",
]
