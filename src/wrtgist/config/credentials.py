"""
Environment-sourced credentials for wrtgist.

The access token and the encryption password are read once at startup from
the process environment and handed to the procedures explicitly. Nothing in
this module is ever persisted.

Recognised variables:
    GITHUB_PAT           - GitHub token with the "gist" scope (required)
    ENCRYPTION_PASSWORD  - Password for key derivation (required)
    BACKUP_GIST_ID       - Gist to update / restore from (optional)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

TOKEN_ENV_VAR = "GITHUB_PAT"
PASSWORD_ENV_VAR = "ENCRYPTION_PASSWORD"
GIST_ID_ENV_VAR = "BACKUP_GIST_ID"


class CredentialError(Exception):
    """Base exception for credential-related errors."""

    pass


class MissingCredentialError(CredentialError):
    """
    Raised when a required credential is absent or empty.

    Attributes:
        missing: Names of the environment variables that were not set.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Required environment variable(s) not set: {', '.join(missing)}"
        )


@dataclass(frozen=True)
class Credentials:
    """
    Secrets needed by the backup and restore procedures.

    The token and password are kept out of repr() so they never end up in
    logs or tracebacks.
    """

    token: str = field(repr=False)
    password: str = field(repr=False)
    gist_id: str = ""


def load_credentials(
    environ: Mapping[str, str] | None = None,
    default_gist_id: str = "",
    require_token: bool = True,
) -> Credentials:
    """
    Build Credentials from the environment.

    Args:
        environ: Mapping to read from. Defaults to os.environ.
        default_gist_id: Gist id used when BACKUP_GIST_ID is not set
                         (typically gist.gist_id from the config file).
        require_token: Set to False for offline operations that only need
                       the password.

    Returns:
        Populated Credentials.

    Raises:
        MissingCredentialError: If the token or password is missing or empty.
    """
    env = os.environ if environ is None else environ

    token = env.get(TOKEN_ENV_VAR, "").strip()
    password = env.get(PASSWORD_ENV_VAR, "")
    gist_id = env.get(GIST_ID_ENV_VAR, "").strip() or default_gist_id.strip()

    missing = []
    if require_token and not token:
        missing.append(TOKEN_ENV_VAR)
    if not password:
        missing.append(PASSWORD_ENV_VAR)
    if missing:
        raise MissingCredentialError(missing)

    return Credentials(token=token, password=password, gist_id=gist_id)
