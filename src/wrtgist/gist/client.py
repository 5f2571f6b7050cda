"""
GitHub Gist API client.

Wraps the handful of Gist endpoints wrtgist needs: create, update, list,
fetch by id, and raw file download. Responses are parsed into GistRecord
objects; HTTP failures are mapped onto the GistError hierarchy.

Design Principles:
    - Every request carries an explicit timeout
    - Read-only calls (list, fetch, download) are retried with exponential
      backoff on connection errors and rate limits
    - Mutations (create, update) are sent exactly once
    - Request bodies are streamed from a file, never built in memory
    - All API calls are logged for an audit trail

Authentication:
    A token with the "gist" scope, sent as a bearer token.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import requests

from wrtgist.config.settings import DEFAULT_API_URL
from wrtgist.gist.models import GistFormatError, GistRecord

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
DOWNLOAD_CHUNK_SIZE = 64 * 1024


# -----------------------------------------------------------------------------
# Error Classes
# -----------------------------------------------------------------------------


class GistError(Exception):
    """Base exception for Gist Store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(f"[HTTP {status_code}] {message}" if status_code else message)


class GistAuthenticationError(GistError):
    """
    Raised when the token is rejected.

    This includes invalid or expired tokens and missing "gist" scope.
    """

    pass


class GistNotFoundError(GistError):
    """Raised when a Gist id does not exist or is not visible to the token."""

    pass


class GistRateLimitError(GistError):
    """
    Raised when the API rate limit is exceeded.

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class GistConnectionError(GistError):
    """
    Raised when the API cannot be reached.

    This includes network errors, DNS failures, and timeouts.
    """

    pass


class GistResponseError(GistError):
    """Raised when a response body is not the JSON document expected."""

    pass


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class GistClient:
    """
    Minimal client for the GitHub Gist REST API.

    Example:
        client = GistClient(token)
        response = client.create_gist(payload_path)
        record = client.get_gist(response["id"])
        client.download_raw(record.files[name].raw_url, local_path)

    Attributes:
        api_url: Base URL of the GitHub REST API.
        timeout: Per-request timeout in seconds.
        max_retries: Retries for read-only calls.
    """

    default_retry_base_delay: float = 1.0
    default_retry_max_delay: float = 30.0

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        session: requests.Session | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            token: GitHub token with the "gist" scope.
            api_url: Base API URL (override for GitHub Enterprise).
            timeout: Per-request timeout in seconds.
            max_retries: Retries for read-only calls on transient errors.
            session: Optional pre-built session (used by tests).
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._token = token
        self._session = session

        self._retry_base_delay = self.default_retry_base_delay
        self._retry_max_delay = self.default_retry_max_delay

    def _get_session(self) -> requests.Session:
        """Get or create a requests session with authentication headers."""
        if self._session is None:
            self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            }
        )
        return self._session

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_gist(self, payload_path: Path) -> dict[str, Any]:
        """
        Create a new Gist from a JSON payload file.

        Args:
            payload_path: File holding the request body
                          ({"description", "public", "files"}).

        Returns:
            The decoded API response.
        """
        return self._send_payload("POST", "/gists", payload_path)

    def update_gist(self, gist_id: str, payload_path: Path) -> dict[str, Any]:
        """
        Update an existing Gist from a JSON payload file.

        Files named in the payload are added or replaced; other files in the
        Gist are left untouched.

        Returns:
            The decoded API response.
        """
        return self._send_payload("PATCH", f"/gists/{gist_id}", payload_path)

    def get_gist(self, gist_id: str) -> GistRecord:
        """
        Fetch a single Gist with full file metadata.

        Raises:
            GistNotFoundError: If the id does not exist.
            GistResponseError: If the response is not a Gist document.
        """
        data = self._with_retry(self._get_json, f"/gists/{gist_id}")
        try:
            return GistRecord.from_dict(data)
        except GistFormatError as e:
            raise GistResponseError(f"Malformed Gist {gist_id}: {e}") from e

    def list_gists(self, per_page: int = 100) -> list[GistRecord]:
        """
        List every Gist owned by the authenticated user.

        Follows the Link header until the last page.

        Returns:
            Records in the order the API lists them.
        """
        records: list[GistRecord] = []
        url: str | None = self._url("/gists")
        params: dict[str, Any] | None = {"per_page": per_page}

        while url:
            response = self._with_retry(self._request, "GET", url, params=params)
            page = self._decode_json(response)
            if not isinstance(page, list):
                raise GistResponseError("Gist listing is not a JSON array")

            for item in page:
                try:
                    records.append(GistRecord.from_dict(item))
                except GistFormatError as e:
                    logger.warning(f"Skipping malformed Gist in listing: {e}")

            url = response.links.get("next", {}).get("url")
            params = None

        logger.debug(f"Listed {len(records)} gists")
        return records

    def download_raw(self, raw_url: str, destination: Path) -> int:
        """
        Download a file's raw content verbatim.

        The raw host serves secret Gists without authentication, so the
        token is not sent along.

        Returns:
            Number of bytes written.
        """
        return self._with_retry(self._download, raw_url, Path(destination))

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _send_payload(self, method: str, endpoint: str, payload_path: Path) -> dict[str, Any]:
        with open(payload_path, "rb") as body:
            response = self._request(
                method,
                self._url(endpoint),
                data=body,
                headers={"Content-Type": "application/json"},
            )
        data = self._decode_json(response)
        if not isinstance(data, dict):
            raise GistResponseError(f"{method} {endpoint} returned a non-object body")
        return data

    def _get_json(self, endpoint: str) -> Any:
        return self._decode_json(self._request("GET", self._url(endpoint)))

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: Any = None,
        headers: dict[str, Any] | None = None,
        stream: bool = False,
    ) -> requests.Response:
        """
        Send a request and map error statuses onto GistError subclasses.

        Raises:
            GistAuthenticationError: On 401, or 403 without rate limiting.
            GistRateLimitError: On 429, or 403 with an exhausted quota.
            GistNotFoundError: On 404.
            GistConnectionError: On network failures and timeouts.
            GistError: On any other error status.
        """
        session = self._get_session()
        start_time = time.time()

        try:
            response = session.request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.exceptions.Timeout as e:
            raise GistConnectionError(f"Request to {url} timed out: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise GistConnectionError(f"Failed to connect to {url}: {e}") from e

        duration_ms = (time.time() - start_time) * 1000
        self._log_api_call(method, url, response.status_code, duration_ms)

        status = response.status_code
        if status < 400:
            return response

        message = self._error_message(response)

        if status == 401:
            raise GistAuthenticationError(
                f"GitHub rejected the token: {message}", status
            )

        if status in (403, 429):
            remaining = response.headers.get("X-RateLimit-Remaining")
            if status == 429 or remaining == "0":
                raise GistRateLimitError(
                    f"GitHub rate limit exceeded: {message}",
                    status,
                    retry_after=self._retry_after(response),
                )
            raise GistAuthenticationError(
                f"GitHub permission denied (does the token have the 'gist' scope?): {message}",
                status,
            )

        if status == 404:
            raise GistNotFoundError(f"Not found: {url}", status)

        raise GistError(f"{method} {url} failed: {message}", status)

    def _download(self, raw_url: str, destination: Path) -> int:
        response = self._request(
            "GET",
            raw_url,
            headers={"Authorization": None, "Accept": None},
            stream=True,
        )
        written = 0
        try:
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        except requests.exceptions.RequestException as e:
            raise GistConnectionError(f"Download from {raw_url} interrupted: {e}") from e
        finally:
            response.close()
        return written

    @staticmethod
    def _decode_json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise GistResponseError(
                f"Invalid JSON in response: {response.text[:200]!r}",
                response.status_code,
            ) from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason or "no details"
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return str(body)[:200]

    @staticmethod
    def _retry_after(response: requests.Response) -> float | None:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return float(retry_after)
        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return max(0.0, int(reset) - time.time())
        return None

    def _with_retry(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """
        Execute a read-only call with retry logic and exponential backoff.

        Retries on connection errors and rate limits, never on
        authentication errors, missing Gists or other permanent failures.

        Raises:
            The last exception if all retries are exhausted.
        """
        retries = self.max_retries

        for attempt in range(retries + 1):
            try:
                return func(*args, **kwargs)
            except GistRateLimitError as e:
                if attempt >= retries:
                    raise
                delay = e.retry_after
                if delay is None:
                    delay = self._backoff(attempt)
                delay = min(delay, self._retry_max_delay)
                logger.warning(
                    f"Rate limited, retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{retries})"
                )
                time.sleep(delay)
            except GistConnectionError as e:
                if attempt >= retries:
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"Connection error, retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{retries}): {e}"
                )
                time.sleep(delay)

        raise GistError("Unknown error during retry")

    def _backoff(self, attempt: int) -> float:
        return min(self._retry_base_delay * (2**attempt), self._retry_max_delay)

    def _log_api_call(
        self,
        method: str,
        endpoint: str,
        status_code: int | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """
        Log an API call for audit trail.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: API endpoint URL or path.
            status_code: Response status code (if available).
            duration_ms: Request duration in milliseconds.
        """
        msg = f"API call: {method} {endpoint}"
        if status_code is not None:
            msg += f" -> {status_code}"
        if duration_ms is not None:
            msg += f" ({duration_ms:.0f}ms)"
        logger.info(msg)
