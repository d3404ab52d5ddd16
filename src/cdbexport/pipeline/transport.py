"""
HTTP transport shared by the document loader and the sub-layer fetcher.

Responses are streamed to a ``.part`` file beside the destination and moved
into place only after the whole body arrived, so a failed download never
leaves a truncated file at the destination path.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import requests

from ..config.settings import HttpConfig
from ..utils import partial_path, remove_quietly, replace_file, retry_with_backoff

logger = logging.getLogger(__name__)

# Retried with backoff; HTTP error statuses are not
RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout)


def create_session(http: HttpConfig) -> requests.Session:
    """Create a session carrying the configured User-Agent."""
    session = requests.Session()
    session.headers.update({"User-Agent": http.user_agent})
    return session


def stream_to_file(
    session: requests.Session,
    url: str,
    dest: Path,
    http: HttpConfig,
    params: Optional[dict[str, Any]] = None,
    method: str = "GET",
) -> int:
    """
    Download ``url`` into ``dest``.

    Args:
        session: Session to issue the request on
        url: Resource URL
        dest: Destination file; its directory must exist
        http: Transport settings (timeout, chunk size, retries)
        params: Query parameters (GET) or form fields (POST)
        method: "GET" or "POST"

    Returns:
        Number of bytes written

    Raises:
        requests.RequestException: On connection errors, timeouts and non-2xx responses
        OSError: If the file cannot be written
    """
    @retry_with_backoff(max_retries=http.max_retries, base_delay=1.0, exceptions=RETRYABLE_ERRORS)
    def download_to_file() -> int:
        tmp_path = partial_path(dest)
        request_args: dict[str, Any] = {"params": params} if method == "GET" else {"data": params}
        try:
            with session.request(method, url, stream=True, timeout=http.timeout_s, **request_args) as response:
                response.raise_for_status()
                written = 0
                with open(tmp_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=http.chunk_size):
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
            replace_file(tmp_path, dest)
        except Exception:
            remove_quietly(tmp_path)
            raise
        return written

    logger.debug(f"{method} {url}")
    return download_to_file()


def fetch_bytes(session: requests.Session, url: str, http: HttpConfig) -> bytes:
    """Fetch a small resource into memory, retrying transient failures."""
    @retry_with_backoff(max_retries=http.max_retries, base_delay=1.0, exceptions=RETRYABLE_ERRORS)
    def fetch_resource() -> bytes:
        response = session.get(url, timeout=http.timeout_s)
        response.raise_for_status()
        return response.content

    logger.debug(f"GET {url}")
    return fetch_resource()
