"""HTTP client for the MemOS Cloud API."""

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from .config import MemosConfig

logger = logging.getLogger(__name__)

SEARCH_MEMORY_PATH = "/search/memory"
ADD_MESSAGE_PATH = "/add/message"

# Backoff before retry N (1-based) is RETRY_DELAY_SECONDS * N
RETRY_DELAY_SECONDS = 0.1


class MemosError(Exception):
    """Base class for MemOS Cloud client errors."""


class MissingCredentialError(MemosError):
    """Raised before any network I/O when no API key is configured."""

    def __init__(self, message: str = "Missing MEMOS API key (Token auth)"):
        super().__init__(message)


class TransportError(MemosError):
    """A request failed at the network or HTTP level after all attempts.

    Attributes:
        status_code: HTTP status of the last response, if one was received.
        attempts: Number of attempts made.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 1):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class MalformedResponseError(MemosError):
    """A successful response whose body is not valid JSON."""


class MemosApiClient:
    """Posts JSON to the MemOS Cloud endpoints with bounded retries.

    A call makes at most ``retries + 1`` attempts. Each attempt is bounded by
    ``timeout_ms``; between attempts the client waits 100 ms, 200 ms, ...
    """

    def __init__(
        self,
        config: MemosConfig,
        session: Optional[Any] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the client.

        Args:
            config: Effective configuration (base_url, api_key, timeout_ms, retries).
            session: Optional ``requests.Session``-like object; the module-level
                ``requests`` API is used when omitted.
            sleep: Delay function, injectable for tests.
        """
        self._config = config
        self._session = session
        self._sleep = sleep

    @property
    def config(self) -> MemosConfig:
        return self._config

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Token {self._config.api_key}",
        }

    def _post(self, url: str, body: Any) -> Any:
        poster = self._session if self._session is not None else requests
        return poster.post(
            url,
            json=body,
            headers=self._headers(),
            timeout=self._config.timeout_ms / 1000,
        )

    def call(self, path: str, body: Any) -> Any:
        """POST ``body`` to ``base_url + path`` and return the decoded JSON.

        Raises:
            MissingCredentialError: No API key configured; nothing was sent.
            TransportError: Every attempt failed; carries the last failure.
            MalformedResponseError: A 2xx response was not JSON.
        """
        if not self._config.api_key:
            raise MissingCredentialError()

        url = f"{self._config.base_url}{path}"
        attempts = self._config.retries + 1
        last_error: Optional[TransportError] = None

        for attempt in range(attempts):
            try:
                response = self._post(url, body)
            except requests.Timeout as e:
                last_error = TransportError(
                    f"Request to {path} timed out after {self._config.timeout_ms} ms: {e}",
                    attempts=attempt + 1,
                )
            except requests.RequestException as e:
                last_error = TransportError(f"Request to {path} failed: {e}", attempts=attempt + 1)
            else:
                if 200 <= response.status_code < 300:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise MalformedResponseError(f"Invalid JSON from {path}: {e}") from e
                last_error = TransportError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    attempts=attempt + 1,
                )

            logger.debug("[memos-cloud] %s attempt %d/%d failed: %s", path, attempt + 1, attempts, last_error)
            if attempt < attempts - 1:
                self._sleep(RETRY_DELAY_SECONDS * (attempt + 1))

        raise last_error

    def search_memory(self, payload: Dict[str, Any]) -> Any:
        return self.call(SEARCH_MEMORY_PATH, payload)

    def add_message(self, payload: Dict[str, Any]) -> Any:
        return self.call(ADD_MESSAGE_PATH, payload)
