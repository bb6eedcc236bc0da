"""Network capability used by the importer.

The importer only needs ``request(url, method, body, headers) -> bytes``.
``HttpTransport`` provides it over a requests session; tests substitute an
in-memory fake. ``FetchPool`` runs requests on worker threads and posts each
outcome to a queue so a single consumer applies them to the model.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, Protocol

import requests

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Request could not be completed (network, HTTP status, timeout)."""


class Transport(Protocol):
    def request(self, url: str, method: str = "GET", body: bytes | None = None,
                headers: dict[str, str] | None = None) -> bytes:
        ...


class HttpTransport:
    """requests-backed Transport with a shared session and per-request timeout."""

    def __init__(self, timeout: float = 30, user_agent: str = "synth-import/0.1"):
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def request(self, url: str, method: str = "GET", body: bytes | None = None,
                headers: dict[str, str] | None = None) -> bytes:
        try:
            response = self.session.request(
                method, url, data=body, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        return response.content

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FetchKind(Enum):
    FRAGMENT = "fragment"
    IMAGE = "image"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one fetch: payload on success, error message on failure."""

    kind: FetchKind
    key: Hashable
    payload: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FetchPool:
    """Issue GET requests concurrently; completions arrive on ``results``.

    Workers never touch the scene model. They only enqueue FetchResult
    objects, which the owner drains one at a time.
    """

    def __init__(self, transport: Transport, max_workers: int = 8):
        self.transport = transport
        self.results: queue.Queue[FetchResult] = queue.Queue()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="synth-fetch")

    def _fetch(self, kind: FetchKind, key: Any, url: str) -> None:
        try:
            payload = self.transport.request(url)
        except TransportError as e:
            self.results.put(FetchResult(kind, key, error=str(e)))
            return
        except Exception as e:
            # Still post a result so the consumer's pending count can settle.
            logger.exception("Unexpected error fetching %s", url)
            self.results.put(FetchResult(kind, key, error=f"{type(e).__name__}: {e}"))
            return
        self.results.put(FetchResult(kind, key, payload=payload))

    def submit(self, kind: FetchKind, key: Any, url: str) -> None:
        self._executor.submit(self._fetch, kind, key, url)

    def get(self, timeout: float | None = None) -> FetchResult:
        return self.results.get(timeout=timeout)

    def shutdown(self) -> None:
        # Outstanding fetches are left to finish; their results are ignored.
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
