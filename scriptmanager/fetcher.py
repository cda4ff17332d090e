"""
Remote fetcher - retrieves userscripts, update metadata and @require resources.

Each request runs on a worker thread and the caller waits at most `timeout`
seconds for the whole transfer. On timeout the in-flight response is closed
and the caller waits for the worker to wind down before reporting failure, so
no request outlives the fetch() call that started it. Every socket operation
is bounded by the time left, and timed-out connects or reads are not retried.
"""

import concurrent.futures
import logging
import threading
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import NetworkFailure
from .monitor import log_event
from .shared_config import FETCH_TIMEOUT


class RemoteFetcher:
    """Blocking, time-bounded HTTP GET for text resources."""

    def __init__(self, timeout: float = FETCH_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 max_workers: int = 4):
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            retries = Retry(
                total=2,
                connect=0,
                read=0,
                backoff_factor=0.5,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
                respect_retry_after_header=False,
            )
            adapter = HTTPAdapter(max_retries=retries)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            session.headers.update({
                'User-Agent': 'scriptmanager/1.0 (userscript manager)',
            })
        self.session = session
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="scriptmanager-fetch")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.session.close()

    def _get(self, url: str, cancelled: threading.Event, in_flight: dict, deadline: float) -> str:
        remaining = max(deadline - time.monotonic(), 0.001)
        with self.session.get(url, stream=True, timeout=remaining) as resp:
            in_flight['response'] = resp
            if cancelled.is_set():
                raise NetworkFailure(f'{url} cancelled')
            if resp.status_code != 200:
                raise NetworkFailure(f'{url} returned status {resp.status_code}')
            chunks = []
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if cancelled.is_set():
                    raise NetworkFailure(f'{url} cancelled')
                if chunk:
                    chunks.append(chunk)
        try:
            return b''.join(chunks).decode('utf-8')
        except UnicodeDecodeError as e:
            raise NetworkFailure(f'{url} is not utf-8 text') from e

    @staticmethod
    def _abort(in_flight: dict) -> None:
        resp = in_flight.get('response')
        if resp is None:
            return
        try:
            resp.close()
        except Exception as e:
            # the worker may be closing it at the same time
            log_event('fetch.abort', f'closing response failed: {e}', logging.DEBUG)

    def fetch(self, url: str) -> str:
        """
        Fetch a url as text.

        Raises:
            NetworkFailure: request error, non-200 status, empty body or timeout
        """
        log_event('fetch.start', url, logging.DEBUG)
        cancelled = threading.Event()
        in_flight: dict = {}
        deadline = time.monotonic() + self.timeout
        future = self._executor.submit(self._get, url, cancelled, in_flight, deadline)
        try:
            text = future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as e:
            cancelled.set()
            self._abort(in_flight)
            concurrent.futures.wait([future])
            raise NetworkFailure(f'{url} timed out after {self.timeout}s') from e
        except requests.RequestException as e:
            raise NetworkFailure(f'{url} failed: {e}') from e

        if not text:
            raise NetworkFailure(f'{url} returned no content')
        log_event('fetch.done', url, logging.DEBUG)
        return text

    def get_remote_contents(self, url: str) -> Optional[str]:
        """fetch() that logs failures and returns None instead of raising."""
        try:
            return self.fetch(url)
        except NetworkFailure as e:
            log_event('fetch.failed', str(e), logging.ERROR)
            return None
