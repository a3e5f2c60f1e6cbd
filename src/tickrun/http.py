"""HTTP requests as pollable operations.

Example:
    def start_collaboration(server_url, payload, status):
        request = post_json(f"{server_url}/api/start-collaboration", payload)
        yield request.send()
        if request.result is not RequestResult.SUCCESS:
            status.message = f"Error: {request.error}"
            return
        status.message = request.json()["message"]
"""

from __future__ import annotations

import concurrent.futures
import logging
from enum import Enum
from typing import Any

import httpx

from tickrun.config import get_settings
from tickrun.models import PendingOperation
from tickrun.operations import _get_default_executor

logger = logging.getLogger(__name__)

# Lets json=None send a JSON null
_NO_BODY = object()


class RequestResult(str, Enum):
    """Outcome of an HttpRequest."""

    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    CONNECTION_ERROR = "connection_error"  # No response: DNS, refused, timeout, ...
    PROTOCOL_ERROR = "protocol_error"  # Response with a non-2xx status


class HttpRequest:
    """
    A single HTTP request performed on a worker thread.

    Nothing is sent until ``send()``. After the operation is done, inspect
    ``result``, ``status_code``, ``text`` and ``error``.

    Args:
        method: HTTP method.
        url: Absolute URL.
        json: JSON-serialisable body. None sends a JSON null.
        content: Raw body (mutually exclusive with json).
        headers: Extra request headers.
        timeout: Seconds. Defaults to TICKRUN_HTTP_TIMEOUT (30).
        client: Shared httpx.Client. A private one is opened per request
            otherwise.
        executor: Thread pool to run on. Defaults to tickrun's shared pool.
    """

    def __init__(
        self,
        method: str,
        url: str,
        *,
        json: Any = _NO_BODY,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        executor: concurrent.futures.Executor | None = None,
    ) -> None:
        if json is not _NO_BODY and content is not None:
            raise ValueError("Pass either json or content, not both")
        self.method = method.upper()
        self.url = url
        self.has_json = json is not _NO_BODY
        self.json_body = json if self.has_json else None
        self.content = content
        self.headers = dict(headers or {})
        self.timeout = get_settings().http_timeout if timeout is None else timeout
        self._client = client
        self._executor = executor

        self._future: concurrent.futures.Future | None = None
        self._result = RequestResult.IN_PROGRESS
        self.response: httpx.Response | None = None
        self.error: str | None = None

    # --- Operation contract ---

    def send(self) -> PendingOperation:
        """
        Start the request (once) and return a value to yield on.

        Calling send() again returns a wait on the same in-flight request.
        """
        if self._future is None:
            pool = self._executor or _get_default_executor()
            self._future = pool.submit(self._perform)
            logger.debug("%s %s sent", self.method, self.url)
        return PendingOperation(self)

    def is_done(self) -> bool:
        return self._future is not None and self._future.done()

    # --- Results ---

    @property
    def result(self) -> RequestResult:
        """Request outcome. Re-raises unexpected worker errors."""
        if self.is_done():
            # Surfaces anything _perform did not classify
            self._future.result()
        return self._result

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None

    @property
    def text(self) -> str:
        return self.response.text if self.response is not None else ""

    def json(self) -> Any:
        """Decode the response body as JSON."""
        if self.response is None:
            raise RuntimeError(f"No response for {self.method} {self.url}: {self.error or 'not done'}")
        return self.response.json()

    def _perform(self) -> None:
        kwargs: dict[str, Any] = {"headers": self.headers}
        if self.has_json and self.json_body is None:
            # httpx reads json=None as "no body"
            kwargs["content"] = b"null"
            kwargs["headers"] = {"Content-Type": "application/json", **self.headers}
        elif self.has_json:
            kwargs["json"] = self.json_body
        elif self.content is not None:
            kwargs["content"] = self.content

        try:
            if self._client is not None:
                response = self._client.request(self.method, self.url, timeout=self.timeout, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.request(self.method, self.url, **kwargs)
        except (httpx.RequestError, httpx.InvalidURL) as e:
            self.error = str(e) or type(e).__name__
            self._result = RequestResult.CONNECTION_ERROR
            logger.debug("%s %s failed: %s", self.method, self.url, self.error)
            return

        self.response = response
        if response.is_success:
            self._result = RequestResult.SUCCESS
        else:
            self.error = f"HTTP {response.status_code} {response.reason_phrase}".strip()
            self._result = RequestResult.PROTOCOL_ERROR
        logger.debug("%s %s -> %s", self.method, self.url, response.status_code)

    def __repr__(self) -> str:
        return f"<HttpRequest {self.method} {self.url} {self._result.value}>"


def post_json(url: str, payload: Any, **kwargs: Any) -> HttpRequest:
    """Build a JSON POST request (Content-Type: application/json)."""
    headers = {"Content-Type": "application/json", **kwargs.pop("headers", {})}
    return HttpRequest("POST", url, json=payload, headers=headers, **kwargs)
