"""
Shared test doubles for HTTP-backed adapters.
"""

import json
from typing import Any, Dict, List, Optional

import pytest
import requests


class StubResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code: int = 200, body: Any = None, raw: Optional[bytes] = None):
        self.status_code = status_code
        self._body = body
        if raw is not None:
            self.content = raw
        elif body is None:
            self.content = b""
        else:
            self.content = json.dumps(body).encode("utf-8")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if not self.content:
            raise ValueError("No JSON body")
        return json.loads(self.content)


class StubSession:
    """Records outgoing calls and replays queued responses (or raises queued errors)."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, kwargs: Dict[str, Any]) -> StubResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        return self._next(method, url, kwargs)

    def post(self, url: str, **kwargs: Any) -> StubResponse:
        return self._next("POST", url, kwargs)


@pytest.fixture
def stub_session():
    """Factory for a StubSession preloaded with responses."""
    return StubSession


@pytest.fixture
def stub_response():
    return StubResponse


@pytest.fixture
def connection_error():
    return requests.exceptions.ConnectionError("connection refused")
