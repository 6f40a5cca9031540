from __future__ import annotations

from typing import Callable, List

import httpx
import pytest

from genproxy.errors import AuthenticationError
from genproxy.services.identity import AuthenticatedSubject


class FakeVerifier:
    """Accepts a fixed set of tokens and records every verification."""

    def __init__(self, tokens: dict[str, str] | None = None) -> None:
        self.tokens = tokens if tokens is not None else {"good-token": "user-123"}
        self.calls: List[str] = []

    def verify(self, token: str) -> AuthenticatedSubject:
        self.calls.append(token)
        uid = self.tokens.get(token)
        if uid is None:
            raise AuthenticationError("Invalid Firebase ID token")
        return AuthenticatedSubject(uid=uid, claims={"uid": uid})


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every outbound request for assertions."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture()
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture()
def make_transport():
    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> RecordingTransport:
        return RecordingTransport(handler)

    return _factory
