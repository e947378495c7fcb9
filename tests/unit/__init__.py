# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any


class FakeResponse:
    """Stands in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        reason: str | None = "OK",
    ) -> None:
        self.status = status
        self.headers = dict(headers or {})
        self.reason = reason
        self._body = body

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    """Stands in for ``aiohttp.ClientSession`` and records every request."""

    def __init__(
        self,
        response: FakeResponse | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.calls: list[dict[str, Any]] = []

    @asynccontextmanager
    async def request(self, **kwargs: Any) -> AsyncIterator[FakeResponse]:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        yield self.response
