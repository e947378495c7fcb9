# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
import time
from dataclasses import dataclass
from io import BytesIO
from itertools import chain
from typing import Any

import aiohttp
from yarl import URL

from ._http import AWSRequest, AWSResponse, Fields
from .exceptions import SigningError, TransportError
from .hostname import SigningScope, parse_hostname
from .interfaces.identity import AWSCredentialsIdentity
from .signers import SigV4Signer, SigV4SigningProperties

_LOGGER = logging.getLogger(__name__)

# Services whose requests carry X-Amz-Content-SHA256 and use the raw path when
# signing.
_S3_SERVICES = frozenset({"s3", "s3-object-lambda"})


@dataclass(kw_only=True)
class AIOHTTPClientConfig:
    """Configuration that applies to every request sent by an
    :py:class:`AIOHTTPClient`."""

    timeout: float | None = None
    """Total seconds allowed for the round trip, including reading the body.

    ``None`` keeps aiohttp's default.
    """


@dataclass(kw_only=True)
class ExecutionResult:
    """The outcome of one signed request."""

    response: AWSResponse
    """Status, headers and body of the response. Non-2xx responses are not errors."""

    total_time: float
    """Seconds from dispatching the request until the response headers arrived."""


class AIOHTTPClient:
    """Sends :py:class:`AWSRequest` objects with aiohttp.

    A new ``aiohttp.ClientSession`` is opened and closed for every request, so no
    connection is shared between calls.
    """

    def __init__(
        self,
        *,
        client_config: AIOHTTPClientConfig | None = None,
        _session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        :param client_config: Configuration that applies to all requests made with this
        client.
        """
        self._config = client_config or AIOHTTPClientConfig()
        self._session = _session

    async def send(self, *, request: AWSRequest) -> ExecutionResult:
        """Send a signed request and time the wait for its response headers.

        :param request: The request including destination URI, fields, payload.
        :raises TransportError: If DNS, TLS, the connection or a timeout fails.
        """
        url = request.destination.build()
        try:
            if self._session is not None:
                return await self._send(self._session, request)
            async with aiohttp.ClientSession(**self._session_options()) as session:
                return await self._send(session, request)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(str(e) or type(e).__name__, url=url) from e

    async def _send(
        self, session: aiohttp.ClientSession, request: AWSRequest
    ) -> ExecutionResult:
        headers_list = list(
            chain.from_iterable(fld.as_tuples() for fld in request.fields)
        )
        data = request.body.read() if request.body is not None else None

        _LOGGER.debug(
            "Sending request %s %s", request.method, request.destination.build()
        )
        start = time.perf_counter()
        async with session.request(
            method=request.method,
            # The query was signed exactly as written, so it must not be re-encoded.
            url=URL(request.destination.build(), encoded=True),
            headers=headers_list,
            data=data,
        ) as resp:
            total_time = time.perf_counter() - start
            response = await self._marshal_response(resp)

        _LOGGER.debug(
            "Received response: %s %s in %.3fs",
            response.status,
            response.reason,
            total_time,
        )
        return ExecutionResult(response=response, total_time=total_time)

    def _session_options(self) -> dict[str, Any]:
        if self._config.timeout is None:
            return {}
        return {"timeout": aiohttp.ClientTimeout(total=self._config.timeout)}

    async def _marshal_response(
        self, aiohttp_resp: aiohttp.ClientResponse
    ) -> AWSResponse:
        """Convert a ``aiohttp.ClientResponse`` to an ``AWSResponse``."""
        headers = Fields()
        for header_name, header_val in aiohttp_resp.headers.items():
            headers.add(header_name, header_val)

        return AWSResponse(
            status=aiohttp_resp.status,
            fields=headers,
            body=BytesIO(await aiohttp_resp.read()),
            reason=aiohttp_resp.reason,
        )


def signing_properties_for(scope: SigningScope) -> SigV4SigningProperties:
    """Build the signing properties a service expects for ``scope``."""
    if not scope.service or not scope.region:
        raise SigningError(f"incomplete signing scope: {scope!r}", stage="scope")
    properties = SigV4SigningProperties(region=scope.region, service=scope.service)
    if scope.service in _S3_SERVICES:
        properties["content_checksum_enabled"] = True
        properties["uri_encode_path"] = False
    return properties


async def async_sign_and_execute(
    request: AWSRequest,
    identity: AWSCredentialsIdentity,
    scope: SigningScope | None = None,
    *,
    date: str | None = None,
    http_client: AIOHTTPClient | None = None,
) -> ExecutionResult:
    """Sign ``request`` in place and send it.

    :param request: The request to sign. Its fields gain the SigV4 headers.
    :param identity: The credentials to sign with.
    :param scope: The service and region to sign for. Resolved from the request's
        host when omitted.
    :param date: A SigV4 timestamp to sign with instead of the current time.
    :param http_client: The client used to send the request. A default
        :py:class:`AIOHTTPClient` is created when omitted.
    :raises HostnameParseError: If ``scope`` is omitted and the host has no
        recognizable service and region.
    :raises SigningError: If the request cannot be signed. Nothing is sent.
    :raises TransportError: If the request cannot be sent. It is not retried.
    """
    if scope is None:
        scope = parse_hostname(request.destination.host)
    _LOGGER.debug("Signing for service=%s region=%s", scope.service, scope.region)

    properties = signing_properties_for(scope)
    if date is not None:
        properties["date"] = date
    SigV4Signer().sign(
        signing_properties=properties, http_request=request, identity=identity
    )

    http_client = http_client or AIOHTTPClient()
    return await http_client.send(request=request)


def sign_and_execute(
    request: AWSRequest,
    identity: AWSCredentialsIdentity,
    scope: SigningScope | None = None,
    *,
    date: str | None = None,
    http_client: AIOHTTPClient | None = None,
) -> ExecutionResult:
    """Blocking form of :py:func:`async_sign_and_execute`.

    Runs its own event loop, so it must not be called from a running loop.
    """
    return asyncio.run(
        async_sign_and_execute(
            request, identity, scope, date=date, http_client=http_client
        )
    )
