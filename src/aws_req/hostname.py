# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from dataclasses import dataclass
from typing import Final

from .exceptions import HostnameParseError

BASE_DOMAIN: Final = ".amazonaws.com"
DEFAULT_REGION: Final = "us-east-1"

# At least "x.amazonaws.com".
_MIN_HOSTNAME_LENGTH: Final = len(BASE_DOMAIN) + 1


@dataclass(frozen=True)
class SigningScope:
    """The service and region a request is signed for."""

    service: str
    region: str


def parse_hostname(hostname: str) -> SigningScope:
    """Return the service and region identifiers from a hostname.

    Validation is minimal: ``ec200.amazonaws.com`` parses fine. Errors are only
    raised when the structure of the hostname fails basic checks, e.g. length or
    the number of labels in front of ``amazonaws.com``. Service and region names
    are not checked against any list; the service itself rejects ones it does not
    know.

    If the region is not included, ``us-east-1`` is returned.

    :param hostname: The host part of the request URL, without a port.
    :raises HostnameParseError: If the hostname does not have the shape
        ``<service>.amazonaws.com`` or ``<service>.<region>.amazonaws.com``.
    """
    if len(hostname) < _MIN_HOSTNAME_LENGTH:
        raise HostnameParseError(hostname, "too short")
    if not hostname.endswith(BASE_DOMAIN):
        raise HostnameParseError(hostname, f"not a subdomain of {BASE_DOMAIN[1:]}")

    parts = hostname[: -len(BASE_DOMAIN)].split(".")
    if not all(parts):
        raise HostnameParseError(hostname, "empty label")

    match parts:
        case [service]:
            return SigningScope(service=service, region=DEFAULT_REGION)
        case [service, region]:
            return SigningScope(service=service, region=region)
        case _:
            raise HostnameParseError(
                hostname, f"expected 1 or 2 labels before {BASE_DOMAIN[1:]}"
            )
