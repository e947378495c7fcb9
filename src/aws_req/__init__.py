# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""aws-req signs HTTPS requests to AWS service endpoints with SigV4 and sends them,
reporting the response together with how long it took to arrive."""

from ._http import URI, AWSRequest, AWSResponse, Field, Fields
from ._identity import AWSCredentialIdentity
from ._io import body_from_string, seekable_body
from .client import (
    AIOHTTPClient,
    AIOHTTPClientConfig,
    ExecutionResult,
    async_sign_and_execute,
    sign_and_execute,
)
from .credentials import EnvironmentCredentialsResolver
from .exceptions import (
    AWSReqError,
    CredentialsError,
    HostnameParseError,
    SigningError,
    TransportError,
)
from .hostname import SigningScope, parse_hostname
from .signers import SigV4Signer, SigV4SigningProperties

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AIOHTTPClient",
    "AIOHTTPClientConfig",
    "AWSCredentialIdentity",
    "AWSReqError",
    "AWSRequest",
    "AWSResponse",
    "CredentialsError",
    "EnvironmentCredentialsResolver",
    "ExecutionResult",
    "Field",
    "Fields",
    "HostnameParseError",
    "SigV4Signer",
    "SigV4SigningProperties",
    "SigningError",
    "SigningScope",
    "TransportError",
    "async_sign_and_execute",
    "body_from_string",
    "parse_hostname",
    "seekable_body",
    "sign_and_execute",
)
