# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class AWSReqError(Exception):
    """Top-level exception to capture aws-req errors."""


class HostnameParseError(AWSReqError, ValueError):
    """The hostname does not have the shape ``<service>[.<region>].amazonaws.com``."""

    def __init__(self, hostname: str, reason: str | None = None) -> None:
        self.hostname = hostname
        message = f"failed to parse domain [{hostname}]"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SigningError(AWSReqError):
    """The request could not be signed."""

    def __init__(self, message: str, *, stage: str) -> None:
        self.stage = stage
        super().__init__(f"failed to sign request ({stage}): {message}")


class TransportError(AWSReqError):
    """The signed request could not be sent or its response could not be read."""

    def __init__(self, message: str, *, url: str) -> None:
        self.url = url
        super().__init__(f"failed to perform request to {url}: {message}")


class CredentialsError(AWSReqError):
    """Credentials could not be resolved from the environment."""
