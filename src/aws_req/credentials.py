# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import os
from collections.abc import Mapping, Sequence
from typing import Final

from ._identity import AWSCredentialIdentity
from .exceptions import CredentialsError

# Candidate variables in order of preference.
ACCESS_KEY_VARS: Final = ("AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY")
SECRET_KEY_VARS: Final = ("AWS_SECRET_ACCESS_KEY", "AWS_SECRET_KEY")
SESSION_TOKEN_VARS: Final = ("AWS_SESSION_TOKEN",)


def _lookup(
    environ: Mapping[str, str], names: Sequence[str]
) -> tuple[str, str] | None:
    """Return the first ``(name, value)`` pair with a non-empty value."""
    for name in names:
        if value := environ.get(name):
            return name, value
    return None


class EnvironmentCredentialsResolver:
    """Resolves AWS Credentials from system environment variables.

    Nothing is cached: every call reads the environment again.
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def get_identity(self) -> AWSCredentialIdentity:
        access_key = _lookup(self.environ, ACCESS_KEY_VARS)
        secret_key = _lookup(self.environ, SECRET_KEY_VARS)
        session_token = _lookup(self.environ, SESSION_TOKEN_VARS)

        if access_key is None or secret_key is None:
            raise CredentialsError(
                f"{' or '.join(ACCESS_KEY_VARS)} and "
                f"{' or '.join(SECRET_KEY_VARS)} are required"
            )

        return AWSCredentialIdentity(
            access_key_id=access_key[1],
            secret_access_key=secret_key[1],
            session_token=session_token[1] if session_token else None,
        )

    def describe(self) -> dict[str, str | None]:
        """Name the variable each credential would be read from, without values.

        Keys are ``access_key``, ``secret_key`` and ``session_token``; a value of
        ``None`` means no candidate variable is set.
        """
        sources = {
            "access_key": _lookup(self.environ, ACCESS_KEY_VARS),
            "secret_key": _lookup(self.environ, SECRET_KEY_VARS),
            "session_token": _lookup(self.environ, SESSION_TOKEN_VARS),
        }
        return {key: pair[0] if pair else None for key, pair in sources.items()}
