# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import pytest
from aws_req import AIOHTTPClient, AWSCredentialIdentity

from . import FakeResponse, FakeSession


@pytest.fixture
def aws_identity() -> AWSCredentialIdentity:
    return AWSCredentialIdentity(
        access_key_id="AKID123456",
        secret_access_key="EXAMPLE1234SECRET",
    )


@pytest.fixture
def aws_identity_with_token() -> AWSCredentialIdentity:
    return AWSCredentialIdentity(
        access_key_id="AKID123456",
        secret_access_key="EXAMPLE1234SECRET",
        session_token="X123456SESSION",
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession(
        FakeResponse(
            status=200,
            headers={"Content-Type": "text/xml", "x-amzn-RequestId": "abc-123"},
            body=b"<DescribeAvailabilityZonesResponse/>",
        )
    )


@pytest.fixture
def http_client(fake_session: FakeSession) -> AIOHTTPClient:
    return AIOHTTPClient(_session=fake_session)  # type: ignore[arg-type]
