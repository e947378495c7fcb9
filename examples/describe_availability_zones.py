"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

Sample that lists EC2 availability zones with credentials from the environment.
"""

import sys

from aws_req import (
    URI,
    AWSRequest,
    EnvironmentCredentialsResolver,
    sign_and_execute,
)

ENDPOINT = (
    "https://ec2.us-west-2.amazonaws.com/"
    "?Action=DescribeAvailabilityZones&Version=2016-11-15"
)


def main() -> int:
    identity = EnvironmentCredentialsResolver().get_identity()
    request = AWSRequest(destination=URI.from_url(ENDPOINT), method="GET")
    result = sign_and_execute(request, identity)

    print(f"{result.response.status} in {result.total_time:.3f}s", file=sys.stderr)
    print(result.response.consume_body().decode())
    return 0 if result.response.status == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
