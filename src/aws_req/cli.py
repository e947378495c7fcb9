# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""
Send an HTTPS request signed with IAM credentials read from the environment.

Credentials are read from AWS_ACCESS_KEY_ID (or AWS_ACCESS_KEY),
AWS_SECRET_ACCESS_KEY (or AWS_SECRET_KEY) and AWS_SESSION_TOKEN. Every flag can
also be set with an AWS_REQ_<FLAG> variable, e.g. AWS_REQ_METHOD=POST.

Examples:

    aws-req 'https://ec2.amazonaws.com/?Action=DescribeAvailabilityZones&Version=2016-11-15'

    aws-req --method POST --body '{"key":"val"}' \\
        https://X.execute-api.us-east-1.amazonaws.com/prod/endpoint

    aws-req --header '{"key":["val"]}' \\
        https://X.execute-api.us-east-1.amazonaws.com/prod/endpoint
"""

import argparse
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from typing import Final, NoReturn, TextIO

from ._http import HTTP_METHODS, URI, AWSRequest, AWSResponse, Fields
from ._io import body_from_string
from .client import AIOHTTPClient, AIOHTTPClientConfig, sign_and_execute
from .credentials import EnvironmentCredentialsResolver
from .exceptions import AWSReqError

ENV_PREFIX: Final = "AWS_REQ_"
SECTION_END: Final = "--"

EXIT_OK: Final = 0
EXIT_ERROR: Final = 1
EXIT_NON_200: Final = 2

_TRUE_STRINGS = ("1", "true", "yes", "on")
_FALSE_STRINGS = ("0", "false", "no", "off", "")


class UsageError(AWSReqError):
    """The command line or its AWS_REQ_* defaults are invalid."""


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(ENV_PREFIX + name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_STRINGS:
        return True
    if normalized in _FALSE_STRINGS:
        return False
    raise UsageError(f"invalid boolean for {ENV_PREFIX}{name}: {value!r}")


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        # Usage problems exit with EXIT_ERROR rather than argparse's 2.
        raise UsageError(f"{message}\n{self.format_usage().rstrip()}")


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="aws-req",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("url", help="HTTPS URL of the AWS service endpoint")
    parser.add_argument(
        "-X",
        "--method",
        default=environ.get(ENV_PREFIX + "METHOD", "GET"),
        help="HTTP method [GET]",
    )
    parser.add_argument(
        "-d", "--body", default=environ.get(ENV_PREFIX + "BODY", ""), help="HTTP body"
    )
    parser.add_argument(
        "-H",
        "--header",
        default=environ.get(ENV_PREFIX + "HEADER", ""),
        help="Headers in JSON format, e.g. '{\"key\": [\"val\"]}'",
    )
    parser.add_argument(
        "-j",
        "--json",
        action=argparse.BooleanOptionalAction,
        default=_env_flag(environ, "JSON", True),
        help="Add application/json header",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=_env_flag(environ, "VERBOSE", False),
        help="Display headers, response time, etc.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=environ.get(ENV_PREFIX + "TIMEOUT"),
        help="Seconds to wait for the whole request",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=_env_flag(environ, "DEBUG", False),
        help="Log signing and transport details to stderr",
    )
    return parser


def parse_header_json(raw: str) -> Fields:
    """Parse ``{"name": ["value", ...]}`` (or ``{"name": "value"}``) into fields."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise UsageError(f"failed to parse header JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise UsageError("header JSON must be an object")

    fields = Fields()
    for name, values in parsed.items():
        if isinstance(values, str):
            values = [values]
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise UsageError(
                f"header {name!r} must map to a string or a list of strings"
            )
        for value in values:
            fields.add(name, value)
    return fields


def build_request(args: argparse.Namespace) -> AWSRequest:
    try:
        destination = URI.from_url(args.url)
    except ValueError as e:
        raise UsageError(f"failed to parse URL: {e}") from e
    if destination.scheme != "https":
        raise UsageError("URL must be HTTPS")

    method = args.method.upper()
    if method not in HTTP_METHODS:
        raise UsageError(f"unsupported method {args.method!r}")

    fields = parse_header_json(args.header) if args.header else Fields()
    if args.json:
        fields.add("Content-Type", "application/json")

    return AWSRequest(
        destination=destination,
        method=method,
        fields=fields,
        body=body_from_string(args.body) if args.body else None,
    )


def format_request(request: AWSRequest) -> str:
    """Render the request line and headers the way they go on the wire."""
    target = request.destination.path or "/"
    if request.destination.query:
        target = f"{target}?{request.destination.query}"
    lines = [
        f"{request.method} {target} HTTP/1.1",
        f"Host: {request.destination.netloc}",
    ]
    lines.extend(
        f"{name}: {value}" for fld in request.fields for name, value in fld.as_tuples()
    )
    return "\n".join(lines) + "\n"


def format_response(response: AWSResponse, body: bytes) -> str:
    """Render the status line, headers and body of a response."""
    status = f"HTTP/1.1 {response.status}"
    if response.reason:
        status = f"{status} {response.reason}"
    lines = [status]
    lines.extend(
        f"{name}: {value}" for fld in response.fields for name, value in fld.as_tuples()
    )
    return "\n".join(lines) + "\n\n" + body.decode("utf-8", errors="replace")


def _print_credential_sources(
    resolver: EnvironmentCredentialsResolver, out: TextIO
) -> None:
    sources = resolver.describe()
    labels = {
        "access_key": "Access Key",
        "secret_key": "Secret Access Key",
        "session_token": "Session Token",
    }
    for key, label in labels.items():
        print(f"{label}: {sources[key] or '<missing>'}", file=out)


def run(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    http_client: AIOHTTPClient | None = None,
) -> int:
    """Run the command and return its exit code."""
    environ = os.environ if environ is None else environ
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    resolver = EnvironmentCredentialsResolver(environ)
    try:
        args = build_parser(environ).parse_args(argv)
        if args.debug:
            logging.basicConfig(level=logging.DEBUG, stream=stderr)

        request = build_request(args)

        if args.verbose:
            _print_credential_sources(resolver, stdout)
            if len(request.fields) > 0:
                print(format_request(request), file=stdout)
            else:
                print("Request Headers: none", file=stdout)
            print(SECTION_END, file=stdout)

        identity = resolver.get_identity()
        http_client = http_client or AIOHTTPClient(
            client_config=AIOHTTPClientConfig(timeout=args.timeout)
        )
        result = sign_and_execute(request, identity, http_client=http_client)
    except AWSReqError as e:
        print(f"aws-req: {e}", file=stderr)
        return EXIT_ERROR

    response = result.response
    # Non-200 responses are always dumped in full.
    if not args.verbose and response.status == 200:
        _write_body(response.consume_body(), stdout)
    else:
        if len(response.fields) > 0:
            print(format_response(response, response.consume_body()), file=stdout)
        else:
            print("Response Headers: none", file=stdout)
        print(SECTION_END, file=stdout)
        print(f"Response Time: {result.total_time * 1000:.0f}ms", file=stdout)
        print(SECTION_END, file=stdout)

    return EXIT_OK if response.status == 200 else EXIT_NON_200


def _write_body(body: bytes, out: TextIO) -> None:
    binary = getattr(out, "buffer", None)
    if binary is None:
        out.write(body.decode("utf-8", errors="replace"))
        return
    out.flush()
    binary.write(body)
    binary.flush()


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
