# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import hmac
import re
import typing
from hashlib import sha256
from io import BytesIO

import pytest
from aws_req import (
    URI,
    AWSCredentialIdentity,
    AWSRequest,
    Field,
    Fields,
    SigningError,
    SigV4Signer,
    SigV4SigningProperties,
)
from aws_req import signers
from aws_req.signers import (
    EMPTY_SHA256_HASH,
    UNSIGNED_PAYLOAD,
    compute_signature,
    derive_signing_key,
)
from freezegun import freeze_time

SIGV4_RE = re.compile(
    r"AWS4-HMAC-SHA256 "
    r"Credential=(?P<access_key>\w+)/(?P<date>\d{8})/"
    r"(?P<signing_region>[a-z0-9-]+)/(?P<service>[a-z0-9-]+)/aws4_request, "
    r"SignedHeaders=(?P<signed_headers>[a-z0-9;-]+), "
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)

# Published example values from the AWS SigV4 documentation and test suite.
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
ACCESS_KEY = "AKIDEXAMPLE"
DATE_STR = "20150830T123600Z"

GET_VANILLA_CANONICAL_REQUEST = (
    "GET\n"
    "/\n"
    "\n"
    "host:example.amazonaws.com\n"
    "x-amz-date:20150830T123600Z\n"
    "\n"
    "host;x-amz-date\n"
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)
GET_VANILLA_STRING_TO_SIGN = (
    "AWS4-HMAC-SHA256\n"
    "20150830T123600Z\n"
    "20150830/us-east-1/service/aws4_request\n"
    "bb579772317eb040ac9ed261061d46c1f17a8133879d6129b6e1c25292927e63"
)
GET_VANILLA_AUTHORIZATION = (
    "AWS4-HMAC-SHA256 "
    "Credential=AKIDEXAMPLE/20150830/us-east-1/service/aws4_request, "
    "SignedHeaders=host;x-amz-date, "
    "Signature=5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
)


def make_request(
    *,
    method: str = "GET",
    host: str = "ec2.us-west-2.amazonaws.com",
    path: str | None = "/",
    query: str | None = None,
    headers: dict[str, str] | None = None,
    body: bytes | None = None,
) -> AWSRequest:
    return AWSRequest(
        destination=URI(host=host, path=path, query=query),
        method=method,
        fields=Fields([Field(name=k, values=[v]) for k, v in (headers or {}).items()]),
        body=BytesIO(body) if body is not None else None,
    )


def properties(**kwargs: typing.Any) -> SigV4SigningProperties:
    return SigV4SigningProperties(
        region="us-west-2", service="ec2", date=DATE_STR, **kwargs
    )


def authorization(request: AWSRequest) -> str:
    return request.fields["Authorization"].as_string()


def test_derive_signing_key_matches_published_example() -> None:
    key = derive_signing_key(
        secret_key=SECRET_KEY, date="20120215", region="us-east-1", service="iam"
    )
    assert key.hex() == (
        "f4780e2d9f65fa895f9c67b32ce1baf0b0d8a43505a000a1a9e090d414db404d"
    )


def test_derive_signing_key_uses_only_the_day() -> None:
    by_day = derive_signing_key(
        secret_key=SECRET_KEY, date="20150830", region="us-east-1", service="iam"
    )
    by_timestamp = derive_signing_key(
        secret_key=SECRET_KEY, date=DATE_STR, region="us-east-1", service="iam"
    )
    assert by_day == by_timestamp


def test_compute_signature_is_hex_hmac() -> None:
    signature = compute_signature(signing_key=b"key", string_to_sign="data")
    assert signature == hmac.new(b"key", b"data", sha256).hexdigest()


class TestGetVanilla:
    SIGNER = SigV4Signer()

    @pytest.fixture
    def request_(self) -> AWSRequest:
        return make_request(host="example.amazonaws.com")

    @pytest.fixture
    def props(self) -> SigV4SigningProperties:
        return SigV4SigningProperties(
            region="us-east-1", service="service", date=DATE_STR
        )

    @pytest.fixture
    def identity(self) -> AWSCredentialIdentity:
        return AWSCredentialIdentity(
            access_key_id=ACCESS_KEY, secret_access_key=SECRET_KEY
        )

    def test_canonical_request(
        self, request_: AWSRequest, props: SigV4SigningProperties
    ) -> None:
        request_.fields.set_field(Field(name="X-Amz-Date", values=[DATE_STR]))
        actual = self.SIGNER.canonical_request(
            signing_properties=props, request=request_
        )
        assert actual == GET_VANILLA_CANONICAL_REQUEST

    def test_string_to_sign(self, props: SigV4SigningProperties) -> None:
        actual = self.SIGNER.string_to_sign(
            canonical_request=GET_VANILLA_CANONICAL_REQUEST, signing_properties=props
        )
        assert actual == GET_VANILLA_STRING_TO_SIGN

    def test_authorization(
        self,
        request_: AWSRequest,
        props: SigV4SigningProperties,
        identity: AWSCredentialIdentity,
    ) -> None:
        signed = self.SIGNER.sign(
            signing_properties=props, http_request=request_, identity=identity
        )
        assert authorization(signed) == GET_VANILLA_AUTHORIZATION
        assert signed.fields["X-Amz-Date"].as_string() == DATE_STR

    @freeze_time("2015-08-30 12:36:00")
    def test_authorization_with_current_time(
        self, request_: AWSRequest, identity: AWSCredentialIdentity
    ) -> None:
        signed = self.SIGNER.sign(
            signing_properties=SigV4SigningProperties(
                region="us-east-1", service="service"
            ),
            http_request=request_,
            identity=identity,
        )
        assert authorization(signed) == GET_VANILLA_AUTHORIZATION


class TestSigV4Signer:
    SIGNER = SigV4Signer()

    def test_sign_mutates_request_in_place(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request()
        signed = self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert signed is request
        assert "authorization" in request.fields
        assert "x-amz-date" in request.fields
        match = SIGV4_RE.match(authorization(request))
        assert match is not None
        assert match["access_key"] == "AKID123456"
        assert match["date"] == "20150830"
        assert match["signing_region"] == "us-west-2"
        assert match["service"] == "ec2"
        assert match["signed_headers"] == "host;x-amz-date"

    def test_sign_does_not_mutate_properties(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        props = SigV4SigningProperties(region="us-west-2", service="ec2")
        self.SIGNER.sign(
            signing_properties=props, http_request=make_request(), identity=aws_identity
        )
        assert "date" not in props

    def test_signature_is_deterministic(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        first = self.SIGNER.sign(
            signing_properties=properties(),
            http_request=make_request(query="Action=DescribeRegions", body=b"abc"),
            identity=aws_identity,
        )
        second = self.SIGNER.sign(
            signing_properties=properties(),
            http_request=make_request(query="Action=DescribeRegions", body=b"abc"),
            identity=aws_identity,
        )
        assert authorization(first) == authorization(second)

    @pytest.mark.parametrize(
        "tamper",
        [
            pytest.param(lambda r: setattr(r, "method", "POST"), id="method"),
            pytest.param(
                lambda r: setattr(
                    r, "destination", URI(host=r.destination.host, path="/other")
                ),
                id="path",
            ),
            pytest.param(
                lambda r: setattr(
                    r,
                    "destination",
                    URI(host=r.destination.host, path="/", query="Action=Other"),
                ),
                id="query",
            ),
            pytest.param(
                lambda r: r.fields["Content-Type"].set(["text/plain"]),
                id="signed-header",
            ),
            pytest.param(lambda r: setattr(r, "body", BytesIO(b"tampered")), id="body"),
        ],
    )
    def test_signature_detects_tampering(
        self,
        aws_identity: AWSCredentialIdentity,
        tamper: typing.Callable[[AWSRequest], None],
    ) -> None:
        request = make_request(
            method="GET",
            query="Action=DescribeRegions",
            headers={"Content-Type": "application/json"},
            body=b"original",
        )
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        original = authorization(request)

        tamper(request)
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert authorization(request) != original

    def test_unsigned_header_does_not_change_signature(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request(headers={"User-Agent": "one"})
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        original = authorization(request)
        request.fields["User-Agent"].set(["two"])
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert authorization(request) == original

    def test_session_token_is_signed(
        self, aws_identity_with_token: AWSCredentialIdentity
    ) -> None:
        request = make_request()
        self.SIGNER.sign(
            signing_properties=properties(),
            http_request=request,
            identity=aws_identity_with_token,
        )
        assert request.fields["X-Amz-Security-Token"].as_string() == "X123456SESSION"
        match = SIGV4_RE.match(authorization(request))
        assert match is not None
        assert match["signed_headers"] == "host;x-amz-date;x-amz-security-token"

    def test_no_session_token_header_without_token(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request()
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert "X-Amz-Security-Token" not in request.fields

    def test_timestamp_is_taken_once(
        self, aws_identity: AWSCredentialIdentity, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        timestamps = iter(["20150830T123600Z", "20150831T000000Z"])
        calls: list[str] = []

        def fake_format_timestamp() -> str:
            calls.append(value := next(timestamps))
            return value

        monkeypatch.setattr(signers, "format_timestamp", fake_format_timestamp)
        request = make_request()
        self.SIGNER.sign(
            signing_properties=SigV4SigningProperties(region="us-west-2", service="ec2"),
            http_request=request,
            identity=aws_identity,
        )
        assert calls == ["20150830T123600Z"]
        assert request.fields["X-Amz-Date"].as_string() == "20150830T123600Z"
        assert "/20150830/us-west-2/ec2/" in authorization(request)

    def test_existing_amz_date_is_reused(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request(headers={"X-Amz-Date": "20200101T000000Z"})
        self.SIGNER.sign(
            signing_properties=SigV4SigningProperties(region="us-west-2", service="ec2"),
            http_request=request,
            identity=aws_identity,
        )
        assert request.fields["X-Amz-Date"].as_string() == "20200101T000000Z"
        assert "/20200101/us-west-2/ec2/" in authorization(request)

    def test_amz_date_is_set_next_to_date_header(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request(headers={"Date": "Mon, 19 Oct 2026 07:00:00 GMT"})
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert request.fields["X-Amz-Date"].as_string() == DATE_STR
        assert request.fields["Date"].as_string() == "Mon, 19 Oct 2026 07:00:00 GMT"
        match = SIGV4_RE.match(authorization(request))
        assert match is not None
        assert match["date"] == "20150830"
        assert match["signed_headers"] == "date;host;x-amz-date"

    def test_content_checksum_header(self, aws_identity: AWSCredentialIdentity) -> None:
        request = make_request(method="PUT", body=b"payload")
        self.SIGNER.sign(
            signing_properties=properties(content_checksum_enabled=True),
            http_request=request,
            identity=aws_identity,
        )
        expected = sha256(b"payload").hexdigest()
        assert request.fields["X-Amz-Content-SHA256"].as_string() == expected
        assert "x-amz-content-sha256" in authorization(request)

    def test_content_checksum_header_for_empty_body(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request()
        self.SIGNER.sign(
            signing_properties=properties(content_checksum_enabled=True),
            http_request=request,
            identity=aws_identity,
        )
        assert request.fields["X-Amz-Content-SHA256"].as_string() == EMPTY_SHA256_HASH

    def test_unsigned_payload(self) -> None:
        request = make_request(body=b"payload")
        canonical = self.SIGNER.canonical_request(
            signing_properties=properties(payload_signing_enabled=False),
            request=request,
        )
        assert canonical.endswith(f"\n{UNSIGNED_PAYLOAD}")

    def test_body_is_rewound_after_hashing(
        self, aws_identity: AWSCredentialIdentity
    ) -> None:
        request = make_request(method="POST", body=b'{"key": "val"}')
        self.SIGNER.sign(
            signing_properties=properties(), http_request=request, identity=aws_identity
        )
        assert request.body is not None
        assert request.body.tell() == 0
        assert request.body.read() == b'{"key": "val"}'

    @typing.no_type_check
    def test_non_seekable_body(self, aws_identity: AWSCredentialIdentity) -> None:
        class OneShotStream:
            def read(self, size: int = -1) -> bytes:
                return b""

        request = make_request(method="POST")
        request.body = OneShotStream()
        with pytest.raises(SigningError) as exc_info:
            self.SIGNER.sign(
                signing_properties=properties(),
                http_request=request,
                identity=aws_identity,
            )
        assert exc_info.value.stage == "payload"
        assert "Authorization" not in request.fields

    @typing.no_type_check
    def test_sign_with_invalid_identity(self) -> None:
        """Ignore typing as we're testing an invalid input state."""
        identity = object()
        with pytest.raises(SigningError) as exc_info:
            self.SIGNER.sign(
                signing_properties=properties(),
                http_request=make_request(),
                identity=identity,
            )
        assert exc_info.value.stage == "identity"

    def test_sign_with_empty_secret(self) -> None:
        identity = AWSCredentialIdentity(access_key_id="AKID", secret_access_key="")
        with pytest.raises(SigningError):
            self.SIGNER.sign(
                signing_properties=properties(),
                http_request=make_request(),
                identity=identity,
            )

    @pytest.mark.parametrize("missing", ["region", "service"])
    def test_sign_without_scope(
        self, aws_identity: AWSCredentialIdentity, missing: str
    ) -> None:
        props = properties()
        props[missing] = ""  # type: ignore[literal-required]
        with pytest.raises(SigningError) as exc_info:
            self.SIGNER.sign(
                signing_properties=props,
                http_request=make_request(),
                identity=aws_identity,
            )
        assert exc_info.value.stage == "scope"


class TestCanonicalization:
    SIGNER = SigV4Signer()

    @pytest.mark.parametrize(
        "query,expected",
        [
            (None, ""),
            ("", ""),
            (
                "Version=2016-11-15&Action=DescribeAvailabilityZones",
                "Action=DescribeAvailabilityZones&Version=2016-11-15",
            ),
            ("acl", "acl="),
            ("b=2&a=1&a=0", "a=0&a=1&b=2"),
            ("key=a%20b", "key=a%20b"),
            ("key=a+b", "key=a%20b"),
            ("key=a%2Fb~c", "key=a%2Fb~c"),
        ],
    )
    def test_canonical_query(self, query: str | None, expected: str) -> None:
        assert self.SIGNER._format_canonical_query(query=query) == expected  # pyright: ignore[reportPrivateUsage]

    @pytest.mark.parametrize(
        "path,uri_encode_path,expected",
        [
            (None, True, "/"),
            ("", True, "/"),
            ("/", True, "/"),
            ("/a/./b/../c", True, "/a/c"),
            ("/a//b", True, "/a/b"),
            ("/a///b", True, "/a/b"),
            ("/a/////b//", True, "/a/b/"),
            ("/foo%20bar", True, "/foo%2520bar"),
            ("/foo%20bar", False, "/foo%20bar"),
            ("/a//b", False, "/a//b"),
            ("/a///b", False, "/a///b"),
        ],
    )
    def test_canonical_path(
        self, path: str | None, uri_encode_path: bool, expected: str
    ) -> None:
        actual = self.SIGNER._format_canonical_path(  # pyright: ignore[reportPrivateUsage]
            path=path, signing_properties=properties(uri_encode_path=uri_encode_path)
        )
        assert actual == expected

    @pytest.mark.parametrize(
        "port,expected",
        [
            (None, "ec2.amazonaws.com"),
            (443, "ec2.amazonaws.com"),
            (8443, "ec2.amazonaws.com:8443"),
        ],
    )
    def test_host_field(self, port: int | None, expected: str) -> None:
        request = AWSRequest(
            destination=URI(host="ec2.amazonaws.com", port=port), method="GET"
        )
        canonical = self.SIGNER.canonical_request(
            signing_properties=properties(), request=request
        )
        assert f"\nhost:{expected}\n" in canonical

    def test_header_values_are_trimmed_and_sorted(self) -> None:
        request = make_request(
            headers={"X-Amz-Target": "  a   b  ", "Content-Type": "text/plain"}
        )
        canonical = self.SIGNER.canonical_request(
            signing_properties=properties(), request=request
        )
        assert "content-type:text/plain\nhost:" in canonical
        assert "\nx-amz-target:a b\n" in canonical
        assert "\ncontent-type;host;x-amz-target\n" in canonical

    def test_multi_valued_header(self) -> None:
        request = make_request()
        request.fields.set_field(Field(name="X-Custom", values=["one", "two"]))
        canonical = self.SIGNER.canonical_request(
            signing_properties=properties(), request=request
        )
        assert "\nx-custom:one,two\n" in canonical
