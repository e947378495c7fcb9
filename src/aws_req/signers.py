# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import datetime
import hmac
import logging
import re
from hashlib import sha256
from typing import Final, Required, TypedDict
from urllib.parse import parse_qsl, quote

from ._http import AWSRequest, Field, URI
from .exceptions import SigningError
from .interfaces.identity import AWSCredentialsIdentity
from .interfaces.io import SeekableByteStream

_LOGGER = logging.getLogger(__name__)

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "accept",
    "accept-encoding",
    "authorization",
    "connection",
    "expect",
    "user-agent",
    "x-amzn-trace-id",
)
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

SIGV4_ALGORITHM: Final = "AWS4-HMAC-SHA256"
SIGV4_TIMESTAMP_FORMAT: Final = "%Y%m%dT%H%M%SZ"
SIGV4_REQUEST_TYPE: Final = "aws4_request"
UNSIGNED_PAYLOAD: Final = "UNSIGNED-PAYLOAD"
EMPTY_SHA256_HASH: Final = (
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)

# Size of the chunks read while hashing a request body.
_PAYLOAD_CHUNK_SIZE = 64 * 1024

_CONSECUTIVE_SLASHES = re.compile("/{2,}")


class SigV4SigningProperties(TypedDict, total=False):
    region: Required[str]
    service: Required[str]
    date: str
    payload_signing_enabled: bool
    content_checksum_enabled: bool
    uri_encode_path: bool


def format_timestamp(when: datetime.datetime | None = None) -> str:
    """Format ``when`` (default: now) as a SigV4 timestamp, ``YYYYMMDDTHHMMSSZ``."""
    if when is None:
        when = datetime.datetime.now(datetime.UTC)
    elif when.tzinfo is not None:
        when = when.astimezone(datetime.UTC)
    return when.strftime(SIGV4_TIMESTAMP_FORMAT)


def derive_signing_key(
    *, secret_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the key that signs requests for one day, region and service.

    Components of Signing Key Calculation::

        DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
        DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
        DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
        SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")

    :param date: A SigV4 timestamp or a bare ``YYYYMMDD`` date. Only the first
        eight characters are used.
    """
    k_date = _hmac(key=f"AWS4{secret_key}".encode(), value=date[0:8])
    k_region = _hmac(key=k_date, value=region)
    k_service = _hmac(key=k_region, value=service)
    return _hmac(key=k_service, value=SIGV4_REQUEST_TYPE)


def compute_signature(*, signing_key: bytes, string_to_sign: str) -> str:
    """Hex-encoded HMAC-SHA256 of the string to sign."""
    return _hmac(key=signing_key, value=string_to_sign).hex()


def _hmac(*, key: bytes, value: str) -> bytes:
    return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()


class SigV4Signer:
    """Request signer for applying the AWS Signature Version 4 algorithm."""

    def sign(
        self,
        *,
        signing_properties: SigV4SigningProperties,
        http_request: AWSRequest,
        identity: AWSCredentialsIdentity,
    ) -> AWSRequest:
        """Generate and apply a SigV4 Signature to the supplied request.

        The request's fields are modified in place: ``X-Amz-Date``,
        ``X-Amz-Security-Token`` (when the identity has a session token),
        ``X-Amz-Content-SHA256`` (when ``content_checksum_enabled``) and
        ``Authorization`` are set. The same request is returned.

        :param signing_properties: SigV4SigningProperties to define signing primitives
            such as the target service, region, and date. When no date is given,
            the current time is taken once and used for every step.
        :param http_request: An AWSRequest to sign prior to sending to the service.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        :raises SigningError: If the identity, the scope or the body are unusable.
        """
        self._validate_identity(identity=identity)
        properties = self._normalize_signing_properties(
            signing_properties=signing_properties, request=http_request
        )
        self._apply_required_fields(
            request=http_request,
            signing_properties=properties,
            identity=identity,
        )

        # Construct core signing components
        canonical_request = self.canonical_request(
            signing_properties=properties,
            request=http_request,
        )
        string_to_sign = self.string_to_sign(
            canonical_request=canonical_request,
            signing_properties=properties,
        )
        _LOGGER.debug("StringToSign:\n%s", string_to_sign)
        signing_key = derive_signing_key(
            secret_key=identity.secret_access_key,
            date=properties["date"],
            region=properties["region"],
            service=properties["service"],
        )
        signature = compute_signature(
            signing_key=signing_key, string_to_sign=string_to_sign
        )

        signing_fields = self._normalize_signing_fields(request=http_request)
        credential_scope = self._scope(signing_properties=properties)
        credential = f"{identity.access_key_id}/{credential_scope}"
        authorization = self.generate_authorization_field(
            credential=credential,
            signed_headers=list(signing_fields.keys()),
            signature=signature,
        )
        http_request.fields.set_field(authorization)
        _LOGGER.debug("Signed headers: %s", ";".join(signing_fields))

        return http_request

    def generate_authorization_field(
        self, *, credential: str, signed_headers: list[str], signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/<request_type>
        :param signed_headers:
            A list of the field names used in signing.
        :param signature:
            Final hash of the SigV4 signing algorithm generated from the
            canonical request and string to sign.
        """
        signed_headers_str = ";".join(signed_headers)
        auth_str = (
            f"{SIGV4_ALGORITHM} Credential={credential}, "
            f"SignedHeaders={signed_headers_str}, Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _validate_identity(self, *, identity: AWSCredentialsIdentity) -> None:
        if not isinstance(identity, AWSCredentialsIdentity):  # pyright: ignore
            raise SigningError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}.",
                stage="identity",
            )
        if not identity.access_key_id or not identity.secret_access_key:
            raise SigningError(
                "access key id and secret access key are required", stage="identity"
            )

    def _normalize_signing_properties(
        self, *, signing_properties: SigV4SigningProperties, request: AWSRequest
    ) -> SigV4SigningProperties:
        for key in ("region", "service"):
            if not signing_properties.get(key):
                raise SigningError(
                    f"signing properties have no {key}: {signing_properties!r}",
                    stage="scope",
                )
        # Create copy of signing properties to avoid mutating the original
        new_signing_properties = SigV4SigningProperties(**signing_properties)
        if "date" not in new_signing_properties:
            # A caller-provided X-Amz-Date wins so the header and the scope agree.
            existing = request.fields.get("X-Amz-Date")
            if existing is not None and existing.values:
                new_signing_properties["date"] = existing.values[0]
            else:
                new_signing_properties["date"] = format_timestamp()
        return new_signing_properties

    def _apply_required_fields(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
        identity: AWSCredentialsIdentity,
    ) -> None:
        # X-Amz-Date always carries the signing timestamp, even next to Date.
        request.fields.set_field(
            Field(name="X-Amz-Date", values=[signing_properties["date"]])
        )
        # Apply required X-Amz-Security-Token if token present on identity
        if (
            "X-Amz-Security-Token" not in request.fields
            and identity.session_token is not None
        ):
            request.fields.set_field(
                Field(name="X-Amz-Security-Token", values=[identity.session_token])
            )

    def canonical_request(
        self, *, signing_properties: SigV4SigningProperties, request: AWSRequest
    ) -> str:
        """The canonical request is a standardized string laying out the components used
        in the SigV4 signing algorithm. This is useful to quickly compare inputs to find
        signature mismatches and unintended variances.

        The SigV4 specification defines the canonical request to be:
            <HTTPMethod>\n
            <CanonicalURI>\n
            <CanonicalQueryString>\n
            <CanonicalHeaders>\n
            <SignedHeaders>\n
            <HashedPayload>

        :param signing_properties:
            SigV4SigningProperties to define signing primitives such as
            the target service, region, and date.
        :param request:
            An AWSRequest to use for generating a SigV4 signature.
        """
        # We generate the payload first to ensure any field modifications
        # are in place before choosing the canonical fields.
        canonical_payload = self._format_canonical_payload(
            request=request, signing_properties=signing_properties
        )
        canonical_path = self._format_canonical_path(
            path=request.destination.path, signing_properties=signing_properties
        )
        canonical_query = self._format_canonical_query(query=request.destination.query)
        normalized_fields = self._normalize_signing_fields(request=request)
        canonical_fields = self._format_canonical_fields(fields=normalized_fields)
        return (
            f"{request.method.upper()}\n"
            f"{canonical_path}\n"
            f"{canonical_query}\n"
            f"{canonical_fields}\n"
            f"{';'.join(normalized_fields)}\n"
            f"{canonical_payload}"
        )

    def string_to_sign(
        self,
        *,
        canonical_request: str,
        signing_properties: SigV4SigningProperties,
    ) -> str:
        """The string to sign is the second step of our signing algorithm which
        concatenates the formal identifier of our signing algorithm, the signing
        DateTime, the scope of our credentials, and a hash of our previously generated
        canonical request. This is another checkpoint that can be used to ensure we're
        constructing our signature as intended.

        The SigV4 specification defines the string to sign as:
            Algorithm \n
            RequestDateTime \n
            CredentialScope  \n
            HashedCanonicalRequest

        :param canonical_request:
            String generated from the `canonical_request` method.
        :param signing_properties:
            SigV4SigningProperties to define signing primitives such as
            the target service, region, and date.
        """
        date = signing_properties.get("date")
        if date is None:
            raise SigningError(
                "Cannot generate string_to_sign without a valid date "
                f"in your signing_properties. Current value: {date}",
                stage="string-to-sign",
            )
        return (
            f"{SIGV4_ALGORITHM}\n"
            f"{date}\n"
            f"{self._scope(signing_properties=signing_properties)}\n"
            f"{sha256(canonical_request.encode()).hexdigest()}"
        )

    def _scope(self, signing_properties: SigV4SigningProperties) -> str:
        formatted_date = signing_properties["date"][0:8]
        region = signing_properties["region"]
        service = signing_properties["service"]
        # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
        return f"{formatted_date}/{region}/{service}/{SIGV4_REQUEST_TYPE}"

    def _format_canonical_path(
        self, *, path: str | None, signing_properties: SigV4SigningProperties
    ) -> str:
        if not path:
            path = "/"

        if signing_properties.get("uri_encode_path", True):
            normalized_path = _remove_dot_segments(path)
            return quote(string=normalized_path, safe="/")
        else:
            return _remove_dot_segments(path, remove_consecutive_slashes=False)

    def _format_canonical_query(self, *, query: str | None) -> str:
        if not query:
            return ""

        query_params = parse_qsl(qs=query, keep_blank_values=True)
        query_parts = (
            (quote(string=key, safe=""), quote(string=value, safe=""))
            for key, value in query_params
        )
        # key-value pairs must be in sorted order for their encoded forms.
        return "&".join(f"{key}={value}" for key, value in sorted(query_parts))

    def _normalize_signing_fields(self, *, request: AWSRequest) -> dict[str, str]:
        normalized_fields = {
            field.name.lower(): field.as_string()
            for field in request.fields
            if self._is_signable_header(field.name.lower())
        }
        if "host" not in normalized_fields:
            normalized_fields["host"] = self._normalize_host_field(
                uri=request.destination
            )

        return dict(sorted(normalized_fields.items()))

    def _is_signable_header(self, field_name: str) -> bool:
        return field_name not in HEADERS_EXCLUDED_FROM_SIGNING

    def _normalize_host_field(self, *, uri: URI) -> str:
        if uri.port is not None and DEFAULT_PORTS.get(uri.scheme) == uri.port:
            return uri.host
        return uri.netloc

    def _format_canonical_fields(self, *, fields: dict[str, str]) -> str:
        return "".join(
            f"{key}:{' '.join(value.split())}\n" for key, value in fields.items()
        )

    def _should_sha256_sign_payload(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
    ) -> bool:
        # All insecure connections should be signed
        if request.destination.scheme != "https":
            return True

        return signing_properties.get("payload_signing_enabled", True)

    def _format_canonical_payload(
        self,
        *,
        request: AWSRequest,
        signing_properties: SigV4SigningProperties,
    ) -> str:
        payload_hash = self._compute_payload_hash(
            request=request, signing_properties=signing_properties
        )
        if signing_properties.get("content_checksum_enabled", False):
            request.fields.set_field(
                Field(name="X-Amz-Content-SHA256", values=[payload_hash])
            )
        return payload_hash

    def _compute_payload_hash(
        self, *, request: AWSRequest, signing_properties: SigV4SigningProperties
    ) -> str:
        if not self._should_sha256_sign_payload(
            request=request, signing_properties=signing_properties
        ):
            return UNSIGNED_PAYLOAD

        body = request.body

        if body is None:
            return EMPTY_SHA256_HASH

        if not isinstance(body, SeekableByteStream):
            raise SigningError(
                f"body of type {type(body).__name__} cannot be re-read after "
                "hashing. Wrap it with aws_req.seekable_body().",
                stage="payload",
            )

        checksum = sha256()
        try:
            position = body.tell()
            while chunk := body.read(_PAYLOAD_CHUNK_SIZE):
                checksum.update(chunk)
            body.seek(position)
        except (OSError, ValueError) as e:
            raise SigningError(f"failed to read body: {e}", stage="payload") from e
        return checksum.hexdigest()


def _remove_dot_segments(path: str, remove_consecutive_slashes: bool = True) -> str:
    """Removes dot segments from a path per :rfc:`3986#section-5.2.4`.

    Optionally removes consecutive slashes, true by default.
    :param path: The path to modify.
    :param remove_consecutive_slashes: Whether to remove consecutive slashes.
    :returns: The path with dot segments removed.
    """
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    result = "/".join(output)
    if remove_consecutive_slashes:
        result = _CONSECUTIVE_SLASHES.sub("/", result)
    return result
