# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from io import BytesIO

from .exceptions import SigningError
from .interfaces.io import SeekableByteStream

type BodySource = bytes | bytearray | memoryview | str | SeekableByteStream
"""Values accepted wherever a request body is expected."""


def seekable_body(data: BodySource | None) -> SeekableByteStream | None:
    """Return ``data`` as a stream that can be hashed and then re-read.

    Bytes-like values and text are copied into an in-memory stream; text is
    encoded as utf-8. Streams are accepted as-is if they can seek.

    :raises SigningError: If ``data`` is a stream that cannot seek, since the
        payload hash would then cover different bytes than those sent.
    """
    if data is None:
        return None
    if isinstance(data, str):
        return body_from_string(data)
    if isinstance(data, bytes | bytearray | memoryview):
        return BytesIO(bytes(data))
    if not isinstance(data, SeekableByteStream):
        raise SigningError(
            f"body of type {type(data).__name__} is not a seekable byte stream",
            stage="payload",
        )
    seekable = getattr(data, "seekable", None)
    if seekable is not None and not seekable():
        raise SigningError("body stream does not support seeking", stage="payload")
    return data


def body_from_string(text: str) -> BytesIO:
    """Create a replayable body from text."""
    return BytesIO(text.encode("utf-8"))
