# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""aws-chunked body encoders.

An encoder wraps the caller's body and produces the ``aws-chunked`` encoding of it
lazily, one chunk at a time, as the HTTP client reads. A signed stream looks like::

    10000;chunk-signature=<64 hex>\\r\\n<65536 bytes>\\r\\n
    400;chunk-signature=<64 hex>\\r\\n<1024 bytes>\\r\\n
    0;chunk-signature=<64 hex>\\r\\n\\r\\n

With a trailer the terminator loses its final CRLF and is followed by the trailer
lines and their signature::

    0;chunk-signature=<64 hex>\\r\\n
    x-amz-checksum-crc32c:sOO8/Q==\\n
    \\r\\n
    x-amz-trailer-signature:<64 hex>\\r\\n\\r\\n
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator, Mapping
from enum import Enum
from hashlib import sha256
from typing import Protocol

from ._io import AsyncByteStream, AsyncBytesReader, ByteStream, BytesReader
from .canonical import (
    STREAMING_PAYLOAD,
    STREAMING_PAYLOAD_TRAILER,
    STREAMING_UNSIGNED_PAYLOAD_TRAILER,
)
from .checksums import Checksum, ChecksumAlgorithm, b64digest
from .exceptions import ContentLengthMismatchException
from .signing import SigningContext

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 64 * 1024
MIN_CHUNK_SIZE: int = 8 * 1024

CHUNK_SIGNATURE_PREFIX: str = ";chunk-signature="
TRAILER_SIGNATURE_NAME: str = "x-amz-trailer-signature"
SIGNATURE_LENGTH: int = 64
CRLF: bytes = b"\r\n"


class EncoderState(Enum):
    STREAMING = "streaming"
    """Data chunks are being pulled from the source and framed."""

    FINAL_CHUNK_PENDING = "final-chunk-pending"
    """The source is exhausted; the zero-length terminator is next."""

    TRAILER_PENDING = "trailer-pending"
    """The terminator has been emitted; the trailer chunk is next."""

    DONE = "done"
    """Everything has been emitted. Reads return no data."""


class ChunkFraming(Protocol):
    """Turns chunk payloads into their on-the-wire frames."""

    def payload_hash(self, *, has_trailer: bool) -> str:
        """The ``x-amz-content-sha256`` placeholder announcing this framing."""
        ...

    def data_chunk(self, data: bytes) -> bytes: ...

    def final_chunk(self, *, has_trailer: bool) -> bytes: ...

    def trailer_chunk(self, trailers: list[tuple[str, str]]) -> bytes: ...

    def encoded_length(
        self, decoded_length: int, chunk_size: int, trailers: Mapping[str, int]
    ) -> int:
        """The exact number of bytes the encoded stream will contain.

        :param trailers: Trailer names mapped to the encoded length of their values.
        """
        ...


class SignedChunkFraming:
    """Frames chunks with a chained ``chunk-signature`` extension.

    Holds the chain state: each signature is computed from the one before it,
    starting from the seed signature of the request.
    """

    def __init__(self, *, context: SigningContext, seed_signature: str):
        self._context = context
        self._previous_signature = seed_signature

    @property
    def previous_signature(self) -> str:
        """The most recent signature of the chain."""
        return self._previous_signature

    @classmethod
    def payload_hash(cls, *, has_trailer: bool) -> str:
        return STREAMING_PAYLOAD_TRAILER if has_trailer else STREAMING_PAYLOAD

    def data_chunk(self, data: bytes) -> bytes:
        signature = self._sign_chunk(data)
        return b"".join((self._chunk_header(len(data), signature), data, CRLF))

    def final_chunk(self, *, has_trailer: bool) -> bytes:
        header = self._chunk_header(0, self._sign_chunk(b""))
        return header if has_trailer else header + CRLF

    def trailer_chunk(self, trailers: list[tuple[str, str]]) -> bytes:
        trailer = "".join(f"{name}:{value}\n" for name, value in trailers).encode()
        self._previous_signature = self._context.trailer_chunk_signature(
            sha256(trailer).hexdigest(), self._previous_signature
        )
        signature_line = f"{TRAILER_SIGNATURE_NAME}:{self._previous_signature}"
        return b"".join((trailer, CRLF, signature_line.encode(), CRLF, CRLF))

    @classmethod
    def encoded_length(
        cls, decoded_length: int, chunk_size: int, trailers: Mapping[str, int]
    ) -> int:
        full_chunks, remainder = divmod(decoded_length, chunk_size)
        length = full_chunks * cls._chunk_length(chunk_size)
        if remainder:
            length += cls._chunk_length(remainder)
        length += cls._chunk_length(0)
        if trailers:
            length += sum(
                len(name.encode()) + 1 + value_length + 1
                for name, value_length in trailers.items()
            )
            # The terminator's missing CRLF moves in front of the signature line.
            length += len(TRAILER_SIGNATURE_NAME) + 1 + SIGNATURE_LENGTH + 2 + 2
        return length

    def _sign_chunk(self, data: bytes) -> str:
        self._previous_signature = self._context.chunk_signature(
            sha256(data).hexdigest(), self._previous_signature
        )
        return self._previous_signature

    @staticmethod
    def _chunk_header(size: int, signature: str) -> bytes:
        return f"{size:x}{CHUNK_SIGNATURE_PREFIX}{signature}\r\n".encode()

    @staticmethod
    def _chunk_length(size: int) -> int:
        return (
            len(f"{size:x}")
            + len(CHUNK_SIGNATURE_PREFIX)
            + SIGNATURE_LENGTH
            + 2
            + size
            + 2
        )


class UnsignedChunkFraming:
    """Plain ``aws-chunked`` framing used with an unsigned payload trailer."""

    @classmethod
    def payload_hash(cls, *, has_trailer: bool) -> str:
        return STREAMING_UNSIGNED_PAYLOAD_TRAILER

    def data_chunk(self, data: bytes) -> bytes:
        return b"".join((f"{len(data):x}".encode(), CRLF, data, CRLF))

    def final_chunk(self, *, has_trailer: bool) -> bytes:
        return b"0\r\n" if has_trailer else b"0\r\n\r\n"

    def trailer_chunk(self, trailers: list[tuple[str, str]]) -> bytes:
        lines = "".join(f"{name}:{value}\r\n" for name, value in trailers)
        return lines.encode() + CRLF

    @classmethod
    def encoded_length(
        cls, decoded_length: int, chunk_size: int, trailers: Mapping[str, int]
    ) -> int:
        full_chunks, remainder = divmod(decoded_length, chunk_size)
        length = full_chunks * cls._chunk_length(chunk_size)
        if remainder:
            length += cls._chunk_length(remainder)
        length += cls._chunk_length(0)
        length += sum(
            len(name.encode()) + 1 + value_length + 2
            for name, value_length in trailers.items()
        )
        return length

    @staticmethod
    def _chunk_length(size: int) -> int:
        return len(f"{size:x}") + 2 + size + 2


def trailer_value_lengths(
    trailers: Mapping[str, str], checksum_algorithm: ChecksumAlgorithm | None = None
) -> dict[str, int]:
    """Map each trailer name, lower-cased and in sending order, to the UTF-8 encoded
    length of its value.

    The value of a computed checksum isn't known until the body has been read, but its
    length is.
    """
    lengths = {name.lower(): len(value.encode()) for name, value in trailers.items()}
    if checksum_algorithm is not None:
        if checksum_algorithm.header_name in lengths:
            raise ValueError(
                f"Trailer {checksum_algorithm.header_name} is both given and "
                "computed from the body."
            )
        lengths[checksum_algorithm.header_name] = checksum_algorithm.encoded_length
    return lengths


class _ChunkedEncoderBase:
    """The I/O independent part of the encoders: chunk buffering, framing and the
    state machine."""

    def __init__(
        self,
        *,
        framing: ChunkFraming,
        decoded_length: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        trailers: Mapping[str, str] | None = None,
        checksum_algorithm: ChecksumAlgorithm | None = None,
    ):
        if decoded_length < 0:
            raise ValueError(
                f"Decoded content length must not be negative, got {decoded_length}."
            )
        if chunk_size < MIN_CHUNK_SIZE:
            raise ValueError(
                f"Chunk size must be at least {MIN_CHUNK_SIZE} bytes, got {chunk_size}."
            )
        self._framing = framing
        self._decoded_length = decoded_length
        self._chunk_size = chunk_size

        self._trailers = {
            name.lower(): value for name, value in (trailers or {}).items()
        }
        self._trailer_lengths = trailer_value_lengths(
            self._trailers, checksum_algorithm
        )
        self._checksum: Checksum | None = None
        self._checksum_name: str | None = None
        if checksum_algorithm is not None:
            self._checksum = checksum_algorithm.new()
            self._checksum_name = checksum_algorithm.header_name

        self._state = EncoderState.STREAMING
        self._pending = bytearray()
        self._output = bytearray()
        self._bytes_read = 0
        self._chunk_count = 0
        self._closed = False

    @property
    def state(self) -> EncoderState:
        return self._state

    @property
    def content_length(self) -> int:
        """The exact length of the encoded stream."""
        return self._framing.encoded_length(
            self._decoded_length, self._chunk_size, self._trailer_lengths
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def _read_size(self) -> int:
        return self._chunk_size - len(self._pending)

    def _wants_more(self, size: int) -> bool:
        if self._closed:
            raise ValueError("I/O operation on closed file.")
        return (size < 0 or len(self._output) < size) and (
            self._state is not EncoderState.DONE
        )

    def _accept(self, data: bytes) -> None:
        """Take bytes read from the source, framing every chunk that fills up."""
        if not data:
            self._end_of_stream()
            return

        total = self._bytes_read + len(data)
        if total > self._decoded_length:
            raise ContentLengthMismatchException(
                expected=self._decoded_length,
                actual=total,
                message=(
                    f"Body produced more than the declared decoded content length "
                    f"of {self._decoded_length} bytes."
                ),
            )
        self._bytes_read = total
        self._pending += data

        while len(self._pending) >= self._chunk_size:
            chunk = bytes(self._pending[: self._chunk_size])
            del self._pending[: self._chunk_size]
            self._emit_data_chunk(chunk)
        if self._pending and self._bytes_read == self._decoded_length:
            chunk = bytes(self._pending)
            self._pending.clear()
            self._emit_data_chunk(chunk)

    def _end_of_stream(self) -> None:
        if self._bytes_read != self._decoded_length:
            raise ContentLengthMismatchException(
                expected=self._decoded_length, actual=self._bytes_read
            )
        self._state = EncoderState.FINAL_CHUNK_PENDING

    def _emit_data_chunk(self, chunk: bytes) -> None:
        if self._checksum is not None:
            self._checksum.update(chunk)
        self._output += self._framing.data_chunk(chunk)
        self._chunk_count += 1
        logger.debug("Encoded chunk %d with %d bytes.", self._chunk_count, len(chunk))

    def _advance(self) -> None:
        """Move past the end of the source: terminator, trailer, done."""
        has_trailer = bool(self._trailer_lengths)
        if self._state is EncoderState.FINAL_CHUNK_PENDING:
            self._output += self._framing.final_chunk(has_trailer=has_trailer)
            self._state = (
                EncoderState.TRAILER_PENDING if has_trailer else EncoderState.DONE
            )
        elif self._state is EncoderState.TRAILER_PENDING:
            self._output += self._framing.trailer_chunk(self._resolve_trailers())
            self._state = EncoderState.DONE

        if self._state is EncoderState.DONE:
            logger.debug(
                "Finished encoding %d bytes in %d data chunks.",
                self._bytes_read,
                self._chunk_count,
            )

    def _resolve_trailers(self) -> list[tuple[str, str]]:
        trailers = list(self._trailers.items())
        if self._checksum is not None and self._checksum_name is not None:
            trailers.append((self._checksum_name, b64digest(self._checksum)))
        return trailers

    def _drain(self, size: int) -> bytes:
        if size < 0 or size >= len(self._output):
            data = bytes(self._output)
            self._output.clear()
        else:
            data = bytes(self._output[:size])
            del self._output[:size]
        return data

    def _discard(self) -> None:
        self._closed = True
        self._pending.clear()
        self._output.clear()


class ChunkedStreamEncoder(_ChunkedEncoderBase):
    """A read-once, file-like ``aws-chunked`` body over a synchronous source.

    Chunks are read, hashed, signed and framed only when a read asks for more bytes
    than are already buffered, so memory use stays around one chunk regardless of the
    size of the upload. Not safe for concurrent reads.
    """

    def __init__(
        self,
        source: bytes | ByteStream | Iterable[bytes] | None,
        *,
        framing: ChunkFraming,
        decoded_length: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        trailers: Mapping[str, str] | None = None,
        checksum_algorithm: ChecksumAlgorithm | None = None,
    ):
        """Initializes self.

        :param source: The body to encode. Exactly ``decoded_length`` bytes must be
            readable from it.
        :param framing: How chunks are framed, signed or not.
        :param decoded_length: The size of the body before encoding.
        :param chunk_size: The size of every data chunk but the last.
        :param trailers: Trailer values known ahead of time.
        :param checksum_algorithm: Compute a checksum of the body while it is read
            and send it as a trailer.
        """
        super().__init__(
            framing=framing,
            decoded_length=decoded_length,
            chunk_size=chunk_size,
            trailers=trailers,
            checksum_algorithm=checksum_algorithm,
        )
        self._source = BytesReader(source if source is not None else b"")

    def read(self, size: int | None = -1) -> bytes:
        """Read up to ``size`` encoded bytes, or the rest of the stream if ``size``
        is negative or None.

        Errors from the source are raised as they happen, with no frame emitted for
        the bytes of the chunk being assembled.
        """
        if size is None:
            size = -1
        while self._wants_more(size):
            if self._state is EncoderState.STREAMING:
                self._accept(self._source.read(self._read_size()))
            else:
                self._advance()
        return self._drain(size)

    def __iter__(self) -> Iterator[bytes]:
        while data := self.read(self._chunk_size):
            yield data

    def close(self) -> None:
        """Discard anything buffered and close the source."""
        if not self._closed:
            self._discard()
            self._source.close()


class AsyncChunkedStreamEncoder(_ChunkedEncoderBase):
    """The asynchronous counterpart of :py:class:`ChunkedStreamEncoder`."""

    def __init__(
        self,
        source: bytes
        | ByteStream
        | AsyncByteStream
        | AsyncIterable[bytes]
        | Iterable[bytes]
        | None,
        *,
        framing: ChunkFraming,
        decoded_length: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        trailers: Mapping[str, str] | None = None,
        checksum_algorithm: ChecksumAlgorithm | None = None,
    ):
        super().__init__(
            framing=framing,
            decoded_length=decoded_length,
            chunk_size=chunk_size,
            trailers=trailers,
            checksum_algorithm=checksum_algorithm,
        )
        self._source = AsyncBytesReader(source if source is not None else b"")

    async def read(self, size: int | None = -1) -> bytes:
        """Read up to ``size`` encoded bytes, or the rest of the stream if ``size``
        is negative or None."""
        if size is None:
            size = -1
        while self._wants_more(size):
            if self._state is EncoderState.STREAMING:
                self._accept(await self._source.read(self._read_size()))
            else:
                self._advance()
        return self._drain(size)

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while data := await self.read(self._chunk_size):
            yield data

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def close(self) -> None:
        """Discard anything buffered and close the source."""
        if not self._closed:
            self._discard()
            await self._source.close()
