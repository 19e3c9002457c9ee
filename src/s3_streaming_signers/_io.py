# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from inspect import iscoroutinefunction
from io import BytesIO
from typing import Protocol, cast, runtime_checkable


@runtime_checkable
class ByteStream(Protocol):
    """A file-like object with a read method that returns bytes."""

    def read(self, size: int = -1, /) -> bytes: ...


@runtime_checkable
class AsyncByteStream(Protocol):
    """A file-like object with an async read method."""

    async def read(self, size: int = -1, /) -> bytes: ...


class BytesReader:
    """A file-like object over bytes, a sync stream or an iterable of bytes.

    Data is pulled from the source only when asked for. Leftover bytes of an
    iterable element that did not fit in a read are kept for the next one.
    """

    _data: ByteStream | Iterator[bytes] | None

    def __init__(self, data: bytes | bytearray | ByteStream | Iterable[bytes]):
        self._remainder = b""
        self._closed = False
        if isinstance(data, bytes | bytearray):
            self._data = BytesIO(data)
        elif isinstance(data, ByteStream):
            self._data = data
        else:
            self._data = iter(data)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, or everything that is left if ``size`` < 0."""
        if self._closed or self._data is None:
            raise ValueError("I/O operation on closed file.")

        if isinstance(self._data, ByteStream):
            return self._data.read(size)

        result = self._remainder
        if size < 0:
            for element in self._data:
                result += element
            self._remainder = b""
            return result

        if len(result) < size:
            for element in self._data:
                result += element
                if len(result) >= size:
                    break

        self._remainder = result[size:]
        return result[:size]

    def readable(self) -> bool:
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Closes the reader, as well as the underlying stream where possible."""
        self._closed = True
        if (close := getattr(self._data, "close", None)) is not None:
            close()
        self._data = None


# asyncio has a StreamReader class which you might think would be appropriate here,
# but it is unfortunately tied to the asyncio http interfaces.
class AsyncBytesReader:
    """A file-like object with an async read method."""

    _data: ByteStream | AsyncByteStream | AsyncIterator[bytes] | None

    def __init__(
        self,
        data: bytes
        | bytearray
        | ByteStream
        | AsyncByteStream
        | AsyncIterable[bytes]
        | Iterable[bytes],
    ):
        """Initializes self.

        Data is read from the source on an as-needed basis and is not buffered.

        :param data: The source data to read from.
        """
        self._remainder = b""
        self._closed = False
        if isinstance(data, bytes | bytearray):
            self._data = BytesIO(data)
        elif isinstance(data, ByteStream | AsyncByteStream):
            self._data = data
        elif isinstance(data, AsyncIterable):
            self._data = aiter(data)
        else:
            # Plain iterables are drained synchronously through a BytesReader.
            self._data = BytesReader(data)

    async def read(self, size: int = -1) -> bytes:
        """Read a number of bytes from the stream.

        :param size: The maximum number of bytes to read. If less than 0, all bytes will
            be read.
        """
        if self._closed or self._data is None:
            raise ValueError("I/O operation on closed file.")

        if isinstance(self._data, ByteStream | AsyncByteStream):
            # Python's runtime_checkable can't actually tell the difference between
            # sync and async, so we have to check ourselves.
            if iscoroutinefunction(self._data.read):
                return await cast(AsyncByteStream, self._data).read(size)
            return cast(ByteStream, self._data).read(size)

        return await self._read_from_iterator(self._data, size)

    async def _read_from_iterator(
        self, iterator: AsyncIterator[bytes], size: int
    ) -> bytes:
        result = self._remainder
        if size < 0:
            async for element in iterator:
                result += element
            self._remainder = b""
            return result

        if len(result) < size:
            async for element in iterator:
                result += element
                if len(result) >= size:
                    break

        self._remainder = result[size:]
        return result[:size]

    def readable(self) -> bool:
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Closes the stream, as well as the underlying stream where possible."""
        self._closed = True
        if (close := getattr(self._data, "close", None)) is not None:
            if iscoroutinefunction(close):
                await close()
            else:
                close()
        elif (aclose := getattr(self._data, "aclose", None)) is not None:
            await aclose()
        self._data = None
