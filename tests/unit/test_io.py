# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import AsyncIterator
from io import BytesIO

import pytest
from s3_streaming_signers import AsyncBytesReader, BytesReader


@pytest.mark.parametrize(
    "source",
    [
        b"0123456789",
        bytearray(b"0123456789"),
        BytesIO(b"0123456789"),
        [b"012", b"3456", b"789"],
        iter([b"0123456789"]),
    ],
)
def test_bytes_reader(source: object) -> None:
    reader = BytesReader(source)  # type: ignore
    assert reader.read(4) == b"0123"
    assert reader.read(4) == b"4567"
    assert reader.read() == b"89"
    assert reader.read(4) == b""


def test_bytes_reader_close() -> None:
    source = BytesIO(b"data")
    reader = BytesReader(source)
    reader.close()
    assert reader.closed
    assert source.closed
    with pytest.raises(ValueError):
        reader.read()


class AsyncStream:
    def __init__(self, data: bytes):
        self._data = BytesIO(data)
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        return self._data.read(size)

    async def close(self) -> None:
        self.closed = True


async def _async_pieces() -> AsyncIterator[bytes]:
    for piece in (b"012", b"3456", b"789"):
        yield piece


@pytest.mark.parametrize(
    "source",
    [
        b"0123456789",
        BytesIO(b"0123456789"),
        [b"012", b"3456", b"789"],
    ],
)
async def test_async_bytes_reader(source: object) -> None:
    reader = AsyncBytesReader(source)  # type: ignore
    assert await reader.read(4) == b"0123"
    assert await reader.read(4) == b"4567"
    assert await reader.read() == b"89"
    assert await reader.read(4) == b""


async def test_async_bytes_reader_async_sources() -> None:
    reader = AsyncBytesReader(_async_pieces())
    assert await reader.read(4) == b"0123"
    assert await reader.read() == b"456789"

    stream = AsyncStream(b"0123456789")
    reader = AsyncBytesReader(stream)
    assert await reader.read(5) == b"01234"
    await reader.close()
    assert stream.closed
    with pytest.raises(ValueError):
        await reader.read()
