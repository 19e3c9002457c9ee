# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Flexible checksums that can be sent as a trailer of a streaming upload."""

import base64
import hashlib
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from awscrt import checksums as crt_checksums

CHECKSUM_HEADER_PREFIX = "x-amz-checksum-"


class Checksum(Protocol):
    """Incremental checksum: feed it with ``update`` and read it once at the end."""

    def update(self, data: bytes, /) -> None: ...

    def digest(self) -> bytes: ...


class _CrtCrcChecksum:
    def __init__(self, crc_function: Callable[[bytes, int], int], size: int):
        self._crc_function = crc_function
        self._size = size
        self._value = 0

    def update(self, data: bytes, /) -> None:
        self._value = self._crc_function(data, self._value)

    def digest(self) -> bytes:
        return self._value.to_bytes(self._size, byteorder="big")


class ChecksumAlgorithm(Enum):
    """Checksum algorithms S3 accepts as ``x-amz-checksum-*`` trailers."""

    CRC32 = "CRC32"
    CRC32C = "CRC32C"
    CRC64NVME = "CRC64NVME"
    SHA1 = "SHA1"
    SHA256 = "SHA256"

    @classmethod
    def from_name(cls, name: "str | ChecksumAlgorithm") -> "ChecksumAlgorithm":
        """Look an algorithm up by case-insensitive name, e.g. ``"crc32c"``."""
        if isinstance(name, ChecksumAlgorithm):
            return name
        try:
            return cls(name.upper())
        except ValueError:
            raise ValueError(
                f"Unsupported checksum algorithm {name!r}. Expected one of: "
                f"{', '.join(member.value for member in cls)}."
            ) from None

    @property
    def header_name(self) -> str:
        """The trailer name carrying this checksum, e.g. ``x-amz-checksum-crc32c``."""
        return f"{CHECKSUM_HEADER_PREFIX}{self.value.lower()}"

    @property
    def digest_size(self) -> int:
        return _DIGEST_SIZES[self]

    @property
    def encoded_length(self) -> int:
        """Length of the base64 encoded digest as it appears on the wire."""
        return 4 * -(-self.digest_size // 3)

    def new(self) -> Checksum:
        match self:
            case ChecksumAlgorithm.CRC32:
                return _CrtCrcChecksum(crt_checksums.crc32, 4)
            case ChecksumAlgorithm.CRC32C:
                return _CrtCrcChecksum(crt_checksums.crc32c, 4)
            case ChecksumAlgorithm.CRC64NVME:
                return _CrtCrcChecksum(crt_checksums.crc64nvme, 8)
            case ChecksumAlgorithm.SHA1:
                return hashlib.sha1()
            case ChecksumAlgorithm.SHA256:
                return hashlib.sha256()


_DIGEST_SIZES: dict[ChecksumAlgorithm, int] = {
    ChecksumAlgorithm.CRC32: 4,
    ChecksumAlgorithm.CRC32C: 4,
    ChecksumAlgorithm.CRC64NVME: 8,
    ChecksumAlgorithm.SHA1: 20,
    ChecksumAlgorithm.SHA256: 32,
}


def b64digest(checksum: Checksum) -> str:
    """The base64 encoding of ``checksum``'s digest, as S3 expects it."""
    return base64.b64encode(checksum.digest()).decode("ascii")
