# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import base64
import zlib

import pytest
from s3_streaming_signers.checksums import ChecksumAlgorithm, b64digest

CHECK_INPUT = b"123456789"


@pytest.mark.parametrize(
    "algorithm,data,expected",
    [
        (ChecksumAlgorithm.CRC32, CHECK_INPUT, "y/Q5Jg=="),
        (ChecksumAlgorithm.CRC32C, CHECK_INPUT, "4waSgw=="),
        (ChecksumAlgorithm.CRC32C, b"", "AAAAAA=="),
        (ChecksumAlgorithm.CRC64NVME, CHECK_INPUT, "rosUhgp5mIg="),
        (
            ChecksumAlgorithm.SHA256,
            b"",
            "47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU=",
        ),
        (ChecksumAlgorithm.SHA1, b"", "2jmj7l5rSw0yVb/vlWAYkK/YBwk="),
    ],
)
def test_checksum_values(
    algorithm: ChecksumAlgorithm, data: bytes, expected: str
) -> None:
    checksum = algorithm.new()
    checksum.update(data)
    assert b64digest(checksum) == expected


@pytest.mark.parametrize("algorithm", list(ChecksumAlgorithm))
def test_incremental_updates(algorithm: ChecksumAlgorithm) -> None:
    data = bytes(range(256)) * 40
    whole = algorithm.new()
    whole.update(data)
    pieces = algorithm.new()
    for start in range(0, len(data), 1000):
        pieces.update(data[start : start + 1000])
    assert pieces.digest() == whole.digest()
    assert len(whole.digest()) == algorithm.digest_size
    assert len(b64digest(whole)) == algorithm.encoded_length


def test_crc32_matches_zlib() -> None:
    data = b"The quick brown fox jumps over the lazy dog" * 100
    checksum = ChecksumAlgorithm.CRC32.new()
    checksum.update(data)
    expected = base64.b64encode(zlib.crc32(data).to_bytes(4, "big")).decode()
    assert b64digest(checksum) == expected


@pytest.mark.parametrize(
    "name,expected",
    [
        ("crc32c", ChecksumAlgorithm.CRC32C),
        ("CRC32", ChecksumAlgorithm.CRC32),
        ("Sha256", ChecksumAlgorithm.SHA256),
        ("crc64nvme", ChecksumAlgorithm.CRC64NVME),
        (ChecksumAlgorithm.SHA1, ChecksumAlgorithm.SHA1),
    ],
)
def test_from_name(name: str | ChecksumAlgorithm, expected: ChecksumAlgorithm) -> None:
    assert ChecksumAlgorithm.from_name(name) is expected


@pytest.mark.parametrize("name", ["md5", "crc16", ""])
def test_from_name_unsupported(name: str) -> None:
    with pytest.raises(ValueError):
        ChecksumAlgorithm.from_name(name)


@pytest.mark.parametrize(
    "algorithm,header_name,encoded_length",
    [
        (ChecksumAlgorithm.CRC32, "x-amz-checksum-crc32", 8),
        (ChecksumAlgorithm.CRC32C, "x-amz-checksum-crc32c", 8),
        (ChecksumAlgorithm.CRC64NVME, "x-amz-checksum-crc64nvme", 12),
        (ChecksumAlgorithm.SHA1, "x-amz-checksum-sha1", 28),
        (ChecksumAlgorithm.SHA256, "x-amz-checksum-sha256", 44),
    ],
)
def test_algorithm_properties(
    algorithm: ChecksumAlgorithm, header_name: str, encoded_length: int
) -> None:
    assert algorithm.header_name == header_name
    assert algorithm.encoded_length == encoded_length
