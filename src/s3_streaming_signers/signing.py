# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""The SigV4 seed, chunk and trailer signature computations.

Every function here is pure. Chunk and trailer signatures take the previous signature
of the chain explicitly; threading it through in order is up to the caller.
"""

import hmac
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cached_property
from hashlib import sha256

from .canonical import EMPTY_SHA256_HASH
from .exceptions import MissingExpectedParameterException

SIGV4_TIMESTAMP_FORMAT: str = "%Y%m%dT%H%M%SZ"
SIGNING_ALGORITHM: str = "AWS4-HMAC-SHA256"
CHUNK_SIGNING_ALGORITHM: str = "AWS4-HMAC-SHA256-PAYLOAD"
TRAILER_SIGNING_ALGORITHM: str = "AWS4-HMAC-SHA256-TRAILER"
DEFAULT_SERVICE: str = "s3"

_TIMESTAMP_PATTERN = re.compile(r"[0-9]{8}T[0-9]{6}Z")


def format_timestamp(value: datetime) -> str:
    """Format ``value`` as a SigV4 timestamp. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(SIGV4_TIMESTAMP_FORMAT)


def derive_signing_key(
    secret_access_key: str, date: str, region: str, service: str = DEFAULT_SERVICE
) -> bytes:
    """Derive the signing key scoped to a day, region and service.

    :param date: Either a ``YYYYMMDD`` date or a full SigV4 timestamp.
    """
    # Components of Signing Key Calculation
    #
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    k_date = _hash(f"AWS4{secret_access_key}".encode(), date[0:8])
    k_region = _hash(k_date, region)
    k_service = _hash(k_region, service)
    return _hash(k_service, "aws4_request")


def credential_scope(
    timestamp: str, region: str, service: str = DEFAULT_SERVICE
) -> str:
    # Scope format: <YYYYMMDD>/<AWS Region>/<AWS Service>/aws4_request
    return f"{timestamp[0:8]}/{region}/{service}/aws4_request"


def seed_signature(
    canonical_request: str,
    *,
    secret_access_key: str,
    timestamp: str,
    region: str,
    service: str = DEFAULT_SERVICE,
) -> str:
    """Sign a canonical request, producing the first link of the chunk chain."""
    _validate_signing_inputs(secret_access_key, timestamp, region)
    key = derive_signing_key(secret_access_key, timestamp, region, service)
    return _seed_signature(
        key, canonical_request, timestamp, credential_scope(timestamp, region, service)
    )


def chunk_signature(
    chunk_checksum: str,
    *,
    timestamp: str,
    region: str,
    previous_signature: str,
    secret_access_key: str,
    service: str = DEFAULT_SERVICE,
) -> str:
    """Sign one data chunk (or the zero-length terminator) of a streaming body.

    :param chunk_checksum: Hex SHA-256 of the chunk's bytes. The terminator uses the
        hash of the empty string.
    :param previous_signature: The seed signature for the first chunk, the signature
        of the preceding chunk otherwise.
    """
    _validate_signing_inputs(secret_access_key, timestamp, region)
    key = derive_signing_key(secret_access_key, timestamp, region, service)
    return _chunk_signature(
        key,
        chunk_checksum,
        timestamp,
        credential_scope(timestamp, region, service),
        previous_signature,
    )


def trailer_chunk_signature(
    trailer_checksum: str,
    *,
    timestamp: str,
    region: str,
    previous_signature: str,
    secret_access_key: str,
    service: str = DEFAULT_SERVICE,
) -> str:
    """Sign the trailer block of a streaming body.

    :param trailer_checksum: Hex SHA-256 of the ``name:value\\n`` trailer lines.
    :param previous_signature: The signature of the zero-length terminator chunk.
    """
    _validate_signing_inputs(secret_access_key, timestamp, region)
    key = derive_signing_key(secret_access_key, timestamp, region, service)
    return _trailer_chunk_signature(
        key,
        trailer_checksum,
        timestamp,
        credential_scope(timestamp, region, service),
        previous_signature,
    )


@dataclass(kw_only=True, frozen=True)
class SigningContext:
    """Everything needed to sign one request and its chunks.

    The signing key is derived once per context and never shared between contexts.
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str
    timestamp: str
    """SigV4 timestamp, ``YYYYMMDDTHHMMSSZ``."""
    service: str = DEFAULT_SERVICE
    session_token: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.access_key_id:
            raise MissingExpectedParameterException(
                "Cannot sign a request without an access key id."
            )
        _validate_signing_inputs(self.secret_access_key, self.timestamp, self.region)

    @property
    def date(self) -> str:
        return self.timestamp[0:8]

    @property
    def scope(self) -> str:
        return credential_scope(self.timestamp, self.region, self.service)

    @property
    def credential(self) -> str:
        """``<access_key>/<date>/<region>/<service>/aws4_request``"""
        return f"{self.access_key_id}/{self.scope}"

    @cached_property
    def _signing_key(self) -> bytes:
        return derive_signing_key(
            self.secret_access_key, self.timestamp, self.region, self.service
        )

    def seed_signature(self, canonical_request: str) -> str:
        return _seed_signature(
            self._signing_key, canonical_request, self.timestamp, self.scope
        )

    def chunk_signature(self, chunk_checksum: str, previous_signature: str) -> str:
        return _chunk_signature(
            self._signing_key,
            chunk_checksum,
            self.timestamp,
            self.scope,
            previous_signature,
        )

    def trailer_chunk_signature(
        self, trailer_checksum: str, previous_signature: str
    ) -> str:
        return _trailer_chunk_signature(
            self._signing_key,
            trailer_checksum,
            self.timestamp,
            self.scope,
            previous_signature,
        )


def _seed_signature(
    key: bytes, canonical_request: str, timestamp: str, scope: str
) -> str:
    string_to_sign = (
        f"{SIGNING_ALGORITHM}\n"
        f"{timestamp}\n"
        f"{scope}\n"
        f"{sha256(canonical_request.encode()).hexdigest()}"
    )
    return _hash(key, string_to_sign).hex()


def _chunk_signature(
    key: bytes, chunk_checksum: str, timestamp: str, scope: str, previous: str
) -> str:
    string_to_sign = (
        f"{CHUNK_SIGNING_ALGORITHM}\n"
        f"{timestamp}\n"
        f"{scope}\n"
        f"{previous}\n"
        f"{EMPTY_SHA256_HASH}\n"
        f"{chunk_checksum}"
    )
    return _hash(key, string_to_sign).hex()


def _trailer_chunk_signature(
    key: bytes, trailer_checksum: str, timestamp: str, scope: str, previous: str
) -> str:
    string_to_sign = (
        f"{TRAILER_SIGNING_ALGORITHM}\n"
        f"{timestamp}\n"
        f"{scope}\n"
        f"{previous}\n"
        f"{trailer_checksum}"
    )
    return _hash(key, string_to_sign).hex()


def _hash(key: bytes, value: str) -> bytes:
    return hmac.new(key=key, msg=value.encode(), digestmod=sha256).digest()


def _validate_signing_inputs(
    secret_access_key: str, timestamp: str, region: str
) -> None:
    if not secret_access_key:
        raise MissingExpectedParameterException(
            "Cannot sign a request without a secret access key."
        )
    if not region:
        raise MissingExpectedParameterException(
            "Cannot sign a request without a region."
        )
    if not _TIMESTAMP_PATTERN.fullmatch(timestamp):
        raise MissingExpectedParameterException(
            "Cannot sign a request without a valid timestamp. Expected the "
            f"{SIGV4_TIMESTAMP_FORMAT} format but received {timestamp!r}."
        )
