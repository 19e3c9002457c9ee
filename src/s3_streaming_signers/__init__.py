# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""S3 Streaming Signers sign S3 uploads with the SigV4 streaming (``aws-chunked``)
payload signature, for use with HTTP tools such as AioHTTP, Requests, urllib3, etc."""

from __future__ import annotations

from ._http import URI, Field, FieldPosition, Fields, S3Request
from ._identity import AWSCredentialIdentity
from ._io import AsyncBytesReader, BytesReader
from .checksums import ChecksumAlgorithm
from .chunked import (
    AsyncChunkedStreamEncoder,
    ChunkedStreamEncoder,
    EncoderState,
    SignedChunkFraming,
    UnsignedChunkFraming,
)
from .signers import (
    AsyncStreamingSigV4Signer,
    StreamingSigningProperties,
    StreamingSigV4Signer,
)
from .signing import SigningContext

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "URI",
    "AWSCredentialIdentity",
    "AsyncBytesReader",
    "AsyncChunkedStreamEncoder",
    "AsyncStreamingSigV4Signer",
    "BytesReader",
    "ChecksumAlgorithm",
    "ChunkedStreamEncoder",
    "EncoderState",
    "Field",
    "FieldPosition",
    "Fields",
    "S3Request",
    "SignedChunkFraming",
    "SigningContext",
    "StreamingSigV4Signer",
    "StreamingSigningProperties",
    "UnsignedChunkFraming",
)
