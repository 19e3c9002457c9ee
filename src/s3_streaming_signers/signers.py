# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import AsyncIterable, Callable
from copy import deepcopy
from dataclasses import dataclass
from datetime import UTC, datetime
from inspect import iscoroutinefunction
from typing import Required, TypedDict

from ._http import Field, FieldPosition, S3Request
from ._identity import AWSCredentialIdentity
from ._io import AsyncByteStream
from .canonical import canonical_fields, canonical_request, signed_headers
from .checksums import ChecksumAlgorithm
from .chunked import (
    DEFAULT_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    AsyncChunkedStreamEncoder,
    ChunkedStreamEncoder,
    ChunkFraming,
    SignedChunkFraming,
    UnsignedChunkFraming,
    trailer_value_lengths,
)
from .exceptions import (
    ContentLengthMismatchException,
    MissingExpectedParameterException,
)
from .signing import (
    DEFAULT_SERVICE,
    SIGNING_ALGORITHM,
    SigningContext,
    format_timestamp,
)

logger = logging.getLogger(__name__)

AWS_CHUNKED_ENCODING: str = "aws-chunked"


class StreamingSigningProperties(TypedDict, total=False):
    region: Required[str]
    service: str
    date: str
    chunk_size: int
    trailer_checksum_algorithm: str | ChecksumAlgorithm
    payload_signing_enabled: bool
    normalize_path: bool


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(kw_only=True, frozen=True)
class _EncoderPlan:
    decoded_length: int
    chunk_size: int
    trailers: dict[str, str]
    checksum_algorithm: ChecksumAlgorithm | None


class _BaseStreamingSigV4Signer:
    def __init__(self, clock: Callable[[], datetime] | None = None):
        """Initializes self.

        :param clock: Returns the current time when the signing properties don't carry
            a ``date``. Defaults to the system clock in UTC.
        """
        self._clock = clock if clock is not None else _utc_now

    def generate_authorization_field(
        self, *, credential: str, signed_headers: str, signature: str
    ) -> Field:
        """Generate the `Authorization` field.

        :param credential:
            Credential scope string for generating the Authorization header.
            Defined as:
                <access_key>/<date>/<region>/<service>/aws4_request
        :param signed_headers:
            The ``;`` separated names of the fields used in signing.
        :param signature:
            The seed signature of the request.
        """
        auth_str = (
            f"{SIGNING_ALGORITHM} Credential={credential},"
            f"SignedHeaders={signed_headers},Signature={signature}"
        )
        return Field(name="Authorization", values=[auth_str])

    def _sign_headers(
        self,
        *,
        signing_properties: StreamingSigningProperties,
        http_request: S3Request,
        identity: AWSCredentialIdentity,
        decoded_content_length: int,
    ) -> tuple[S3Request, ChunkFraming, _EncoderPlan]:
        """Copy the request and apply every streaming header and the seed signature.

        The returned request still carries the original body. Wrapping it in an
        encoder built from the returned framing and plan is left to the caller.
        """
        # Everything that can be checked is checked before anything is signed.
        self._validate_identity(identity=identity)
        new_signing_properties = self._normalize_signing_properties(
            signing_properties=signing_properties
        )
        self._validate_body(
            body=http_request.body, decoded_content_length=decoded_content_length
        )
        assert "date" in new_signing_properties

        context = SigningContext(
            access_key_id=identity.access_key_id,
            secret_access_key=identity.secret_access_key,
            session_token=identity.session_token,
            region=new_signing_properties["region"],
            service=new_signing_properties.get("service", DEFAULT_SERVICE),
            timestamp=new_signing_properties["date"],
        )

        plan = self._plan_encoder(
            signing_properties=new_signing_properties,
            request=http_request,
            decoded_content_length=decoded_content_length,
        )
        trailer_lengths = trailer_value_lengths(plan.trailers, plan.checksum_algorithm)
        framing_type = self._framing_type(
            signing_properties=new_signing_properties,
            request=http_request,
            has_trailer=bool(trailer_lengths),
        )
        payload_hash = framing_type.payload_hash(has_trailer=bool(trailer_lengths))
        content_length = framing_type.encoded_length(
            decoded_content_length, plan.chunk_size, trailer_lengths
        )

        new_request = self._generate_new_request(request=http_request)
        self._apply_required_fields(
            request=new_request,
            context=context,
            payload_hash=payload_hash,
            decoded_content_length=decoded_content_length,
            content_length=content_length,
            trailer_names=list(trailer_lengths),
        )

        # Headers must be final from here on, anything added later isn't signed.
        signing_fields = canonical_fields(new_request.fields, new_request.destination)
        request_str = canonical_request(
            method=new_request.method,
            path=new_request.destination.path,
            query=new_request.destination.query,
            headers=signing_fields,
            payload_hash=payload_hash,
            normalize_path=new_signing_properties.get("normalize_path", False),
        )
        seed_signature = context.seed_signature(request_str)
        new_request.fields.set_field(
            self.generate_authorization_field(
                credential=context.credential,
                signed_headers=signed_headers(signing_fields),
                signature=seed_signature,
            )
        )
        logger.debug(
            "Signed streaming %s request to %s: %d decoded bytes, %d encoded bytes, "
            "chunks of %d bytes, trailers %s.",
            new_request.method,
            new_request.destination.netloc,
            decoded_content_length,
            content_length,
            plan.chunk_size,
            list(trailer_lengths),
        )

        framing: ChunkFraming
        if framing_type is SignedChunkFraming:
            framing = SignedChunkFraming(context=context, seed_signature=seed_signature)
        else:
            framing = UnsignedChunkFraming()
        return new_request, framing, plan

    def _validate_identity(self, *, identity: AWSCredentialIdentity) -> None:
        """Perform runtime and expiration checks before attempting signing."""
        if not isinstance(identity, AWSCredentialIdentity):
            raise ValueError(
                "Received unexpected value for identity parameter. Expected "
                f"AWSCredentialIdentity but received {type(identity)}."
            )
        elif identity.is_expired:
            raise ValueError(
                f"Provided identity expired at {identity.expiration}. Please "
                "refresh the credentials or update the expiration parameter."
            )

    def _normalize_signing_properties(
        self, *, signing_properties: StreamingSigningProperties
    ) -> StreamingSigningProperties:
        # Create copy of signing properties to avoid mutating the original
        new_signing_properties = StreamingSigningProperties(**signing_properties)
        if not new_signing_properties.get("region"):
            raise MissingExpectedParameterException(
                "Cannot sign a request without a region in the signing properties."
            )
        if "date" not in new_signing_properties:
            new_signing_properties["date"] = format_timestamp(self._clock())
        chunk_size = new_signing_properties.get("chunk_size", DEFAULT_CHUNK_SIZE)
        if chunk_size < MIN_CHUNK_SIZE:
            raise ValueError(
                f"Chunk size must be at least {MIN_CHUNK_SIZE} bytes, got {chunk_size}."
            )
        return new_signing_properties

    def _validate_body(self, *, body: object, decoded_content_length: int) -> None:
        if isinstance(decoded_content_length, bool) or not isinstance(
            decoded_content_length, int
        ):
            raise ValueError(
                "Decoded content length must be an int, received "
                f"{type(decoded_content_length)}."
            )
        if decoded_content_length < 0:
            raise ValueError(
                "Decoded content length must not be negative, received "
                f"{decoded_content_length}."
            )
        # Lengths that are known up front are checked now instead of mid-upload.
        if body is None and decoded_content_length:
            raise ContentLengthMismatchException(
                expected=decoded_content_length, actual=0
            )
        if isinstance(body, bytes | bytearray) and len(body) != decoded_content_length:
            raise ContentLengthMismatchException(
                expected=decoded_content_length, actual=len(body)
            )

    def _plan_encoder(
        self,
        *,
        signing_properties: StreamingSigningProperties,
        request: S3Request,
        decoded_content_length: int,
    ) -> _EncoderPlan:
        algorithm = signing_properties.get("trailer_checksum_algorithm")
        return _EncoderPlan(
            decoded_length=decoded_content_length,
            chunk_size=signing_properties.get("chunk_size", DEFAULT_CHUNK_SIZE),
            trailers={
                field.name.lower(): field.as_string()
                for field in request.fields.get_by_type(FieldPosition.TRAILER)
            },
            checksum_algorithm=(
                ChecksumAlgorithm.from_name(algorithm) if algorithm else None
            ),
        )

    def _framing_type(
        self,
        *,
        signing_properties: StreamingSigningProperties,
        request: S3Request,
        has_trailer: bool,
    ) -> type[SignedChunkFraming] | type[UnsignedChunkFraming]:
        # All insecure connections should be signed
        if request.destination.scheme != "https":
            return SignedChunkFraming
        if signing_properties.get("payload_signing_enabled", True):
            return SignedChunkFraming
        if not has_trailer:
            raise MissingExpectedParameterException(
                "Unsigned streaming payloads must carry a trailer. Set "
                "trailer_checksum_algorithm or add a trailer field to the request."
            )
        return UnsignedChunkFraming

    def _generate_new_request(self, *, request: S3Request) -> S3Request:
        return deepcopy(request)

    def _apply_required_fields(
        self,
        *,
        request: S3Request,
        context: SigningContext,
        payload_hash: str,
        decoded_content_length: int,
        content_length: int,
        trailer_names: list[str],
    ) -> None:
        fields = request.fields
        fields.set_field(Field(name="X-Amz-Date", values=[context.timestamp]))
        # Apply required X-Amz-Security-Token if token present on identity
        if context.session_token is not None:
            fields.set_field(
                Field(name="X-Amz-Security-Token", values=[context.session_token])
            )
        fields.set_field(Field(name="X-Amz-Content-SHA256", values=[payload_hash]))
        fields.set_field(
            Field(
                name="X-Amz-Decoded-Content-Length",
                values=[str(decoded_content_length)],
            )
        )
        fields.set_field(Field(name="Content-Length", values=[str(content_length)]))
        if "Transfer-Encoding" in fields:
            del fields["Transfer-Encoding"]

        if trailer_names:
            encodings = [AWS_CHUNKED_ENCODING]
            if (existing := fields.get("Content-Encoding")) is not None:
                encodings.extend(
                    value.strip()
                    for value in existing.as_string().split(",")
                    if value.strip() and value.strip() != AWS_CHUNKED_ENCODING
                )
            fields.set_field(
                Field(name="Content-Encoding", values=[",".join(encodings)])
            )
            fields.set_field(
                Field(name="X-Amz-Trailer", values=[",".join(trailer_names)])
            )


class StreamingSigV4Signer(_BaseStreamingSigV4Signer):
    """Request signer for S3 uploads using the SigV4 streaming (``aws-chunked``)
    payload signature.

    The body of the signed request is replaced with a
    :py:class:`ChunkedStreamEncoder` that signs and frames each chunk as the HTTP
    client reads it, so uploads of any size are signed without buffering them.
    """

    def sign(
        self,
        *,
        signing_properties: StreamingSigningProperties,
        http_request: S3Request,
        identity: AWSCredentialIdentity,
        decoded_content_length: int,
    ) -> S3Request:
        """Generate and apply a streaming SigV4 signature to a copy of the supplied
        request.

        :param signing_properties: StreamingSigningProperties to define signing
            primitives such as the region, date and chunk size.
        :param http_request: An S3Request to sign prior to sending. Its body must
            produce exactly ``decoded_content_length`` bytes and is consumed by the
            returned request's body.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        :param decoded_content_length: The size of the body before chunk encoding.
        """
        body = http_request.body
        if isinstance(body, AsyncIterable) or (
            isinstance(body, AsyncByteStream) and iscoroutinefunction(body.read)
        ):
            raise TypeError(
                "An async body was attached to a synchronous signer. Please use "
                "AsyncStreamingSigV4Signer for async bodies or ensure your body is "
                "bytes, a readable stream or an Iterable[bytes]."
            )
        new_request, framing, plan = self._sign_headers(
            signing_properties=signing_properties,
            http_request=http_request,
            identity=identity,
            decoded_content_length=decoded_content_length,
        )
        new_request.body = ChunkedStreamEncoder(
            body,  # type: ignore - async bodies are rejected above
            framing=framing,
            decoded_length=plan.decoded_length,
            chunk_size=plan.chunk_size,
            trailers=plan.trailers,
            checksum_algorithm=plan.checksum_algorithm,
        )
        return new_request


class AsyncStreamingSigV4Signer(_BaseStreamingSigV4Signer):
    """Request signer for S3 uploads using the SigV4 streaming (``aws-chunked``)
    payload signature, for async HTTP clients.

    The body of the signed request is replaced with an
    :py:class:`AsyncChunkedStreamEncoder`. Sync and async bodies are both accepted.
    """

    async def sign(
        self,
        *,
        signing_properties: StreamingSigningProperties,
        http_request: S3Request,
        identity: AWSCredentialIdentity,
        decoded_content_length: int,
    ) -> S3Request:
        """Generate and apply a streaming SigV4 signature to a copy of the supplied
        request.

        :param signing_properties: StreamingSigningProperties to define signing
            primitives such as the region, date and chunk size.
        :param http_request: An S3Request to sign prior to sending. Its body must
            produce exactly ``decoded_content_length`` bytes and is consumed by the
            returned request's body.
        :param identity: A set of credentials representing an AWS Identity or role
            capacity.
        :param decoded_content_length: The size of the body before chunk encoding.
        """
        new_request, framing, plan = self._sign_headers(
            signing_properties=signing_properties,
            http_request=http_request,
            identity=identity,
            decoded_content_length=decoded_content_length,
        )
        new_request.body = AsyncChunkedStreamEncoder(
            http_request.body,
            framing=framing,
            decoded_length=plan.decoded_length,
            chunk_size=plan.chunk_size,
            trailers=plan.trailers,
            checksum_algorithm=plan.checksum_algorithm,
        )
        return new_request
