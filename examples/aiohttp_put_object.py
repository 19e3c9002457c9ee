"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: Apache-2.0

Sample streaming PutObject using aiohttp.

Usage: python aiohttp_put_object.py <url> <file> [region]
with credentials taken from AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and, optionally,
AWS_SESSION_TOKEN.
"""

import asyncio
import logging
import os
import sys
import typing
from collections.abc import AsyncIterator

import aiohttp

from s3_streaming_signers import (
    URI,
    AsyncStreamingSigV4Signer,
    AWSCredentialIdentity,
    FieldPosition,
    Fields,
    S3Request,
)

if typing.TYPE_CHECKING:
    from s3_streaming_signers import (
        AsyncChunkedStreamEncoder,
        StreamingSigningProperties,
    )


class StreamingUploader:
    """Minimal streaming upload client built on AIOHTTP."""

    def __init__(
        self,
        properties: "StreamingSigningProperties",
        identity: AWSCredentialIdentity,
    ):
        self._properties = properties
        self._identity = identity
        self._signer = AsyncStreamingSigV4Signer()

    async def put_object(
        self, session: aiohttp.ClientSession, url: str, path: str
    ) -> int:
        """Upload the file at ``path`` to ``url`` and return the response status."""
        size = os.path.getsize(path)
        with open(path, "rb") as body:
            request = S3Request(
                destination=URI.from_url(url),
                method="PUT",
                body=body,
                fields=Fields(),
            )
            signed_request = await self._signer.sign(
                signing_properties=self._properties,
                http_request=request,
                identity=self._identity,
                decoded_content_length=size,
            )
            encoder = typing.cast("AsyncChunkedStreamEncoder", signed_request.body)
            headers = {
                field.name: field.as_string()
                for field in signed_request.fields.get_by_type(FieldPosition.HEADER)
            }
            async with session.put(
                signed_request.destination.build(),
                headers=headers,
                data=_iter_body(encoder),
            ) as response:
                await response.read()
                return response.status


async def _iter_body(encoder: "AsyncChunkedStreamEncoder") -> AsyncIterator[bytes]:
    try:
        async for data in encoder:
            yield data
    finally:
        await encoder.close()


async def main(url: str, path: str, region: str) -> None:
    identity = AWSCredentialIdentity(
        access_key_id=os.environ["AWS_ACCESS_KEY_ID"],
        secret_access_key=os.environ["AWS_SECRET_ACCESS_KEY"],
        session_token=os.environ.get("AWS_SESSION_TOKEN"),
    )
    uploader = StreamingUploader(
        properties={"region": region, "trailer_checksum_algorithm": "crc32c"},
        identity=identity,
    )
    async with aiohttp.ClientSession() as session:
        status = await uploader.put_object(session, url, path)
    print(f"PUT {url} -> {status}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    region = sys.argv[3] if len(sys.argv) > 3 else "us-east-1"
    asyncio.run(main(sys.argv[1], sys.argv[2], region))
