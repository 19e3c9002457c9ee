# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Canonical request construction for SigV4.

The canonical request is a standardized string laying out the components used in the
SigV4 signing algorithm. Comparing it against the server's version is the quickest way
to find the source of a signature mismatch.

SigV4 defines the canonical request as::

    <HTTPMethod>\\n
    <CanonicalURI>\\n
    <CanonicalQueryString>\\n
    <CanonicalHeaders>\\n
    <SignedHeaders>\\n
    <HashedPayload>
"""

import re
from collections.abc import Iterable, Mapping
from urllib.parse import quote, unquote_plus

from ._http import URI, Fields, FieldPosition
from .exceptions import MalformedQueryException

HEADERS_EXCLUDED_FROM_SIGNING: tuple[str, ...] = (
    "accept",
    "accept-encoding",
    "authorization",
    "connection",
    "content-length",
    "expect",
    "transfer-encoding",
    "user-agent",
    "x-amzn-trace-id",
)

STREAMING_PAYLOAD: str = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD"
STREAMING_PAYLOAD_TRAILER: str = "STREAMING-AWS4-HMAC-SHA256-PAYLOAD-TRAILER"
STREAMING_UNSIGNED_PAYLOAD_TRAILER: str = "STREAMING-UNSIGNED-PAYLOAD-TRAILER"
EMPTY_SHA256_HASH: str = (
    "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
)

_INVALID_PERCENT_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def canonical_request(
    *,
    method: str,
    path: str | None,
    query: str | None,
    headers: Mapping[str, str],
    payload_hash: str,
    signed_header_names: Iterable[str] | None = None,
    normalize_path: bool = False,
) -> str:
    """Build the canonical request string.

    :param method: The HTTP method, upper-cased in the output.
    :param path: The decoded request path.
    :param query: The raw query string, if any.
    :param headers: Header names mapped to their (already joined) values. Names are
        matched case-insensitively.
    :param payload_hash: The hex SHA-256 of the body, or one of the streaming
        placeholder tokens such as :py:data:`STREAMING_PAYLOAD`.
    :param signed_header_names: Restrict the canonical headers to these names. All of
        ``headers`` are used when omitted.
    :param normalize_path: Remove dot segments and duplicate slashes from the path.
    """
    fields = _canonicalize_headers(headers)
    if signed_header_names is not None:
        wanted = {name.lower() for name in signed_header_names}
        fields = {name: value for name, value in fields.items() if name in wanted}
    canonical_fields = "".join(f"{name}:{value}\n" for name, value in fields.items())
    return (
        f"{method.upper()}\n"
        f"{canonical_path(path, normalize_path=normalize_path)}\n"
        f"{canonical_query(query)}\n"
        f"{canonical_fields}\n"
        f"{signed_headers(fields)}\n"
        f"{payload_hash}"
    )


def canonical_fields(fields: Fields, destination: URI) -> dict[str, str]:
    """Select and normalize the header fields of a request that will be signed.

    Trailer fields and the headers in :py:data:`HEADERS_EXCLUDED_FROM_SIGNING` are
    skipped. ``host`` is derived from ``destination`` when the request doesn't carry
    one.
    """
    headers = {
        field.name: ",".join(" ".join(value.split()) for value in field.values)
        for field in fields.get_by_type(FieldPosition.HEADER)
        if field.name.lower() not in HEADERS_EXCLUDED_FROM_SIGNING
    }
    normalized = _canonicalize_headers(headers)
    if "host" not in normalized:
        normalized["host"] = destination.netloc
    return dict(sorted(normalized.items()))


def signed_headers(fields: Mapping[str, str]) -> str:
    """The ``;`` separated, sorted, lower-cased list of signed header names."""
    return ";".join(sorted(name.lower() for name in fields))


def canonical_path(path: str | None, *, normalize_path: bool = False) -> str:
    if not path:
        return "/"
    if normalize_path:
        path = _remove_dot_segments(path)
    return quote(string=path, safe="/")


def canonical_query(query: str | None) -> str:
    """Re-encode and sort a raw query string.

    Keys without a value are kept with an empty one, so ``?uploads`` becomes
    ``uploads=``.
    """
    if not query:
        return ""

    if ";" in query:
        raise MalformedQueryException(
            f"Query {query!r} uses ';' as a separator, which is not supported."
        )
    if match := _INVALID_PERCENT_ESCAPE.search(query):
        raise MalformedQueryException(
            f"Query {query!r} contains an invalid percent escape at "
            f"position {match.start()}."
        )

    query_parts: list[tuple[str, str]] = []
    for pair in query.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        query_parts.append(
            (
                quote(string=unquote_plus(key), safe=""),
                quote(string=unquote_plus(value), safe=""),
            )
        )
    # key-value pairs must be in sorted order for their encoded forms.
    return "&".join(f"{key}={value}" for key, value in sorted(query_parts))


def _canonicalize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for name, value in headers.items():
        key = name.lower().strip()
        value = " ".join(value.split())
        if key in normalized:
            normalized[key] = f"{normalized[key]},{value}"
        else:
            normalized[key] = value
    return dict(sorted(normalized.items()))


def _remove_dot_segments(path: str) -> str:
    """Removes dot segments and consecutive slashes from a path per
    :rfc:`3986#section-5.2.4`."""
    output: list[str] = []
    for segment in path.split("/"):
        if segment == ".":
            continue
        elif segment != "..":
            output.append(segment)
        elif output:
            output.pop()
    if path.startswith("/") and (not output or output[0]):
        output.insert(0, "")
    if output and path.endswith(("/.", "/..")):
        output.append("")
    result = "/".join(output)
    while "//" in result:
        result = result.replace("//", "/")
    return result
