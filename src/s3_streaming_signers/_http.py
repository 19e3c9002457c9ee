# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Minimal request model consumed and produced by the streaming signers."""

from __future__ import annotations

from collections import Counter, OrderedDict
from collections.abc import AsyncIterable, Iterable, Iterator
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import TypeAlias
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from ._io import AsyncByteStream, ByteStream

RequestBody: TypeAlias = (
    bytes | ByteStream | AsyncByteStream | Iterable[bytes] | AsyncIterable[bytes]
)
"""Any body the signers know how to wrap in a chunked encoder."""


class FieldPosition(Enum):
    """Placement of a field within an HTTP message."""

    HEADER = 0
    """Sent as a request header and covered by the seed signature."""

    TRAILER = 1
    """Sent in the signed trailer chunk after the body."""


class Field:
    """A name-value pair representing a single header or trailer.

    Field names are case insensitive; the original casing is kept for transmission.
    """

    def __init__(
        self,
        *,
        name: str,
        values: Iterable[str] | None = None,
        kind: FieldPosition = FieldPosition.HEADER,
    ):
        self.name = name
        self.values: list[str] = list(values) if values is not None else []
        self.kind = kind

    def as_string(self, delimiter: str = ",") -> str:
        """Get all values joined by ``delimiter``.

        Values are joined verbatim. This matches how SigV4 folds repeated headers
        into a single canonical header line.
        """
        return delimiter.join(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Field):
            return False
        return (
            self.name == other.name
            and self.kind is other.kind
            and self.values == other.values
        )

    def __repr__(self) -> str:
        return f"Field(name={self.name!r}, value={self.values!r}, kind={self.kind!r})"


class Fields:
    def __init__(self, initial: Iterable[Field] | None = None):
        """Collection of header and trailer entries mapped by lower-cased name.

        :param initial: Initial list of ``Field`` objects. Names must be unique once
            normalized.
        """
        init_fields = list(initial) if initial is not None else []
        init_field_names = [fld.name.lower() for fld in init_fields]
        non_unique_names = [
            name for name, num in Counter(init_field_names).items() if num > 1
        ]
        if non_unique_names:
            raise ValueError(
                "Field names of the initial list of fields must be unique. The "
                "following normalized field names appear more than once: "
                f"{', '.join(non_unique_names)}."
            )
        self.entries: OrderedDict[str, Field] = OrderedDict(
            zip(init_field_names, init_fields)
        )

    def set_field(self, field: Field) -> None:
        """Set or replace the entry for ``field.name``."""
        self.entries[field.name.lower()] = field

    def get(self, key: str, default: Field | None = None) -> Field | None:
        return self.entries.get(key.lower(), default)

    def get_by_type(self, kind: FieldPosition) -> list[Field]:
        """Retrieve all headers or all trailers, in insertion order."""
        return [entry for entry in self.entries.values() if entry.kind is kind]

    def __getitem__(self, name: str) -> Field:
        return self.entries[name.lower()]

    def __delitem__(self, name: str) -> None:
        del self.entries[name.lower()]

    def __contains__(self, key: str) -> bool:
        return key.lower() in self.entries

    def __iter__(self) -> Iterator[Field]:
        yield from self.entries.values()

    def __len__(self) -> int:
        return len(self.entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fields):
            return False
        return self.entries == other.entries

    def __repr__(self) -> str:
        return f"Fields({self.entries})"


DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


@dataclass(kw_only=True, frozen=True)
class URI:
    """Target location of an :py:class:`S3Request`."""

    scheme: str = "https"
    """Either ``http`` or ``https``."""

    host: str
    """The hostname, for example ``s3.amazonaws.com``."""

    port: int | None = None
    """An explicit port number."""

    path: str | None = None
    """Decoded path component, for example ``/bucket/my key.txt``."""

    query: str | None = None
    """Raw (still percent-encoded) query component."""

    @classmethod
    def from_url(cls, url: str) -> URI:
        """Split a URL string into a URI, decoding its path."""
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError(f"URL {url!r} does not contain a host.")
        return cls(
            scheme=parts.scheme or "https",
            host=parts.hostname,
            port=parts.port,
            path=unquote(parts.path) or None,
            query=parts.query or None,
        )

    @property
    def netloc(self) -> str:
        """``{host}:{port}``, with the port omitted when unset or the scheme default."""
        return self._netloc

    # cached_property allows assignment, so it stays behind a read-only property.
    @cached_property
    def _netloc(self) -> str:
        if self.port is None or DEFAULT_PORTS.get(self.scheme) == self.port:
            return self.host
        return f"{self.host}:{self.port}"

    def build(self) -> str:
        """Construct the URL string, percent-encoding the path."""
        return urlunsplit(
            (
                self.scheme,
                self.netloc,
                quote(self.path or "/", safe="/~"),
                self.query or "",
                "",
            )
        )


class S3Request:
    """An HTTP request addressed to an S3-compatible endpoint."""

    def __init__(
        self,
        *,
        destination: URI,
        method: str,
        body: RequestBody | None,
        fields: Fields,
    ):
        self.destination = destination
        self.method = method
        self.body = body
        self.fields = fields

    def __deepcopy__(self, memo: dict[int, S3Request] | None = None) -> S3Request:
        if memo is None:
            memo = {}

        if id(self) in memo:
            return memo[id(self)]

        # The destination is immutable and the body is a one-shot stream, so both
        # are shared with the copy.
        new_instance = self.__class__(
            destination=self.destination,
            body=self.body,
            method=self.method,
            fields=deepcopy(self.fields, memo),
        )
        memo[id(self)] = new_instance
        return new_instance
