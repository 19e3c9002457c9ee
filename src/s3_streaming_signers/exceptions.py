# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class BaseS3SigningException(Exception):
    """Top-level exception to capture signing-related errors."""


class MissingExpectedParameterException(BaseS3SigningException, ValueError):
    """A required signing property or credential component is absent or empty."""


class MalformedQueryException(BaseS3SigningException, ValueError):
    """The request query string could not be parsed for canonicalization."""


class ContentLengthMismatchException(BaseS3SigningException, ValueError):
    """The streamed body did not match the declared decoded content length.

    Raised by the chunked encoders before any frame carrying the offending bytes is
    produced, so the receiving server never sees a desynchronized stream.
    """

    def __init__(self, *, expected: int, actual: int, message: str | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message
            or f"Declared decoded content length {expected} does not match the "
            f"{actual} bytes read from the body."
        )
