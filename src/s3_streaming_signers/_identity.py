# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(kw_only=True)
class AWSCredentialIdentity:
    """Static credentials used to sign a single streaming request."""

    access_key_id: str
    """A unique identifier for an AWS user or role."""

    secret_access_key: str
    """The secret paired with ``access_key_id``. Never logged or serialized."""

    session_token: str | None = None
    """A temporary token used to specify the current session for the supplied
    credentials."""

    expiration: datetime | None = None
    """The expiration time of the identity, in UTC."""

    @property
    def is_expired(self) -> bool:
        """Whether the identity is expired."""
        if self.expiration is None:
            return False
        return datetime.now(tz=UTC) >= self.expiration

    def __repr__(self) -> str:
        return (
            f"AWSCredentialIdentity(access_key_id={self.access_key_id!r}, "
            f"session_token={'***' if self.session_token else None}, "
            f"expiration={self.expiration!r})"
        )
