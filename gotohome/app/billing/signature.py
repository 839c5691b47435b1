"""Keyed signing of gateway field lists.

The gateway protocol defines the signature as a hex HMAC-MD5 over the
``;``-joined string form of an ordered field list. The digest is fixed by the
gateway and cannot be upgraded on our side.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Sequence

from .errors import ConfigurationError

FIELD_SEPARATOR = ";"


def canonical_string(fields: Sequence[object]) -> str:
    """Join ``fields`` in order using the gateway separator."""

    return FIELD_SEPARATOR.join(str(value) for value in fields)


class GatewaySigner:
    """HMAC signer bound to the merchant secret key."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ConfigurationError("merchant secret key must be provided")
        self._secret = secret.encode("utf-8")

    def sign(self, fields: Sequence[object]) -> str:
        message = canonical_string(fields).encode("utf-8")
        return hmac.new(self._secret, message, hashlib.md5).hexdigest()

    def verify(self, fields: Sequence[object], candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        expected = self.sign(fields)
        return hmac.compare_digest(expected, candidate.strip().lower())


def sign(fields: Sequence[object], secret: str) -> str:
    """Sign ``fields`` with ``secret``."""

    return GatewaySigner(secret).sign(fields)


def verify(fields: Sequence[object], secret: str, candidate: Optional[str]) -> bool:
    """Return whether ``candidate`` is the signature of ``fields`` under ``secret``."""

    return GatewaySigner(secret).verify(fields, candidate)


__all__ = ["FIELD_SEPARATOR", "GatewaySigner", "canonical_string", "sign", "verify"]
