"""
Tagged capability tokens for customer self-service.

Two distinct types so one can never be accepted where the other is required:
- ActionToken ("act_"): permanent, 1:1 with a booking, used for view/cancel/reschedule
- ModificationToken ("mod_"): single-use, time-boxed confirmation of a proposed slot

Parsing a raw string as the wrong type fails exactly like an unknown token.
"""

import secrets
import string
from dataclasses import dataclass
from typing import ClassVar

from scheduling.errors import TokenError, TokenErrorCode
from shared.config import get_settings

_HEX_DIGITS = frozenset(string.hexdigits.lower())


@dataclass(frozen=True)
class _TaggedToken:
    value: str

    PREFIX: ClassVar[str] = ""

    def __post_init__(self) -> None:
        if not self.value.startswith(self.PREFIX):
            raise ValueError(f"{type(self).__name__} must start with '{self.PREFIX}'")

    @classmethod
    def mint(cls, nbytes: int | None = None):
        """Generate a new unguessable token."""
        nbytes = nbytes or get_settings().ACTION_TOKEN_BYTES
        return cls(cls.PREFIX + secrets.token_hex(nbytes))

    @classmethod
    def parse(cls, raw: object):
        """
        Parse a raw token string received from a customer link.

        Raises:
            TokenError(not_found): If the string is not a well-formed token of this type
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str) or not raw.startswith(cls.PREFIX):
            raise TokenError(TokenErrorCode.NOT_FOUND)
        body = raw[len(cls.PREFIX):]
        if not body or not set(body) <= _HEX_DIGITS:
            raise TokenError(TokenErrorCode.NOT_FOUND)
        return cls(raw)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ActionToken(_TaggedToken):
    """Permanent per-booking self-service token."""

    PREFIX: ClassVar[str] = "act_"


@dataclass(frozen=True)
class ModificationToken(_TaggedToken):
    """Single-use token confirming one proposed reschedule."""

    PREFIX: ClassVar[str] = "mod_"
