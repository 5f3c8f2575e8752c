"""Permission polarity."""

from enum import StrEnum


class Effect(StrEnum):
    """Allow or Deny. Also used as the outcome of a Decision."""

    ALLOW = "allow"
    DENY = "deny"
