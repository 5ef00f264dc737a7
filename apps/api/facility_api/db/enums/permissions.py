"""Permission override enums."""

from enum import Enum


class OverrideEffect(str, Enum):
    """Effect of a per-user permission override."""

    GRANT = "grant"
    DENY = "deny"
