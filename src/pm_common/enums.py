"""Global enums — persisted values mirror these exactly."""

from enum import Enum


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Outcome":
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class OutcomeType(str, Enum):
    BINARY = "BINARY"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"


class MarketPhase(str, Enum):
    """sandbox → graduating → main; resolved is reachable from any of them."""
    SANDBOX = "sandbox"
    GRADUATING = "graduating"
    MAIN = "main"
    RESOLVED = "resolved"


class Resolution(str, Enum):
    YES = "YES"
    NO = "NO"
    MKT = "MKT"  # pays out at resolution_probability
    CANCEL = "CANCEL"  # refunds invested amounts
