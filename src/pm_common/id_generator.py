"""Time-ordered record IDs for contracts, answers, bets and orders.

An ID packs (milliseconds since epoch, machine id, per-ms sequence) into a
63-bit integer and renders it as fixed-width base-36, so plain string order
matches creation order. Callers prepend a type prefix such as "bet_".
"""

import string
import threading
import time
from collections.abc import Callable

from config.settings import settings

_ALPHABET = string.digits + string.ascii_lowercase
_WIDTH = 13  # 36**13 > 2**63


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits)).rjust(_WIDTH, "0")


class RecordIdGenerator:
    EPOCH_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
    MACHINE_BITS = 10
    SEQUENCE_BITS = 12

    def __init__(self, machine_id: int = 0, time_ms: Callable[[], int] | None = None) -> None:
        if not (0 <= machine_id < (1 << self.MACHINE_BITS)):
            raise ValueError(f"machine_id must be 0-{(1 << self.MACHINE_BITS) - 1}")
        self._machine_id = machine_id
        self._time_ms = time_ms or (lambda: time.time_ns() // 1_000_000)
        self._last_ms = -1
        self._sequence = 0
        self._lock = threading.Lock()

    def next_int(self) -> int:
        with self._lock:
            # never step back in time, even if the wall clock does
            ms = max(self._time_ms(), self._last_ms)
            if ms == self._last_ms:
                self._sequence = (self._sequence + 1) % (1 << self.SEQUENCE_BITS)
                if self._sequence == 0:
                    # sequence exhausted for this millisecond: borrow the next one
                    ms += 1
            else:
                self._sequence = 0
            self._last_ms = ms
            return (
                (ms - self.EPOCH_MS) << (self.MACHINE_BITS + self.SEQUENCE_BITS)
                | self._machine_id << self.SEQUENCE_BITS
                | self._sequence
            )

    def next_id(self) -> str:
        return _to_base36(self.next_int())


_generator = RecordIdGenerator(machine_id=settings.MACHINE_ID)


def generate_id(prefix: str = "") -> str:
    """Unique, time-ordered ID, e.g. generate_id("bet_") -> "bet_00a3k9x0q1b2c"."""
    return prefix + _generator.next_id()
