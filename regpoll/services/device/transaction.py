"""
Transaction ID Generator

Process-wide 16-bit counter used to tag MBAP requests.
"""

import threading


class TransactionIdGenerator:
    """Monotonic counter that wraps from 0xFFFF back to 0"""

    def __init__(self, initial: int = 0):
        self._value = initial & 0xFFFF
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the current id, then advance"""
        with self._lock:
            value = self._value
            self._value = (value + 1) & 0xFFFF
            return value


_shared = TransactionIdGenerator()


def shared_generator() -> TransactionIdGenerator:
    """The generator shared by every exchange in the process"""
    return _shared
