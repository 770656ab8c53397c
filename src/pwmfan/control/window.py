"""Bounded history of temperature samples."""

from collections import deque
from typing import Deque, Iterator, List, Optional


class ThermalWindow:
    """Fixed-capacity FIFO of the most recent temperature samples.

    Samples are whole degrees Celsius, oldest first. When the window is
    full the oldest sample is evicted before a new one is appended.
    """

    def __init__(self, capacity: int = 6):
        """Initialize with capacity.

        Args:
            capacity: Maximum number of samples kept (must be > 1)
        """
        if capacity <= 1:
            raise ValueError(f"Invalid capacity {capacity}, must be greater than 1")
        self.capacity = capacity
        self._samples: Deque[int] = deque(maxlen=capacity)

    def push(self, sample: int) -> None:
        self._samples.append(sample)

    def latest(self) -> int:
        """Most recent sample.

        Raises:
            IndexError: If no sample was pushed yet
        """
        if not self._samples:
            raise IndexError("Thermal window is empty")
        return self._samples[-1]

    def previous(self) -> Optional[int]:
        """Sample before the latest one, or None with fewer than two samples."""
        if len(self._samples) < 2:
            return None
        return self._samples[-2]

    def mean(self) -> int:
        """Arithmetic mean of the window truncated toward zero.

        Raises:
            IndexError: If no sample was pushed yet
        """
        if not self._samples:
            raise IndexError("Thermal window is empty")
        total = sum(self._samples)
        count = len(self._samples)
        quotient = abs(total) // count
        return quotient if total >= 0 else -quotient

    def samples(self) -> List[int]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[int]:
        return iter(self._samples)

    def __repr__(self) -> str:
        return f"ThermalWindow(capacity={self.capacity}, samples={list(self._samples)})"
