from __future__ import annotations

from abc import ABC, abstractmethod


class LumaSensor(ABC):
    """Domain-facing light sensor abstraction.

    Owns its device handle: ``open`` acquires it and ``close`` releases it.
    The Sampler opens it per Running phase and closes it on every exit path.
    """

    @property
    @abstractmethod
    def sensor_id(self) -> str:
        ...

    @property
    def is_open(self) -> bool:
        return True

    def open(self) -> None:
        """Acquire the device. Raise DeviceUnavailable on failure."""

    def close(self) -> None:
        """Release the device. Must be safe to call more than once."""

    @abstractmethod
    def read_luma(self, half_precision: bool = False) -> float:
        """Return normalized mean intensity in [0, 1]. Raise CaptureFailed on failure."""
        ...
