"""
Webcam light sensor.

Grabs frames from an indexed V4L2/OpenCV capture device and reduces each
frame to a normalized mean intensity (0 = black, 1 = white).
"""

from __future__ import annotations

import logging
import threading

import cv2
import numpy as np

from .base import LumaSensor
from ..core.errors import CaptureFailed, DeviceUnavailable

logger = logging.getLogger(__name__)


def frame_luma(frame: np.ndarray, half_precision: bool = False) -> float:
    """Mean intensity of a BGR or grayscale frame, scaled to [0, 1].

    With ``half_precision`` only every other row and column is read and the
    sum is accumulated in float32.
    """
    if frame is None or frame.size == 0:
        raise CaptureFailed("Empty frame")

    if frame.ndim == 3 and frame.shape[2] >= 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    elif frame.ndim == 3:
        gray = frame[:, :, 0]
    else:
        gray = frame

    if half_precision:
        value = float(np.mean(gray[::2, ::2], dtype=np.float32))
    else:
        value = float(np.mean(gray, dtype=np.float64))

    # Integer frames are scaled by their dtype range; float frames are already 0..1
    scale = float(np.iinfo(gray.dtype).max) if np.issubdtype(gray.dtype, np.integer) else 1.0
    return min(max(value / scale, 0.0), 1.0)


class CameraLumaSensor(LumaSensor):
    def __init__(self, camera_index: int = 0, width: int = 640, height: int = 480) -> None:
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._cap: cv2.VideoCapture | None = None
        # open/close may race with each other across the executor and the loop
        self._lock = threading.Lock()

    @property
    def sensor_id(self) -> str:
        return f"camera{self.camera_index}"

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> None:
        with self._lock:
            if self._cap is not None:
                return
            cap = cv2.VideoCapture(self.camera_index)
            if not cap.isOpened():
                cap.release()
                raise DeviceUnavailable(f"Could not open camera index {self.camera_index}")
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            self._cap = cap
        logger.info(
            "Camera %d opened (requested %dx%d)", self.camera_index, self.width, self.height
        )

    def close(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info("Camera %d released", self.camera_index)

    def read_luma(self, half_precision: bool = False) -> float:
        cap = self._cap
        if cap is None:
            raise DeviceUnavailable(f"Camera {self.camera_index} is not open")
        ok, frame = cap.read()
        if not ok or frame is None:
            raise CaptureFailed(f"Failed to read frame from camera {self.camera_index}")
        return frame_luma(frame, half_precision)
