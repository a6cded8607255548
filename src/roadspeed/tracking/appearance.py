"""
Colour-histogram appearance descriptors for short-horizon re-identification.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from ..core.types import BBox

SIMILARITY_EPSILON = 1e-6


class AppearanceModel:
    """
    Computes a normalized 3-D HSV histogram for a box region of a frame.
    """

    def __init__(self, bins: int = 8, color_order: str = 'rgb'):
        """
        Initialize the appearance model.

        Args:
            bins: Histogram bins per channel
            color_order: Channel order of sampled frames ('rgb' or 'bgr');
                a fourth alpha channel is ignored
        """
        if color_order not in ('rgb', 'bgr'):
            raise ValueError(f"Unsupported color order: {color_order}")

        self.bins = bins
        self.color_order = color_order
        self.descriptor_size = bins ** 3
        self._conversion = cv2.COLOR_RGB2HSV if color_order == 'rgb' else cv2.COLOR_BGR2HSV
        self.logger = logging.getLogger(__name__)

    def empty_descriptor(self) -> np.ndarray:
        return np.zeros(self.descriptor_size, dtype=np.float64)

    def _sample_region(self, frame: np.ndarray, bbox: BBox) -> Optional[np.ndarray]:
        """Crop the box clipped to frame bounds; None if empty"""
        x, y, w, h = bbox
        height, width = frame.shape[:2]

        sx = max(0, int(np.floor(x)))
        sy = max(0, int(np.floor(y)))
        ex = min(width - 1, int(np.floor(x + w)))
        ey = min(height - 1, int(np.floor(y + h)))

        if ex <= sx or ey <= sy:
            return None

        return frame[sy:ey, sx:ex, :3]

    def compute_descriptor(self, frame: Optional[np.ndarray], bbox: BBox) -> np.ndarray:
        """
        Compute the appearance descriptor of a box.

        Args:
            frame: Current frame (H, W, 3|4), uint8
            bbox: Box (x, y, w, h) in frame pixels

        Returns:
            Histogram of length bins**3 summing to 1, or all zeros for an
            empty region
        """
        if frame is None or getattr(frame, 'ndim', 0) != 3 or frame.shape[2] not in (3, 4):
            return self.empty_descriptor()

        region = self._sample_region(frame, bbox)
        if region is None or region.size == 0:
            return self.empty_descriptor()

        # Float input keeps hue in degrees [0, 360) and S/V in [0, 1]
        scaled = np.ascontiguousarray(region, dtype=np.float32) / 255.0
        hsv = cv2.cvtColor(scaled, self._conversion).reshape(-1, 3)

        top = self.bins - 1
        hue_bin = np.minimum(top, np.floor(hsv[:, 0] / 360.0 * self.bins)).astype(np.int64)
        sat_bin = np.minimum(top, np.floor(hsv[:, 1] * self.bins)).astype(np.int64)
        val_bin = np.minimum(top, np.floor(hsv[:, 2] * self.bins)).astype(np.int64)

        index = (hue_bin * self.bins + sat_bin) * self.bins + val_bin
        histogram = np.bincount(index, minlength=self.descriptor_size).astype(np.float64)

        total = histogram.sum() or 1.0
        return histogram / total


def cosine_similarity(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> float:
    """Cosine similarity; 0 when either descriptor has near-zero norm"""
    if a is None or b is None:
        return 0.0

    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = max(float(np.sqrt(np.dot(a, a) * np.dot(b, b))), SIMILARITY_EPSILON)

    return float(np.dot(a, b)) / norm
