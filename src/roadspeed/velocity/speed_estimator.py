"""
Calculates real-world speed from tracked boxes.
Projects motion onto the calibrated road axis and smooths it over time.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import numpy as np

MPS_TO_MPH = 2.236936
DEFAULT_CONFIDENCE = 0.6
DEFAULT_QUALITY = 0.5


@dataclass(frozen=True)
class SpeedEstimate:
    """
    Data class for a speed reading
    """
    speed_mps: float
    speed_mph: float
    uncertainty_mph: float

    @classmethod
    def zero(cls) -> 'SpeedEstimate':
        return cls(0.0, 0.0, 0.0)


@dataclass
class MotionState:
    """
    Last projected position and running smoothed velocity of one track
    """
    last_proj: float
    last_ts: float  # ms
    ema_mps: Optional[float] = None


def speed_uncertainty(speed_mph: float, quality: float, confidence: float,
                      reid_count: int, floor_mph: float = 2.0) -> float:
    """
    Uncertainty band in mph.

    Grows with low calibration quality, low detector confidence and
    repeated re-identification; never drops below floor_mph.
    """
    confidence = min(1.0, max(0.0, confidence))
    reid_factor = min(1.0, reid_count / 5)
    base = 0.2 * speed_mph
    weight = 0.5 * (1 - quality) + 0.3 * (1 - confidence) + 0.2 * reid_factor
    return max(base * weight, floor_mph)


class SpeedEstimator:
    """
    Calculates real-world speed from tracked boxes.
    Projects motion onto the calibrated road axis and smooths it over time.
    """

    def __init__(self, smoothing_alpha: float = 0.25, uncertainty_floor_mph: float = 2.0):
        """
        Initialize speed estimator.

        Args:
            smoothing_alpha: Weight of the newest sample in the moving average
            uncertainty_floor_mph: Minimum reported uncertainty
        """
        self.smoothing_alpha = smoothing_alpha
        self.uncertainty_floor_mph = uncertainty_floor_mph

        # Motion state keyed by track id
        self.motion: Dict[int, MotionState] = {}

        self.logger = logging.getLogger(__name__)
        self._warned_unscaled = False

        # Performance tracking
        self.calculation_times = []

    def _scale(self, calibration: Any) -> float:
        scale = getattr(calibration, 'scale', None)
        if scale is None or scale <= 0:
            if getattr(calibration, 'mode', 'none') == 'area' and not self._warned_unscaled:
                self.logger.warning("Area calibration carries no metric scale; using 1 m/px")
                self._warned_unscaled = True
            return 1.0
        return float(scale)

    def update(self, track: Any, calibration: Any, timestamp: float) -> SpeedEstimate:
        """
        Update motion state for a track and compute its speed.

        Args:
            track: Tracked object with track_id, bbox (x, y, w, h), confidence
                and reid_count
            calibration: Calibration state (axis_unit, scale, quality)
            timestamp: Timestamp in milliseconds

        Returns:
            SpeedEstimate; all zeros when track or calibration is missing
        """
        if track is None or calibration is None:
            return SpeedEstimate.zero()

        start_time = time.time()

        try:
            try:
                x, y, w, h = (float(v) for v in track.bbox)
            except (AttributeError, TypeError, ValueError) as e:
                self.logger.warning(f"Malformed track box, reporting zero speed: {e}")
                return SpeedEstimate.zero()

            cx, cy = x + w / 2, y + h / 2

            ax, ay = getattr(calibration, 'axis_unit', None) or (1.0, 0.0)
            proj = cx * ax + cy * ay

            track_id = getattr(track, 'track_id', None)
            state = self.motion.get(track_id)

            velocity_px = 0.0
            if state is not None:
                dt = (timestamp - state.last_ts) / 1000.0
                if dt > 0:
                    velocity_px = (proj - state.last_proj) / dt
            else:
                state = MotionState(last_proj=proj, last_ts=timestamp)
                self.motion[track_id] = state

            state.last_proj = proj
            state.last_ts = timestamp

            velocity_mps = velocity_px * self._scale(calibration)

            # First sample seeds the average with its zero velocity
            if state.ema_mps is None:
                state.ema_mps = velocity_mps
                speed_mps = velocity_mps
            else:
                alpha = self.smoothing_alpha
                state.ema_mps = alpha * velocity_mps + (1 - alpha) * state.ema_mps
                speed_mps = state.ema_mps

            speed_mph = speed_mps * MPS_TO_MPH

            quality = getattr(calibration, 'quality', None) or DEFAULT_QUALITY
            confidence = getattr(track, 'confidence', None)
            if confidence is None:
                confidence = DEFAULT_CONFIDENCE
            reid_count = getattr(track, 'reid_count', 0) or 0

            uncertainty = speed_uncertainty(speed_mph, quality, confidence, reid_count,
                                            floor_mph=self.uncertainty_floor_mph)

            return SpeedEstimate(float(speed_mps), float(speed_mph), float(uncertainty))

        finally:
            calc_time = time.time() - start_time
            self.calculation_times.append(calc_time)
            if len(self.calculation_times) > 100:
                self.calculation_times = self.calculation_times[-100:]

    def evict(self, active_ids: Iterable[int]):
        """Drop motion state for tracks that are no longer alive"""
        keep = set(active_ids)
        stale = [tid for tid in self.motion if tid not in keep]
        for tid in stale:
            del self.motion[tid]

        if stale:
            self.logger.debug(f"Evicted motion state for {len(stale)} tracks")

    def get_performance_stats(self) -> Dict[str, float]:
        """Get calculation performance statistics"""
        if not self.calculation_times:
            return {}

        times = np.array(self.calculation_times)

        return {
            'mean_calculation_time': float(np.mean(times)),
            'max_calculation_time': float(np.max(times)),
            'total_calculations': len(self.calculation_times)
        }

    def reset(self):
        """Reset all motion state"""
        self.motion.clear()
        self._warned_unscaled = False
