"""
Per-frame speed pipeline: detections -> tracks -> target speed.
Driven once per rendered frame from a single control loop.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from ..calibration.calibration import CalibrationSession, CalibrationState
from ..core.config import resolve_config, setup_logging
from ..core.types import Detection, as_detections, filter_vehicles
from ..tracking.tracker import Track, Tracker, create_tracker
from ..velocity.speed_estimator import SpeedEstimate, SpeedEstimator


@dataclass
class FrameResult:
    """
    Results from processing a single frame
    """
    timestamp: float
    detections: List[Detection]
    tracks: List[Track]
    target: Optional[Track] = None
    speed: SpeedEstimate = field(default_factory=SpeedEstimate.zero)
    calibration_label: str = 'N/A'
    processing_time: float = 0.0
    fps: float = 0.0


class FPSCounter:
    """
    Utility class for FPS calculation from frame timestamps (ms)
    """

    def __init__(self, window_size: int = 30):
        self.window_size = window_size
        self.timestamps = deque(maxlen=window_size)

    def update(self, timestamp: float):
        """Add frame timestamp"""
        self.timestamps.append(timestamp)

    def get_fps(self) -> float:
        """Calculate current FPS"""
        if len(self.timestamps) < 2:
            return 0.0

        time_diff = (self.timestamps[-1] - self.timestamps[0]) / 1000.0
        if time_diff <= 0:
            return 0.0

        return (len(self.timestamps) - 1) / time_diff


class SpeedPipeline:
    """
    Glue between detector output, tracker, calibration and speed estimator.

    Keeps a sticky target: the first confirmed track is followed until it
    disappears or the operator selects another one.
    """

    def __init__(self, config: Optional[Union[str, Path, Dict[str, Any]]] = None,
                 configure_logging: bool = False):
        """
        Initialize pipeline from configuration.

        Args:
            config: Configuration file path, dictionary or None for defaults
            configure_logging: Apply the 'logging' config section globally
        """
        self.config = resolve_config(config)

        if configure_logging:
            setup_logging(self.config)
        self.logger = logging.getLogger(__name__)

        self.tracker: Tracker = create_tracker(self.config['tracker'])
        self.speed_estimator = SpeedEstimator(**self.config['velocity'])
        self.calibration = CalibrationSession()

        pipeline_config = self.config.get('pipeline', {})
        self.vehicle_classes = pipeline_config.get('vehicle_classes')
        self.fps_counter = FPSCounter(pipeline_config.get('fps_window', 30))

        self.active_id: Optional[int] = None
        self.frame_count = 0

        self.logger.info("Speed pipeline initialized")

    @property
    def calibration_state(self) -> CalibrationState:
        return self.calibration.state

    def select_target(self, track_id: Optional[int]):
        """
        Operator choice of the track to measure; None re-enables auto pick.

        The choice holds while the track is alive. Until it is confirmed the
        first confirmed track is measured in its place.
        """
        self.active_id = track_id
        self.logger.info(f"Active target set to {track_id}")

    def _pick_target(self, tracks: List[Track]) -> Optional[Track]:
        if self.active_id is not None:
            for track in tracks:
                if track.track_id == self.active_id:
                    return track
            if any(t.track_id == self.active_id for t in self.tracker.tracks):
                # Chosen track not confirmed yet
                return tracks[0] if tracks else None
            self.logger.debug(f"Target {self.active_id} lost")

        if not tracks:
            self.active_id = None
            return None

        self.active_id = tracks[0].track_id
        return tracks[0]

    def process_frame(self, detections: Optional[Iterable[Any]], timestamp: float,
                      frame: Optional[np.ndarray] = None) -> FrameResult:
        """
        Process a single frame through tracker and speed estimator.

        Args:
            detections: Detector output for this frame
            timestamp: Frame timestamp in milliseconds, non-decreasing
            frame: Frame the detection coordinates refer to

        Returns:
            FrameResult with confirmed tracks and the target's speed
        """
        start_time = time.time()
        self.frame_count += 1

        detections = as_detections(detections)
        if self.vehicle_classes:
            detections = filter_vehicles(detections, self.vehicle_classes)

        tracks = self.tracker.update(detections, timestamp, frame)
        self.speed_estimator.evict(t.track_id for t in self.tracker.tracks)

        target = self._pick_target(tracks)
        speed = SpeedEstimate.zero()
        if target is not None:
            speed = self.speed_estimator.update(target, self.calibration.state, timestamp)

        self.fps_counter.update(timestamp)

        return FrameResult(
            timestamp=timestamp,
            detections=detections,
            tracks=tracks,
            target=target,
            speed=speed,
            calibration_label=self.calibration.state.quality_label,
            processing_time=time.time() - start_time,
            fps=self.fps_counter.get_fps()
        )

    def get_performance_summary(self) -> Dict[str, Any]:
        """Get performance summary"""
        return {
            'frames': self.frame_count,
            'fps': self.fps_counter.get_fps(),
            'tracker': self.tracker.get_performance_stats(),
            'speed': self.speed_estimator.get_performance_stats()
        }

    def reset(self):
        """Reset tracking and speed state; calibration is kept"""
        self.tracker.reset()
        self.speed_estimator.reset()
        self.active_id = None
        self.logger.info("Pipeline tracking state reset")
