"""
IoU tracker with short-horizon appearance re-identification.
Maintains persistent vehicle IDs across frames for speed estimation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from ..core.types import BBox, Detection, as_detections, box_center, compute_iou
from .appearance import AppearanceModel, cosine_similarity

ASSIGNMENT_METHODS = ('greedy', 'hungarian')


@dataclass
class Track:
    """
    Represents a tracked object with a persistent ID
    """
    track_id: int
    bbox: BBox  # (x, y, w, h)
    confidence: float
    age: int = 0  # updates since last match
    hits: int = 1
    last_ts: float = 0.0  # ms
    descriptor: Optional[np.ndarray] = field(default=None, repr=False)
    reid_count: int = 0
    class_name: str = 'unknown'

    def center(self) -> Tuple[float, float]:
        """Get center point of bounding box"""
        return box_center(self.bbox)

    def is_confirmed(self, min_hits: int) -> bool:
        return self.hits >= min_hits


@dataclass
class TrackerParams:
    """
    Tuning parameters for association and track lifetime
    """
    iou_threshold: float = 0.3
    max_age: int = 5
    min_hits: int = 3
    reid_window_ms: float = 1200.0
    reid_max_cost: float = 0.7
    reid_iou_weight: float = 0.6
    reid_appearance_weight: float = 0.4
    assignment: str = 'greedy'

    def __post_init__(self):
        if self.assignment not in ASSIGNMENT_METHODS:
            raise ValueError(f"Unknown assignment method: {self.assignment}")


@dataclass
class TrackerState:
    """
    Mutable tracker state owned by the caller
    """
    tracks: List[Track] = field(default_factory=list)
    next_id: int = 1
    frame_count: int = 0


def _greedy_iou(tracks: List[Track], detections: List[Detection],
                threshold: float) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """
    Greedy assignment in track order: each track takes its best unused detection.

    Returns:
        (matches as (track_idx, det_idx), unmatched track idxs, unmatched det idxs)
    """
    matches = []
    used_dets = set()

    for ti, track in enumerate(tracks):
        best_det, best_iou = -1, 0.0
        for di, det in enumerate(detections):
            if di in used_dets:
                continue
            iou = compute_iou(track.bbox, det.bbox)
            if iou > best_iou:
                best_iou, best_det = iou, di

        if best_det >= 0 and best_iou >= threshold:
            matches.append((ti, best_det))
            used_dets.add(best_det)

    matched_tracks = {ti for ti, _ in matches}
    unmatched_tracks = [ti for ti in range(len(tracks)) if ti not in matched_tracks]
    unmatched_dets = [di for di in range(len(detections)) if di not in used_dets]

    return matches, unmatched_tracks, unmatched_dets


def _hungarian_iou(tracks: List[Track], detections: List[Detection],
                   threshold: float) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
    """Minimum-cost (1 - IoU) assignment, keeping pairs above threshold"""
    if not tracks or not detections:
        return [], list(range(len(tracks))), list(range(len(detections)))

    iou_matrix = np.array([[compute_iou(t.bbox, d.bbox) for d in detections] for t in tracks])
    rows, cols = linear_sum_assignment(1.0 - iou_matrix)

    matches = [(int(r), int(c)) for r, c in zip(rows, cols) if iou_matrix[r, c] >= threshold]
    matches.sort()

    matched_tracks = {ti for ti, _ in matches}
    matched_dets = {di for _, di in matches}
    unmatched_tracks = [ti for ti in range(len(tracks)) if ti not in matched_tracks]
    unmatched_dets = [di for di in range(len(detections)) if di not in matched_dets]

    return matches, unmatched_tracks, unmatched_dets


def _reid_cost(track: Track, det: Detection, det_descriptor: np.ndarray,
               params: TrackerParams) -> float:
    c_iou = 1.0 - compute_iou(track.bbox, det.bbox)
    c_hist = 1.0 - cosine_similarity(track.descriptor, det_descriptor)
    return params.reid_iou_weight * c_iou + params.reid_appearance_weight * c_hist


def _reid_eligible(track: Track, timestamp: float, params: TrackerParams) -> bool:
    if track.descriptor is None:
        return False
    return (timestamp - track.last_ts) <= params.reid_window_ms


def _reidentify(state: TrackerState, params: TrackerParams, detections: List[Detection],
                descriptors: Dict[int, np.ndarray], unmatched_tracks: List[int],
                unmatched_dets: List[int], timestamp: float) -> List[Tuple[int, int]]:
    """
    Recover unmatched tracks by combined overlap and appearance cost.

    Consumes matched indices from unmatched_tracks / unmatched_dets in place.
    """
    candidates = [ti for ti in unmatched_tracks
                  if _reid_eligible(state.tracks[ti], timestamp, params)]
    if not candidates or not unmatched_dets:
        return []

    extra = []

    if params.assignment == 'hungarian':
        costs = np.array([[_reid_cost(state.tracks[ti], detections[di], descriptors[di], params)
                           for di in unmatched_dets] for ti in candidates])
        rows, cols = linear_sum_assignment(costs)
        for r, c in sorted(zip(rows, cols)):
            if costs[r, c] < params.reid_max_cost:
                extra.append((candidates[r], unmatched_dets[c]))
    else:
        remaining = list(unmatched_dets)
        for ti in candidates:
            best_det, best_cost = -1, float('inf')
            for di in remaining:
                cost = _reid_cost(state.tracks[ti], detections[di], descriptors[di], params)
                if cost < best_cost:
                    best_cost, best_det = cost, di
            if best_det >= 0 and best_cost < params.reid_max_cost:
                extra.append((ti, best_det))
                remaining.remove(best_det)

    for ti, di in extra:
        unmatched_tracks.remove(ti)
        unmatched_dets.remove(di)

    return extra


def update_tracks(state: TrackerState,
                  params: TrackerParams,
                  detections: Optional[Iterable[Any]],
                  timestamp: float,
                  frame: Optional[np.ndarray],
                  appearance: AppearanceModel,
                  logger: Optional[logging.Logger] = None) -> List[Track]:
    """
    Advance tracker state by one frame.

    Args:
        state: Tracker state, updated in place
        params: Association parameters
        detections: Detections for this frame (Detection objects or dicts)
        timestamp: Frame timestamp in milliseconds, non-decreasing
        frame: Frame the detection coordinates refer to, used for descriptors
        appearance: Descriptor model
        logger: Optional logger for track lifecycle messages

    Returns:
        Confirmed tracks (hits >= min_hits) in list order
    """
    logger = logger or logging.getLogger(__name__)
    detections = as_detections(detections)
    state.frame_count += 1

    for track in state.tracks:
        track.age += 1

    if params.assignment == 'hungarian':
        matches, unmatched_tracks, unmatched_dets = _hungarian_iou(
            state.tracks, detections, params.iou_threshold)
    else:
        matches, unmatched_tracks, unmatched_dets = _greedy_iou(
            state.tracks, detections, params.iou_threshold)

    # Descriptors of unmatched detections are shared by re-id and track creation
    descriptors = {di: appearance.compute_descriptor(frame, detections[di].bbox)
                   for di in unmatched_dets}

    reid_matches = _reidentify(state, params, detections, descriptors,
                               unmatched_tracks, unmatched_dets, timestamp)

    for ti, di in matches + reid_matches:
        track = state.tracks[ti]
        det = detections[di]
        track.bbox = det.bbox
        track.hits += 1
        track.age = 0
        track.last_ts = timestamp
        track.confidence = det.score
        track.class_name = det.class_name
        track.descriptor = descriptors.get(di)
        if track.descriptor is None:
            track.descriptor = appearance.compute_descriptor(frame, det.bbox)

    for ti, _ in reid_matches:
        track = state.tracks[ti]
        track.reid_count += 1
        logger.debug(f"Re-identified track {track.track_id} (reid_count={track.reid_count})")

    for di in unmatched_dets:
        det = detections[di]
        state.tracks.append(Track(
            track_id=state.next_id,
            bbox=det.bbox,
            confidence=det.score,
            age=0,
            hits=1,
            last_ts=timestamp,
            descriptor=descriptors[di],
            reid_count=0,
            class_name=det.class_name
        ))
        logger.debug(f"Created track {state.next_id}")
        state.next_id += 1

    removed = [t.track_id for t in state.tracks if t.age > params.max_age]
    if removed:
        state.tracks = [t for t in state.tracks if t.age <= params.max_age]
        logger.debug(f"Removed stale tracks {removed}")

    return [t for t in state.tracks if t.hits >= params.min_hits]


class Tracker:
    """
    IoU tracker with short-horizon appearance re-identification.
    Maintains persistent vehicle IDs across frames for speed estimation.
    """

    def __init__(self,
                 iou_threshold: float = 0.3,
                 max_age: int = 5,
                 min_hits: int = 3,
                 reid_window_ms: float = 1200.0,
                 reid_max_cost: float = 0.7,
                 reid_iou_weight: float = 0.6,
                 reid_appearance_weight: float = 0.4,
                 assignment: str = 'greedy',
                 histogram_bins: int = 8,
                 color_order: str = 'rgb'):
        """
        Initialize tracker.

        Args:
            iou_threshold: Minimum IoU to associate a detection with a track
            max_age: Updates a track may go unmatched before removal
            min_hits: Matches needed before a track is reported
            reid_window_ms: Maximum time since last match for re-identification
            reid_max_cost: Re-identification cost must be strictly below this
            reid_iou_weight: Weight of (1 - IoU) in the re-identification cost
            reid_appearance_weight: Weight of (1 - cosine) in the cost
            assignment: 'greedy' (track order) or 'hungarian' (minimum cost)
            histogram_bins: Appearance histogram bins per channel
            color_order: Channel order of frames passed to update()
        """
        self.params = TrackerParams(
            iou_threshold=iou_threshold,
            max_age=max_age,
            min_hits=min_hits,
            reid_window_ms=reid_window_ms,
            reid_max_cost=reid_max_cost,
            reid_iou_weight=reid_iou_weight,
            reid_appearance_weight=reid_appearance_weight,
            assignment=assignment
        )
        self.appearance = AppearanceModel(bins=histogram_bins, color_order=color_order)
        self.state = TrackerState()

        self.logger = logging.getLogger(__name__)

        # Track performance
        self.tracking_times = []

    @property
    def tracks(self) -> List[Track]:
        """All live tracks, confirmed or not"""
        return self.state.tracks

    def update(self, detections: Optional[Iterable[Any]], timestamp: float,
               frame: Optional[np.ndarray] = None) -> List[Track]:
        """
        Update tracker with new detections.

        Args:
            detections: Detections for this frame (possibly empty)
            timestamp: Frame timestamp in milliseconds
            frame: Current frame for appearance sampling

        Returns:
            List of confirmed tracks with consistent IDs
        """
        start_time = time.time()

        try:
            return update_tracks(self.state, self.params, detections, timestamp,
                                 frame, self.appearance, self.logger)
        finally:
            self.tracking_times.append(time.time() - start_time)
            if len(self.tracking_times) > 100:
                self.tracking_times = self.tracking_times[-100:]

    def get_performance_stats(self) -> Dict[str, float]:
        """Get tracking performance statistics"""
        if not self.tracking_times:
            return {}

        times = np.array(self.tracking_times)

        return {
            'mean_tracking_time': float(np.mean(times)),
            'median_tracking_time': float(np.median(times)),
            'max_tracking_time': float(np.max(times)),
            'total_updates': len(self.tracking_times)
        }

    def reset_stats(self):
        """Reset performance statistics"""
        self.tracking_times = []

    def reset(self):
        """Reset tracker state (useful for new video sequences); IDs keep counting"""
        self.state = TrackerState(next_id=self.state.next_id)


def create_tracker(config: Optional[Dict[str, Any]] = None) -> Tracker:
    """
    Create tracker from the 'tracker' config section

    Args:
        config: Configuration dictionary

    Returns:
        Initialized Tracker
    """
    if config is None:
        config = {}

    return Tracker(**config)
