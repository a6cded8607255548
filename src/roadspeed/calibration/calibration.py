"""
Operator calibration for speed measurement.

Two modes are supported:

* line: the operator drags along a road feature of known length; the result
  is a metres-per-pixel scale plus the travel axis.
* area: the operator clicks four lane corners (near-left, near-right,
  far-right, far-left); the result is a homography onto the unit square plus
  the travel axis.

Each mode also yields a quality score in [0, 1] and a Good/Fair/Poor label.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..core.exceptions import CalibrationInputError
from ..core.types import Point
from .geometry import angle_between_deg, compute_homography, is_self_intersecting, unit_vector

FEET_TO_METERS = 0.3048
MIN_SEGMENT_PX = 20.0
DEFAULT_AREA_LENGTH = 12.0

# Target corners for near-left, near-right, far-right, far-left
UNIT_SQUARE = ((0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0))

# Common road features with a known real length, by units
LENGTH_PRESETS: Dict[str, Dict[str, float]] = {
    'lane_width': {'ft': 12.0, 'm': 3.7},
    'lane_dash': {'ft': 10.0, 'm': 3.0},
    'dash_gap': {'ft': 30.0, 'm': 9.0},
    'car_length': {'ft': 15.0, 'm': 4.5},
    'parking_stall': {'ft': 18.0, 'm': 5.5}
}

UNITS = ('ft', 'm')

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_meters(length: float, units: str) -> float:
    """Convert a real length in feet or metres to metres"""
    return length * FEET_TO_METERS if units == 'ft' else length


def length_plausibility(length: float, units: str) -> float:
    """
    Score how plausible a reference length is for a road scene.

    1 inside the plausible range, linear falloff outside, clamped to [0, 1].
    """
    score = 1.0
    if units == 'ft':
        if length < 10:
            score = (length - 5) / 5
        elif length > 120:
            score = (200 - length) / 80
    else:
        if length < 3:
            score = (length - 1) / 2
        elif length > 40:
            score = (60 - length) / 20
    return _clamp(score, 0.0, 1.0)


def shape_consistency(angle_deg: float) -> float:
    """Penalize non-parallel near/far edges"""
    return _clamp(1.0 - angle_deg / 40.0, 0.0, 1.0)


def calibration_quality(length: float, units: str,
                        angle_deg: float = 0.0, visual_ok: bool = True) -> float:
    """Weighted quality score in [0, 1]"""
    visual = 1.0 if visual_ok else 0.0
    return (0.4 * length_plausibility(length, units)
            + 0.3 * shape_consistency(angle_deg)
            + 0.3 * visual)


def quality_label(quality: float) -> str:
    """Map a quality score to Good, Fair or Poor"""
    if quality >= 0.75:
        return 'Good'
    if quality >= 0.5:
        return 'Fair'
    return 'Poor'


def preset_length(name: str, units: str = 'ft') -> float:
    """Look up a preset reference length"""
    if name not in LENGTH_PRESETS:
        raise KeyError(f"Unknown length preset: {name}")
    if units not in UNITS:
        raise ValueError(f"Unknown units: {units}")
    return LENGTH_PRESETS[name][units]


def _check_units(units: str):
    if units not in UNITS:
        raise CalibrationInputError(f"Unknown units '{units}', expected one of {UNITS}")


def _as_point(p: Sequence[float]) -> Point:
    return (float(p[0]), float(p[1]))


@dataclass(frozen=True)
class NoCalibration:
    """Initial state before any calibration"""
    mode: ClassVar[str] = 'none'

    scale: ClassVar[Optional[float]] = None
    homography: ClassVar[Optional[np.ndarray]] = None
    axis_unit: ClassVar[Tuple[float, float]] = (1.0, 0.0)
    quality: ClassVar[float] = 0.0
    quality_label: ClassVar[str] = 'N/A'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'scale': None,
            'axis_unit': list(self.axis_unit),
            'homography': None,
            'quality': self.quality,
            'quality_label': self.quality_label
        }


@dataclass(frozen=True)
class LineCalibration:
    """
    Scale calibration from a dragged reference segment
    """
    start: Point
    end: Point
    px_length: float
    real_length: float
    units: str
    scale_m_per_px: float
    axis_unit: Tuple[float, float]
    quality: float
    quality_label: str

    mode: ClassVar[str] = 'line'
    homography: ClassVar[Optional[np.ndarray]] = None

    @property
    def scale(self) -> float:
        return self.scale_m_per_px

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'scale': self.scale_m_per_px,
            'axis_unit': list(self.axis_unit),
            'homography': None,
            'quality': self.quality,
            'quality_label': self.quality_label,
            'start': list(self.start),
            'end': list(self.end),
            'px_length': self.px_length,
            'real_length': self.real_length,
            'units': self.units
        }


@dataclass(frozen=True)
class AreaCalibration:
    """
    Homography calibration from four clicked lane corners
    """
    corners: Tuple[Point, Point, Point, Point]
    homography: np.ndarray = field(compare=False)
    real_length: float
    units: str
    angle_deg: float
    axis_unit: Tuple[float, float]
    quality: float
    quality_label: str

    mode: ClassVar[str] = 'area'
    # The homography maps onto the unit square, not metres
    scale: ClassVar[Optional[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode,
            'scale': None,
            'axis_unit': list(self.axis_unit),
            'homography': np.asarray(self.homography).tolist(),
            'quality': self.quality,
            'quality_label': self.quality_label,
            'corners': [list(p) for p in self.corners],
            'real_length': self.real_length,
            'units': self.units,
            'angle_deg': self.angle_deg
        }


CalibrationState = Union[NoCalibration, LineCalibration, AreaCalibration]


def calibrate_line(p1: Sequence[float], p2: Sequence[float],
                   real_length: Optional[float], units: str = 'ft') -> LineCalibration:
    """
    Build a line calibration from two pixel endpoints.

    Args:
        p1: Drag start (x, y)
        p2: Drag end (x, y)
        real_length: Real length of the segment in `units`
        units: 'ft' or 'm'

    Returns:
        LineCalibration
    """
    _check_units(units)
    start, end = _as_point(p1), _as_point(p2)

    px_length = float(np.hypot(end[0] - start[0], end[1] - start[1]))
    if px_length < MIN_SEGMENT_PX:
        raise CalibrationInputError(
            f"Line segment too short ({px_length:.1f} px < {MIN_SEGMENT_PX:.0f} px)")

    if real_length is None or real_length <= 0:
        raise CalibrationInputError("Real length must be a positive number")

    meters = to_meters(real_length, units)
    quality = calibration_quality(real_length, units, angle_deg=0.0, visual_ok=True)

    calibration = LineCalibration(
        start=start,
        end=end,
        px_length=px_length,
        real_length=float(real_length),
        units=units,
        scale_m_per_px=meters / px_length,
        axis_unit=unit_vector(end[0] - start[0], end[1] - start[1]),
        quality=quality,
        quality_label=quality_label(quality)
    )

    logger.debug(f"Line pxLen={px_length:.1f} scale={calibration.scale_m_per_px:.5f} m/px")
    return calibration


def calibrate_area(points: Sequence[Sequence[float]],
                   real_length: Optional[float] = None,
                   units: str = 'ft') -> AreaCalibration:
    """
    Build an area calibration from four ordered lane corners.

    Args:
        points: near-left, near-right, far-right, far-left (pixels)
        real_length: Reference lane width in `units` (defaults to 12)
        units: 'ft' or 'm'

    Returns:
        AreaCalibration
    """
    _check_units(units)
    if len(points) != 4:
        raise CalibrationInputError(f"Area calibration needs exactly 4 points, got {len(points)}")

    if real_length is None:
        real_length = DEFAULT_AREA_LENGTH
    if real_length <= 0:
        raise CalibrationInputError("Real length must be a positive number")

    corners = tuple(_as_point(p) for p in points)
    if is_self_intersecting(corners):
        raise CalibrationInputError("Quadrilateral is self-intersecting; click corners in order")

    p1, p2, p3, p4 = corners
    near = unit_vector(p2[0] - p1[0], p2[1] - p1[1])
    far = unit_vector(p3[0] - p4[0], p3[1] - p4[1])
    angle = angle_between_deg(near, far)

    homography = compute_homography(corners, UNIT_SQUARE)
    quality = calibration_quality(real_length, units, angle_deg=angle, visual_ok=True)

    logger.debug(f"Area near={np.hypot(p2[0] - p1[0], p2[1] - p1[1]):.1f} "
                 f"far={np.hypot(p3[0] - p4[0], p3[1] - p4[1]):.1f} angle={angle:.1f} deg")

    return AreaCalibration(
        corners=corners,
        homography=homography,
        real_length=float(real_length),
        units=units,
        angle_deg=angle,
        axis_unit=near,
        quality=quality,
        quality_label=quality_label(quality)
    )


class CalibrationSession:
    """
    Collects operator input events and commits calibrations.

    The committed state only changes when a calibration succeeds or on
    reset(); failed input raises CalibrationInputError and leaves it as is.
    """

    def __init__(self):
        self.state: CalibrationState = NoCalibration()
        self.active_mode: Optional[str] = None
        self.real_length: Optional[float] = None
        self.units = 'ft'
        self.points: List[Point] = []
        self._drag_start: Optional[Point] = None
        self._drag_end: Optional[Point] = None
        self.logger = logging.getLogger(__name__)

    @property
    def progress(self) -> str:
        """Area click progress, e.g. '2/4'"""
        return f"{len(self.points)}/4"

    @property
    def is_dragging(self) -> bool:
        return self._drag_start is not None

    def _begin(self, mode: str, real_length: Optional[float], units: str):
        _check_units(units)
        self.active_mode = mode
        self.real_length = real_length
        self.units = units
        self.points = []
        self._drag_start = None
        self._drag_end = None

    def start_line(self, real_length: Optional[float], units: str = 'ft'):
        """Begin a line session, discarding any in-progress input"""
        self._begin('line', real_length, units)
        self.logger.info("Line calibration started: drag along the reference segment")

    def start_area(self, real_length: Optional[float] = None, units: str = 'ft'):
        """Begin an area session, discarding any in-progress input"""
        self._begin('area', real_length, units)
        self.logger.info("Area calibration started: click near-left, near-right, far-right, far-left")

    def apply_preset(self, name: str, units: Optional[str] = None) -> float:
        """Set the session's real length from a named preset"""
        units = units or self.units
        self.real_length = preset_length(name, units)
        self.units = units
        return self.real_length

    def pointer_down(self, x: float, y: float):
        if self.active_mode != 'line':
            return
        self._drag_start = (float(x), float(y))
        self._drag_end = self._drag_start

    def pointer_move(self, x: float, y: float):
        if self.active_mode != 'line' or self._drag_start is None:
            return
        self._drag_end = (float(x), float(y))

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None) -> Optional[LineCalibration]:
        """
        Finish a drag and commit the line calibration.

        Returns:
            The committed LineCalibration, or None when no drag was active
        """
        if self.active_mode != 'line' or self._drag_start is None:
            return None

        if x is not None and y is not None:
            self._drag_end = (float(x), float(y))

        start, end = self._drag_start, self._drag_end
        self._drag_start = None
        self._drag_end = None

        calibration = calibrate_line(start, end, self.real_length, self.units)
        self.state = calibration
        self.logger.info(f"Line calibration set ({self.real_length} {self.units}), "
                         f"quality {calibration.quality_label}")
        return calibration

    def add_point(self, x: float, y: float) -> Optional[AreaCalibration]:
        """
        Record an area click; the fourth click solves the homography.

        Returns:
            The committed AreaCalibration after the fourth point, else None
        """
        if self.active_mode != 'area':
            self.logger.debug(f"Ignoring click ({x}, {y}): no area calibration in progress")
            return None

        self.points.append((float(x), float(y)))
        if len(self.points) < 4:
            return None

        points = self.points
        self.points = []
        calibration = calibrate_area(points, self.real_length, self.units)
        self.state = calibration
        self.logger.info(f"Homography set, quality {calibration.quality_label}")
        return calibration

    def reset(self):
        """Clear all calibration state to defaults"""
        self.state = NoCalibration()
        self.active_mode = None
        self.real_length = None
        self.units = 'ft'
        self.points = []
        self._drag_start = None
        self._drag_end = None
        self.logger.info("Calibration reset")


def calibration_from_dict(data: Dict[str, Any]) -> CalibrationState:
    """Rebuild a calibration from its snapshot dictionary"""
    mode = data.get('mode', 'none')

    if mode == 'none':
        return NoCalibration()
    if mode == 'line':
        return calibrate_line(data['start'], data['end'], data['real_length'], data.get('units', 'ft'))
    if mode == 'area':
        return calibrate_area(data['corners'], data.get('real_length'), data.get('units', 'ft'))

    raise ValueError(f"Unknown calibration mode: {mode}")


def save_calibration(state: CalibrationState, output_path: Union[str, Path]) -> None:
    """Write a calibration snapshot as JSON"""
    with open(output_path, 'w') as f:
        json.dump(state.to_dict(), f, indent=2)

    logger.info(f"Calibration saved to: {output_path}")


def load_calibration(calibration_file: Union[str, Path]) -> CalibrationState:
    """
    Load a calibration from a JSON snapshot

    The scale, axis and homography are recomputed from the stored operator
    input so the loaded state satisfies the same checks as a fresh one.
    """
    calibration_path = Path(calibration_file)

    if not calibration_path.exists():
        raise FileNotFoundError(f"Calibration file not found: {calibration_path}")

    with open(calibration_path, 'r') as f:
        data = json.load(f)

    return calibration_from_dict(data)
