"""
Shared data types for detections and pixel boxes.
Boxes are (x, y, w, h) in frame pixel coordinates.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

BBox = Tuple[float, float, float, float]  # (x, y, w, h)
Point = Tuple[float, float]

# Classes kept by the pipeline; the detector emits a wider COCO subset
VEHICLE_CLASSES = ('car', 'truck', 'bus')

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """
    Data class for a single detector output in pixel space
    """
    x: float
    y: float
    w: float
    h: float
    score: float
    class_name: str = 'unknown'

    @property
    def bbox(self) -> BBox:
        return (self.x, self.y, self.w, self.h)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Detection':
        """
        Build a detection from a detector dictionary.

        Accepts either x/y/w/h keys or a 'bbox' entry in [x1, y1, x2, y2]
        format, and 'score' or 'confidence' for the detector score.
        """
        if 'bbox' in data:
            x1, y1, x2, y2 = data['bbox']
            x, y, w, h = x1, y1, x2 - x1, y2 - y1
        else:
            x, y, w, h = data['x'], data['y'], data['w'], data['h']

        score = data.get('score', data.get('confidence', 0.0))
        class_name = data.get('class', data.get('class_name', 'unknown'))

        return cls(float(x), float(y), float(w), float(h), float(score), str(class_name))


def as_detections(items: Optional[Iterable[Any]]) -> List[Detection]:
    """Normalize a detector result list; None means no detections.

    Entries that cannot be read as a box are logged and skipped.
    """
    if not items:
        return []

    detections = []
    for item in items:
        if isinstance(item, Detection):
            detections.append(item)
            continue
        try:
            detections.append(Detection.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed detection {item!r}: {e}")
    return detections


def filter_vehicles(detections: Sequence[Detection],
                    classes: Sequence[str] = VEHICLE_CLASSES) -> List[Detection]:
    """Keep only detections whose class is in the vehicle set"""
    allowed = set(classes)
    return [d for d in detections if d.class_name in allowed]


def box_center(bbox: BBox) -> Point:
    """Get center point of an (x, y, w, h) box"""
    x, y, w, h = bbox
    return (x + w / 2, y + h / 2)


def compute_iou(box_a: BBox, box_b: BBox) -> float:
    """
    Compute IoU between two (x, y, w, h) boxes.

    Boxes with negative dimensions never overlap anything and score 0.
    """
    ax, ay, aw, ah = box_a
    bx, by, bw, bh = box_b

    ix = max(0.0, min(ax + aw, bx + bw) - max(ax, bx))
    iy = max(0.0, min(ay + ah, by + bh) - max(ay, by))

    intersection = ix * iy
    union = aw * ah + bw * bh - intersection

    return intersection / union if union > 0 else 0.0
