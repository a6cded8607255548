"""
Planar geometry helpers for calibration.
Four-point homography via direct linear transform and segment tests.
"""

import logging
from typing import Sequence, Tuple

import numpy as np

from ..core.exceptions import DegenerateGeometryError
from ..core.types import Point

PIVOT_EPSILON = 1e-12

logger = logging.getLogger(__name__)


def orientation(a: Point, b: Point, c: Point) -> int:
    """Sign of the turn a -> b -> c (-1, 0 or 1)"""
    value = (b[1] - a[1]) * (c[0] - b[0]) - (b[0] - a[0]) * (c[1] - b[1])
    return int(np.sign(value))


def segments_intersect(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    """True when segment p1-p2 properly crosses segment p3-p4"""
    o1 = orientation(p1, p2, p3)
    o2 = orientation(p1, p2, p4)
    o3 = orientation(p3, p4, p1)
    o4 = orientation(p3, p4, p2)
    return o1 != o2 and o3 != o4


def is_self_intersecting(quad: Sequence[Point]) -> bool:
    """
    Check an ordered quadrilateral for crossing opposite edges.

    Args:
        quad: Four points ordered near-left, near-right, far-right, far-left

    Returns:
        True for a "bowtie" shape
    """
    p1, p2, p3, p4 = quad
    return segments_intersect(p1, p2, p3, p4) or segments_intersect(p2, p3, p4, p1)


def unit_vector(dx: float, dy: float) -> Tuple[float, float]:
    """Normalize a 2-D vector; zero-length vectors stay near zero"""
    length = float(np.hypot(dx, dy)) or 1e-6
    return (dx / length, dy / length)


def angle_between_deg(u: Tuple[float, float], v: Tuple[float, float]) -> float:
    """Angle in degrees between two unit vectors"""
    dot = float(np.clip(u[0] * v[0] + u[1] * v[1], -1.0, 1.0))
    return float(np.degrees(np.arccos(dot)))


def solve_linear_system(A: np.ndarray, b: np.ndarray,
                        eps: float = PIVOT_EPSILON, strict: bool = False) -> np.ndarray:
    """
    Solve A x = b by Gauss-Jordan elimination with partial pivoting.

    Near-zero pivots are replaced with eps so a degenerate system still
    yields a best-effort answer.

    Args:
        A: Square coefficient matrix (n, n)
        b: Right-hand side (n,)
        eps: Pivot magnitude below which the pivot is substituted
        strict: Raise DegenerateGeometryError instead of substituting

    Returns:
        Solution vector (n,)
    """
    A = np.array(A, dtype=np.float64)
    b = np.array(b, dtype=np.float64)
    n = A.shape[0]

    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(A[i:, i])))
        if pivot_row != i:
            A[[i, pivot_row]] = A[[pivot_row, i]]
            b[[i, pivot_row]] = b[[pivot_row, i]]

        pivot = A[i, i]
        if abs(pivot) < eps:
            if strict:
                raise DegenerateGeometryError(f"Near-singular pivot at column {i}: {pivot:.3e}")
            logger.warning(f"Degenerate geometry: pivot {pivot:.3e} at column {i}, substituting {eps}")
            pivot = eps

        A[i, i:] /= pivot
        b[i] /= pivot

        for r in range(n):
            if r == i:
                continue
            factor = A[r, i]
            if factor != 0.0:
                A[r, i:] -= factor * A[i, i:]
                b[r] -= factor * b[i]

    return b


def compute_homography(src: Sequence[Point], dst: Sequence[Point],
                       strict: bool = False) -> np.ndarray:
    """
    Compute the homography mapping 4 source points onto 4 target points.

    Builds the 8x8 DLT system with H[2][2] fixed to 1.

    Args:
        src: Four source points (pixels)
        dst: Four target points
        strict: Propagate DegenerateGeometryError for singular systems

    Returns:
        3x3 homography matrix
    """
    if len(src) != 4 or len(dst) != 4:
        raise ValueError("Homography solve needs exactly 4 correspondences")

    A = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)

    for i, ((X, Y), (x, y)) in enumerate(zip(src, dst)):
        A[2 * i] = [X, Y, 1, 0, 0, 0, -x * X, -x * Y]
        b[2 * i] = x
        A[2 * i + 1] = [0, 0, 0, X, Y, 1, -y * X, -y * Y]
        b[2 * i + 1] = y

    h = solve_linear_system(A, b, strict=strict)

    return np.append(h, 1.0).reshape(3, 3)


def apply_homography(homography: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Project points through a homography

    Args:
        homography: 3x3 matrix
        points: Array of points (N, 2)

    Returns:
        Projected points (N, 2)
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(points) == 0:
        return points

    homogeneous = np.column_stack([points, np.ones(len(points))])
    projected = (np.asarray(homography) @ homogeneous.T).T

    return projected[:, :2] / projected[:, 2:3]
