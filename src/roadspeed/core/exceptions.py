"""
Error types raised by the calibration layer.
"""


class CalibrationInputError(ValueError):
    """
    Operator input cannot produce a calibration.

    Raised for segments shorter than the minimum pixel length, a missing or
    non-positive real length, a wrong number of area points, or a
    self-intersecting quadrilateral. The previously committed calibration is
    left untouched.
    """


class DegenerateGeometryError(ArithmeticError):
    """
    Homography system is near-singular.

    Only raised when a solver is asked to run strictly; by default the
    solver substitutes a small pivot and returns a best-effort result.
    """
