"""
Vehicle Speed Estimation Core

Estimates real-world vehicle speed from per-frame detections using
operator calibration, IoU/appearance tracking and temporal smoothing.
"""

__version__ = "1.0.0"
__author__ = "Vehicle Velocity Team"
