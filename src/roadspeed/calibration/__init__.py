"""Operator calibration: line scale and area homography."""
