"""Speed estimation along the calibrated road axis."""
