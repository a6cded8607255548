"""Multi-object tracking with short-horizon re-identification."""
