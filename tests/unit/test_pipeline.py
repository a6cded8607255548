"""
Unit tests for the per-frame speed pipeline.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from roadspeed.calibration.calibration import LineCalibration
from roadspeed.core.types import Detection
from roadspeed.inference.pipeline import FPSCounter, FrameResult, SpeedPipeline


def car(x, y=100.0, score=0.9, class_name='car'):
    return Detection(x, y, 40.0, 20.0, score, class_name)


def calibrated_pipeline(config=None):
    """Pipeline with a 0.05 m/px line calibration along +x"""
    pipeline = SpeedPipeline(config)
    pipeline.calibration.start_line(5, 'm')
    pipeline.calibration.pointer_down(0, 0)
    pipeline.calibration.pointer_up(100, 0)
    return pipeline


class TestFPSCounter:
    """Test FPS calculation"""

    def test_not_enough_samples(self):
        counter = FPSCounter()
        counter.update(0.0)
        assert counter.get_fps() == 0.0

    def test_fps_from_timestamps(self):
        counter = FPSCounter()
        for ts in (0.0, 100.0, 200.0):
            counter.update(ts)
        assert counter.get_fps() == pytest.approx(10.0)


class TestSpeedPipeline:
    """Test SpeedPipeline functionality"""

    def test_initialization_defaults(self):
        pipeline = SpeedPipeline()

        assert pipeline.tracker.params.min_hits == 3
        assert pipeline.speed_estimator.smoothing_alpha == 0.25
        assert pipeline.calibration_state.quality_label == 'N/A'

    def test_calibration_committed(self):
        pipeline = calibrated_pipeline()

        assert isinstance(pipeline.calibration_state, LineCalibration)
        assert pipeline.calibration_state.scale == pytest.approx(0.05)

    def test_vehicle_filter(self):
        pipeline = SpeedPipeline({'tracker': {'min_hits': 1}})

        result = pipeline.process_frame([car(0), car(200, class_name='person')], 0.0)

        assert isinstance(result, FrameResult)
        assert [d.class_name for d in result.detections] == ['car']
        assert len(result.tracks) == 1

    def test_speed_after_confirmation(self):
        pipeline = calibrated_pipeline()

        results = [pipeline.process_frame([car(100 + 10 * i)], 100.0 * i) for i in range(4)]

        assert results[0].target is None
        assert results[1].target is None
        assert results[2].target.track_id == 1
        assert results[2].speed.speed_mps == 0.0
        # 10 px per 100 ms at 0.05 m/px is 5 m/s, smoothed from zero
        assert results[3].speed.speed_mps == pytest.approx(0.25 * 5.0)
        assert results[3].calibration_label == 'Good'

    def test_dict_detections(self):
        pipeline = SpeedPipeline({'tracker': {'min_hits': 1}})

        result = pipeline.process_frame(
            [{'x': 0, 'y': 0, 'w': 40, 'h': 20, 'score': 0.8, 'class': 'truck'}], 0.0)

        assert result.target.class_name == 'truck'

    def test_sticky_target_and_selection(self):
        pipeline = SpeedPipeline({'tracker': {'min_hits': 1}})

        result = pipeline.process_frame([car(0), car(300)], 0.0)
        assert result.target.track_id == 1

        pipeline.select_target(2)
        result = pipeline.process_frame([car(0), car(300)], 33.0)
        assert result.target.track_id == 2

        result = pipeline.process_frame([car(0), car(300)], 66.0)
        assert result.target.track_id == 2

    def test_target_switches_when_lost(self):
        pipeline = SpeedPipeline({'tracker': {'min_hits': 1, 'max_age': 0}})
        pipeline.process_frame([car(0), car(300)], 0.0)
        pipeline.select_target(2)

        result = pipeline.process_frame([car(0)], 33.0)

        assert result.target.track_id == 1
        assert pipeline.active_id == 1

    def test_selection_waits_for_confirmation(self):
        pipeline = SpeedPipeline({'tracker': {'min_hits': 3}})
        for i in range(3):
            result = pipeline.process_frame([car(0)], 33.0 * i)
        assert result.target.track_id == 1

        pipeline.process_frame([car(0), car(300)], 100.0)
        pipeline.select_target(2)

        result = pipeline.process_frame([car(0), car(300)], 133.0)
        assert result.target.track_id == 1
        assert pipeline.active_id == 2

        result = pipeline.process_frame([car(0), car(300)], 166.0)
        assert result.target.track_id == 2

    def test_motion_state_evicted_with_tracks(self):
        pipeline = calibrated_pipeline({'tracker': {'min_hits': 1, 'max_age': 0}})
        pipeline.process_frame([car(0)], 0.0)
        assert set(pipeline.speed_estimator.motion) == {1}

        pipeline.process_frame([], 33.0)

        assert pipeline.speed_estimator.motion == {}

    def test_no_detections(self):
        pipeline = calibrated_pipeline()

        result = pipeline.process_frame(None, 0.0)

        assert result.tracks == []
        assert result.target is None
        assert result.speed.speed_mph == 0.0

    def test_reset(self):
        pipeline = calibrated_pipeline({'tracker': {'min_hits': 1}})
        pipeline.process_frame([car(0)], 0.0)

        pipeline.reset()

        assert pipeline.tracker.tracks == []
        assert pipeline.speed_estimator.motion == {}
        assert pipeline.active_id is None
        assert isinstance(pipeline.calibration_state, LineCalibration)

    def test_performance_summary(self):
        pipeline = SpeedPipeline()
        pipeline.process_frame([car(0)], 0.0)

        summary = pipeline.get_performance_summary()

        assert summary['frames'] == 1
        assert 'tracker' in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
