"""
Statistics Aggregator 테스트
"""
import pytest

from gcode_engine.config import EngineConfig
from gcode_engine.models import ProgramLine, Statistics
from gcode_engine.motion import MotionTracker
from gcode_engine.parser import parse_text
from gcode_engine.statistics import StatisticsAggregator, estimate_print_time


def aggregate(lines) -> StatisticsAggregator:
    tracker = MotionTracker()
    aggregator = StatisticsAggregator()
    for line in lines:
        move = tracker.apply(line)
        if move is not None:
            aggregator.add(move)
    return aggregator


class TestStatisticsAggregator:
    """집계"""

    def test_counts(self):
        agg = aggregate(parse_text("G1 X10 E1 F1200\nG1 X20 E0.2\nG0 X0 F9000\nG1 X10 E1.2"))
        stats = agg.stats
        assert stats.move_count == 4
        assert stats.extrude_count == 2
        assert stats.retraction_count == 1
        assert stats.total_extrusion == pytest.approx(2.0)
        assert stats.total_distance == pytest.approx(50.0)
        assert stats.max_retraction == pytest.approx(0.8)
        assert stats.max_feedrate == 9000.0
        assert agg.max_retraction_line == 2

    def test_non_move_lines_not_counted(self):
        agg = aggregate(parse_text("G28\nM104 S200\n;G1 X1"))
        assert agg.stats.move_count == 0

    def test_invalid_moves_excluded_from_distance(self):
        """바운딩 박스에서 빠진 좌표는 거리 합계에서도 빠짐"""
        huge = ProgramLine(index=3, raw="G1 X1e308", cmd="G1", params=[("x", 1e308)])
        lines = parse_text("G91\nG1 X1")
        agg = aggregate(lines + [huge, huge])
        assert agg.stats.move_count == 3
        assert agg.stats.malformed_coordinates == 1
        assert agg.stats.total_distance == pytest.approx(1 + 1e308)

    def test_extrusion_layers(self):
        agg = aggregate(parse_text("G1 Z0.2\nG1 X1 E1\nG1 Z0.4\nG1 X2 E2\nG1 Z0.6"))
        assert agg.extrusion_layer_count == 2

    def test_snapshot_is_copy(self):
        agg = aggregate(parse_text("G1 X1"))
        snap = agg.snapshot()
        agg.stats.move_count += 5
        assert snap.move_count == 1

    def test_monotonic(self):
        tracker = MotionTracker()
        agg = StatisticsAggregator()
        previous = Statistics()
        for line in parse_text("G1 X1 E1\nG1 X2 E0.5\nG1 X3\nG1 X0 E3"):
            agg.add(tracker.apply(line))
            current = agg.snapshot()
            assert current.move_count >= previous.move_count
            assert current.total_distance >= previous.total_distance
            assert current.total_extrusion >= previous.total_extrusion
            previous = current


class TestEstimatePrintTime:
    """자체 출력 시간 추정"""

    def test_formula(self):
        stats = Statistics(total_distance=600.0, retraction_count=3)
        config = EngineConfig()
        # 600/60 + 3*1 + 5*2
        assert estimate_print_time(stats, 5, config) == 23

    def test_no_layers(self):
        stats = Statistics(total_distance=61.0)
        assert estimate_print_time(stats, None, EngineConfig()) == 2
