"""
Motion State Tracker 테스트
"""
import pytest

from gcode_engine.models import MoveKind, PositioningMode, ProgramLine
from gcode_engine.motion import BoundingBox, MotionTracker
from gcode_engine.parser import parse_text


def run(text: str) -> MotionTracker:
    tracker = MotionTracker()
    for line in parse_text(text):
        tracker.apply(line)
    return tracker


class TestPositioningModes:
    """G90/G91, M82/M83"""

    def test_absolute_replaces(self):
        tracker = run("G1 X10 Y20\nG1 X5")
        pos = tracker.state.position
        assert (pos.x, pos.y) == (5.0, 20.0)

    def test_relative_adds(self):
        tracker = run("G91\nG1 X10\nG1 X10 Z1")
        pos = tracker.state.position
        assert (pos.x, pos.z) == (20.0, 1.0)

    def test_absent_axes_unchanged(self):
        """라인에 없는 축은 0으로 리셋되지 않음"""
        tracker = run("G1 X10 Y10 Z0.2\nG1 X20")
        assert tracker.state.position.y == 10.0
        assert tracker.state.position.z == 0.2

    def test_extrusion_mode_independent(self):
        """M83은 XYZ 모드에 영향 없음"""
        tracker = run("M83\nG1 X10 E1\nG1 X20 E1")
        state = tracker.state
        assert state.linear_mode == PositioningMode.ABSOLUTE
        assert state.extrusion_mode == PositioningMode.RELATIVE
        assert state.position.x == 20.0
        assert state.position.e == 2.0

    def test_g91_does_not_touch_extrusion_mode(self):
        tracker = run("G91\nG1 E1\nG1 E1")
        assert tracker.state.extrusion_mode == PositioningMode.ABSOLUTE
        assert tracker.state.position.e == 1.0

    def test_g92_resets_without_move(self):
        tracker = run("G1 X10 E5\nG92 E0")
        assert tracker.state.position.e == 0.0
        assert tracker.state.position.x == 10.0

    def test_g28_homes_named_axes(self):
        tracker = run("G1 X10 Y10 Z5\nG28 X")
        pos = tracker.state.position
        assert (pos.x, pos.y, pos.z) == (0.0, 10.0, 5.0)

    def test_g28_homes_all(self):
        tracker = run("G1 X10 Y10 Z5\nG28")
        pos = tracker.state.position
        assert (pos.x, pos.y, pos.z) == (0.0, 0.0, 0.0)

    def test_comment_lines_ignored(self):
        tracker = run(";G1 X100\nG1 X1")
        assert tracker.state.position.x == 1.0


class TestMoveClassification:
    """압출 / 리트랙션 / 이동 분류"""

    def test_absolute_e(self):
        tracker = MotionTracker()
        moves = [tracker.apply(l) for l in parse_text("G1 X1 E1\nG1 X2 E0.5\nG1 X3 E0.5")]
        assert [m.kind for m in moves] == [MoveKind.EXTRUDE, MoveKind.RETRACT, MoveKind.TRAVEL]
        assert moves[1].e_delta == pytest.approx(-0.5)

    def test_relative_e(self):
        tracker = MotionTracker()
        moves = [tracker.apply(l) for l in parse_text("M83\nG1 E1\nG1 E-0.8\nG1 X1 E0")]
        assert [m.kind for m in moves if m] == [MoveKind.EXTRUDE, MoveKind.RETRACT, MoveKind.TRAVEL]

    def test_move_distance_and_feedrate(self):
        tracker = MotionTracker()
        move = tracker.apply(parse_text("G0 X3 Y4 F6000")[0])
        assert move.distance == pytest.approx(5.0)
        assert move.feedrate == 6000.0
        assert move.is_rapid is True
        assert tracker.state.feedrate == 6000.0

    def test_last_position_tracks_previous_sample(self):
        tracker = run("G1 X1\nG1 X2")
        assert tracker.state.last_position.x == 1.0

    def test_returned_moves_not_aliased(self):
        """G92 이후에도 이전 Move 좌표는 그대로"""
        tracker = MotionTracker()
        lines = parse_text("G1 X1 E5\nG92 E0")
        move = tracker.apply(lines[0])
        tracker.apply(lines[1])
        assert move.end.e == 5.0


class TestNonFinite:
    """비유한 좌표 방어"""

    def test_overflow_skips_bounds(self):
        tracker = MotionTracker()
        tracker.apply(parse_text("G1 X10 Y10 Z1")[0])
        huge = ProgramLine(index=2, raw="G1 X1e308", cmd="G1", params=[("x", 1e308)])
        tracker.apply(parse_text("G91")[0])
        tracker.apply(huge)
        move = tracker.apply(huge)  # 1e308 + 1e308 = inf
        assert move.valid is False
        assert move.distance == 0.0
        assert tracker.malformed_count == 1
        assert tracker.bounds.max_x == 1e308


class TestBoundingBox:
    """바운딩 박스"""

    def test_unset_uses_fallback(self):
        box = BoundingBox()
        assert box.is_set is False
        assert box.size() is None
        data = box.to_dict()
        assert data["min"] == {"x": 0.0, "y": 0.0, "z": 0.0}
        assert data["max"] == {"x": 100.0, "y": 100.0, "z": 10.0}

    def test_unset_without_fallback(self):
        assert BoundingBox().to_dict(fallback=False)["min"]["x"] is None

    def test_extend_min_le_max(self):
        tracker = run("G1 X10 Y-5 Z0.2\nG1 X-3 Y7 Z0.4")
        box = tracker.bounds
        assert (box.min_x, box.max_x) == (-3.0, 10.0)
        assert (box.min_y, box.max_y) == (-5.0, 7.0)
        assert box.size() == pytest.approx({"x": 13.0, "y": 12.0, "z": 0.2})
