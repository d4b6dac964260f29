"""
Motion State Tracker
G90/G91, M82/M83 모드와 현재 X/Y/Z/E 위치를 추적하고 바운딩 박스를 누적

모든 소비자(메타데이터/통계/검증/레이어)가 하나의 트래커 결과를 공유한다.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from .models import MoveKind, PositioningMode, ProgramLine

logger = logging.getLogger(__name__)

MOVE_COMMANDS = ('G0', 'G1')
AXES = ('x', 'y', 'z')


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0

    def copy(self) -> "Position":
        return replace(self)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.z, self.e))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "e": self.e}


@dataclass
class MotionState:
    """파싱 패스당 하나만 존재하는 권위 있는 모션 상태"""
    linear_mode: PositioningMode = PositioningMode.ABSOLUTE     # G90/G91
    extrusion_mode: PositioningMode = PositioningMode.ABSOLUTE  # M82/M83
    position: Position = field(default_factory=Position)
    last_position: Position = field(default_factory=Position)
    feedrate: Optional[float] = None  # mm/min, 마지막 F 값

    def copy(self) -> "MotionState":
        return MotionState(
            linear_mode=self.linear_mode,
            extrusion_mode=self.extrusion_mode,
            position=self.position.copy(),
            last_position=self.last_position.copy(),
            feedrate=self.feedrate,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "linearMode": self.linear_mode.value,
            "extrusionMode": self.extrusion_mode.value,
            "position": self.position.to_dict(),
            "lastPosition": self.last_position.to_dict(),
            "feedrate": self.feedrate,
        }


# 관측된 좌표가 없을 때 렌더러에 넘길 기본 범위
FALLBACK_MIN = {"x": 0.0, "y": 0.0, "z": 0.0}
FALLBACK_MAX = {"x": 100.0, "y": 100.0, "z": 10.0}


@dataclass
class BoundingBox:
    """3D 바운딩 박스 (None = 아직 관측된 점 없음)"""
    min_x: Optional[float] = None
    max_x: Optional[float] = None
    min_y: Optional[float] = None
    max_y: Optional[float] = None
    min_z: Optional[float] = None
    max_z: Optional[float] = None

    @property
    def is_set(self) -> bool:
        return self.min_x is not None

    def extend(self, x: float, y: float, z: float):
        if self.min_x is None:
            self.min_x = self.max_x = x
            self.min_y = self.max_y = y
            self.min_z = self.max_z = z
            return
        self.min_x = min(self.min_x, x)
        self.max_x = max(self.max_x, x)
        self.min_y = min(self.min_y, y)
        self.max_y = max(self.max_y, y)
        self.min_z = min(self.min_z, z)
        self.max_z = max(self.max_z, z)

    def copy(self) -> "BoundingBox":
        return replace(self)

    def size(self) -> Optional[Dict[str, float]]:
        if not self.is_set:
            return None
        return {
            "x": self.max_x - self.min_x,
            "y": self.max_y - self.min_y,
            "z": self.max_z - self.min_z,
        }

    def to_dict(self, fallback: bool = True) -> Dict[str, Dict[str, Optional[float]]]:
        """
        {"min": {...}, "max": {...}} 형태로 반환

        fallback=True 이면 관측된 점이 없을 때 0 / 100 / 10 기본값 사용
        """
        if not self.is_set:
            if fallback:
                return {"min": dict(FALLBACK_MIN), "max": dict(FALLBACK_MAX)}
            return {"min": {a: None for a in AXES}, "max": {a: None for a in AXES}}
        return {
            "min": {"x": self.min_x, "y": self.min_y, "z": self.min_z},
            "max": {"x": self.max_x, "y": self.max_y, "z": self.max_z},
        }


@dataclass
class Move:
    """G0/G1 한 줄이 만든 이동 샘플"""
    line: int
    start: Position
    end: Position
    kind: MoveKind
    e_delta: float
    distance: float           # XYZ 유클리드 거리 (invalid면 0)
    valid: bool               # 이전/새 좌표가 모두 유한한지
    feedrate: Optional[float]  # 이 라인의 F 값 (없으면 None)
    is_rapid: bool = False

    @property
    def has_motion(self) -> bool:
        return self.distance > 0 or self.e_delta != 0


class MotionTracker:
    """ProgramLine 스트림을 MotionState + BoundingBox로 접는다"""

    def __init__(self):
        self.state = MotionState()
        self.bounds = BoundingBox()
        self.malformed_count = 0

    def apply(self, line: ProgramLine) -> Optional[Move]:
        """라인 하나 처리. G0/G1이면 Move 반환"""
        cmd = line.cmd
        if cmd is None:
            return None

        if cmd in MOVE_COMMANDS:
            return self._process_move(line, is_rapid=(cmd == 'G0'))
        elif cmd == 'G90':
            self.state.linear_mode = PositioningMode.ABSOLUTE
        elif cmd == 'G91':
            self.state.linear_mode = PositioningMode.RELATIVE
        elif cmd == 'M82':
            self.state.extrusion_mode = PositioningMode.ABSOLUTE
        elif cmd == 'M83':
            self.state.extrusion_mode = PositioningMode.RELATIVE
        elif cmd == 'G92':
            self._set_position(line)
        elif cmd == 'G28':
            self._home(line)
        return None

    def _set_position(self, line: ProgramLine):
        # 위치 리셋 (이동 없음)
        pos = self.state.position.copy()
        for key, value in line.params:
            setattr(pos, key, value)
        self.state.position = pos

    def _home(self, line: ProgramLine):
        # 홈 복귀: 축 지정이 없으면 XYZ 전부
        named = {key for key, _ in line.params} | set(line.flags)
        targets = [a for a in AXES if a in named] or list(AXES)
        pos = self.state.position.copy()
        for axis in targets:
            setattr(pos, axis, 0.0)
        self.state.position = pos

    def _process_move(self, line: ProgramLine, is_rapid: bool) -> Move:
        state = self.state
        start = state.position.copy()
        end = start.copy()

        relative_xyz = state.linear_mode == PositioningMode.RELATIVE
        relative_e = state.extrusion_mode == PositioningMode.RELATIVE

        feedrate = None
        for key, value in line.params:
            if key in AXES:
                setattr(end, key, getattr(start, key) + value if relative_xyz else value)
            elif key == 'e':
                end.e = start.e + value if relative_e else value
            elif key == 'f':
                feedrate = value
                state.feedrate = value

        valid = start.is_finite() and end.is_finite()
        if valid:
            e_delta = end.e - start.e
            distance = math.hypot(end.x - start.x, end.y - start.y, end.z - start.z)
            # 유한한 두 좌표의 차가 넘칠 수 있음
            valid = math.isfinite(distance) and math.isfinite(e_delta)

        if valid:
            if e_delta > 0:
                kind = MoveKind.EXTRUDE
            elif e_delta < 0:
                kind = MoveKind.RETRACT
            else:
                kind = MoveKind.TRAVEL
            self.bounds.extend(end.x, end.y, end.z)
        else:
            e_delta = 0.0
            distance = 0.0
            kind = MoveKind.TRAVEL
            self.malformed_count += 1
            logger.debug("line %d: non-finite coordinate, skipping bounds update", line.index)

        state.last_position = start
        state.position = end

        return Move(
            line=line.index,
            start=start,
            end=end,
            kind=kind,
            e_delta=e_delta,
            distance=distance,
            valid=valid,
            feedrate=feedrate,
            is_rapid=is_rapid,
        )
