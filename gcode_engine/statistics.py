import logging
import math
from typing import Optional, Set

from .config import EngineConfig
from .models import MoveKind, Statistics
from .motion import Move

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    """
    이동/압출/리트랙션 집계 (Motion State Tracker와 같은 패스에서 실행)

    바운딩 박스에서 제외된 비유한 좌표는 거리/압출 합계에서도 제외한다.
    """

    def __init__(self, z_precision: int = 3):
        self.stats = Statistics()
        self.max_retraction_line: Optional[int] = None
        self._z_precision = z_precision
        self._extrusion_layers: Set[float] = set()

    def add(self, move: Move):
        stats = self.stats
        stats.move_count += 1

        if move.feedrate is not None and move.feedrate > stats.max_feedrate:
            stats.max_feedrate = move.feedrate

        if not move.valid:
            stats.malformed_coordinates += 1
            return

        stats.total_distance += move.distance

        if move.kind == MoveKind.EXTRUDE:
            stats.extrude_count += 1
            stats.total_extrusion += move.e_delta
            self._extrusion_layers.add(round(move.end.z, self._z_precision))
        elif move.kind == MoveKind.RETRACT:
            stats.retraction_count += 1
            retraction = -move.e_delta
            if retraction > stats.max_retraction:
                stats.max_retraction = retraction
                self.max_retraction_line = move.line

    @property
    def extrusion_layer_count(self) -> int:
        """압출이 있었던 서로 다른 Z 높이 수"""
        return len(self._extrusion_layers)

    def snapshot(self) -> Statistics:
        return self.stats.model_copy()


def estimate_print_time(stats: Statistics, layer_count: Optional[int],
                        config: EngineConfig) -> int:
    """
    슬라이서 시간이 없을 때의 자체 추정치 (초)

    이동 거리 / 평균 속도 + 리트랙션 횟수 * 리트랙션 시간 + 레이어 수 * 레이어 변경 시간
    """
    move_time = stats.total_distance / config.average_speed_mms
    retract_time = stats.retraction_count * config.retraction_time_s
    layer_time = (layer_count or 0) * config.layer_change_time_s
    return int(math.ceil(move_time + retract_time + layer_time))
