"""
Layer Geometry Builder
Z 높이별로 이동 세그먼트를 묶어 렌더러용 레이어 데이터를 만든다

- 레이어 키는 레이어 번호가 아니라 반올림된 Z 값 (Z-hop으로 다시 방문해도 같은 레이어)
- 레이어당 travel/retract 세그먼트는 max_points_per_layer 개 이하로 솎아냄
- 압출 세그먼트는 절대 버리지 않음
"""
import base64
import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .models import MoveKind
from .motion import BoundingBox, Move

logger = logging.getLogger(__name__)


def segments_to_float32_base64(segments: List[List[float]]) -> str:
    """
    세그먼트 배열을 Float32Array로 변환 후 Base64 인코딩

    Args:
        segments: [[x1,y1,z1,x2,y2,z2], ...] 형태의 세그먼트 리스트

    Returns:
        Base64 인코딩된 Float32 바이너리 문자열 (little-endian)
    """
    if not segments:
        return ""

    flat = []
    for seg in segments:
        flat.extend(seg)

    packed = struct.pack(f'<{len(flat)}f', *flat)
    return base64.b64encode(packed).decode('ascii')


@dataclass(frozen=True)
class Segment:
    """시작점 -> 끝점 이동 하나"""
    start: Tuple[float, float, float]
    end: Tuple[float, float, float]
    kind: MoveKind
    line: int

    def as_list(self) -> List[float]:
        return [*self.start, *self.end]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": {"x": self.start[0], "y": self.start[1], "z": self.start[2]},
            "end": {"x": self.end[0], "y": self.end[1], "z": self.end[2]},
            "kind": self.kind.value,
            "line": self.line,
        }


@dataclass(frozen=True)
class Layer:
    """단일 레이어 (생성 후 변경 불가)"""
    z: float
    segments: Tuple[Segment, ...]
    dropped: int = 0  # 솎아낸 travel/retract 세그먼트 수

    def of_kind(self, kind: MoveKind) -> List[Segment]:
        return [s for s in self.segments if s.kind == kind]

    @property
    def extrusion_count(self) -> int:
        return sum(1 for s in self.segments if s.kind == MoveKind.EXTRUDE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "z": self.z,
            "segments": [s.to_dict() for s in self.segments],
            "segmentCount": len(self.segments),
            "droppedSegments": self.dropped,
        }

    def to_binary_dict(self) -> Dict[str, Any]:
        """kind 별 Float32 + Base64 버퍼"""
        data: Dict[str, Any] = {"z": self.z}
        for kind in MoveKind:
            segments = [s.as_list() for s in self.of_kind(kind)]
            data[f"{kind.value}Data"] = segments_to_float32_base64(segments)
            data[f"{kind.value}Count"] = len(segments)
        data["droppedSegments"] = self.dropped
        return data


@dataclass
class LayerBuildResult:
    """buildLayers 최종 결과"""
    layers: List[Layer] = field(default_factory=list)
    bounds: BoundingBox = field(default_factory=BoundingBox)

    @property
    def total_layers(self) -> int:
        return len(self.layers)

    @property
    def total_points(self) -> int:
        """남아 있는 세그먼트 수"""
        return sum(len(layer.segments) for layer in self.layers)

    def _stats(self) -> Dict[str, int]:
        return {"totalLayers": self.total_layers, "totalPoints": self.total_points}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layers": [layer.to_dict() for layer in self.layers],
            "bounds": self.bounds.to_dict(fallback=True),
            "stats": self._stats(),
        }

    def to_binary_dict(self) -> Dict[str, Any]:
        return {
            "layers": [layer.to_binary_dict() for layer in self.layers],
            "bounds": self.bounds.to_dict(fallback=True),
            "stats": self._stats(),
        }


@dataclass
class _LayerBuffer:
    """레이어 누적 버퍼 (seq = 입력 순서)"""
    z: float
    extrusions: List[Tuple[int, Segment]] = field(default_factory=list)
    others: List[Tuple[int, Segment]] = field(default_factory=list)
    seen_others: int = 0
    stride: int = 1


class LayerGeometryBuilder:
    """
    Move 스트림을 Z 키 레이어로 그룹화

    travel/retract 세그먼트 솎아내기 (stride doubling):
        레이어에서 n번째(0부터) 비압출 세그먼트는 n % stride == 0 일 때만 보관한다.
        보관 수가 상한을 넘으면 하나 걸러 버리고 stride를 두 배로 늘린다.
        결과적으로 레이어당 최대 max_points 개, 입력 순서상 균일한 간격으로 남는다.
        max_points == 0 이면 비압출 세그먼트는 전부 버린다.
    """

    def __init__(self, max_points_per_layer: int = 1000, z_precision: int = 3):
        if max_points_per_layer < 0:
            raise ValueError("max_points_per_layer must be >= 0")
        self.max_points = max_points_per_layer
        self.z_precision = z_precision
        self._layers: Dict[float, _LayerBuffer] = {}
        self._seq = 0

    def add(self, move: Move) -> bool:
        """세그먼트 추가. 보관되었으면 True"""
        if not move.valid or not move.has_motion:
            return False

        z = round(move.end.z, self.z_precision)
        if z == 0:
            z = 0.0  # -0.0 정규화
        buffer = self._layers.get(z)
        if buffer is None:
            buffer = _LayerBuffer(z=z)
            self._layers[z] = buffer

        segment = Segment(
            start=(move.start.x, move.start.y, move.start.z),
            end=(move.end.x, move.end.y, move.end.z),
            kind=move.kind,
            line=move.line,
        )
        seq = self._seq
        self._seq += 1

        if move.kind == MoveKind.EXTRUDE:
            buffer.extrusions.append((seq, segment))
            return True
        return self._add_other(buffer, seq, segment)

    def _add_other(self, buffer: _LayerBuffer, seq: int, segment: Segment) -> bool:
        index = buffer.seen_others
        buffer.seen_others += 1
        if self.max_points == 0 or index % buffer.stride != 0:
            return False

        buffer.others.append((seq, segment))
        if len(buffer.others) > self.max_points:
            buffer.others = buffer.others[::2]
            buffer.stride *= 2
            logger.debug("layer z=%s: travel stride raised to %d", buffer.z, buffer.stride)
            # 방금 넣은 세그먼트가 살아남았는지
            return buffer.others[-1][0] == seq
        return True

    @property
    def layer_count(self) -> int:
        return len(self._layers)

    def build(self, bounds: Optional[BoundingBox] = None) -> LayerBuildResult:
        """Z 오름차순 레이어 생성"""
        layers = []
        for z in sorted(self._layers):
            buffer = self._layers[z]
            merged = sorted(buffer.extrusions + buffer.others, key=lambda item: item[0])
            layers.append(Layer(
                z=z,
                segments=tuple(seg for _, seg in merged),
                dropped=buffer.seen_others - len(buffer.others),
            ))

        dropped = sum(layer.dropped for layer in layers)
        if dropped:
            logger.info("Point reduction dropped %d travel/retract segments across %d layers",
                        dropped, len(layers))

        return LayerBuildResult(
            layers=layers,
            bounds=bounds.copy() if bounds is not None else BoundingBox(),
        )
