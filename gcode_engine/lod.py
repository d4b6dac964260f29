"""
Level of Detail
빌드된 레이어에서 카메라 거리별 간략화 버전을 만든다 (travel/retract만 솎아냄)
"""
from typing import Dict, List

from .layers import Layer, LayerBuildResult
from .models import MoveKind

# LOD 레벨별 샘플링 비율 (레벨 0 = 전체)
LOD_SAMPLE_RATES = (1, 2, 4, 8, 16)

# 화면상 크기(viewport / distance) 기준 -> 레벨
LOD_THRESHOLDS = ((2.0, 0), (1.0, 1), (0.5, 2), (0.25, 3))


def sample_layer(layer: Layer, rate: int) -> Layer:
    """비압출 세그먼트 중 rate 개마다 하나만 남김"""
    if rate <= 1:
        return layer

    kept = []
    dropped = 0
    other_index = 0
    for segment in layer.segments:
        if segment.kind == MoveKind.EXTRUDE:
            kept.append(segment)
            continue
        if other_index % rate == 0:
            kept.append(segment)
        else:
            dropped += 1
        other_index += 1

    return Layer(z=layer.z, segments=tuple(kept), dropped=layer.dropped + dropped)


def build_lod_levels(result: LayerBuildResult) -> Dict[int, LayerBuildResult]:
    """레벨 0..4 결과 생성"""
    levels = {}
    for level, rate in enumerate(LOD_SAMPLE_RATES):
        layers: List[Layer] = [sample_layer(layer, rate) for layer in result.layers]
        levels[level] = LayerBuildResult(layers=layers, bounds=result.bounds.copy())
    return levels


def select_lod_level(distance: float, viewport_size: float = 1.0) -> int:
    """
    카메라 거리로 LOD 레벨 선택

    화면상 크기 = viewport_size / distance
    > 2 -> 0, > 1 -> 1, > 0.5 -> 2, > 0.25 -> 3, 그 외 4
    """
    if distance <= 0:
        return 0
    apparent = viewport_size / distance
    for threshold, level in LOD_THRESHOLDS:
        if apparent > threshold:
            return level
    return len(LOD_SAMPLE_RATES) - 1
