"""
Metadata Extractor
슬라이서 주석 규칙(헤더/푸터)에서 출력 시간, 레이어 높이, 인필, 필라멘트 길이, 재료 추출
다양한 슬라이서 지원: Cura, PrusaSlicer, OrcaSlicer, BambuStudio, Simplify3D
"""
import logging
import re
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .models import ProgramLine, PrintMetadata, TemperatureSummary

logger = logging.getLogger(__name__)


class SlicerType(str, Enum):
    """지원되는 슬라이서 타입"""
    UNKNOWN = "unknown"
    ORCASLICER = "orcaslicer"
    BAMBUSTUDIO = "bambustudio"
    CURA = "cura"
    PRUSASLICER = "prusaslicer"
    SIMPLIFY3D = "simplify3d"


# 필드별 주석 접두어 (슬라이서 방언별). 먼저 매칭된 값이 이긴다.
SLICER_COMMENTS: Dict[str, Dict[str, str]] = {
    "CURA": {
        "LAYER_HEIGHT": ";Layer height: ",
        "INFILL": ";Infill Density: ",
        "PRINT_TIME": ";TIME:",
        "FILAMENT_LENGTH": ";Filament used: ",
        "MATERIAL_TYPE": ";MATERIAL:",
    },
    "PRUSASLICER": {
        "LAYER_HEIGHT": "; layer_height = ",
        "INFILL": "; fill_density = ",
        "PRINT_TIME": "; estimated printing time",
        "FILAMENT_LENGTH": "; filament used [mm] = ",
        "MATERIAL_TYPE": "; filament_type = ",
    },
}

MATERIALS = ('PLA', 'PETG', 'ABS', 'TPU', 'NYLON')
UNKNOWN_MATERIAL = 'Unknown'

# 레이어 변경 표시 (;LAYER:N, ;LAYER_CHANGE, ; CHANGE_LAYER, ; layer N)
LAYER_CHANGE_PATTERNS = (
    re.compile(r'^;LAYER:-?\d+', re.IGNORECASE),
    re.compile(r'^;\s*LAYER_CHANGE\b', re.IGNORECASE),
    re.compile(r'^;\s*CHANGE_LAYER\b', re.IGNORECASE),
    re.compile(r'^;\s*layer\s+\d+\b', re.IGNORECASE),
)

LAYER_COUNT_PATTERNS = (
    re.compile(r';LAYER_COUNT:(\d+)', re.IGNORECASE),
    re.compile(r'; total layer number:\s*(\d+)', re.IGNORECASE),
)

SLICER_PATTERNS: Dict[SlicerType, List[re.Pattern]] = {
    SlicerType.ORCASLICER: [
        re.compile(r'generated by OrcaSlicer\s*([\d.]+)?', re.IGNORECASE),
    ],
    SlicerType.BAMBUSTUDIO: [
        re.compile(r'BambuStudio\s*([\d.]+)?', re.IGNORECASE),
    ],
    SlicerType.CURA: [
        re.compile(r'Generated with Cura_SteamEngine\s*([\d.]+)?', re.IGNORECASE),
        re.compile(r'Ultimaker Cura', re.IGNORECASE),
    ],
    SlicerType.PRUSASLICER: [
        re.compile(r'generated by PrusaSlicer\s*([\d.]+)?', re.IGNORECASE),
    ],
    SlicerType.SIMPLIFY3D: [
        re.compile(r'Simplify3D', re.IGNORECASE),
    ],
}

_NUMBER = re.compile(r'[-+]?\d*\.?\d+')
SLICER_DETECT_LINES = 100


def extract_numeric_value(text: str) -> Optional[float]:
    match = _NUMBER.search(text)
    return float(match.group(0)) if match else None


def parse_time_to_seconds(time_str: str) -> Optional[int]:
    """
    시간 문자열을 초로 변환

    "6666" / "1d 2h 3m 4s" / "2h10m43s" / "01:02:03" 형식 지원
    """
    time_str = time_str.strip()
    if not time_str:
        return None

    # 순수 숫자 (초)
    try:
        return int(float(time_str))
    except ValueError:
        pass

    total = 0
    found = False
    for pattern, multiplier in ((r'(\d+)\s*d', 86400), (r'(\d+)\s*h', 3600),
                                (r'(\d+)\s*m(?!s)', 60), (r'(\d+)\s*s', 1)):
        match = re.search(pattern, time_str, re.IGNORECASE)
        if match:
            total += int(match.group(1)) * multiplier
            found = True
    if found:
        return total

    # "HH:MM:SS" 형식
    parts = time_str.split(':')
    try:
        if len(parts) == 3:
            return int(parts[0]) * 3600 + int(parts[1]) * 60 + int(parts[2])
        if len(parts) == 2:
            return int(parts[0]) * 60 + int(parts[1])
    except ValueError:
        pass
    return None


def extract_print_time(line: str, prefix: str) -> Optional[int]:
    rest = line[len(prefix):]
    if prefix.upper().endswith('TIME:'):
        # Cura: 초 단위
        value = extract_numeric_value(rest)
        return int(value) if value is not None else None
    # PrusaSlicer: "; estimated printing time (normal mode) = 1h 2m 3s"
    if '=' in rest:
        rest = rest.split('=', 1)[1]
    return parse_time_to_seconds(rest)


def extract_filament_length(line: str, prefix: str) -> Optional[float]:
    rest = line[len(prefix):].strip()
    value = extract_numeric_value(rest)
    if value is None:
        return None
    # Cura: "1.23456m" -> mm
    match = re.match(r'[-+]?\d*\.?\d+\s*(mm|m)\b', rest)
    if match and match.group(1) == 'm':
        value *= 1000.0
    return value


def extract_material_type(line: str) -> str:
    upper = line.upper()
    for material in MATERIALS:
        if material in upper:
            return material
    return UNKNOWN_MATERIAL


class MetadataExtractor:
    """
    주석 기반 메타데이터 추출기

    모션 상태와 무관하게 모든 라인을 검사한다. 같은 필드의 접두어가 다시 나와도
    이미 찾은 값은 덮어쓰지 않는다 (first-wins).
    """

    def __init__(self):
        self.layer_height: Optional[float] = None
        self.infill_density: Optional[float] = None
        self.print_time: Optional[int] = None
        self.filament_length: Optional[float] = None
        self.material_type: Optional[str] = None
        self.layer_changes = 0
        self.layer_count_hint: Optional[int] = None
        self.max_hotend_temp: Optional[float] = None
        self.max_bed_temp: Optional[float] = None
        self.max_fan_speed: Optional[float] = None
        self.slicer_type = SlicerType.UNKNOWN
        self.slicer_version: Optional[str] = None
        self._lines_seen = 0

    def feed(self, line: ProgramLine):
        self._lines_seen += 1
        text = line.raw.strip()

        if line.cmd is None:
            if text.startswith(';'):
                self._scan_comment(text)
        else:
            self._scan_command(line)

    def _scan_comment(self, text: str):
        if self._lines_seen <= SLICER_DETECT_LINES and self.slicer_type == SlicerType.UNKNOWN:
            self._detect_slicer(text)

        lowered = text.lower()
        for dialect in SLICER_COMMENTS.values():
            prefix = dialect["LAYER_HEIGHT"]
            if self.layer_height is None and lowered.startswith(prefix.lower()):
                self.layer_height = extract_numeric_value(text[len(prefix):])

            prefix = dialect["INFILL"]
            if self.infill_density is None and lowered.startswith(prefix.lower()):
                self.infill_density = extract_numeric_value(text[len(prefix):])

            prefix = dialect["PRINT_TIME"]
            if self.print_time is None and lowered.startswith(prefix.lower()):
                self.print_time = extract_print_time(text, prefix)

            prefix = dialect["FILAMENT_LENGTH"]
            if self.filament_length is None and lowered.startswith(prefix.lower()):
                self.filament_length = extract_filament_length(text, prefix)

            prefix = dialect["MATERIAL_TYPE"]
            if self.material_type is None and lowered.startswith(prefix.lower()):
                self.material_type = extract_material_type(text[len(prefix):])

        if any(p.search(text) for p in LAYER_CHANGE_PATTERNS):
            self.layer_changes += 1

        if self.layer_count_hint is None:
            for pattern in LAYER_COUNT_PATTERNS:
                match = pattern.search(text)
                if match:
                    self.layer_count_hint = int(match.group(1))
                    break

    def _scan_command(self, line: ProgramLine):
        cmd = line.cmd
        if cmd in ('M104', 'M109'):
            temp = line.get('s')
            if temp is not None:
                self.max_hotend_temp = temp if self.max_hotend_temp is None else max(self.max_hotend_temp, temp)
        elif cmd in ('M140', 'M190'):
            temp = line.get('s')
            if temp is not None:
                self.max_bed_temp = temp if self.max_bed_temp is None else max(self.max_bed_temp, temp)
        elif cmd == 'M106':
            speed = line.get('s')
            if speed is not None:
                self.max_fan_speed = speed if self.max_fan_speed is None else max(self.max_fan_speed, speed)

    def _detect_slicer(self, text: str):
        for slicer_type, patterns in SLICER_PATTERNS.items():
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    self.slicer_type = slicer_type
                    self.slicer_version = match.group(1) if match.groups() else None
                    return

    def layer_count(self) -> Optional[int]:
        if self.layer_changes > 0:
            return self.layer_changes
        return self.layer_count_hint

    def build(self, layer_count: Optional[int] = None,
              dimensions: Optional[Dict[str, float]] = None) -> PrintMetadata:
        """
        최종 메타데이터 구성

        Args:
            layer_count: 주석에서 못 찾았을 때 사용할 레이어 수 (Z 기반)
            dimensions: 바운딩 박스 크기
        """
        return PrintMetadata(
            layer_height=self.layer_height,
            infill_density=self.infill_density,
            estimated_print_time=self.print_time,
            print_time_source="slicer" if self.print_time is not None else None,
            filament_length=self.filament_length,
            material_type=self.material_type,
            layer_count=self.layer_count() if self.layer_count() is not None else layer_count,
            temperatures=TemperatureSummary(hotend=self.max_hotend_temp, bed=self.max_bed_temp),
            max_fan_speed=self.max_fan_speed,
            dimensions=dimensions,
            slicer=self.slicer_type.value,
            slicer_version=self.slicer_version,
        )


def extract_metadata(lines: List[ProgramLine]) -> Tuple[PrintMetadata, MetadataExtractor]:
    """주석 전용 메타데이터 추출 (모션 추적 없이)"""
    extractor = MetadataExtractor()
    for line in lines:
        extractor.feed(line)
    return extractor.build(), extractor
