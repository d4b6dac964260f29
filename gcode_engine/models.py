from enum import Enum
from typing import List, Optional, Dict, Any, Tuple
from pydantic import BaseModel, Field


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class MoveKind(str, Enum):
    TRAVEL = "travel"
    EXTRUDE = "extrude"
    RETRACT = "retract"


class PositioningMode(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class SafetyLevel(str, Enum):
    SAFE = "safe"
    CAUTION = "caution"
    WARNING = "warning"
    CRITICAL = "critical"


# --- From Tokenizer ---
class ProgramLine(BaseModel):
    index: int                       # 1-based line number
    raw: str                         # Raw line text
    cmd: Optional[str] = None        # G1, M104 ... (None = comment / blank)
    params: List[Tuple[str, float]] = Field(default_factory=list)  # [("x", 10.2), ("e", 42.1)]
    flags: List[str] = Field(default_factory=list)  # 값 없는 축 문자 (G28 X)
    rejected: List[str] = Field(default_factory=list)  # 숫자 변환 실패로 버려진 토큰
    comment: Optional[str] = None

    @property
    def is_comment(self) -> bool:
        return self.cmd is None

    def has(self, letter: str) -> bool:
        return any(key == letter for key, _ in self.params)

    def get(self, letter: str, default: Optional[float] = None) -> Optional[float]:
        """파라미터 값 조회 (같은 문자가 여러 번 나오면 마지막 값)"""
        value = default
        for key, number in self.params:
            if key == letter:
                value = number
        return value


# --- Non-fatal parse events ---
class ParseNotice(BaseModel):
    line: int
    kind: str        # malformed_token, non_finite_coordinate, encoding_fallback ...
    message: str


# --- From Metadata Extractor ---
class TemperatureSummary(BaseModel):
    hotend: Optional[float] = None   # 최대 노즐 목표 온도
    bed: Optional[float] = None      # 최대 베드 목표 온도


class PrintMetadata(BaseModel):
    """각 필드는 독립적으로 None 가능 (없으면 없는 것)"""
    layer_height: Optional[float] = None
    infill_density: Optional[float] = None
    estimated_print_time: Optional[float] = None   # seconds
    print_time_source: Optional[str] = None        # "slicer" | "estimate"
    filament_length: Optional[float] = None        # mm
    material_type: Optional[str] = None
    layer_count: Optional[int] = None
    temperatures: TemperatureSummary = Field(default_factory=TemperatureSummary)
    max_fan_speed: Optional[float] = None
    dimensions: Optional[Dict[str, float]] = None
    slicer: Optional[str] = None
    slicer_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layerHeight": self.layer_height,
            "infillDensity": self.infill_density,
            "estimatedPrintTime": self.estimated_print_time,
            "printTimeSource": self.print_time_source,
            "filamentLength": self.filament_length,
            "materialType": self.material_type,
            "layerCount": self.layer_count,
            "temperatures": {
                "hotend": self.temperatures.hotend,
                "bed": self.temperatures.bed,
            },
            "maxFanSpeed": self.max_fan_speed,
            "dimensions": self.dimensions,
            "slicer": self.slicer,
            "slicerVersion": self.slicer_version,
        }


# --- From Statistics Aggregator ---
class Statistics(BaseModel):
    move_count: int = 0
    extrude_count: int = 0
    retraction_count: int = 0
    total_distance: float = 0.0      # mm, 유효한 연속 좌표 간 유클리드 거리 합
    total_extrusion: float = 0.0     # mm of filament
    max_retraction: float = 0.0      # 단일 리트랙션 최대 길이
    max_feedrate: float = 0.0        # mm/min
    malformed_coordinates: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moveCount": self.move_count,
            "extrudeCount": self.extrude_count,
            "retractionCount": self.retraction_count,
            "totalDistance": round(self.total_distance, 3),
            "totalExtrusion": round(self.total_extrusion, 5),
            "maxRetraction": round(self.max_retraction, 5),
            "maxFeedrate": self.max_feedrate,
            "malformedCoordinates": self.malformed_coordinates,
        }


# --- From Constraint Validator ---
class ValidationIssue(BaseModel):
    severity: Severity
    line: int
    message: str
    command: Optional[str] = None
    code: str = ""   # machine-readable (build_volume, hotend_temp ...)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.severity.value,
            "line": self.line,
            "message": self.message,
            "command": self.command or "",
            "code": self.code,
        }


class ValidationResult(BaseModel):
    is_valid: bool
    issues: List[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "issues": [i.to_dict() for i in self.issues],
        }


# --- parse() entry point ---
class ParseReport(BaseModel):
    metadata: PrintMetadata
    stats: Statistics
    warnings: List[str] = Field(default_factory=list)
    notices: List[ParseNotice] = Field(default_factory=list)
    notice_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = self.metadata.to_dict()
        data["stats"] = self.stats.to_dict()
        data["warnings"] = list(self.warnings)
        data["notices"] = [n.model_dump() for n in self.notices]
        data["noticeCount"] = self.notice_count
        return data


# --- From Safety Pattern Validator ---
class SafetyFinding(BaseModel):
    setting_class: str       # stepsPerUnit, feedrates, acceleration, pid, zProbeOffset, linearAdvance
    parameter: str           # X, Y, Z, E, P, I, D, K ...
    value: Optional[float]  # 숫자가 아니면 None
    level: SafetyLevel
    message: str


class CommandSafetyResult(BaseModel):
    command: str
    valid: bool = True
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    findings: List[SafetyFinding] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "valid": self.valid,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "findings": [f.model_dump(mode="json") for f in self.findings],
        }
