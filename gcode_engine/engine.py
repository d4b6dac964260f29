"""
G-code Analysis Engine
한 번의 패스로 토큰화 -> 모션 추적 -> 메타데이터/통계/검증/레이어를 동시에 처리

사용 예:
    session = AnalysisSession(profile={"maxHotendTemp": 260})
    for chunk in chunks:
        partial = session.feed_text(chunk)
    result = session.finish()

또는 한 번에:
    report = parse(text)
    validation = validate(text, profile)
    layers = build_layers(text, max_points_per_layer=500)
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import EngineConfig, PrinterCapabilityProfile, get_default_config, resolve_profile
from .layers import LayerBuildResult, LayerGeometryBuilder
from .metadata import MetadataExtractor
from .models import (
    ParseNotice,
    ParseReport,
    PrintMetadata,
    Statistics,
    ValidationIssue,
    ValidationResult,
)
from .motion import BoundingBox, MotionState, MotionTracker
from .parser import decode_content, parse_line, split_lines
from .safety import check_command_safety
from .statistics import StatisticsAggregator, estimate_print_time
from .validator import ConstraintValidator, sort_issues

logger = logging.getLogger(__name__)

ProgramInput = Union[str, bytes, bytearray]


class SessionClosedError(RuntimeError):
    """finish() 이후 세션에 다시 입력한 경우"""
    pass


@dataclass
class PartialResult:
    """feed() 한 번의 결과 (현재까지의 상태 스냅샷 + 이번 배치 이슈)"""
    lines_processed: int
    state: MotionState
    bounds: BoundingBox
    stats: Statistics
    issues: List[ValidationIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "linesProcessed": self.lines_processed,
            "state": self.state.to_dict(),
            "bounds": self.bounds.to_dict(fallback=False),
            "stats": self.stats.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class AnalysisResult:
    """세션 최종 결과"""
    metadata: PrintMetadata
    stats: Statistics
    warnings: List[str]
    validation: ValidationResult
    bounds: BoundingBox
    layers: Optional[LayerBuildResult] = None
    notices: List[ParseNotice] = field(default_factory=list)
    notice_count: int = 0
    total_lines: int = 0

    def to_report(self) -> ParseReport:
        return ParseReport(
            metadata=self.metadata,
            stats=self.stats,
            warnings=list(self.warnings),
            notices=list(self.notices),
            notice_count=self.notice_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_report().to_dict()
        data["validation"] = self.validation.to_dict()
        data["bounds"] = self.bounds.to_dict(fallback=True)
        data["layers"] = self.layers.to_dict() if self.layers is not None else None
        data["totalLines"] = self.total_lines
        return data


class AnalysisSession:
    """
    단일 문서 분석 세션 (스트리밍)

    하나의 MotionTracker 결과를 메타데이터/통계/검증/레이어 빌더가 공유한다.
    세션끼리는 상태를 공유하지 않으므로 서로 다른 문서를 병렬로 분석해도 안전하다.

    Args:
        profile: PrinterCapabilityProfile 또는 camelCase dict (None = 기본 프린터)
        config: EngineConfig (None = 기본값)
        build_layers: 레이어 지오메트리 생성 여부
        max_points_per_layer: 레이어당 travel/retract 세그먼트 상한 (None = config 값)
        retain_issues: False면 라인 단위 이슈를 feed() 반환 후 보관하지 않음
    """

    def __init__(
        self,
        profile: Optional[Union[PrinterCapabilityProfile, Dict[str, Any]]] = None,
        config: Optional[EngineConfig] = None,
        build_layers: bool = True,
        max_points_per_layer: Optional[int] = None,
        retain_issues: bool = True,
    ):
        self.profile = resolve_profile(profile)
        self.config = config or get_default_config()
        self.retain_issues = retain_issues

        self.tracker = MotionTracker()
        self.metadata = MetadataExtractor()
        self.aggregator = StatisticsAggregator(z_precision=self.config.z_precision)
        self.validator = ConstraintValidator(self.profile, self.config)

        self.layer_builder: Optional[LayerGeometryBuilder] = None
        if build_layers:
            cap = self.config.max_points_per_layer if max_points_per_layer is None else max_points_per_layer
            self.layer_builder = LayerGeometryBuilder(cap, self.config.z_precision)

        self._issues: List[ValidationIssue] = []
        self._notices: List[ParseNotice] = []
        self._notice_count = 0
        self._line_no = 0
        self._pending = ""
        self._closed = False
        self._binary_flagged = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lines_processed(self) -> int:
        return self._line_no

    # ============================================================
    # 진단 (non-fatal)
    # ============================================================
    def add_notice(self, line: int, kind: str, message: str):
        self._notice_count += 1
        if len(self._notices) < self.config.max_notices:
            self._notices.append(ParseNotice(line=line, kind=kind, message=message))

    def reject_input(self, content: Any):
        """텍스트가 아닌 입력 -> 빈 결과 + invalid_input 진단"""
        logger.warning("Rejected non-text program input of type %s", type(content).__name__)
        self.add_notice(0, "invalid_input", f"Program input must be text or bytes, got {type(content).__name__}")

    # ============================================================
    # 입력
    # ============================================================
    def _ensure_open(self):
        if self._closed:
            raise SessionClosedError("Analysis session already finished")

    def _process(self, raw: str) -> List[ValidationIssue]:
        self._line_no += 1
        index = self._line_no

        if '\x00' in raw:
            if not self._binary_flagged:
                self._binary_flagged = True
                logger.warning("Program contains NUL bytes; parsing best-effort")
                self.add_notice(index, "binary_content", "Program contains NUL bytes (binary content?)")
            raw = raw.replace('\x00', '')

        line = parse_line(raw, index)
        for token in line.rejected:
            self.add_notice(index, "malformed_token", f"Dropped malformed token '{token}'")

        self.metadata.feed(line)
        move = self.tracker.apply(line)
        if move is not None:
            self.aggregator.add(move)
            if not move.valid:
                self.add_notice(index, "non_finite_coordinate", "Non-finite coordinate, move excluded from bounds")
            if self.layer_builder is not None:
                self.layer_builder.add(move)

        return self.validator.feed(line, move)

    def feed(self, lines: Iterable[str]) -> PartialResult:
        """라인 배치 처리"""
        self._ensure_open()
        if isinstance(lines, str):
            lines = split_lines(lines)

        batch: List[ValidationIssue] = []
        for raw in lines:
            batch.extend(self._process(raw.rstrip('\r\n')))

        if self.retain_issues:
            self._issues.extend(batch)
        return self._partial(batch)

    def feed_text(self, chunk: str) -> PartialResult:
        """
        텍스트 청크 처리

        청크 끝의 완성되지 않은 라인은 다음 호출(또는 finish)까지 보류한다.
        """
        self._ensure_open()
        if not isinstance(chunk, str):
            raise TypeError(f"feed_text() expects str, got {type(chunk).__name__}")

        data = self._pending + chunk
        # 청크 경계에 걸친 \r\n
        hold_cr = data.endswith('\r')
        if hold_cr:
            data = data[:-1]
        parts = data.replace('\r\n', '\n').replace('\r', '\n').split('\n')
        self._pending = parts.pop() + ("\r" if hold_cr else "")
        return self.feed(parts)

    def _partial(self, batch: List[ValidationIssue]) -> PartialResult:
        return PartialResult(
            lines_processed=self._line_no,
            state=self.tracker.state.copy(),
            bounds=self.tracker.bounds.copy(),
            stats=self.aggregator.snapshot(),
            issues=batch,
        )

    # ============================================================
    # 종료
    # ============================================================
    def finish(self) -> AnalysisResult:
        """남은 라인 처리 + 프로그램 단위 검사 + 결과 생성"""
        self._ensure_open()

        pending = self._pending.rstrip('\r')
        self._pending = ""
        if pending:
            issues = self._process(pending)
            if self.retain_issues:
                self._issues.extend(issues)
        self._closed = True

        stats = self.aggregator.snapshot()
        bounds = self.tracker.bounds.copy()

        end_issues = self.validator.finish(stats, self._line_no, self.aggregator.max_retraction_line)
        validation = ValidationResult(
            is_valid=self.validator.is_valid,
            issues=sort_issues(self._issues + end_issues),
        )

        fallback_layers = self.aggregator.extrusion_layer_count or None
        metadata = self.metadata.build(layer_count=fallback_layers, dimensions=bounds.size())
        if metadata.estimated_print_time is None and stats.move_count > 0:
            metadata.estimated_print_time = estimate_print_time(stats, metadata.layer_count, self.config)
            metadata.print_time_source = "estimate"

        warnings = self._soft_warnings(metadata, stats)

        layers = None
        if self.layer_builder is not None:
            layers = self.layer_builder.build(bounds)

        if self._notice_count:
            logger.info("Parsed %d lines with %d non-fatal notices", self._line_no, self._notice_count)
        logger.debug("Analysis finished: %d lines, %d moves, valid=%s",
                     self._line_no, stats.move_count, validation.is_valid)

        return AnalysisResult(
            metadata=metadata,
            stats=stats,
            warnings=warnings,
            validation=validation,
            bounds=bounds,
            layers=layers,
            notices=list(self._notices),
            notice_count=self._notice_count,
            total_lines=self._line_no,
        )

    def _soft_warnings(self, metadata: PrintMetadata, stats: Statistics) -> List[str]:
        """parse() 결과에 포함되는 소프트 경고 (검증 결과와 별개)"""
        warnings = []
        profile = self.profile

        dims = metadata.dimensions
        if dims and (dims["x"] > profile.bed_size.x or dims["y"] > profile.bed_size.y
                     or dims["z"] > profile.bed_size.z):
            warnings.append("Model exceeds printer build volume")

        temps = metadata.temperatures
        if temps.hotend is not None and temps.hotend > profile.max_hotend_temp:
            warnings.append("Hotend temperature exceeds printer maximum")
        if temps.bed is not None and temps.bed > profile.max_bed_temp:
            warnings.append("Bed temperature exceeds printer maximum")

        if metadata.layer_height is not None and metadata.layer_height > self.config.max_layer_height:
            warnings.append("Layer height may be too large for standard nozzle")

        if stats.retraction_count > stats.move_count * self.config.parse_retraction_ratio:
            warnings.append("High number of retractions - may cause filament grinding")

        return warnings


# ============================================================
# 단일 호출 진입점 (호출마다 새 세션)
# ============================================================
def _run(content: Any, session: AnalysisSession) -> AnalysisResult:
    if isinstance(content, (bytes, bytearray)):
        decoded = decode_content(bytes(content))
        if decoded.is_fallback:
            session.add_notice(0, "encoding_fallback", f"Decoded program as {decoded.encoding}")
        content = decoded.text

    if isinstance(content, str):
        session.feed_text(content)
    else:
        session.reject_input(content)
    return session.finish()


def analyze(content: ProgramInput, profile=None, config: Optional[EngineConfig] = None,
            build_layers: bool = True, max_points_per_layer: Optional[int] = None) -> AnalysisResult:
    """메타데이터 + 통계 + 검증 + 레이어 전체"""
    session = AnalysisSession(profile=profile, config=config, build_layers=build_layers,
                              max_points_per_layer=max_points_per_layer)
    return _run(content, session)


def parse(content: ProgramInput, profile=None, config: Optional[EngineConfig] = None) -> ParseReport:
    """메타데이터 + 통계 + 소프트 경고"""
    return analyze(content, profile=profile, config=config, build_layers=False).to_report()


def validate(content: ProgramInput, profile=None, config: Optional[EngineConfig] = None) -> ValidationResult:
    """구조/한계 검증 ({isValid, issues})"""
    return analyze(content, profile=profile, config=config, build_layers=False).validation


def build_layers(content: ProgramInput, max_points_per_layer: Optional[int] = None,
                 config: Optional[EngineConfig] = None) -> LayerBuildResult:
    """Z 기준 레이어 + 경계 + {totalLayers, totalPoints}"""
    return analyze(content, config=config, build_layers=True,
                   max_points_per_layer=max_points_per_layer).layers


__all__ = [
    "AnalysisResult",
    "AnalysisSession",
    "PartialResult",
    "SessionClosedError",
    "analyze",
    "build_layers",
    "check_command_safety",
    "parse",
    "validate",
]
