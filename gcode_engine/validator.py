"""
Constraint Validator - 구조 검증 + 프린터 사양 한계 검사

역할:
1. 구조 검증: 시작/종료 시퀀스, 베드 레벨링, 온도 명령 존재 여부
2. 한계 검사: 빌드 볼륨, 이송 속도, 노즐/베드 최대 온도 (라인 단위, 증분)
3. 리트랙션 휴리스틱: 과도한 빈도/거리 경고

오류(error)가 하나도 없으면 is_valid = True (경고는 막지 않음)
"""
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from .config import EngineConfig, PrinterCapabilityProfile, get_default_config
from .models import ProgramLine, Severity, Statistics, ValidationIssue, ValidationResult
from .motion import AXES, Move

logger = logging.getLogger(__name__)

HOTEND_COMMANDS = ('M104', 'M109')
BED_COMMANDS = ('M140', 'M190')
HEATER_COMMANDS = HOTEND_COMMANDS + BED_COMMANDS
START_COMMANDS = ('G28', 'M82', 'M83')
MOTOR_OFF_COMMANDS = ('M84', 'M18')
LEVELING_COMMANDS = ('G29', 'M420')

START_MARKERS = ('start gcode', 'start of gcode', 'start_gcode', 'start g-code')
END_MARKERS = ('end gcode', 'end of gcode', 'end_gcode', 'end g-code')


def sort_issues(issues: List[ValidationIssue]) -> List[ValidationIssue]:
    """라인 오름차순 (같은 라인은 입력 순서 유지)"""
    return sorted(issues, key=lambda issue: issue.line)


class ConstraintValidator:
    """
    라인 단위 증분 검증기

    feed()는 해당 라인에서 발생한 이슈만 반환하고, finish()는 프로그램 전체에 대한
    구조 검증 결과를 반환한다.
    """

    def __init__(self, profile: PrinterCapabilityProfile, config: Optional[EngineConfig] = None):
        self.profile = profile
        self.config = config or get_default_config()

        self.has_start = False
        self.has_end = False
        self.has_leveling = False
        self.has_temperature = False

        self.last_extrusion_line: Optional[int] = None
        self.last_z_raise_line: Optional[int] = None
        self.error_count = 0

        self._issue_counts: Dict[str, int] = defaultdict(int)
        self._suppressed: Dict[str, int] = defaultdict(int)
        self._suppressed_line: Dict[str, int] = {}

    # ============================================================
    # 라인 단위 검사
    # ============================================================
    def feed(self, line: ProgramLine, move: Optional[Move] = None) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if line.comment:
            self._scan_markers(line.comment.lower())

        cmd = line.cmd
        if cmd is None:
            return issues

        if cmd in START_COMMANDS:
            self.has_start = True
        elif cmd in MOTOR_OFF_COMMANDS:
            self.has_end = True
        elif cmd in LEVELING_COMMANDS:
            self.has_leveling = True
        elif cmd in HEATER_COMMANDS:
            self._check_temperature(line, issues)

        if move is not None:
            self._track_move(move)
            if move.valid:
                self._check_build_volume(line, move, issues)
            if move.feedrate is not None:
                self._check_feedrate(line, move, issues)

        return self._admit(issues)

    def _scan_markers(self, comment: str):
        if any(marker in comment for marker in START_MARKERS):
            self.has_start = True
        if any(marker in comment for marker in END_MARKERS):
            self.has_end = True

    def _track_move(self, move: Move):
        if not move.valid:
            return
        if move.e_delta > 0:
            self.last_extrusion_line = move.line
        start, end = move.start, move.end
        if end.z > start.z and end.x == start.x and end.y == start.y:
            self.last_z_raise_line = move.line

    def _check_temperature(self, line: ProgramLine, issues: List[ValidationIssue]):
        self.has_temperature = True
        temp = line.get('s')
        if temp is None:
            return

        if temp > 0:
            self.has_start = True
        else:
            # 히터 끄기 = 종료 시퀀스
            self.has_end = True

        if line.cmd in HOTEND_COMMANDS:
            limit = self.profile.max_hotend_temp
            if temp > limit:
                issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line=line.index,
                    message=f"Hotend temperature {temp:g}°C exceeds maximum {limit:g}°C",
                    command=line.raw.strip(),
                    code="hotend_temp",
                ))
        else:
            limit = self.profile.max_bed_temp
            if temp > limit:
                issues.append(ValidationIssue(
                    severity=Severity.ERROR,
                    line=line.index,
                    message=f"Bed temperature {temp:g}°C exceeds maximum {limit:g}°C",
                    command=line.raw.strip(),
                    code="bed_temp",
                ))

    def _check_build_volume(self, line: ProgramLine, move: Move, issues: List[ValidationIssue]):
        bed = self.profile.bed_size
        exceeded = [
            axis.upper() for axis in AXES
            if abs(getattr(move.end, axis)) > getattr(bed, axis)
        ]
        if exceeded:
            issues.append(ValidationIssue(
                severity=Severity.ERROR,
                line=line.index,
                message=f"Position exceeds build volume on {'/'.join(exceeded)} axis",
                command=line.raw.strip(),
                code="build_volume",
            ))

    def _check_feedrate(self, line: ProgramLine, move: Move, issues: List[ValidationIssue]):
        """
        F(mm/min)를 축별 성분 속도(mm/s)로 나눠 M203 기준 최대값과 비교

        이동 없는 F 단독 라인은 가장 빠른 축 한계와 비교
        """
        limits = self.profile.max_feedrate.as_dict()
        speed = move.feedrate / 60.0
        exceeded = []

        if not move.valid or not move.has_motion:
            if speed > max(limits.values()):
                exceeded.append("ALL")
        elif move.distance > 0:
            start, end = move.start, move.end
            for axis in AXES:
                component = speed * abs(getattr(end, axis) - getattr(start, axis)) / move.distance
                if component > limits[axis]:
                    exceeded.append(axis.upper())
            if speed * abs(move.e_delta) / move.distance > limits['e']:
                exceeded.append("E")
        elif speed > limits['e']:
            # E 단독 이동 (리트랙션/프라임)
            exceeded.append("E")

        if exceeded:
            issues.append(ValidationIssue(
                severity=Severity.WARNING,
                line=line.index,
                message=f"Feedrate {move.feedrate:g} mm/min exceeds maximum on {'/'.join(exceeded)} axis",
                command=line.raw.strip(),
                code="feedrate",
            ))

    def _admit(self, issues: List[ValidationIssue]) -> List[ValidationIssue]:
        """검사별 저장 한도 적용 (오류 개수는 전부 카운트)"""
        admitted = []
        for issue in issues:
            if issue.severity == Severity.ERROR:
                self.error_count += 1
            self._issue_counts[issue.code] += 1
            if self._issue_counts[issue.code] > self.config.max_issues_per_check:
                self._suppressed[issue.code] += 1
                self._suppressed_line[issue.code] = issue.line
                continue
            admitted.append(issue)
        return admitted

    # ============================================================
    # 프로그램 종료 시 검사
    # ============================================================
    def finish(self, stats: Statistics, total_lines: int,
               max_retraction_line: Optional[int] = None) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        last_line = max(total_lines, 1)

        # 마지막 압출 이후 Z 상승 = 종료 시퀀스
        if (self.last_extrusion_line is not None and self.last_z_raise_line is not None
                and self.last_z_raise_line > self.last_extrusion_line):
            self.has_end = True

        if not self.has_start:
            issues.append(ValidationIssue(
                severity=Severity.ERROR, line=1, message="Missing start G-code", code="missing_start",
            ))
        if not self.has_end:
            issues.append(ValidationIssue(
                severity=Severity.ERROR, line=last_line, message="Missing end G-code", code="missing_end",
            ))
        if not self.has_leveling:
            issues.append(ValidationIssue(
                severity=Severity.WARNING, line=1,
                message="No bed leveling command found (G29/M420)", code="no_leveling",
            ))
        if not self.has_temperature:
            issues.append(ValidationIssue(
                severity=Severity.WARNING, line=1,
                message="No temperature commands found", code="no_temperature",
            ))

        issues.extend(self._check_retractions(stats, max_retraction_line))

        for code, count in self._suppressed.items():
            issues.append(ValidationIssue(
                severity=Severity.WARNING,
                line=self._suppressed_line[code],
                message=f"{count} more '{code}' issue(s) not listed",
                code="suppressed",
            ))

        self.error_count += sum(1 for i in issues if i.severity == Severity.ERROR)
        logger.debug("Validation finished: %d errors (start=%s, end=%s, leveling=%s)",
                     self.error_count, self.has_start, self.has_end, self.has_leveling)
        return issues

    def _check_retractions(self, stats: Statistics,
                           max_retraction_line: Optional[int]) -> List[ValidationIssue]:
        issues = []
        if stats.retraction_count == 0:
            return issues

        if stats.retraction_count > stats.move_count * self.config.retraction_ratio:
            issues.append(ValidationIssue(
                severity=Severity.WARNING,
                line=1,
                message="High frequency of retractions may cause filament grinding",
                code="retraction_frequency",
            ))
        if stats.max_retraction > self.config.max_retraction_mm:
            issues.append(ValidationIssue(
                severity=Severity.WARNING,
                line=max_retraction_line or 1,
                message=(f"High retraction distance ({stats.max_retraction:.2f}mm) "
                         f"may cause filament grinding"),
                code="retraction_distance",
            ))
        return issues

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0


def build_result(issues: List[ValidationIssue], error_count: Optional[int] = None) -> ValidationResult:
    ordered = sort_issues(issues)
    if error_count is None:
        error_count = sum(1 for i in ordered if i.severity == Severity.ERROR)
    return ValidationResult(is_valid=error_count == 0, issues=ordered)
