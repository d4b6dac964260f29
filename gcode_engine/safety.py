"""
Safety Pattern Validator
프린터로 보내기 직전의 개별 명령(펌웨어 설정 변경)을 안전 범위 테이블과 비교

결과는 권고용: 호출자가 error/warning 명령 전송 전에 확인을 요구할지 결정한다.
"""
import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Tuple

from .config import SafetyRule, resolve_rules
from .models import CommandSafetyResult, SafetyFinding, SafetyLevel

logger = logging.getLogger(__name__)

# 명령 -> (설정 종류, 검사할 파라미터)
DANGEROUS_COMMANDS: Dict[str, Tuple[str, str]] = {
    "M92": ("stepsPerUnit", "XYZE"),
    "M203": ("feedrates", "XYZE"),
    "M201": ("acceleration", "XYZE"),
    "M204": ("acceleration", "PRTS"),
    "M301": ("pid", "PID"),
    "M304": ("pid", "PID"),
    "M851": ("zProbeOffset", "Z"),
    "M900": ("linearAdvance", "K"),
}

# 값과 무관하게 경고하는 명령
WARNING_COMMANDS: Dict[str, str] = {
    "M112": "M112 is an emergency stop command",
    "M502": "M502 resets all settings to defaults",
    "M999": "M999 resets the printer",
}

# 변경 전 추가 확인이 필요한 설정 경로
DANGEROUS_SETTINGS = (
    'pid.hotend.p',
    'pid.hotend.i',
    'pid.hotend.d',
    'pid.bed.p',
    'pid.bed.i',
    'pid.bed.d',
    'stepsPerUnit.x',
    'stepsPerUnit.y',
    'stepsPerUnit.z',
    'stepsPerUnit.e',
    'zProbeOffset.z',
    'homeOffset.z',
)

_SYNTAX = re.compile(r'^[GM]\d+', re.IGNORECASE)
_MNEMONIC = re.compile(r'^([GM])0*(\d+)', re.IGNORECASE)
_PARAM = re.compile(r'([A-Z])\s*([-+]?(?:\d+\.?\d*|\.\d+))', re.IGNORECASE)


def classify_value(value: float, rule: SafetyRule) -> Tuple[SafetyLevel, str]:
    """
    값의 안전 등급

    - 0.1x min ~ 10x max 밖 -> critical
    - [min, max] 밖 -> warning
    - 범위 안이지만 양 끝 10% 이내 -> caution
    - 그 외 -> safe
    """
    if value < rule.extreme_min or value > rule.extreme_max:
        return SafetyLevel.CRITICAL, rule.critical
    if value < rule.min or value > rule.max:
        return SafetyLevel.WARNING, rule.warning

    span = rule.max - rule.min
    if span > 0:
        normalized = (value - rule.min) / span
        if normalized < 0.1 or normalized > 0.9:
            return SafetyLevel.CAUTION, "Value is at extreme end of safe range"
    return SafetyLevel.SAFE, "Value is within safe range"


def find_rule(key: str, rules: Dict[str, SafetyRule]) -> Optional[Tuple[str, SafetyRule]]:
    """설정 키에 포함된 첫 번째 규칙 종류 ("pid.hotend.p" -> pid)"""
    for setting_class, rule in rules.items():
        if setting_class in key:
            return setting_class, rule
    return None


def classify_setting(key: str, value: object,
                     rules: Optional[Dict[str, object]] = None) -> Optional[SafetyFinding]:
    """
    단일 설정값 배지 (safe / caution / warning / critical)

    Returns:
        SafetyFinding, 해당하는 규칙이 없거나 값이 비어 있으면 None
    """
    if value is None or value == "":
        return None

    matched = find_rule(key, resolve_rules(rules))
    if matched is None:
        return None
    setting_class, rule = matched

    number = _to_float(value)
    if number is None:
        return SafetyFinding(
            setting_class=setting_class,
            parameter=key,
            value=None,
            level=SafetyLevel.CRITICAL,
            message="Invalid numeric value",
        )

    level, message = classify_value(number, rule)
    return SafetyFinding(
        setting_class=setting_class,
        parameter=key,
        value=number,
        level=level,
        message=message,
    )


def _to_float(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def is_dangerous_setting(key: str) -> bool:
    return key in DANGEROUS_SETTINGS


def _mnemonic(command: str) -> Optional[str]:
    match = _MNEMONIC.match(command)
    if not match:
        return None
    return f"{match.group(1).upper()}{int(match.group(2))}"


def check_command(command: str, rules: Dict[str, SafetyRule]) -> CommandSafetyResult:
    """명령 하나 검사"""
    text = command.split(';', 1)[0].strip()
    result = CommandSafetyResult(command=command)

    mnemonic = _mnemonic(text)
    if mnemonic in WARNING_COMMANDS:
        result.warnings.append(WARNING_COMMANDS[mnemonic])

    if not _SYNTAX.match(text):
        result.valid = False
        result.errors.append("Invalid G-code format")
        return result

    family = DANGEROUS_COMMANDS.get(mnemonic)
    if family is None:
        return result
    setting_class, parameters = family
    rule = rules.get(setting_class)
    if rule is None:
        return result

    # 명령어 자체("M92")를 건너뛰고 파라미터만
    for letter, raw_value in _PARAM.findall(text[_MNEMONIC.match(text).end():]):
        letter = letter.upper()
        if letter not in parameters:
            continue
        value = float(raw_value)
        level, message = classify_value(value, rule)
        result.findings.append(SafetyFinding(
            setting_class=setting_class,
            parameter=letter,
            value=value,
            level=level,
            message=message,
        ))
        if level == SafetyLevel.CRITICAL:
            result.valid = False
            result.errors.append(f"{setting_class} {letter} value {value:g} is critically dangerous")
        elif level == SafetyLevel.WARNING:
            result.warnings.append(f"{setting_class} {letter} value {value:g} is outside safe range")

    return result


def check_command_safety(commands: Iterable[str],
                         rules: Optional[Dict[str, object]] = None) -> List[CommandSafetyResult]:
    """
    전송 예정 명령 목록 검사 (입력 순서 유지)

    Args:
        commands: ["M92 X80 Y80", "M301 P22.2 I1.08 D114", ...]
        rules: 설정 종류 -> SafetyRule (또는 {"min":..,"max":..} dict). None = 기본 테이블
    """
    resolved = resolve_rules(rules)
    results = [check_command(command, resolved) for command in commands]

    invalid = sum(1 for r in results if not r.valid)
    if invalid:
        logger.info("Safety check flagged %d of %d commands as invalid", invalid, len(results))
    return results
