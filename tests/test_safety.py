"""
Safety Pattern Validator 테스트
"""
import pytest
from pydantic import ValidationError

from gcode_engine.config import DEFAULT_SAFETY_RULES, SafetyRule
from gcode_engine.models import SafetyLevel
from gcode_engine.safety import (
    DANGEROUS_SETTINGS,
    check_command_safety,
    classify_setting,
    classify_value,
    is_dangerous_setting,
)


class TestClassifyValue:
    """안전 등급 구간"""

    @pytest.fixture
    def pid(self):
        return DEFAULT_SAFETY_RULES["pid"]

    @pytest.mark.parametrize("value,level", [
        (50, SafetyLevel.SAFE),
        (5, SafetyLevel.CAUTION),
        (95, SafetyLevel.CAUTION),
        (150, SafetyLevel.WARNING),
        (1000, SafetyLevel.WARNING),
        (1001, SafetyLevel.CRITICAL),
        (-0.5, SafetyLevel.CRITICAL),
    ])
    def test_pid_band(self, pid, value, level):
        assert classify_value(value, pid)[0] == level

    def test_negative_band(self):
        """음수 하한: 10배 바깥까지 warning"""
        rule = DEFAULT_SAFETY_RULES["zProbeOffset"]
        assert classify_value(-2.0, rule)[0] == SafetyLevel.SAFE
        assert classify_value(-20.0, rule)[0] == SafetyLevel.WARNING
        assert classify_value(-150.0, rule)[0] == SafetyLevel.CRITICAL

    def test_steps_lower_extreme(self):
        rule = DEFAULT_SAFETY_RULES["stepsPerUnit"]
        assert classify_value(0.5, rule)[0] == SafetyLevel.WARNING
        assert classify_value(0.05, rule)[0] == SafetyLevel.CRITICAL

    def test_rule_band_validated(self):
        with pytest.raises(ValidationError):
            SafetyRule(min=10, max=1)


class TestCheckCommandSafety:
    """전송 예정 명령 검사"""

    def test_pid_extreme_invalid(self):
        [result] = check_command_safety(["M301 P5000"])
        assert result.valid is False
        assert result.errors
        assert "pid P value 5000 is critically dangerous" in result.errors[0]

    def test_safe_command(self):
        [result] = check_command_safety(["M92 X80 Y80 Z400 E93"])
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []
        assert [f.parameter for f in result.findings] == ["X", "Y", "Z", "E"]

    def test_warning_keeps_valid(self):
        [result] = check_command_safety(["M203 X20000"])
        assert result.valid is True
        assert result.warnings == ["feedrates X value 20000 is outside safe range"]

    def test_invalid_syntax(self):
        [result] = check_command_safety(["HELLO"])
        assert result.valid is False
        assert result.errors == ["Invalid G-code format"]

    def test_lowercase_accepted(self):
        [result] = check_command_safety(["m301 p5000"])
        assert result.valid is False

    def test_signed_and_decimal_values(self):
        [result] = check_command_safety(["M851 Z-1.25"])
        assert result.valid is True
        assert result.findings[0].value == -1.25

    @pytest.mark.parametrize("command", ["M112", "M502", "M999"])
    def test_always_warned(self, command):
        [result] = check_command_safety([command])
        assert result.valid is True
        assert len(result.warnings) == 1

    def test_supplemented_families(self):
        results = check_command_safety(["M204 P200000", "M304 P500", "M900 K0.05", "M201 X500"])
        assert [r.valid for r in results] == [False, True, True, True]
        assert results[1].warnings
        assert results[2].findings[0].setting_class == "linearAdvance"

    def test_custom_rules(self):
        rules = {"pid": {"min": 0, "max": 10}}
        [result] = check_command_safety(["M301 P200"], rules)
        assert result.valid is False

    def test_order_preserved(self):
        commands = ["G28", "M301 P5000", "M84"]
        results = check_command_safety(commands)
        assert [r.command for r in results] == commands

    def test_to_dict(self):
        [result] = check_command_safety(["M301 P5000"])
        data = result.to_dict()
        assert set(["command", "valid", "warnings", "errors"]) <= set(data)
        assert data["findings"][0]["level"] == "critical"


class TestClassifySetting:
    """설정 키 배지"""

    def test_match_by_substring(self):
        finding = classify_setting("pid.hotend.p", 22.2)
        assert finding.setting_class == "pid"
        assert finding.level == SafetyLevel.SAFE

    def test_no_rule(self):
        assert classify_setting("homeOffset.z", 1.0) is None

    def test_empty_value(self):
        assert classify_setting("pid.bed.p", "") is None

    def test_non_numeric_is_critical(self):
        finding = classify_setting("stepsPerUnit.x", "abc")
        assert finding.level == SafetyLevel.CRITICAL
        assert finding.value is None

    def test_string_number(self):
        assert classify_setting("feedrates.z", "5").level == SafetyLevel.CAUTION

    def test_dangerous_settings(self):
        assert "pid.hotend.p" in DANGEROUS_SETTINGS
        assert is_dangerous_setting("homeOffset.z") is True
        assert is_dangerous_setting("fan.speed") is False
