"""
G-code Engine Configuration
엔진 튜닝 값과 프린터 사양(PrinterCapabilityProfile) 정의
"""
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class EngineConfig(BaseModel):
    """엔진 설정"""
    max_points_per_layer: int = Field(1000, ge=0)  # 레이어당 최대 travel/retract 세그먼트 수
    z_precision: int = Field(3, ge=0, le=6)        # 레이어 Z 키 반올림 자릿수
    max_notices: int = Field(200, ge=0)            # 저장할 파싱 경고 최대 개수 (카운트는 전부)
    max_issues_per_check: int = Field(500, ge=1)   # 라인 단위 검사별 저장할 이슈 최대 개수

    # 리트랙션 휴리스틱
    retraction_ratio: float = 0.10
    max_retraction_mm: float = 5.0

    # parse() 소프트 경고 기준
    parse_retraction_ratio: float = 0.20
    max_layer_height: float = 0.32  # 0.4mm 노즐 기준 일반적인 최대 레이어 높이

    # 출력 시간 추정 상수
    average_speed_mms: float = Field(60.0, gt=0)
    retraction_time_s: float = 1.0
    layer_change_time_s: float = 2.0


class AxisSize(BaseModel):
    """축별 크기 (mm)"""
    model_config = ConfigDict(frozen=True)

    x: float = 220.0
    y: float = 220.0
    z: float = 250.0


class AxisFeedrate(BaseModel):
    """축별 최대 이송 속도 (mm/s, M203 기준)"""
    model_config = ConfigDict(frozen=True)

    x: float = 500.0
    y: float = 500.0
    z: float = 10.0
    e: float = 25.0

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "e": self.e}


class PrinterCapabilityProfile(BaseModel):
    """
    프린터 사양 - 호출자 소유, 검증 호출 동안 변경 불가

    camelCase 키(bedSize, maxHotendTemp ...)로도 생성 가능
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    bed_size: AxisSize = Field(default_factory=AxisSize, alias="bedSize")
    max_hotend_temp: float = Field(260.0, alias="maxHotendTemp")
    max_bed_temp: float = Field(120.0, alias="maxBedTemp")
    max_feedrate: AxisFeedrate = Field(default_factory=AxisFeedrate, alias="maxFeedrate")


# 기본 프린터 사양 (프로필이 없을 때 사용)
DEFAULT_PROFILE = PrinterCapabilityProfile()


def get_default_config() -> EngineConfig:
    return EngineConfig()


def resolve_profile(profile: Optional[object]) -> PrinterCapabilityProfile:
    """dict / 모델 / None 을 PrinterCapabilityProfile로 정규화"""
    if profile is None:
        return DEFAULT_PROFILE
    if isinstance(profile, PrinterCapabilityProfile):
        return profile
    return PrinterCapabilityProfile.model_validate(profile)


class SafetyRule(BaseModel):
    """설정 종류별 안전 범위 [min, max] (0.1x / 10x 밖은 critical)"""
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    warning: str = "Value is outside safe range"
    critical: str = "Value is critically dangerous"

    @model_validator(mode="after")
    def _check_band(self):
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must be <= max ({self.max})")
        return self

    @property
    def extreme_min(self) -> float:
        # 음수 하한은 10배 쪽이 더 바깥
        return self.min * 0.1 if self.min >= 0 else self.min * 10

    @property
    def extreme_max(self) -> float:
        return self.max * 10 if self.max >= 0 else self.max * 0.1


DEFAULT_SAFETY_RULES: Dict[str, SafetyRule] = {
    "stepsPerUnit": SafetyRule(
        min=1, max=1000,
        warning="Values outside normal range may cause dimensional inaccuracy",
        critical="Extreme values can damage the printer",
    ),
    "feedrates": SafetyRule(
        min=1, max=10000,
        warning="High feedrates may cause skipped steps",
        critical="Excessive feedrates can damage motors",
    ),
    "acceleration": SafetyRule(
        min=1, max=10000,
        warning="High acceleration may cause print quality issues",
        critical="Excessive acceleration can damage the printer",
    ),
    "pid": SafetyRule(
        min=0, max=100,
        warning="Incorrect PID values can cause temperature instability",
        critical="Extreme PID values can cause thermal runaway",
    ),
    "zProbeOffset": SafetyRule(
        min=-10, max=10,
        warning="Incorrect Z probe offset affects first layer height",
        critical="Extreme Z probe offset can cause nozzle crashes",
    ),
    "linearAdvance": SafetyRule(
        min=0, max=10,
        warning="High linear advance values may cause extrusion issues",
        critical="Extreme linear advance can damage the extruder",
    ),
}


def resolve_rules(rules: Optional[Dict[str, object]]) -> Dict[str, SafetyRule]:
    """dict 규칙 테이블을 SafetyRule로 정규화 (None = 기본 테이블)"""
    if rules is None:
        return DEFAULT_SAFETY_RULES
    return {
        key: rule if isinstance(rule, SafetyRule) else SafetyRule.model_validate(rule)
        for key, rule in rules.items()
    }
