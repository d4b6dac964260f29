"""
G-code 분석 API 라우터
main.py에서 include_router로 등록해 사용
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError

from gcode_engine.config import PrinterCapabilityProfile, resolve_profile, resolve_rules
from gcode_engine.engine import analyze, build_layers, parse, validate
from gcode_engine.lod import build_lod_levels
from gcode_engine.safety import check_command_safety, classify_setting, is_dangerous_setting

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api/v1/gcode", tags=["G-code Engine"])

# ============================================================
# Request Models
# ============================================================

class GCodeRequest(BaseModel):
    """G-code 본문 + 프린터 사양 (선택)"""
    gcode_content: str
    printer_profile: Optional[Dict[str, Any]] = None  # {"bedSize": {...}, "maxHotendTemp": 260, ...}


class LayersRequest(BaseModel):
    """레이어 지오메트리 요청"""
    gcode_content: str
    max_points_per_layer: Optional[int] = Field(None, ge=0)
    binary_format: bool = False  # True: Float32Array+Base64, False: JSON 배열
    lod_level: Optional[int] = Field(None, ge=0, le=4)


class SafetyRequest(BaseModel):
    """전송 예정 명령 안전 검사"""
    commands: List[str]
    rules: Optional[Dict[str, Dict[str, Any]]] = None


class SettingSafetyRequest(BaseModel):
    """단일 설정값 배지"""
    key: str
    value: Any = None
    rules: Optional[Dict[str, Dict[str, Any]]] = None


def _profile_or_422(raw: Optional[Dict[str, Any]]) -> PrinterCapabilityProfile:
    try:
        return resolve_profile(raw)
    except ValidationError as e:
        logger.warning(f"[GCode] Invalid printer profile: {e.error_count()} error(s)")
        raise HTTPException(status_code=422, detail=f"Invalid printer profile: {e.errors()[0]['msg']}")


def _rules_or_422(raw: Optional[Dict[str, Dict[str, Any]]]):
    try:
        return resolve_rules(raw)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid safety rules: {e.errors()[0]['msg']}")


# ============================================================
# Endpoints
# ============================================================

@router.get("/")
async def gcode_engine_info():
    """G-code 엔진 정보"""
    return {
        "service": "G-code Analysis Engine",
        "version": "1.0.0",
        "description": "G-code 메타데이터/통계 파싱, 검증, 레이어 지오메트리, 명령 안전 검사",
        "endpoints": {
            "parse": "POST /api/v1/gcode/parse - 메타데이터 + 통계 + 소프트 경고",
            "validate": "POST /api/v1/gcode/validate - 구조/한계 검증",
            "layers": "POST /api/v1/gcode/layers - Z 기준 레이어 (binary_format 지원)",
            "analyze": "POST /api/v1/gcode/analyze - 전체 (파싱 + 검증 + 레이어)",
            "safety": "POST /api/v1/gcode/safety - 전송 예정 명령 안전 검사",
            "setting_safety": "POST /api/v1/gcode/setting-safety - 단일 설정값 배지",
        },
    }


@router.post("/parse")
async def parse_gcode(request: GCodeRequest):
    """
    G-code 파싱

    - gcode_content: G-code 문자열
    - printer_profile: 프린터 사양 (선택, 소프트 경고 기준)
    """
    profile = _profile_or_422(request.printer_profile)
    report = await asyncio.to_thread(parse, request.gcode_content, profile)
    logger.info(f"[GCode] Parsed {report.stats.move_count} moves, {len(report.warnings)} warnings")
    return report.to_dict()


@router.post("/validate")
async def validate_gcode(request: GCodeRequest):
    """구조 + 프린터 한계 검증 ({isValid, issues})"""
    profile = _profile_or_422(request.printer_profile)
    result = await asyncio.to_thread(validate, request.gcode_content, profile)
    logger.info(f"[GCode] Validation: valid={result.is_valid}, issues={len(result.issues)}")
    return result.to_dict()


@router.post("/layers")
async def gcode_layers(request: LayersRequest):
    """
    레이어 지오메트리

    binary_format=True 이면 레이어별 kind 세그먼트를 Float32Array + Base64로 반환
    lod_level 지정 시 travel/retract 세그먼트를 추가로 솎아낸 버전 반환
    """
    result = await asyncio.to_thread(build_layers, request.gcode_content, request.max_points_per_layer)
    if request.lod_level:
        result = build_lod_levels(result)[request.lod_level]

    logger.info(f"[GCode] Layers built: {result.total_layers} layers, {result.total_points} segments")
    return result.to_binary_dict() if request.binary_format else result.to_dict()


@router.post("/analyze")
async def analyze_gcode(request: GCodeRequest):
    """파싱 + 검증 + 레이어를 한 번에"""
    profile = _profile_or_422(request.printer_profile)
    result = await asyncio.to_thread(analyze, request.gcode_content, profile)
    return result.to_dict()


@router.post("/safety")
async def check_safety(request: SafetyRequest):
    """명령별 {command, valid, warnings, errors}"""
    rules = _rules_or_422(request.rules)
    results = check_command_safety(request.commands, rules)
    return {
        "results": [r.to_dict() for r in results],
        "allValid": all(r.valid for r in results),
    }


@router.post("/setting-safety")
async def check_setting_safety(request: SettingSafetyRequest):
    """단일 설정값 안전 등급 (규칙이 없으면 finding = null)"""
    rules = _rules_or_422(request.rules)
    finding = classify_setting(request.key, request.value, rules)
    return {
        "key": request.key,
        "finding": finding.model_dump(mode="json") if finding is not None else None,
        "requiresConfirmation": is_dangerous_setting(request.key),
    }
