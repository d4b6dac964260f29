from .config import (
    DEFAULT_PROFILE,
    DEFAULT_SAFETY_RULES,
    EngineConfig,
    PrinterCapabilityProfile,
    SafetyRule,
    get_default_config,
)
from .engine import (
    AnalysisResult,
    AnalysisSession,
    PartialResult,
    SessionClosedError,
    analyze,
    build_layers,
    parse,
    validate,
)
from .layers import Layer, LayerBuildResult, Segment
from .lod import build_lod_levels, select_lod_level
from .metadata import SlicerType
from .models import (
    MoveKind,
    PrintMetadata,
    SafetyLevel,
    Severity,
    Statistics,
    ValidationIssue,
    ValidationResult,
)
from .safety import DANGEROUS_SETTINGS, check_command_safety, classify_setting

__all__ = [
    'DEFAULT_PROFILE',
    'DEFAULT_SAFETY_RULES',
    'EngineConfig',
    'PrinterCapabilityProfile',
    'SafetyRule',
    'get_default_config',
    'AnalysisResult',
    'AnalysisSession',
    'PartialResult',
    'SessionClosedError',
    'analyze',
    'build_layers',
    'parse',
    'validate',
    'Layer',
    'LayerBuildResult',
    'Segment',
    'build_lod_levels',
    'select_lod_level',
    'SlicerType',
    'MoveKind',
    'PrintMetadata',
    'SafetyLevel',
    'Severity',
    'Statistics',
    'ValidationIssue',
    'ValidationResult',
    'DANGEROUS_SETTINGS',
    'check_command_safety',
    'classify_setting',
]
