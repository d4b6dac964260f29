"""
Metadata Extractor 테스트
"""
import pytest

from gcode_engine.metadata import (
    MetadataExtractor,
    SlicerType,
    extract_metadata,
    parse_time_to_seconds,
)
from gcode_engine.parser import parse_text

CURA_HEADER = """;FLAVOR:Marlin
;TIME:6666
;Filament used: 1.5m
;Layer height: 0.2
;MATERIAL:PLA
;Generated with Cura_SteamEngine 5.4.0
;LAYER_COUNT:2
;LAYER:0
G1 X1 E1
;LAYER:1
G1 X2 E2
"""

PRUSA_FOOTER = """; generated by PrusaSlicer 2.6.0
G1 X1 E1
; estimated printing time (normal mode) = 1h 2m 3s
; filament used [mm] = 1234.5
; layer_height = 0.15
; fill_density = 20%
; filament_type = PETG
"""


class TestParseTime:
    """시간 문자열 변환"""

    @pytest.mark.parametrize("text,expected", [
        ("6666", 6666),
        ("1h 2m 3s", 3723),
        ("2h10m43s", 7843),
        ("1d 1h", 90000),
        ("01:02:03", 3723),
        ("5m", 300),
    ])
    def test_formats(self, text, expected):
        assert parse_time_to_seconds(text) == expected

    def test_garbage(self):
        assert parse_time_to_seconds("soon") is None
        assert parse_time_to_seconds("") is None


class TestCuraDialect:
    """Cura 주석"""

    def test_fields(self):
        metadata, _ = extract_metadata(parse_text(CURA_HEADER))
        assert metadata.estimated_print_time == 6666
        assert metadata.print_time_source == "slicer"
        assert metadata.filament_length == pytest.approx(1500.0)
        assert metadata.layer_height == 0.2
        assert metadata.material_type == "PLA"
        assert metadata.layer_count == 2
        assert metadata.slicer == SlicerType.CURA.value
        assert metadata.slicer_version == "5.4.0"


class TestPrusaDialect:
    """PrusaSlicer 주석"""

    def test_fields(self):
        metadata, _ = extract_metadata(parse_text(PRUSA_FOOTER))
        assert metadata.estimated_print_time == 3723
        assert metadata.filament_length == pytest.approx(1234.5)
        assert metadata.layer_height == 0.15
        assert metadata.infill_density == 20.0
        assert metadata.material_type == "PETG"
        assert metadata.slicer == "prusaslicer"


class TestExtractionPolicy:
    """first-wins / 재료 / 온도 요약"""

    def test_first_match_wins(self):
        text = ";Layer height: 0.2\n;Layer height: 0.3\n; layer_height = 0.4"
        metadata, _ = extract_metadata(parse_text(text))
        assert metadata.layer_height == 0.2

    def test_unknown_material(self):
        metadata, _ = extract_metadata(parse_text(";MATERIAL:Wood composite"))
        assert metadata.material_type == "Unknown"

    def test_material_case_insensitive(self):
        metadata, _ = extract_metadata(parse_text("; filament_type = petg"))
        assert metadata.material_type == "PETG"

    def test_absent_fields_are_none(self):
        metadata, _ = extract_metadata(parse_text("G28\nG1 X1"))
        assert metadata.layer_height is None
        assert metadata.material_type is None
        assert metadata.estimated_print_time is None
        assert metadata.slicer == "unknown"

    def test_temperature_summary(self):
        text = "M104 S200\nM109 S215\nM140 S60\nM190 S65\nM104 S0\nM106 S255\nM106 S128"
        extractor = MetadataExtractor()
        for line in parse_text(text):
            extractor.feed(line)
        metadata = extractor.build()
        assert metadata.temperatures.hotend == 215.0
        assert metadata.temperatures.bed == 65.0
        assert metadata.max_fan_speed == 255.0

    def test_layer_change_markers(self):
        text = ";LAYER_CHANGE\n;LAYER_CHANGE\n; CHANGE_LAYER\n"
        _, extractor = extract_metadata(parse_text(text))
        assert extractor.layer_count() == 3

    def test_fallback_layer_count(self):
        metadata, _ = extract_metadata(parse_text("G1 X1"))
        assert metadata.layer_count is None
        extractor = MetadataExtractor()
        assert extractor.build(layer_count=4).layer_count == 4

    def test_to_dict_camel_case(self):
        metadata, _ = extract_metadata(parse_text(CURA_HEADER))
        data = metadata.to_dict()
        assert data["layerHeight"] == 0.2
        assert data["estimatedPrintTime"] == 6666
        assert data["temperatures"] == {"hotend": None, "bed": None}
