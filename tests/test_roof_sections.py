"""
Tests for roof sectioning and the file-size roof heuristics.
"""
import math

import pytest

from models import RoofType, ZoomLevel
from roof_sections import (InvalidRoofInputError, describe_orientation, describe_shading,
                           estimate_roof_area, estimate_zoom_level, panels_for_area, section_roof)


class TestSectionRoof:

    def test_shed_roof_single_section(self):
        roof = section_roof("shed", 1000)
        assert roof.roof_type == RoofType.SHED
        assert len(roof.sections) == 1
        # floor(1000 * 0.8 / (18.3 * 1.15)) = floor(38.01)
        assert roof.sections[0].panel_count == 38
        assert roof.total_panels == 38
        assert roof.overall_efficiency == 97

    def test_gable_roof_weighted_efficiency(self):
        roof = section_roof(RoofType.GABLE, 2000)
        south, north = roof.sections
        assert south.name == "South-Facing Gable"
        assert south.panel_count == 33
        assert north.panel_count == 14
        assert roof.total_panels == 47
        # (96*33 + 65*14) / 47 = 86.77
        assert roof.overall_efficiency == 87

    def test_hip_north_face_gets_no_panels(self):
        roof = section_roof("hip", 2400)
        north = [s for s in roof.sections if s.name == "North-Facing Hip"][0]
        assert north.panel_count == 0
        assert north.area_sq_ft == pytest.approx(360)

    def test_complex_roof_has_three_sections(self):
        roof = section_roof("complex", 3000)
        assert [s.name for s in roof.sections] == [
            "Primary South Section", "Secondary West Section", "Tertiary East Section",
        ]

    def test_section_areas_sum_to_total(self):
        for roof_type in RoofType:
            roof = section_roof(roof_type, 2750)
            assert roof.total_usable_area == pytest.approx(2750)
            assert roof.total_panels == sum(s.panel_count for s in roof.sections)

    def test_zero_area_is_valid(self):
        roof = section_roof("gable", 0)
        assert roof.total_panels == 0
        assert all(s.panel_count == 0 for s in roof.sections)
        assert roof.overall_efficiency == 90

    def test_roof_type_name_is_case_insensitive(self):
        assert section_roof(" Flat ", 1500).roof_type == RoofType.FLAT

    @pytest.mark.parametrize("area", [-1, math.nan, math.inf, "lots"])
    def test_unusable_area_rejected(self, area):
        with pytest.raises(InvalidRoofInputError):
            section_roof("gable", area)

    def test_unknown_roof_type_rejected(self):
        with pytest.raises(InvalidRoofInputError) as exc:
            section_roof("gambrel", 1500)
        assert "gambrel" in str(exc.value)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            section_roof("dome", 1500)


class TestPanelsForArea:

    def test_floor_of_usable_area_over_panel_footprint(self):
        assert panels_for_area(42.2, 1.0) == 2
        assert panels_for_area(21.0, 1.0) == 0


class TestImageHeuristics:

    @pytest.mark.parametrize("size,expected", [
        (3 * 1024 * 1024, ZoomLevel.CLOSE_UP),
        (1024 * 1024, ZoomLevel.MEDIUM),
        (100 * 1024, ZoomLevel.AERIAL),
    ])
    def test_zoom_level_from_file_size(self, size, expected):
        assert estimate_zoom_level(size) == expected

    def test_aerial_estimate_snaps_to_typical_size(self):
        # 200000 / 500 + 1600 = 2000, already a typical size
        assert estimate_roof_area(200_000, ZoomLevel.AERIAL) == (2000, 0.8)

    def test_medium_estimate_blends_with_nearest_typical_size(self):
        # 675000 / 450 + 1200 = 2700, nearest typical 2800 -> 2700*0.9 + 2800*0.1
        assert estimate_roof_area(675_000, ZoomLevel.MEDIUM) == (2710, 0.9)

    def test_close_up_estimate_is_clamped(self):
        area, confidence = estimate_roof_area(5 * 1024 * 1024, ZoomLevel.CLOSE_UP)
        assert confidence == 0.7
        # clamped at 1800, nearest typical 1600 -> 1800*0.7 + 1600*0.3
        assert area == 1740


class TestDescriptions:

    def test_orientation_names_best_section(self):
        roof = section_roof("hip", 2000)
        text = describe_orientation("hip", roof.sections)
        assert "South-Facing Hip" in text
        assert "4 distinct solar zones" in text

    def test_orientation_without_sections(self):
        assert "No usable solar zones" in describe_orientation("flat", [])

    def test_shading_text_per_roof_type(self):
        assert describe_shading("shed").startswith("Shed roof")
        assert describe_shading("unknown").startswith("Comprehensive shading analysis")
