"""
Tests for overlay rendering, charts and PDF reports.
"""
import io

import numpy as np
from PIL import Image

from analysis_service import SolarAnalysisService
from chart_generator import (generate_section_chart, generate_severity_chart, render_fault_overlay,
                             render_region_overlay)
from models import FaultAnnotation, RoofInput, Severity
from pdf_generator import escape_for_paragraph, format_number, generate_analysis_pdf, notes_to_paragraph_markup
from roof_sections import section_roof

PNG_MAGIC = b"\x89PNG"


def fault(severity, x=0.5, y=0.5):
    return FaultAnnotation(type="Hot Spot", severity=severity, x=x, y=y, description="test")


class TestOverlays:

    def test_region_overlay_keeps_image_size(self, roof_image):
        roof = section_roof("shed", 1000)
        service = SolarAnalysisService(None, np.random.default_rng(1))
        result = service.analyze_installation(roof_image, RoofInput(roof_size=1000, roof_shape="shed"))

        png = render_region_overlay(roof_image, result.regions)
        assert png.startswith(PNG_MAGIC)
        assert Image.open(io.BytesIO(png)).size == (64, 48)
        assert len(result.regions) == roof.total_panels

    def test_fault_overlay(self, panel_image):
        png = render_fault_overlay(panel_image, [fault(Severity.CRITICAL), fault(Severity.LOW, 0.1, 0.9)])
        assert png.startswith(PNG_MAGIC)

    def test_overlay_without_annotations(self, panel_image):
        assert render_fault_overlay(panel_image, []).startswith(PNG_MAGIC)


class TestCharts:

    def test_section_chart(self):
        assert generate_section_chart(section_roof("complex", 3000).sections).startswith(PNG_MAGIC)

    def test_severity_chart(self):
        faults = [fault(Severity.HIGH), fault(Severity.HIGH), fault(Severity.MEDIUM)]
        assert generate_severity_chart(faults).startswith(PNG_MAGIC)


class TestPdf:

    def test_installation_report(self, roof_image, rng):
        result = SolarAnalysisService(None, rng).analyze_installation(
            roof_image, RoofInput(roof_size=1800, roof_shape="gable"))
        analysis = {
            "id": 3,
            "type": "installation",
            "image_path": roof_image,
            "results": result.model_dump(mode="json"),
            "created_at": "2024-05-01 10:00:00",
        }
        pdf = generate_analysis_pdf(analysis).getvalue()
        assert pdf.startswith(b"%PDF")

    def test_fault_report(self, panel_image, rng):
        result = SolarAnalysisService(None, rng).analyze_faults(panel_image, "panel_7.jpg")
        analysis = {
            "id": 4,
            "type": "fault-detection",
            "image_path": panel_image,
            "results": result.model_dump(mode="json"),
            "created_at": "2024-05-01 10:05:00",
        }
        assert generate_analysis_pdf(analysis).getvalue().startswith(b"%PDF")

    def test_report_without_image_on_disk(self, rng, tmp_path):
        image = tmp_path / "gone.png"
        Image.new("RGB", (32, 32)).save(image)
        result = SolarAnalysisService(None, rng).analyze_installation(str(image))
        analysis = {"id": 5, "type": "installation", "image_path": str(tmp_path / "missing.png"),
                    "results": result.model_dump(mode="json")}
        assert generate_analysis_pdf(analysis).getvalue().startswith(b"%PDF")


class TestFormatting:

    def test_format_number(self):
        assert format_number(1234567) == "1,234,567"
        assert format_number(2.5, 2) == "2.50"
        assert format_number("n/a") == "n/a"

    def test_escape(self):
        assert escape_for_paragraph("<b>&") == "&lt;b&gt;&amp;"

    def test_notes_markup(self):
        markup = notes_to_paragraph_markup("**System Overview:**\n• line")
        assert "<b>System Overview:</b>" in markup
        assert "<br/>" in markup
