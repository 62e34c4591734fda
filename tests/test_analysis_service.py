"""
Tests for analysis orchestration: the model path, every fallback trigger and chat advice.
"""
import numpy as np
import pytest

from analysis_service import (ImageRejectedError, SolarAnalysisService, check_image,
                              fallback_chat_reply, parse_fault)
from conftest import INVALID_ROOF, VALID_PANEL, VALID_ROOF, FakeModelClient, as_json
from fault_synthesis import RECOMMENDATIONS
from gemini_client import AIServiceError
from models import OverallHealth, RoofInput, RoofType, Severity


class TestCheckImage:

    def test_readable_image(self, roof_image):
        assert check_image(roof_image)

    def test_missing_file(self, tmp_path):
        assert not check_image(str(tmp_path / "missing.png"))

    def test_too_large(self, roof_image):
        assert not check_image(roof_image, max_mb=0.00001)


class TestFallbackInstallation:

    def test_user_roof_details(self, roof_image, rng):
        service = SolarAnalysisService(None, rng)
        result = service.analyze_installation(roof_image, RoofInput(roof_size=1000, roof_shape="shed"))

        assert result.source == "fallback"
        assert result.roof_type == "shed"
        assert result.total_panels == 38
        assert result.total_panels == len(result.regions)
        # 38 * 0.425 * 0.87
        assert result.power_output == pytest.approx(14.05)
        # floor(38 * 18.3 / 1000 * 100)
        assert result.coverage == 69
        assert result.efficiency == 97
        # user-supplied area counts as full confidence, clamped to 96
        assert result.confidence == 96
        assert result.estimated_roof_area == 1000
        assert result.usable_roof_area == 1000
        assert "Primary Shed Roof: 38 panels" in result.notes

    def test_estimated_roof_when_no_input(self, roof_image, rng):
        result = SolarAnalysisService(None, rng).analyze_installation(roof_image)

        assert result.source == "fallback"
        assert result.roof_type in {"gable", "hip", "shed", "flat", "complex"}
        assert result.total_panels == len(result.regions)
        assert 85 <= result.confidence <= 96
        assert 0 <= result.coverage <= 85
        assert result.usable_roof_area <= result.estimated_roof_area

    def test_auto_detect_roof_type_follows_seed(self, roof_image):
        first = SolarAnalysisService(None, np.random.default_rng(3)).analyze_installation(roof_image)
        second = SolarAnalysisService(None, np.random.default_rng(3)).analyze_installation(roof_image)
        assert first.roof_type == second.roof_type
        assert first.regions == second.regions


class TestModelInstallation:

    def test_validated_model_layout(self, roof_image, rng, installation_payload):
        client = FakeModelClient([VALID_ROOF, as_json(installation_payload)])
        result = SolarAnalysisService(client, rng).analyze_installation(roof_image)

        assert result.source == "ai"
        # the 0.5 x 0.5 region in the corner is discarded
        assert result.total_panels == 2
        assert len(result.regions) == 2
        assert result.power_output == pytest.approx(0.85)
        assert result.confidence == 85
        assert result.coverage == 75
        assert result.roof_type == "gable"
        assert result.roof_sections[0].tilt_degrees == 30
        assert {(r.width, r.height) for r in result.regions} == {(0.08, 0.06)}

    def test_prompt_includes_roof_details(self, roof_image, rng, installation_payload):
        client = FakeModelClient([VALID_ROOF, as_json(installation_payload)])
        SolarAnalysisService(client, rng).analyze_installation(
            roof_image, RoofInput(roof_size=2500, roof_shape="hip"))
        assert "Roof Size: 2500 sq ft" in client.prompts[1]
        assert "large roof" in client.prompts[1]

    def test_values_are_clamped(self, roof_image, rng, installation_payload):
        installation_payload.update(coverage=150, efficiency=-5, usableRoofArea=5000)
        client = FakeModelClient([VALID_ROOF, as_json(installation_payload)])
        result = SolarAnalysisService(client, rng).analyze_installation(roof_image)
        assert result.coverage == 100
        assert result.efficiency == 0
        assert result.usable_roof_area == result.estimated_roof_area == 1800

    @pytest.mark.parametrize("answered,expected", [
        ("Hip Roof", RoofType.HIP),
        ("FLAT", RoofType.FLAT),
        ("Mansard Roof", None),
        ("", None),
        (42, None),
    ])
    def test_roof_type_normalized(self, roof_image, rng, installation_payload, answered, expected):
        installation_payload["roofType"] = answered
        client = FakeModelClient([VALID_ROOF, as_json(installation_payload)])
        result = SolarAnalysisService(client, rng).analyze_installation(roof_image)
        assert result.source == "ai"
        assert result.roof_type == expected
        assert result.model_dump(mode="json")["roof_type"] == (expected.value if expected else None)

    def test_rejected_image_raises(self, roof_image, rng):
        client = FakeModelClient([INVALID_ROOF])
        with pytest.raises(ImageRejectedError) as exc:
            SolarAnalysisService(client, rng).analyze_installation(roof_image)
        assert "Image shows a dog" in str(exc.value)

    def test_classification_failure_lets_image_through(self, roof_image, rng, installation_payload):
        client = FakeModelClient([AIServiceError("timeout"), as_json(installation_payload)])
        result = SolarAnalysisService(client, rng).analyze_installation(roof_image)
        assert result.source == "ai"

    @pytest.mark.parametrize("answer", [
        "not json at all",
        as_json({"totalPanels": 4, "powerOutput": 1.7}),
        as_json({"totalPanels": 4, "powerOutput": 1.7, "regions": []}),
        as_json({"totalPanels": 2, "powerOutput": 0.85, "coverage": 70,
                 "regions": [{"x": 0.0, "y": 0.0, "width": 0.5, "height": 0.5}]}),
        AIServiceError("model unavailable"),
    ])
    def test_unusable_answers_fall_back(self, roof_image, rng, answer):
        client = FakeModelClient([VALID_ROOF, answer])
        result = SolarAnalysisService(client, rng).analyze_installation(
            roof_image, RoofInput(roof_size=1000, roof_shape="shed"))
        assert result.source == "fallback"
        assert result.total_panels == 38

    def test_unreadable_image_uses_fallback(self, roof_image, rng, monkeypatch):
        client = FakeModelClient([])
        monkeypatch.setattr("analysis_service.check_image", lambda path: False)
        result = SolarAnalysisService(client, rng).analyze_installation(roof_image)
        assert result.source == "fallback"
        assert client.prompts == []


class TestFaultAnalysis:

    def test_model_faults_are_filtered_and_regraded(self, panel_image, rng):
        answer = as_json({
            "panelId": "P-1",
            "overallHealth": "Excellent",
            "faults": [
                {"type": "Hot Spot", "severity": "critical", "x": 0.4, "y": 0.5, "description": "Burn mark"},
                {"type": "Shading", "severity": "Low", "x": 1.5, "y": 0.5},
                {"type": "Dirt/Debris", "severity": "Severe", "x": 0.2, "y": 0.2},
                {"type": "Corrosion", "severity": "Medium", "x": 0.3, "y": 0.7},
            ],
            "recommendations": ["Ignored"],
        })
        client = FakeModelClient([VALID_PANEL, answer])
        result = SolarAnalysisService(client, rng).analyze_faults(panel_image, "array_east_3.jpg")

        assert result.source == "ai"
        assert result.panel_id == "array_east_3"
        assert [(f.type, f.severity) for f in result.faults] == [
            ("Hot Spot", Severity.CRITICAL), ("Corrosion", Severity.MEDIUM),
        ]
        assert result.faults[1].description.startswith("Moderate corrosion")
        assert result.overall_health == OverallHealth.CRITICAL
        assert result.recommendations == RECOMMENDATIONS[Severity.CRITICAL]

    def test_model_panel_id_used_without_filename(self, panel_image, rng):
        answer = as_json({"panelId": "P-9", "overallHealth": "Good", "faults": []})
        client = FakeModelClient([VALID_PANEL, answer])
        result = SolarAnalysisService(client, rng).analyze_faults(panel_image)
        assert result.panel_id == "P-9"
        assert result.overall_health == OverallHealth.EXCELLENT

    def test_incomplete_answer_falls_back(self, panel_image, rng):
        client = FakeModelClient([VALID_PANEL, as_json({"faults": []})])
        result = SolarAnalysisService(client, rng).analyze_faults(panel_image, "panel_7.jpg")
        assert result.source == "fallback"
        assert result.panel_id == "panel_7"

    def test_rejected_image_raises(self, panel_image, rng):
        client = FakeModelClient([as_json({"isValid": False, "reason": "Empty roof"})])
        with pytest.raises(ImageRejectedError):
            SolarAnalysisService(client, rng).analyze_faults(panel_image)

    def test_without_client_synthesizes(self, panel_image):
        first = SolarAnalysisService(None, np.random.default_rng(5)).analyze_faults(panel_image)
        second = SolarAnalysisService(None, np.random.default_rng(5)).analyze_faults(panel_image)
        assert first.source == "fallback"
        assert first == second


class TestParseFault:

    def test_missing_position(self):
        assert parse_fault({"type": "Shading", "severity": "Low"}) is None

    def test_boolean_position(self):
        assert parse_fault({"type": "Shading", "severity": "Low", "x": True, "y": 0.5}) is None

    def test_edges_are_inclusive(self):
        fault = parse_fault({"type": "Shading", "severity": "Low", "x": 0, "y": 1})
        assert (fault.x, fault.y) == (0.0, 1.0)


class TestChat:

    @pytest.mark.parametrize("message,category", [
        ("Where should I install panels on my roof?", "installation"),
        ("My inverter shows a fault", "fault"),
        ("Who can I contact for subsidies?", "helpline"),
        ("How often should I clean them?", "maintenance"),
        ("Why is my output low?", "performance"),
        ("Hello there", "general"),
    ])
    def test_keyword_fallback(self, message, category):
        reply = fallback_chat_reply(message)
        assert reply.category == category
        assert reply.response.startswith("I'm here to help")

    def test_no_client_uses_fallback(self, rng):
        reply = SolarAnalysisService(None, rng).chat("How do I clean my panels?")
        assert reply.category == "maintenance"

    def test_model_json_reply(self, rng):
        client = FakeModelClient(text_responses=[
            '```json\n{"response": "Face them south.", "category": "installation"}\n```'])
        reply = SolarAnalysisService(client, rng).chat("Which direction?")
        assert reply.response == "Face them south."
        assert reply.category == "installation"

    def test_unknown_category_becomes_general(self, rng):
        client = FakeModelClient(text_responses=[as_json({"response": "Sure.", "category": "sales"})])
        assert SolarAnalysisService(client, rng).chat("Hi").category == "general"

    def test_plain_text_reply(self, rng):
        client = FakeModelClient(text_responses=["Keep the panels clean."])
        reply = SolarAnalysisService(client, rng).chat("Tips?")
        assert reply.response == "Keep the panels clean."
        assert reply.category == "general"

    def test_model_failure_uses_fallback(self, rng):
        client = FakeModelClient(text_responses=[AIServiceError("down")])
        reply = SolarAnalysisService(client, rng).chat("Is there a helpline?")
        assert reply.category == "helpline"
        assert "1800-180-3333" in reply.response

    def test_history_limited_to_recent_lines(self, rng):
        client = FakeModelClient(text_responses=[as_json({"response": "ok"})])
        history = [f"turn-{i}: question" for i in range(8)]
        SolarAnalysisService(client, rng).chat("next question", history)
        prompt = client.prompts[0]
        assert "turn-7:" in prompt and "turn-2:" in prompt
        assert "turn-1:" not in prompt and "turn-0:" not in prompt
        assert "USER QUESTION: next question" in prompt
