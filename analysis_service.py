"""
Analysis orchestration.

Runs the model-backed analysis when a model client is configured and the
image passes its checks. Whenever the model path fails (transport errors,
unparseable answers, a layout that fails validation) the deterministic
fallback produces a complete result instead. Only an explicit "this is not
a roof / not a solar panel" verdict is surfaced to the caller.
"""
import logging
import math
import os
import re
import time
from typing import List, NamedTuple, Optional, Sequence

import numpy as np
from pydantic import ValidationError

import config
from fault_synthesis import (describe_fault, grade_health, panel_id_from_filename,
                             recommend_actions, synthesize_faults)
from gemini_client import AIResponseError, extract_json, mime_type_for
from models import (ChatReply, FaultAnnotation, FaultResult, InstallationResult, PanelRegion,
                    RoofInput, RoofSection, RoofType, Severity, round_half_up)
from panel_layout import pack_panels
from prompts import CLASSIFICATION_PROMPTS, FAULT_PROMPT, chat_prompt, installation_prompt
from region_validator import PANEL_POWER_KW, validate_external_regions
from roof_sections import (PANEL_AREA_SQ_FT, InvalidRoofInputError, describe_orientation,
                           describe_shading, estimate_roof_area, estimate_zoom_level,
                           parse_roof_type, section_roof)

logger = logging.getLogger(__name__)

SYSTEM_EFFICIENCY = 0.87  # DC to AC losses on the fallback estimate
MAX_FALLBACK_COVERAGE = 85
ANNUAL_SUN_HOURS = 1450
COST_PER_PANEL = 800
PRICE_PER_KWH = 0.12

CHAT_CATEGORIES = {"installation", "fault", "maintenance", "performance", "general", "helpline"}

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")


class ImageRejectedError(Exception):
    """The model judged that the upload does not show what the analysis needs."""

    def __init__(self, expected: str, reason: str = ""):
        self.expected = expected
        self.reason = reason
        label = "rooftop" if expected == "rooftop" else "solar panel"
        message = f"Image does not appear to show a {label}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class Classification(NamedTuple):
    is_valid: bool
    reason: str


def check_image(path: str, max_mb: float = config.MAX_IMAGE_MB) -> bool:
    """The file exists, is readable and is small enough for the model."""
    try:
        size_mb = os.path.getsize(path) / (1024 * 1024)
        if size_mb > max_mb:
            logger.warning("Image size %.2fMB exceeds %gMB limit", size_mb, max_mb)
            return False
        with open(path, "rb") as f:
            f.read(1)
        return True
    except OSError as e:
        logger.error("Image check failed for %s: %s", path, e)
        return False


def image_format_for(path: str) -> str:
    return os.path.splitext(path)[1].lower().lstrip(".")


def _as_float(value) -> float:
    """Coerce a model-supplied number; anything unusable becomes NaN."""
    if isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _clamp(value, low: float, high: float) -> float:
    number = _as_float(value)
    if math.isnan(number):
        return low
    return max(low, min(high, number))


def _optional_area(value) -> Optional[float]:
    number = _as_float(value)
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def parse_regions(raw_regions) -> List[PanelRegion]:
    regions = []
    for raw in raw_regions:
        if not isinstance(raw, dict):
            raw = {}
        section = raw.get("roofSection", raw.get("roof_section"))
        regions.append(PanelRegion(
            x=_as_float(raw.get("x")),
            y=_as_float(raw.get("y")),
            width=_as_float(raw.get("width")),
            height=_as_float(raw.get("height")),
            roof_section=str(section) if section is not None else None,
        ))
    return regions


def parse_model_roof_type(value) -> Optional[RoofType]:
    """Map the model's roof type ("Gable", "hip roof", ...) onto RoofType; None if it names no known type."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_roof_type(value.split()[0])
    except InvalidRoofInputError:
        logger.info("Ignoring unknown roof type from model answer: %r", value)
        return None


def parse_roof_sections(raw_sections) -> List[RoofSection]:
    sections = []
    for raw in raw_sections or []:
        if not isinstance(raw, dict):
            continue
        tilt = _as_float(raw.get("tiltAngle", raw.get("tilt_degrees")))
        try:
            sections.append(RoofSection(
                name=str(raw.get("name") or "Roof Section"),
                orientation=str(raw.get("orientation") or ""),
                tilt_degrees=tilt if math.isfinite(tilt) else 0.0,
                area_sq_ft=_as_float(raw.get("area", raw.get("area_sq_ft"))),
                panel_count=int(_as_float(raw.get("panelCount", raw.get("panel_count")))),
                efficiency_percent=_as_float(raw.get("efficiency", raw.get("efficiency_percent"))),
            ))
        except (ValidationError, ValueError, OverflowError) as e:
            logger.info("Dropping unusable roof section from model answer: %s", e)
    return sections


def parse_fault(raw) -> Optional[FaultAnnotation]:
    """One model-reported fault, or None when it is incomplete or out of range."""
    if not isinstance(raw, dict) or not raw.get("type") or not raw.get("severity"):
        return None
    x, y = raw.get("x"), raw.get("y")
    if isinstance(x, bool) or isinstance(y, bool):
        return None
    if not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
        return None
    if not (0 <= x <= 1 and 0 <= y <= 1):
        return None
    try:
        severity = Severity(str(raw["severity"]).strip().capitalize())
    except ValueError:
        return None
    fault_type = str(raw["type"])
    return FaultAnnotation(
        type=fault_type,
        severity=severity,
        x=float(x),
        y=float(y),
        description=str(raw.get("description") or describe_fault(fault_type, severity)),
    )


def fallback_chat_reply(message: str) -> ChatReply:
    """Canned advice picked by keyword when the model cannot answer."""
    text = message.lower()
    response = "I'm here to help with your solar panel questions. "

    if any(word in text for word in ("install", "placement", "roof")):
        return ChatReply(category="installation", response=response + (
            "For installation questions, I recommend:\n\n"
            "• Ensure your roof can support the weight (typically 2-4 lbs per sq ft)\n"
            "• Choose south-facing surfaces with minimal shading\n"
            "• Maintain proper setbacks from roof edges (typically 3 feet)\n"
            "• Consider roof condition and age before installation\n"
            "• Get multiple quotes from certified installers\n\n"
            "Would you like specific guidance on any of these areas?"))
    if any(word in text for word in ("fault", "problem", "defect")):
        return ChatReply(category="fault", response=response + (
            "For fault detection, look for:\n\n"
            "• Visible cracks or damage on panel surface\n"
            "• Discoloration or hot spots\n"
            "• Reduced power output\n"
            "• Corrosion on connections\n"
            "• Delamination or bubbling\n\n"
            "I recommend regular visual inspections and monitoring system performance. "
            "Would you like help identifying specific issues?"))
    if any(word in text for word in ("help", "support", "helpline", "contact")):
        return ChatReply(category="helpline", response=response + (
            "Here are Indian solar energy helpline numbers for support:\n\n"
            "• **MNRE Helpline**: 1800-180-3333 (Ministry of New and Renewable Energy)\n"
            "• **SECI Support**: 011-2436-0707 (Solar Energy Corporation of India)\n"
            "• **National Solar Mission**: 1800-11-3003\n"
            "• **BEE Helpline**: 1800-11-2722 (Bureau of Energy Efficiency)\n"
            "• **State Electricity Commission**: 1912\n"
            "• **PM Surya Ghar Scheme**: 1800-11-4455 (Free rooftop solar)\n\n"
            "These numbers can help with subsidies, installations, grid connections, and "
            "technical support. What specific help do you need?"))
    if any(word in text for word in ("maintenance", "clean", "care")):
        return ChatReply(category="maintenance", response=response + (
            "Regular maintenance includes:\n\n"
            "• Visual inspection every 6 months\n"
            "• Cleaning panels 2-4 times per year\n"
            "• Checking electrical connections annually\n"
            "• Monitoring system performance\n"
            "• Trimming vegetation to prevent shading\n\n"
            "Most cleaning can be done with water and a soft brush. "
            "Would you like specific maintenance schedules?"))
    if any(word in text for word in ("performance", "efficiency", "output")):
        return ChatReply(category="performance", response=response + (
            "To optimize performance:\n\n"
            "• Keep panels clean and unshaded\n"
            "• Ensure proper ventilation behind panels\n"
            "• Monitor system output regularly\n"
            "• Check for loose connections\n"
            "• Consider weather impact on production\n\n"
            "Typical efficiency is 15-20% for residential panels. "
            "Would you like help analyzing your system's performance?"))
    return ChatReply(category="general", response=response + (
        "I can help with installation planning, fault detection, maintenance, and performance "
        "optimization. What specific aspect of solar panels would you like to discuss?"))


class SolarAnalysisService:
    """Installation planning, fault inspection and chat advice on top of one model client"""

    def __init__(self, client=None, rng: Optional[np.random.Generator] = None):
        """
        Args:
            client: GeminiClient (or compatible); None disables the model path entirely
            rng: Random generator for the fallback paths, e.g. numpy.random.default_rng(7)
        """
        self.client = client
        self.rng = rng if rng is not None else np.random.default_rng()

    def _read_image(self, path: str):
        with open(path, "rb") as f:
            return f.read(), mime_type_for(path)

    def classify_image(self, path: str, expected: str) -> Classification:
        """
        Ask the model whether the image shows the expected subject.

        Any failure to get a verdict lets the image through.
        """
        if self.client is None:
            return Classification(True, "classification unavailable")

        try:
            image_bytes, mime_type = self._read_image(path)
            text = self.client.describe_image(image_bytes, mime_type, CLASSIFICATION_PROMPTS[expected])
            data = extract_json(text)
        except Exception as e:
            logger.warning("Image classification failed, allowing image: %s", e)
            return Classification(True, "classification unavailable")

        is_valid = data.get("isValid") is True
        reason = str(data.get("reason") or "")
        logger.info("Image classification for %s: %s - %s",
                    expected, "VALID" if is_valid else "INVALID", reason)
        return Classification(is_valid, reason)

    # Installation

    def analyze_installation(self, path: str, roof_input: Optional[RoofInput] = None) -> InstallationResult:
        """
        Plan a panel installation for a rooftop photo.

        Raises:
            ImageRejectedError: the model says the photo shows no rooftop
        """
        if self.client is None:
            logger.info("No model client configured, using fallback installation analysis")
            return self.build_fallback_installation(path, roof_input)
        if not check_image(path):
            return self.build_fallback_installation(path, roof_input)

        verdict = self.classify_image(path, "rooftop")
        if not verdict.is_valid:
            raise ImageRejectedError("rooftop", verdict.reason)

        started = time.monotonic()
        try:
            result = self._installation_from_model(path, roof_input)
        except Exception as e:
            logger.warning("Model installation analysis failed, using fallback: %s", e)
            return self.build_fallback_installation(path, roof_input)

        logger.info("Model installation analysis produced %d panels", result.total_panels,
                    extra={"duration_ms": round((time.monotonic() - started) * 1000)})
        return result

    def _installation_from_model(self, path: str, roof_input: Optional[RoofInput]) -> InstallationResult:
        image_bytes, mime_type = self._read_image(path)
        data = extract_json(self.client.describe_image(image_bytes, mime_type, installation_prompt(roof_input)))

        raw_regions = data.get("regions")
        if not data.get("totalPanels") or not data.get("powerOutput") or not isinstance(raw_regions, list):
            raise AIResponseError("Incomplete analysis response from model")
        if not raw_regions:
            raise AIResponseError("Model proposed no panel regions")

        coverage = _clamp(data.get("coverage"), 0, 100)
        outcome = validate_external_regions(
            parse_regions(raw_regions),
            declared_coverage=coverage,
            declared_total_panels=int(_clamp(data.get("totalPanels"), 0, 10 ** 6)),
            image_format=image_format_for(path),
        )

        estimated = _optional_area(data.get("estimatedRoofArea"))
        usable = _optional_area(data.get("usableRoofArea"))
        if estimated is not None and usable is not None and usable > estimated:
            usable = estimated

        return InstallationResult(
            total_panels=outcome.total_panels,
            coverage=coverage,
            efficiency=_clamp(data.get("efficiency"), 0, 100),
            confidence=outcome.confidence,
            power_output=outcome.power_output,
            orientation=str(data.get("orientation") or ""),
            shading_analysis=str(data.get("shadingAnalysis") or ""),
            notes=str(data.get("notes") or ""),
            roof_type=parse_model_roof_type(data.get("roofType")),
            estimated_roof_area=estimated,
            usable_roof_area=usable,
            roof_sections=parse_roof_sections(data.get("roofSections")),
            regions=outcome.regions,
            source="ai",
        )

    def build_fallback_installation(self, path: str, roof_input: Optional[RoofInput] = None) -> InstallationResult:
        """Deterministic installation plan from file-size heuristics and the user's roof details."""
        file_size = os.path.getsize(path)
        zoom_level = estimate_zoom_level(file_size)

        if roof_input is not None and roof_input.roof_size:
            roof_area, area_confidence = roof_input.roof_size, 1.0
        else:
            roof_area, area_confidence = estimate_roof_area(file_size, zoom_level)

        if roof_input is not None and roof_input.roof_shape != "auto-detect":
            roof_type = RoofType(roof_input.roof_shape)
        else:
            roof_types = list(RoofType)
            roof_type = roof_types[int(self.rng.integers(0, len(roof_types)))]

        analysis = section_roof(roof_type, roof_area)
        regions = pack_panels(roof_type, analysis.sections, analysis.total_panels, zoom_level)
        total_panels = len(regions)

        ac_power = total_panels * PANEL_POWER_KW * SYSTEM_EFFICIENCY
        usable_area = analysis.total_usable_area
        if usable_area > 0:
            coverage = min(MAX_FALLBACK_COVERAGE, math.floor(total_panels * PANEL_AREA_SQ_FT / usable_area * 100))
        else:
            coverage = 0

        estimated_area = math.floor(roof_area)
        logger.info("Fallback installation: %s roof, %d sq ft, %s zoom, %d panels",
                    roof_type.value, estimated_area, zoom_level.value, total_panels)

        return InstallationResult(
            total_panels=total_panels,
            coverage=coverage,
            efficiency=analysis.overall_efficiency,
            confidence=max(85, min(96, round_half_up(area_confidence * 100))),
            power_output=round_half_up(ac_power, 2),
            orientation=describe_orientation(roof_type, analysis.sections),
            shading_analysis=describe_shading(roof_type),
            notes=self._installation_notes(roof_type, estimated_area, area_confidence, usable_area,
                                           total_panels, zoom_level.value, analysis, ac_power),
            roof_type=roof_type,
            estimated_roof_area=estimated_area,
            usable_roof_area=min(estimated_area, math.floor(usable_area)),
            roof_sections=analysis.sections,
            regions=regions,
            source="fallback",
        )

    @staticmethod
    def _installation_notes(roof_type, roof_area, area_confidence, usable_area, total_panels,
                            zoom_level, analysis, ac_power) -> str:
        annual_production = math.floor(ac_power * ANNUAL_SUN_HOURS)
        annual_savings = annual_production * PRICE_PER_KWH
        payback = (f"{round_half_up(total_panels * COST_PER_PANEL / annual_savings)} years"
                   if annual_savings > 0 else "not applicable")
        section_lines = "\n".join(
            f"• {section.name}: {section.panel_count} panels, {section.efficiency_percent:g}% efficiency"
            for section in analysis.sections
        )
        return (
            "**Installation Notes**\n\n"
            "**System Overview:**\n"
            f"• Roof type optimization for {roof_type.value} roof design\n"
            f"• Estimated total roof area: {roof_area} sq ft ({round_half_up(area_confidence * 100)}% confidence)\n"
            f"• Usable area: {math.floor(usable_area)} sq ft after setbacks and obstructions\n"
            f"• System designed for {total_panels} premium 425W monocrystalline panels\n"
            f"• Zoom level detected: {zoom_level} - panel sizing adjusted accordingly\n"
            f"• {len(analysis.sections)} roof sections analyzed for placement\n\n"
            "**Roof Section Analysis:**\n"
            f"{section_lines}\n\n"
            "**Performance Metrics:**\n"
            f"• Estimated annual production: {annual_production} kWh\n"
            f"• System efficiency: {analysis.overall_efficiency}%\n"
            f"• Expected payback period: {payback}\n\n"
            "**Installation Requirements:**\n"
            "• All panels standardized to 66\" x 40\" (425W)\n"
            "• Minimum 10% setback from all roof boundaries\n"
            "• Building permit and utility interconnection agreement required\n"
            "• Structural assessment for load capacity before installation"
        )

    # Faults

    def analyze_faults(self, path: str, original_filename: Optional[str] = None) -> FaultResult:
        """
        Inspect a solar panel photo for faults.

        Raises:
            ImageRejectedError: the model says the photo shows no solar panels
        """
        if self.client is None:
            logger.info("No model client configured, using fault synthesis")
            return self._fallback_faults(original_filename)
        if not check_image(path):
            return self._fallback_faults(original_filename)

        verdict = self.classify_image(path, "solar-panel")
        if not verdict.is_valid:
            raise ImageRejectedError("solar-panel", verdict.reason)

        try:
            return self._faults_from_model(path, original_filename)
        except Exception as e:
            logger.warning("Model fault analysis failed, using fault synthesis: %s", e)
            return self._fallback_faults(original_filename)

    def _faults_from_model(self, path: str, original_filename: Optional[str]) -> FaultResult:
        image_bytes, mime_type = self._read_image(path)
        data = extract_json(self.client.describe_image(image_bytes, mime_type, FAULT_PROMPT))

        raw_faults = data.get("faults")
        if not data.get("panelId") or not isinstance(raw_faults, list) or not data.get("overallHealth"):
            raise AIResponseError("Incomplete fault analysis response from model")

        faults = [fault for fault in (parse_fault(raw) for raw in raw_faults) if fault is not None]
        if len(faults) < len(raw_faults):
            logger.info("Dropped %d malformed faults from model answer", len(raw_faults) - len(faults))

        severities = [fault.severity for fault in faults]
        panel_id = panel_id_from_filename(original_filename) if original_filename else str(data["panelId"])
        return FaultResult(
            panel_id=panel_id,
            faults=faults,
            overall_health=grade_health(severities),
            recommendations=recommend_actions(severities),
            source="ai",
        )

    def _fallback_faults(self, original_filename: Optional[str]) -> FaultResult:
        panel_id = panel_id_from_filename(original_filename) if original_filename else None
        return synthesize_faults(self.rng, panel_id)

    # Chat

    def chat(self, message: str, history: Sequence[str] = ()) -> ChatReply:
        """Solar advice for a user message, with the recent conversation as context."""
        if self.client is None:
            return fallback_chat_reply(message)

        try:
            text = self.client.generate_text(chat_prompt(message, history))
        except Exception as e:
            logger.warning("Model chat failed, using canned advice: %s", e)
            return fallback_chat_reply(message)

        cleaned = re.sub(r"```json\s*", "", text)
        cleaned = re.sub(r"```\s*$", "", cleaned)
        cleaned = _CONTROL_CHARS.sub("", cleaned).strip()
        try:
            data = extract_json(cleaned)
        except AIResponseError:
            logger.info("Chat answer was not JSON, returning it as plain text")
            return ChatReply(response=cleaned, category="general")

        category = str(data.get("category") or "general")
        return ChatReply(
            response=str(data.get("response") or
                         "I'm here to help with solar panel questions. Could you please provide "
                         "more details about what you'd like to know?"),
            category=category if category in CHAT_CATEGORIES else "general",
        )
