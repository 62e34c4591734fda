"""
Roof sectioning model.

Splits a roof of a given type and area into its roof planes using fixed
partition templates, and sizes each plane in panels. Also holds the
file-size heuristics the fallback analysis uses when no model is available.
"""
import logging
import math
from typing import Dict, List, NamedTuple, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from models import RoofSection, RoofType, ZoomLevel, round_half_up

logger = logging.getLogger(__name__)

PANEL_AREA_SQ_FT = 18.3  # 66" x 40" panel
SPACING_FACTOR = 1.15  # maintenance walkways and inter-panel gaps
DEFAULT_EFFICIENCY = 90

TYPICAL_ROOF_SIZES = [1200, 1600, 2000, 2400, 2800, 3200]


class InvalidRoofInputError(ValueError):
    """Raised for an unknown roof type or an unusable roof area."""


class SectionTemplate(NamedTuple):
    name: str
    orientation: str
    tilt_degrees: float
    area_fraction: float
    usable_fraction: float
    efficiency: float


# Roof type -> fixed partition of the roof into planes.
# North-facing planes get small (or zero) usable fractions on purpose.
ROOF_TEMPLATES: Dict[RoofType, Tuple[SectionTemplate, ...]] = {
    RoofType.GABLE: (
        SectionTemplate("South-Facing Gable", "South (180°)", 30, 0.50, 0.70, 96),
        SectionTemplate("North-Facing Gable", "North (0°)", 30, 0.50, 0.30, 65),
    ),
    RoofType.HIP: (
        SectionTemplate("South-Facing Hip", "South (180°)", 25, 0.35, 0.80, 94),
        SectionTemplate("East-Facing Hip", "East (90°)", 25, 0.25, 0.60, 82),
        SectionTemplate("West-Facing Hip", "West (270°)", 25, 0.25, 0.60, 84),
        SectionTemplate("North-Facing Hip", "North (0°)", 25, 0.15, 0.00, 60),
    ),
    RoofType.SHED: (
        SectionTemplate("Primary Shed Roof", "South-Southwest (200°)", 35, 1.00, 0.80, 97),
    ),
    RoofType.FLAT: (
        # Reduced usable fraction leaves room between tilt racks
        SectionTemplate("Flat Roof with Tilt Racking", "South (180°) with 20° tilt", 20, 1.00, 0.60, 91),
    ),
    RoofType.COMPLEX: (
        SectionTemplate("Primary South Section", "South (180°)", 32, 0.40, 0.75, 95),
        SectionTemplate("Secondary West Section", "West (270°)", 28, 0.30, 0.65, 83),
        SectionTemplate("Tertiary East Section", "East (90°)", 28, 0.30, 0.65, 81),
    ),
}

SHADING_ANALYSIS: Dict[RoofType, str] = {
    RoofType.GABLE: "Gable roof design provides excellent shading mitigation with clear ridge lines. "
                    "Inter-row shading minimized on south-facing section.",
    RoofType.HIP: "Hip roof configuration offers multiple orientations with varying shading patterns. "
                  "Cross-sectional shading analysis shows optimal performance on south and west faces.",
    RoofType.SHED: "Shed roof provides uniform shading conditions across entire surface. "
                   "Excellent for consistent energy production throughout the day.",
    RoofType.FLAT: "Flat roof installation with tilt racking requires careful spacing to prevent inter-row shading. "
                   "Optimal row spacing calculated for maximum annual production.",
    RoofType.COMPLEX: "Complex roof geometry requires advanced shading analysis for each section. "
                      "Micro-inverters recommended to optimize performance across varying orientations.",
}
GENERIC_SHADING_ANALYSIS = ("Comprehensive shading analysis indicates optimal panel placement "
                            "based on roof geometry and orientation patterns.")


class RoofAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    roof_type: RoofType
    sections: List[RoofSection]
    total_usable_area: float
    total_panels: int
    overall_efficiency: int


def parse_roof_type(roof_type: Union[RoofType, str]) -> RoofType:
    """Coerce a roof type name into RoofType, rejecting unknown names."""
    if isinstance(roof_type, RoofType):
        return roof_type
    try:
        return RoofType(str(roof_type).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in RoofType)
        raise InvalidRoofInputError(f"Unknown roof type '{roof_type}'. Expected one of: {valid}")


def panels_for_area(area_sq_ft: float, usable_fraction: float) -> int:
    return int(math.floor((area_sq_ft * usable_fraction) / (PANEL_AREA_SQ_FT * SPACING_FACTOR)))


def section_roof(roof_type: Union[RoofType, str], total_area_sq_ft: float) -> RoofAnalysis:
    """
    Partition a roof into its planes and size each plane in panels.

    Args:
        roof_type: One of gable, hip, shed, flat, complex
        total_area_sq_ft: Total roof area in square feet (0 is allowed)

    Returns:
        RoofAnalysis with sections, usable area, panel count and weighted efficiency
    """
    kind = parse_roof_type(roof_type)

    try:
        area = float(total_area_sq_ft)
    except (TypeError, ValueError):
        raise InvalidRoofInputError(f"Roof area must be a number, got {total_area_sq_ft!r}")
    if math.isnan(area) or math.isinf(area):
        raise InvalidRoofInputError(f"Roof area must be finite, got {total_area_sq_ft!r}")
    if area < 0:
        raise InvalidRoofInputError(f"Roof area cannot be negative, got {area}")

    templates = ROOF_TEMPLATES.get(kind)
    if templates is None:
        raise InvalidRoofInputError(f"No partition template for roof type '{kind.value}'")

    sections = []
    for template in templates:
        section_area = area * template.area_fraction
        sections.append(RoofSection(
            name=template.name,
            orientation=template.orientation,
            tilt_degrees=template.tilt_degrees,
            area_sq_ft=section_area,
            panel_count=panels_for_area(section_area, template.usable_fraction),
            efficiency_percent=template.efficiency,
        ))

    total_usable_area = sum(section.area_sq_ft for section in sections)
    total_panels = sum(section.panel_count for section in sections)

    if total_panels > 0:
        weighted = sum(section.efficiency_percent * section.panel_count for section in sections)
        overall_efficiency = round_half_up(weighted / total_panels)
    else:
        overall_efficiency = DEFAULT_EFFICIENCY

    logger.debug("Sectioned %s roof of %.0f sq ft into %d sections, %d panels",
                 kind.value, area, len(sections), total_panels)

    return RoofAnalysis(
        roof_type=kind,
        sections=sections,
        total_usable_area=total_usable_area,
        total_panels=total_panels,
        overall_efficiency=overall_efficiency,
    )


def estimate_zoom_level(file_size_bytes: int) -> ZoomLevel:
    """Guess how much of the roof the photo frames from its file size."""
    size_mb = file_size_bytes / (1024 * 1024)
    if size_mb > 2:
        return ZoomLevel.CLOSE_UP
    if size_mb > 0.5:
        return ZoomLevel.MEDIUM
    return ZoomLevel.AERIAL


def estimate_roof_area(file_size_bytes: int, zoom_level: ZoomLevel) -> Tuple[int, float]:
    """
    Estimate roof area (sq ft) when the user did not provide one.

    Returns:
        (area, confidence) where confidence reflects how much of the roof the frame shows
    """
    if zoom_level == ZoomLevel.CLOSE_UP:
        # Partial roof section in frame
        area = max(600, min(1800, file_size_bytes / 350 + 800))
        confidence = 0.7
    elif zoom_level == ZoomLevel.MEDIUM:
        area = max(1000, min(3000, file_size_bytes / 450 + 1200))
        confidence = 0.9
    else:
        area = max(1200, min(4000, file_size_bytes / 500 + 1600))
        confidence = 0.8

    # Pull the estimate toward the nearest common residential roof size
    closest = min(TYPICAL_ROOF_SIZES, key=lambda size: abs(size - area))
    blended = round_half_up(area * confidence + closest * (1 - confidence))
    return blended, confidence


def describe_orientation(roof_type: Union[RoofType, str], sections: Sequence[RoofSection]) -> str:
    kind = parse_roof_type(roof_type)
    if not sections:
        return f"No usable solar zones identified on this {kind.value} roof."

    best = sections[0]
    for section in sections[1:]:
        if section.efficiency_percent > best.efficiency_percent:
            best = section

    return (f"Optimal orientation: {best.orientation} with {best.tilt_degrees:g}° tilt angle. "
            f"{kind.value} roof design allows for {len(sections)} distinct solar zones with varying "
            f"efficiency levels. Primary installation recommended on {best.name} for maximum energy production.")


def describe_shading(roof_type: Union[RoofType, str]) -> str:
    try:
        kind = parse_roof_type(roof_type)
    except InvalidRoofInputError:
        return GENERIC_SHADING_ANALYSIS
    return SHADING_ANALYSIS.get(kind, GENERIC_SHADING_ANALYSIS)
