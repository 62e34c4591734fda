"""
Deterministic solar panel packer.

Lays out rectangular panel regions in normalized image space ([0,1] x [0,1])
for a sectioned roof, with a fixed boundary setback, proportional spacing and
centered rows. Used whenever the model cannot provide a usable layout.
"""
import logging
import math
import numbers
from typing import List, Sequence, Tuple, Union

from shapely.geometry import Point, box

from models import PanelRegion, RoofSection, RoofType, ZoomLevel, round_half_up
from roof_sections import parse_roof_type

logger = logging.getLogger(__name__)

BOUNDARY_SETBACK = 0.10
MIN_SPACING_X = 0.005
MIN_SPACING_Y = 0.008
SPACING_X_RATIO = 0.08  # of panel width
SPACING_Y_RATIO = 0.12  # of panel height
SECTION_GAP = 0.02  # extra vertical gap below the middle row on multi-plane roofs
UNDERFILL_THRESHOLD = 0.8
ALTERNATIVE_SPACING = 0.005
COORDINATE_DIGITS = 3
DEFAULT_SECTION_NAME = "Primary Roof Section"

_EPSILON = 1e-9

# (roof area bucket, zoom) -> normalized (width, height).
# Bigger roofs need a smaller footprint per panel; closer photos show bigger panels.
PANEL_SIZES = {
    "large": {
        ZoomLevel.CLOSE_UP: (0.08, 0.06),
        ZoomLevel.MEDIUM: (0.06, 0.045),
        ZoomLevel.AERIAL: (0.05, 0.035),
    },
    "medium": {
        ZoomLevel.CLOSE_UP: (0.10, 0.075),
        ZoomLevel.MEDIUM: (0.08, 0.06),
        ZoomLevel.AERIAL: (0.06, 0.045),
    },
    "small": {
        ZoomLevel.CLOSE_UP: (0.12, 0.09),
        ZoomLevel.MEDIUM: (0.10, 0.075),
        ZoomLevel.AERIAL: (0.08, 0.06),
    },
}

ALTERNATIVE_PANEL_SIZES = {
    ZoomLevel.CLOSE_UP: (0.07, 0.055),
    ZoomLevel.MEDIUM: (0.055, 0.04),
    ZoomLevel.AERIAL: (0.045, 0.035),
}


def region_box(region: PanelRegion):
    return box(region.x, region.y, region.x + region.width, region.y + region.height)


def regions_overlap(a: PanelRegion, b: PanelRegion) -> bool:
    """Axis-aligned overlap test; shared edges count as overlapping."""
    return region_box(a).intersects(region_box(b))


def center_distance(a: PanelRegion, b: PanelRegion) -> float:
    return Point(a.center).distance(Point(b.center))


def parse_zoom_level(zoom_level: Union[ZoomLevel, str]) -> ZoomLevel:
    if isinstance(zoom_level, ZoomLevel):
        return zoom_level
    try:
        return ZoomLevel(str(zoom_level).strip().lower())
    except ValueError:
        valid = ", ".join(z.value for z in ZoomLevel)
        raise ValueError(f"Unknown zoom level '{zoom_level}'. Expected one of: {valid}")


def area_bucket(total_roof_area: float) -> str:
    if total_roof_area > 2000:
        return "large"
    if total_roof_area > 1000:
        return "medium"
    return "small"


def select_panel_size(total_roof_area: float, zoom_level: ZoomLevel) -> Tuple[float, float]:
    return PANEL_SIZES[area_bucket(total_roof_area)][zoom_level]


class PanelLayoutCalculator:
    """Calculate panel placement for a sectioned roof in normalized image coordinates"""

    def __init__(self, sections: Sequence[RoofSection], zoom_level: Union[ZoomLevel, str]):
        """
        Initialize panel layout calculator

        Args:
            sections: Roof planes from section_roof(), in template order
            zoom_level: close-up, medium or aerial
        """
        self.sections = list(sections)
        self.zoom_level = parse_zoom_level(zoom_level)
        self.total_roof_area = sum(section.area_sq_ft for section in self.sections)
        self.setback = BOUNDARY_SETBACK
        self.available_width = 1 - 2 * self.setback
        self.available_height = 1 - 2 * self.setback

    def calculate_layout(self, total_panels: int) -> List[PanelRegion]:
        """
        Place up to total_panels regions in balanced, centered rows.

        Falls back to the tighter alternative layout when fewer than 80% of
        the requested panels fit.
        """
        if total_panels < 0:
            raise ValueError(f"Panel count cannot be negative, got {total_panels}")
        if total_panels == 0:
            return []

        panel_w, panel_h = select_panel_size(self.total_roof_area, self.zoom_level)
        spacing_x = max(MIN_SPACING_X, panel_w * SPACING_X_RATIO)
        spacing_y = max(MIN_SPACING_Y, panel_h * SPACING_Y_RATIO)

        max_per_row = math.floor(self.available_width / (panel_w + spacing_x))
        max_rows = math.floor(self.available_height / (panel_h + spacing_y))
        to_place = min(total_panels, max_per_row * max_rows)

        logger.info("Packing %d panels (%.3f x %.3f, %s zoom, roof %.0f sq ft), grid capacity %d",
                    total_panels, panel_w, panel_h, self.zoom_level.value,
                    self.total_roof_area, max_per_row * max_rows)

        regions: List[PanelRegion] = []
        if to_place > 0:
            rows = min(max_rows, math.ceil(math.sqrt(to_place * (self.available_height / self.available_width))))
            per_row = math.ceil(to_place / rows)
            multi_section = len(self.sections) > 1

            for row in range(rows):
                if len(regions) >= to_place:
                    break

                in_row = min(per_row, to_place - len(regions))
                row_width = in_row * panel_w + (in_row - 1) * spacing_x
                row_x = self.setback + (self.available_width - row_width) / 2
                row_y = self.setback + row * (panel_h + spacing_y)
                if multi_section and row > rows / 2:
                    row_y += SECTION_GAP

                label = self._section_for_row(row, rows)
                for col in range(in_row):
                    region = self._make_region(row_x + col * (panel_w + spacing_x), row_y,
                                               panel_w, panel_h, label)
                    if self._within_setback(region):
                        regions.append(region)

        if len(regions) < total_panels * UNDERFILL_THRESHOLD:
            logger.info("Primary layout placed %d of %d panels, switching to alternative layout",
                        len(regions), total_panels)
            return self.alternative_layout(total_panels)

        logger.info("Placed %d panels", len(regions))
        return regions

    def alternative_layout(self, total_panels: int) -> List[PanelRegion]:
        """Smaller panels with tight fixed spacing, filled row by row from the top."""
        panel_w, panel_h = ALTERNATIVE_PANEL_SIZES[self.zoom_level]
        spacing = ALTERNATIVE_SPACING

        per_row = math.floor(self.available_width / (panel_w + spacing))
        max_rows = math.floor(self.available_height / (panel_h + spacing))
        label = self.sections[0].name if self.sections else DEFAULT_SECTION_NAME

        regions: List[PanelRegion] = []
        for row in range(max_rows):
            if len(regions) >= total_panels:
                break

            in_row = min(per_row, total_panels - len(regions))
            row_width = in_row * panel_w + (in_row - 1) * spacing
            row_x = self.setback + (self.available_width - row_width) / 2
            row_y = self.setback + row * (panel_h + spacing)

            for col in range(in_row):
                region = self._make_region(row_x + col * (panel_w + spacing), row_y,
                                           panel_w, panel_h, label)
                if self._within_setback(region):
                    regions.append(region)

        if len(regions) < total_panels:
            logger.warning("Alternative layout fits only %d of %d panels", len(regions), total_panels)
        return regions

    def _section_for_row(self, row: int, rows: int) -> str:
        if not self.sections:
            return DEFAULT_SECTION_NAME
        index = math.floor((row / rows) * len(self.sections))
        if index >= len(self.sections):
            index = 0
        return self.sections[index].name

    @staticmethod
    def _make_region(x: float, y: float, width: float, height: float, label: str) -> PanelRegion:
        return PanelRegion(
            x=round_half_up(x, COORDINATE_DIGITS),
            y=round_half_up(y, COORDINATE_DIGITS),
            width=round_half_up(width, COORDINATE_DIGITS),
            height=round_half_up(height, COORDINATE_DIGITS),
            roof_section=label,
        )

    def _within_setback(self, region: PanelRegion) -> bool:
        low = self.setback - _EPSILON
        high = 1 - self.setback + _EPSILON
        return (region.x >= low and region.y >= low
                and region.x + region.width <= high
                and region.y + region.height <= high)


def pack_panels(roof_type: Union[RoofType, str],
                sections: Sequence[RoofSection],
                total_panel_count: int,
                zoom_level: Union[ZoomLevel, str]) -> List[PanelRegion]:
    """
    Lay out panel regions for a sectioned roof.

    Returns:
        At most total_panel_count non-overlapping regions inside the 10% setback
    """
    kind = parse_roof_type(roof_type)
    if isinstance(total_panel_count, bool) or not isinstance(total_panel_count, numbers.Real) \
            or not float(total_panel_count).is_integer():
        raise ValueError(f"Panel count must be a whole number, got {total_panel_count!r}")
    calculator = PanelLayoutCalculator(sections, zoom_level)
    regions = calculator.calculate_layout(int(total_panel_count))
    logger.debug("Layout for %s roof: %d regions", kind.value, len(regions))
    return regions
