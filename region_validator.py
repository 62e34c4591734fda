"""
Validation of panel regions proposed by the external model.

The model's layout is untrusted: panels may be oversized, placed in the sky,
stacked on top of each other or crammed together. Each candidate is checked
against the panels already accepted; survivors are resized to one uniform
panel size and the derived metrics are recomputed from what is left.
"""
import logging
import math
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from models import PanelRegion, round_half_up
from panel_layout import center_distance, regions_overlap

logger = logging.getLogger(__name__)

MIN_WIDTH, MAX_WIDTH = 0.04, 0.12
MIN_HEIGHT, MAX_HEIGHT = 0.03, 0.08
MIN_X, MIN_Y = 0.05, 0.10
MAX_RIGHT, MAX_BOTTOM = 0.95, 0.90
CENTER_X_RANGE = (0.10, 0.90)
CENTER_Y_RANGE = (0.15, 0.85)
MIN_CENTER_DISTANCE = 0.025  # ~7.5 inches at typical residential scale

PANEL_POWER_KW = 0.425

# Confidence blend weights (sum to 1)
WEIGHT_IMAGE_QUALITY = 0.25
WEIGHT_VALIDATION_RATE = 0.35
WEIGHT_COVERAGE = 0.20
WEIGHT_PANEL_COUNT = 0.12
WEIGHT_LAYOUT = 0.08
TARGET_COVERAGE = 80.0
TARGET_PANEL_COUNT = 25
CONFIDENCE_FLOOR, CONFIDENCE_CEILING = 85, 96

# Per-format image quality constants. WebP uploads are assumed slightly lossier.
IMAGE_QUALITY_BY_FORMAT = {"webp": 0.88}
DEFAULT_IMAGE_QUALITY = 0.92


class Rejection(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    region: PanelRegion
    reasons: List[str]


class ValidationOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    regions: List[PanelRegion] = Field(default_factory=list)
    total_panels: int = 0
    power_output: float = 0.0
    confidence: int = CONFIDENCE_FLOOR
    rejections: List[Rejection] = Field(default_factory=list)


class AllRegionsRejectedError(Exception):
    """Every candidate failed validation; the whole model layout must be discarded."""

    def __init__(self, rejections: Sequence[Rejection]):
        self.rejections = list(rejections)
        super().__init__(
            f"All {len(self.rejections)} panels failed validation - "
            "likely placing panels outside roof boundaries"
        )


def _is_finite(region: PanelRegion) -> bool:
    return all(math.isfinite(v) for v in (region.x, region.y, region.width, region.height))


def _size_ok(region: PanelRegion) -> bool:
    return MIN_WIDTH <= region.width <= MAX_WIDTH and MIN_HEIGHT <= region.height <= MAX_HEIGHT


def _bounds_ok(region: PanelRegion) -> bool:
    return (region.x >= MIN_X and region.y >= MIN_Y
            and region.x + region.width <= MAX_RIGHT
            and region.y + region.height <= MAX_BOTTOM)


def _center_ok(region: PanelRegion) -> bool:
    cx, cy = region.center
    return (CENTER_X_RANGE[0] <= cx <= CENTER_X_RANGE[1]
            and CENTER_Y_RANGE[0] <= cy <= CENTER_Y_RANGE[1])


def _placement_failures(region: PanelRegion, accepted: Sequence[PanelRegion]) -> List[str]:
    failures = []
    if not _bounds_ok(region):
        failures.append("bounds")
    if any(regions_overlap(region, other) for other in accepted):
        failures.append("overlap")
    if any(center_distance(region, other) < MIN_CENTER_DISTANCE for other in accepted):
        failures.append("spacing")
    if not _center_ok(region):
        failures.append("center")
    return failures


def check_region(region: PanelRegion, accepted: Sequence[PanelRegion]) -> List[str]:
    """
    Return the names of every predicate the candidate fails against the accepted list.

    An empty list means the candidate is acceptable.
    """
    if not _is_finite(region):
        return ["non_finite"]
    failures = [] if _size_ok(region) else ["size"]
    failures.extend(_placement_failures(region, accepted))
    return failures


def image_quality_for(image_format: Optional[str]) -> float:
    fmt = (image_format or "").lower().lstrip(".")
    return IMAGE_QUALITY_BY_FORMAT.get(fmt, DEFAULT_IMAGE_QUALITY)


def calculate_confidence(accepted: int, offered: int, coverage: Optional[float],
                         image_format: Optional[str] = None) -> int:
    """Weighted confidence score in percent, clamped to [85, 96]."""
    validation_rate = accepted / max(1, offered)
    coverage_quality = min(1.0, max(0.0, (coverage or 0) / TARGET_COVERAGE))
    panel_count_quality = min(1.0, accepted / TARGET_PANEL_COUNT)
    layout_complexity = 0.95 if accepted > 12 else 0.88

    blended = (image_quality_for(image_format) * WEIGHT_IMAGE_QUALITY
               + validation_rate * WEIGHT_VALIDATION_RATE
               + coverage_quality * WEIGHT_COVERAGE
               + panel_count_quality * WEIGHT_PANEL_COUNT
               + layout_complexity * WEIGHT_LAYOUT)
    return max(CONFIDENCE_FLOOR, min(CONFIDENCE_CEILING, round_half_up(blended * 100)))


def validate_external_regions(candidates: Sequence[PanelRegion],
                              declared_coverage: Optional[float],
                              declared_total_panels: Optional[int],
                              image_format: Optional[str] = None) -> ValidationOutcome:
    """
    Filter model-proposed panel regions and recompute the derived metrics.

    Args:
        candidates: Regions as returned by the model, in its order
        declared_coverage: Coverage percent the model reported
        declared_total_panels: Panel count the model reported (replaced by the validated count)
        image_format: Upload format (file extension), feeds the image quality term

    Returns:
        ValidationOutcome with uniform-size regions, panel count, power output and confidence

    Raises:
        AllRegionsRejectedError: candidates were offered but none survived
    """
    offered = len(candidates)
    accepted: List[PanelRegion] = []
    accepted_index: List[int] = []
    rejections: List[Rejection] = []

    for index, candidate in enumerate(candidates):
        failures = check_region(candidate, accepted)
        if failures:
            rejections.append(Rejection(index=index, region=candidate, reasons=failures))
            logger.info("Panel %d rejected: x=%s y=%s w=%s h=%s reasons=%s",
                        index, candidate.x, candidate.y, candidate.width, candidate.height,
                        ",".join(failures))
        else:
            accepted.append(candidate)
            accepted_index.append(index)

    if offered and not accepted:
        logger.warning("No panels passed validation out of %d offered", offered)
        raise AllRegionsRejectedError(rejections)

    regions: List[PanelRegion] = []
    if accepted:
        # Every panel must render at the same physical size
        standard_w, standard_h = accepted[0].width, accepted[0].height
        for index, region in zip(accepted_index, accepted):
            resized = region.model_copy(update={"width": standard_w, "height": standard_h})
            failures = _placement_failures(resized, regions)
            if failures:
                rejections.append(Rejection(index=index, region=resized, reasons=["resized"] + failures))
                logger.info("Panel %d dropped after resizing to %.3f x %.3f: %s",
                            index, standard_w, standard_h, ",".join(failures))
                continue
            regions.append(resized)

    total_panels = len(regions)
    confidence = calculate_confidence(total_panels, offered, declared_coverage, image_format)

    if declared_total_panels is not None and declared_total_panels != total_panels:
        logger.info("Model declared %s panels, %d survived validation", declared_total_panels, total_panels)
    logger.info("Validated %d of %d panel regions with %d%% confidence", total_panels, offered, confidence)

    return ValidationOutcome(
        regions=regions,
        total_panels=total_panels,
        power_output=round_half_up(total_panels * PANEL_POWER_KW, 2),
        confidence=confidence,
        rejections=rejections,
    )
