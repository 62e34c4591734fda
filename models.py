"""
Data model shared by the layout engine, the AI orchestration layer, storage and the API.
"""
import math
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def round_half_up(value: float, digits: int = 0):
    """Round .5 upward instead of to the nearest even number like round() does."""
    if digits == 0:
        return int(math.floor(value + 0.5))
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


class RoofType(str, Enum):
    GABLE = "gable"
    HIP = "hip"
    SHED = "shed"
    FLAT = "flat"
    COMPLEX = "complex"


class ZoomLevel(str, Enum):
    CLOSE_UP = "close-up"
    MEDIUM = "medium"
    AERIAL = "aerial"


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class OverallHealth(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    CRITICAL = "Critical"


class FaultType(str, Enum):
    HAIL_DAMAGE = "Hail Damage"
    CELL_DAMAGE = "Cell Damage/Cracking"
    MICRO_CRACK = "Micro-crack"
    DIRT_DEBRIS = "Dirt/Debris"
    CELL_DISCOLORATION = "Cell Discoloration"
    HOT_SPOT = "Hot Spot"
    FRAME_DAMAGE = "Frame Damage"
    SHADING = "Shading"
    CORROSION = "Corrosion"
    DELAMINATION = "Delamination"


class RoofSection(BaseModel):
    """One roof plane with its share of the area and the panels it can hold."""
    model_config = ConfigDict(frozen=True)

    name: str
    orientation: str
    tilt_degrees: float
    area_sq_ft: float = Field(ge=0)
    panel_count: int = Field(ge=0)
    efficiency_percent: float = Field(ge=0, le=100)


class PanelRegion(BaseModel):
    """
    Normalized rectangle (fractions of image width/height) for one panel.

    Values are deliberately unconstrained: candidates coming back from the model
    are untrusted and are checked by region_validator, not at construction time.
    """
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float
    roof_section: Optional[str] = None

    @property
    def center(self):
        return (self.x + self.width / 2, self.y + self.height / 2)


class FaultAnnotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    x: float = Field(ge=0, le=1)
    y: float = Field(ge=0, le=1)
    description: str


class RoofInput(BaseModel):
    """Optional roof details supplied by the user alongside the upload."""
    roof_size: Optional[float] = Field(default=None, ge=100, le=10000)
    roof_shape: Literal["gable", "hip", "shed", "flat", "complex", "auto-detect"] = "auto-detect"
    panel_size: Literal["standard", "large", "auto-optimize"] = "auto-optimize"


class InstallationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_panels: int
    coverage: float
    efficiency: float
    confidence: int
    power_output: float
    orientation: str
    shading_analysis: str
    notes: str
    roof_type: Optional[RoofType] = None
    estimated_roof_area: Optional[float] = None
    usable_roof_area: Optional[float] = None
    roof_sections: List[RoofSection] = Field(default_factory=list)
    regions: List[PanelRegion] = Field(default_factory=list)
    source: Literal["ai", "fallback"] = "ai"


class FaultResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    panel_id: str
    faults: List[FaultAnnotation] = Field(default_factory=list)
    overall_health: OverallHealth
    recommendations: List[str] = Field(default_factory=list)
    source: Literal["ai", "fallback"] = "ai"


class ChatReply(BaseModel):
    response: str
    category: str = "general"
