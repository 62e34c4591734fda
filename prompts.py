"""
Prompt templates sent to the multimodal model.

Every prompt asks for a single JSON object so the answer can be parsed with
gemini_client.extract_json.
"""
from typing import Optional, Sequence

from models import RoofInput

HISTORY_LINES = 6

ROOFTOP_CLASSIFICATION_PROMPT = """
STRICT VALIDATION: Decide whether this image shows a ROOFTOP or a building whose roof
surface is suitable for planning a solar panel installation.

Respond with a JSON object: {"isValid": boolean, "reason": string}

The image is VALID only if it shows:
- A clear rooftop from above, from the air, or at an angle
- A building exterior with a visible roof surface
- A residential or commercial building with usable roof area

The image is INVALID if it shows:
- No visible roof or building structure
- Indoor spaces or room interiors
- People, faces, cars or personal photos
- Landscapes, trees or ground-level scenes
- Solar panels that are already installed
- Blurry or unclear content
"""

SOLAR_PANEL_CLASSIFICATION_PROMPT = """
STRICT VALIDATION: Decide whether this image shows SOLAR PANELS or photovoltaic
equipment that can be inspected for faults.

Respond with a JSON object: {"isValid": boolean, "reason": string}

The image is VALID only if it shows:
- Visible solar panels or photovoltaic modules
- Solar arrays or installations
- Close-up views of panel cells or surfaces

The image is INVALID if it shows:
- Empty rooftops without solar panels
- Buildings without visible solar equipment
- Other electrical equipment or unrelated devices
- People, indoor spaces or non-solar scenes
- Blurry or unclear content
"""

CLASSIFICATION_PROMPTS = {
    "rooftop": ROOFTOP_CLASSIFICATION_PROMPT,
    "solar-panel": SOLAR_PANEL_CLASSIFICATION_PROMPT,
}

INSTALLATION_PROMPT = """
You are a certified solar installation expert. Analyze this rooftop image and plan
a solar panel installation on the visible roof surface.
{roof_input_block}
ROOF SURFACE DETECTION:
- Identify the actual roof surface (shingles, tiles, metal) and its boundaries
- Never place panels on sky, walls, ground, chimneys, vents or skylights
- Keep a 3-foot setback from every roof edge

COORDINATES:
- Normalized image coordinates, (0,0) is top-left and (1,1) is bottom-right
- All panels have IDENTICAL width and height ({panel_size_hint})
- Panels must not overlap and must keep at least 0.02 normalized units apart
- Spread panels over all suitable roof planes, aiming for 70-85% coverage

PANEL SPECIFICATION:
- 66" x 40" (18.3 sq ft), 425 W monocrystalline modules

Respond with a JSON object with exactly these keys:
{{
  "totalPanels": number,
  "coverage": number (percent of usable roof area, 0-100),
  "efficiency": number (system efficiency, 0-100),
  "confidence": number (85-96),
  "powerOutput": number (kW, totalPanels * 0.425),
  "orientation": string,
  "shadingAnalysis": string,
  "notes": string,
  "roofType": string (gable, hip, shed, flat or complex),
  "estimatedRoofArea": number (sq ft),
  "usableRoofArea": number (sq ft),
  "roofSections": [
    {{"name": string, "orientation": string, "tiltAngle": number, "area": number,
      "panelCount": number, "efficiency": number}}
  ],
  "regions": [
    {{"x": number, "y": number, "width": number, "height": number, "roofSection": string}}
  ]
}}
"""

FAULT_PROMPT = """
You are a certified solar panel inspector. Examine this solar panel image and
identify defects, damage or performance issues.

SEVERITY SCALE:
- Critical: safety hazard, more than 40% power loss, hail damage, extensive cracking
- High: 15-40% power loss or rapidly spreading damage
- Medium: 5-15% power loss, maintenance required
- Low: under 5% power loss, cosmetic issues or light soiling

FAULT TYPES: Hail Damage, Cell Damage/Cracking, Micro-crack, Hot Spot, Shading,
Dirt/Debris, Corrosion, Delamination, Cell Discoloration, Frame Damage.

Use plain text only, no emojis or decorative symbols.

Respond with a JSON object:
{
  "panelId": string,
  "faults": [
    {"type": string, "severity": "Critical" | "High" | "Medium" | "Low",
     "x": number (0-1), "y": number (0-1), "description": string}
  ],
  "overallHealth": "Excellent" | "Good" | "Fair" | "Poor" | "Critical",
  "recommendations": [string]
}
"""

CHAT_PROMPT = """
You are SolarScope AI, a solar panel advisor. Give practical, accurate advice on
installation planning, fault troubleshooting, maintenance, performance and safety.
Use bullet points for steps, include safety warnings where relevant and say when a
professional should be consulted.

When the user asks for help or support, include these Indian solar helplines:
- MNRE Helpline: 1800-180-3333
- SECI Helpline: 011-2436-0707
- National Solar Mission Support: 1800-11-3003
- BEE Helpline: 1800-11-2722
- State Electricity Regulatory Commission: 1912
- PM Surya Ghar Muft Bijli Yojana: 1800-11-4455

Respond with a JSON object:
{{
  "response": string,
  "category": "installation" | "fault" | "maintenance" | "performance" | "general" | "helpline"
}}
{history_block}
USER QUESTION: {message}
"""


def panel_size_hint(roof_size: Optional[float]) -> str:
    """Normalized panel size to ask for, scaled to the declared roof size."""
    if roof_size is None:
        return "approximately 0.08-0.10 wide and 0.06-0.08 high"
    if roof_size < 800:
        return "small roof: approximately 0.10-0.12 wide and 0.07-0.08 high"
    if roof_size > 2000:
        return "large roof: approximately 0.05-0.07 wide and 0.03-0.05 high"
    return "medium roof: approximately 0.08-0.10 wide and 0.06-0.07 high"


def roof_input_block(roof_input: Optional[RoofInput]) -> str:
    if roof_input is None:
        return ""
    size = f"{roof_input.roof_size:g} sq ft" if roof_input.roof_size is not None else "not provided"
    return (
        "\nUSER-PROVIDED ROOF INFORMATION:\n"
        f"- Roof Size: {size}\n"
        f"- Roof Shape: {roof_input.roof_shape}\n"
        f"- Panel Size Preference: {roof_input.panel_size}\n"
        "Cross-check your visual estimate against these values. When they disagree, "
        "prefer the user's values and mention the discrepancy in the notes.\n"
    )


def installation_prompt(roof_input: Optional[RoofInput] = None) -> str:
    roof_size = roof_input.roof_size if roof_input is not None else None
    return INSTALLATION_PROMPT.format(
        roof_input_block=roof_input_block(roof_input),
        panel_size_hint=panel_size_hint(roof_size),
    )


def chat_prompt(message: str, history: Sequence[str] = ()) -> str:
    recent = list(history)[-HISTORY_LINES:]
    history_block = ""
    if recent:
        history_block = "\nCONVERSATION HISTORY:\n" + "\n".join(recent) + "\n"
    return CHAT_PROMPT.format(history_block=history_block, message=message)
