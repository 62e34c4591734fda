"""
Chart and overlay generator for SolarScope reports
Draws panel layouts and fault markers over the uploaded photo (Pillow) and
renders summary charts (matplotlib) as PNG bytes for the PDF export
"""
import io
import logging
from collections import Counter
from typing import Sequence

import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend for server-side rendering
import matplotlib.pyplot as plt
from matplotlib.ticker import MaxNLocator
from matplotlib.colors import Normalize
from PIL import Image, ImageDraw

from models import FaultAnnotation, PanelRegion, RoofSection, Severity

logger = logging.getLogger(__name__)

PRIMARY_COLOR = '#1e3a8a'
PANEL_FILL = (37, 99, 235, 110)
PANEL_OUTLINE = (30, 58, 138, 255)

SEVERITY_COLORS = {
    Severity.CRITICAL: '#dc2626',
    Severity.HIGH: '#ea580c',
    Severity.MEDIUM: '#ca8a04',
    Severity.LOW: '#16a34a',
}

# Overlays are drawn on a copy no wider than this
MAX_OVERLAY_WIDTH = 1600


def _load_base_image(image_path: str) -> Image.Image:
    image = Image.open(image_path).convert('RGBA')
    if image.width > MAX_OVERLAY_WIDTH:
        ratio = MAX_OVERLAY_WIDTH / image.width
        image = image.resize((MAX_OVERLAY_WIDTH, max(1, int(image.height * ratio))))
    return image


def _to_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.convert('RGB').save(buf, format='PNG')
    return buf.getvalue()


def render_region_overlay(image_path: str, regions: Sequence[PanelRegion]) -> bytes:
    """
    Draw panel regions over the photo.

    Args:
        image_path: Uploaded rooftop image
        regions: Normalized panel rectangles

    Returns:
        PNG image as bytes
    """
    base = _load_base_image(image_path)
    overlay = Image.new('RGBA', base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    width, height = base.size
    outline_width = max(1, width // 400)

    for region in regions:
        left = region.x * width
        top = region.y * height
        right = (region.x + region.width) * width
        bottom = (region.y + region.height) * height
        draw.rectangle([left, top, right, bottom], fill=PANEL_FILL,
                       outline=PANEL_OUTLINE, width=outline_width)

    logger.debug("Rendered %d panel regions over %s", len(regions), image_path)
    return _to_png(Image.alpha_composite(base, overlay))


def render_fault_overlay(image_path: str, faults: Sequence[FaultAnnotation]) -> bytes:
    """Draw a ring marker, coloured by severity, at each fault position."""
    base = _load_base_image(image_path)
    draw = ImageDraw.Draw(base)
    width, height = base.size
    radius = max(6, min(width, height) // 30)

    for fault in faults:
        cx, cy = fault.x * width, fault.y * height
        color = SEVERITY_COLORS.get(Severity(fault.severity), PRIMARY_COLOR)
        draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius],
                     outline=color, width=max(2, radius // 4))

    return _to_png(base)


def generate_section_chart(sections: Sequence[RoofSection]) -> bytes:
    """
    Bar chart of panels per roof section, coloured by section efficiency.

    Returns:
        PNG image as bytes
    """
    fig, ax = plt.subplots(figsize=(8, 4))
    fig.patch.set_facecolor('white')

    names = [section.name for section in sections]
    counts = [section.panel_count for section in sections]
    norm = Normalize(vmin=50, vmax=100)
    bar_colors = [matplotlib.colormaps["viridis"](norm(section.efficiency_percent)) for section in sections]

    bars = ax.bar(range(len(sections)), counts, color=bar_colors, edgecolor=PRIMARY_COLOR,
                  linewidth=1.2, width=0.6, zorder=3)

    for bar, section in zip(bars, sections):
        ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height(),
                f"{section.panel_count} ({section.efficiency_percent:g}%)",
                ha='center', va='bottom', fontsize=8, color='#2d3748')

    ax.set_xticks(range(len(sections)))
    ax.set_xticklabels(names, rotation=20, ha='right', fontsize=8)
    ax.set_ylabel('Panels', fontsize=10, color='#2d3748')
    ax.set_title('Panels per Roof Section', fontsize=12, fontweight='bold', color=PRIMARY_COLOR)
    ax.grid(axis='y', alpha=0.15, linestyle='--', color='#94a3b8', zorder=0)
    ax.set_axisbelow(True)

    plt.tight_layout()

    buf = io.BytesIO()
    plt.savefig(buf, format='png', dpi=180, bbox_inches='tight', facecolor='white')
    buf.seek(0)
    plt.close(fig)

    return buf.getvalue()


def generate_severity_chart(faults: Sequence[FaultAnnotation]) -> bytes:
    """Bar chart of fault counts by severity, Critical first."""
    counts = Counter(Severity(fault.severity) for fault in faults)
    order = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]

    fig, ax = plt.subplots(figsize=(6, 3.5))
    fig.patch.set_facecolor('white')

    ax.bar([s.value for s in order], [counts[s] for s in order],
           color=[SEVERITY_COLORS[s] for s in order], width=0.6, zorder=3)
    ax.set_ylabel('Faults', fontsize=10, color='#2d3748')
    ax.set_title('Faults by Severity', fontsize=12, fontweight='bold', color=PRIMARY_COLOR)
    ax.yaxis.set_major_locator(MaxNLocator(integer=True))
    ax.grid(axis='y', alpha=0.15, linestyle='--', color='#94a3b8', zorder=0)
    ax.set_axisbelow(True)

    plt.tight_layout()

    buf = io.BytesIO()
    plt.savefig(buf, format='png', dpi=180, bbox_inches='tight', facecolor='white')
    buf.seek(0)
    plt.close(fig)

    return buf.getvalue()
