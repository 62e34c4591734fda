import logging
import os
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, Spacer, Table, TableStyle
from reportlab.platypus.doctemplate import BaseDocTemplate, PageTemplate
from reportlab.platypus.frames import Frame

from chart_generator import (generate_section_chart, generate_severity_chart,
                             render_fault_overlay, render_region_overlay)
from models import FaultResult, InstallationResult

logger = logging.getLogger(__name__)

PRIMARY_COLOR = colors.HexColor('#1e3a8a')
ACCENT_COLOR = colors.HexColor('#f59e0b')
HEADER_HEIGHT = 0.9 * inch
FONT_NAME = 'Helvetica'
FONT_NAME_BOLD = 'Helvetica-Bold'


def safe_get(data, key, default=''):
    """Safely get a value from dictionary, handling None values"""
    value = data.get(key)
    if value is None or value == '':
        return default
    return value


def format_number(num, digits=0):
    """Format number with thousands separator"""
    try:
        return f"{float(num):,.{digits}f}"
    except (TypeError, ValueError):
        return str(num)


def escape_for_paragraph(text):
    """Escape XML special characters that Paragraph markup uses"""
    if text is None:
        return ''
    text_str = str(text)
    text_str = text_str.replace('&', '&amp;')
    text_str = text_str.replace('<', '&lt;')
    text_str = text_str.replace('>', '&gt;')
    return text_str


def notes_to_paragraph_markup(text):
    """Turn **bold** runs and line breaks of the notes text into Paragraph markup"""
    escaped = escape_for_paragraph(text)
    parts = escaped.split('**')
    markup = ''.join(f'<b>{part}</b>' if i % 2 else part for i, part in enumerate(parts))
    return markup.replace('\n', '<br/>')


def add_header_band(canvas, doc):
    """Blue header band with the report title on every page"""
    canvas.saveState()
    canvas.setFillColor(PRIMARY_COLOR)
    canvas.rect(0, A4[1] - HEADER_HEIGHT, A4[0], HEADER_HEIGHT, fill=1, stroke=0)
    canvas.setFillColor(colors.white)
    canvas.setFont(FONT_NAME_BOLD, 16)
    canvas.drawString(0.75 * inch, A4[1] - 0.55 * inch, 'SolarScope Analysis Report')
    canvas.setFont(FONT_NAME, 8)
    canvas.drawRightString(A4[0] - 0.75 * inch, 0.4 * inch, f'Page {doc.page}')
    canvas.restoreState()


def _image_flowable(png_bytes, max_width, max_height):
    """Scale a PNG into the frame while keeping its aspect ratio"""
    image = Image(BytesIO(png_bytes))
    ratio = min(max_width / image.imageWidth, max_height / image.imageHeight)
    image.drawWidth = image.imageWidth * ratio
    image.drawHeight = image.imageHeight * ratio
    return image


def _summary_table(rows, width):
    table = Table(rows, colWidths=[width * 0.4, width * 0.6])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), PRIMARY_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), FONT_NAME_BOLD),
        ('FONTNAME', (0, 1), (0, -1), FONT_NAME_BOLD),
        ('FONTNAME', (1, 1), (1, -1), FONT_NAME),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f1f5f9')]),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#cbd5e0')),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    return table


def _installation_elements(analysis, result, styles, width):
    elements = [
        _summary_table([
            ['Installation Summary', ''],
            ['Total panels', str(result.total_panels)],
            ['Power output', f"{format_number(result.power_output, 2)} kW"],
            ['Coverage', f"{format_number(result.coverage)}%"],
            ['Efficiency', f"{format_number(result.efficiency)}%"],
            ['Confidence', f"{result.confidence}%"],
            ['Roof type', result.roof_type.value if result.roof_type else 'Unknown'],
            ['Estimated roof area', f"{format_number(result.estimated_roof_area)} sq ft"
             if result.estimated_roof_area is not None else 'Unknown'],
            ['Usable roof area', f"{format_number(result.usable_roof_area)} sq ft"
             if result.usable_roof_area is not None else 'Unknown'],
            ['Analysis source', 'AI model' if result.source == 'ai' else 'Engineering estimate'],
        ], width),
        Spacer(1, 12),
    ]

    image_path = safe_get(analysis, 'image_path')
    if image_path and os.path.exists(image_path):
        elements.append(Paragraph('Panel Layout', styles['heading']))
        elements.append(_image_flowable(render_region_overlay(image_path, result.regions), width, 3.5 * inch))
        elements.append(Spacer(1, 12))

    if result.roof_sections:
        elements.append(Paragraph('Roof Sections', styles['heading']))
        elements.append(_image_flowable(generate_section_chart(result.roof_sections), width, 3 * inch))
        elements.append(Spacer(1, 12))

    for title, text in (('Orientation', result.orientation),
                        ('Shading Analysis', result.shading_analysis),
                        ('Notes', result.notes)):
        if text:
            elements.append(Paragraph(title, styles['heading']))
            elements.append(Paragraph(notes_to_paragraph_markup(text), styles['normal']))
    return elements


def _fault_elements(analysis, result, styles, width):
    elements = [
        _summary_table([
            ['Fault Inspection Summary', ''],
            ['Panel', result.panel_id],
            ['Overall health', result.overall_health.value],
            ['Faults found', str(len(result.faults))],
            ['Analysis source', 'AI model' if result.source == 'ai' else 'Statistical estimate'],
        ], width),
        Spacer(1, 12),
    ]

    image_path = safe_get(analysis, 'image_path')
    if image_path and os.path.exists(image_path):
        elements.append(Paragraph('Fault Locations', styles['heading']))
        elements.append(_image_flowable(render_fault_overlay(image_path, result.faults), width, 3.5 * inch))
        elements.append(Spacer(1, 12))

    if result.faults:
        elements.append(Paragraph('Severity Breakdown', styles['heading']))
        elements.append(_image_flowable(generate_severity_chart(result.faults), width, 2.5 * inch))
        elements.append(Spacer(1, 12))

        rows = [['Type', 'Severity', 'Description']]
        for fault in result.faults:
            rows.append([
                Paragraph(escape_for_paragraph(fault.type), styles['cell']),
                fault.severity.value,
                Paragraph(escape_for_paragraph(fault.description), styles['cell']),
            ])
        table = Table(rows, colWidths=[width * 0.22, width * 0.13, width * 0.65], repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), PRIMARY_COLOR),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), FONT_NAME_BOLD),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#cbd5e0')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        elements.append(Paragraph('Detected Faults', styles['heading']))
        elements.append(table)

    if result.recommendations:
        elements.append(Paragraph('Recommendations', styles['heading']))
        for recommendation in result.recommendations:
            elements.append(Paragraph(f"• {escape_for_paragraph(recommendation)}", styles['normal']))
    return elements


def generate_analysis_pdf(analysis):
    """
    Generate a PDF report for a stored analysis

    Args:
        analysis: Dictionary as returned by AnalysisStore.get_analysis

    Returns:
        BytesIO object containing the PDF
    """
    buffer = BytesIO()

    doc = BaseDocTemplate(
        buffer,
        pagesize=A4,
        topMargin=HEADER_HEIGHT + 0.3 * inch,
        bottomMargin=0.7 * inch,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        title=f"SolarScope analysis #{safe_get(analysis, 'id', '')}",
    )
    frame = Frame(doc.leftMargin, doc.bottomMargin, doc.width, doc.height, id='content')
    doc.addPageTemplates([PageTemplate(id='Report', frames=frame, onPage=add_header_band)])

    base = getSampleStyleSheet()
    styles = {
        'heading': ParagraphStyle('ReportHeading', parent=base['Heading2'], fontSize=12,
                                  textColor=PRIMARY_COLOR, spaceBefore=8, spaceAfter=4,
                                  fontName=FONT_NAME_BOLD),
        'normal': ParagraphStyle('ReportNormal', parent=base['Normal'], fontSize=9, leading=12,
                                 spaceAfter=3, fontName=FONT_NAME, alignment=TA_LEFT),
        'cell': ParagraphStyle('ReportCell', parent=base['Normal'], fontSize=8, leading=10,
                               fontName=FONT_NAME),
        'meta': ParagraphStyle('ReportMeta', parent=base['Normal'], fontSize=8,
                               textColor=colors.HexColor('#475569'), fontName=FONT_NAME),
    }

    analysis_type = safe_get(analysis, 'type', 'installation')
    elements = [
        Paragraph(
            f"Analysis #{escape_for_paragraph(safe_get(analysis, 'id', '-'))} · "
            f"{escape_for_paragraph(analysis_type)} · {escape_for_paragraph(safe_get(analysis, 'created_at', ''))}",
            styles['meta'],
        ),
        Spacer(1, 8),
    ]

    if analysis_type == 'fault-detection':
        result = FaultResult.model_validate(analysis['results'])
        elements.extend(_fault_elements(analysis, result, styles, doc.width))
    else:
        result = InstallationResult.model_validate(analysis['results'])
        elements.extend(_installation_elements(analysis, result, styles, doc.width))

    doc.build(elements)
    buffer.seek(0)
    logger.info("Generated %s PDF report", analysis_type, extra={"analysis_id": analysis.get('id')})
    return buffer
