# utils/report_pdf.py
"""Report PDF rendering with reportlab (platypus layout, reportlab.graphics charts)."""
from datetime import date, datetime, timezone
from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.graphics.charts.barcharts import VerticalBarChart
from reportlab.graphics.charts.linecharts import HorizontalLineChart
from reportlab.graphics.charts.piecharts import Pie
from reportlab.graphics.shapes import Drawing, String
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from utils.formatting import NAIROBI_TZ, fmt_date, format_value

MAX_CHART_POINTS = 12
CHART_WIDTH = 480
CHART_HEIGHT = 200
BRAND = colors.HexColor("#1E3A8A")
PALETTE = [
     colors.HexColor("#3B82F6"),
     colors.HexColor("#10B981"),
     colors.HexColor("#F59E0B"),
     colors.HexColor("#EF4444"),
     colors.HexColor("#8B5CF6"),
     colors.HexColor("#6366F1"),
     colors.HexColor("#14B8A6"),
     colors.HexColor("#F97316"),
]
ALIGN = {"left": "LEFT", "right": "RIGHT", "center": "CENTER"}


def _number(value) -> Optional[float]:
     try:
          return float(value)
     except (TypeError, ValueError):
          return None


def _kpi_table(config, kpis: dict) -> Table:
     labels = [kpi.label for kpi in config.kpis]
     values = [format_value(kpis.get(kpi.key, 0), kpi.format) for kpi in config.kpis]
     table = Table([labels, values], hAlign="LEFT")
     table.setStyle(TableStyle([
          ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
          ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
          ("FONT", (0, 1), (-1, 1), "Helvetica-Bold", 12),
          ("ALIGN", (0, 0), (-1, -1), "CENTER"),
          ("TOPPADDING", (0, 0), (-1, -1), 6),
          ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
     ]))
     return table


def _series(chart, rows: list[dict]) -> tuple[list[str], list[list[float]]]:
     """Category labels and one value list per plotted key, capped at MAX_CHART_POINTS."""
     rows = rows[:MAX_CHART_POINTS]
     x_key = chart.x_key or "name"
     keys = chart.y_keys or ["value"]
     labels = [str(row.get(x_key) or row.get("name") or "") for row in rows]
     series = [[_number(row.get(key)) or 0.0 for row in rows] for key in keys]
     return labels, series


def _bar_drawing(chart, rows: list[dict], line: bool = False) -> Drawing:
     labels, series = _series(chart, rows)
     drawing = Drawing(CHART_WIDTH, CHART_HEIGHT)
     plot = HorizontalLineChart() if line else VerticalBarChart()
     plot.x, plot.y = 40, 30
     plot.width, plot.height = CHART_WIDTH - 60, CHART_HEIGHT - 50
     plot.data = series
     plot.categoryAxis.categoryNames = [label[:12] for label in labels]
     plot.categoryAxis.labels.fontSize = 7
     plot.valueAxis.valueMin = 0
     plot.valueAxis.labels.fontSize = 7
     for i in range(len(series)):
          if line:
               plot.lines[i].strokeColor = PALETTE[i % len(PALETTE)]
          else:
               plot.bars[i].fillColor = PALETTE[i % len(PALETTE)]
     drawing.add(plot)
     return drawing


def _pie_drawing(chart, rows: list[dict]) -> Drawing:
     rows = rows[:MAX_CHART_POINTS]
     values = [_number(row.get("value")) or 0.0 for row in rows]
     drawing = Drawing(CHART_WIDTH, CHART_HEIGHT)
     pie = Pie()
     pie.x, pie.y = 40, 15
     pie.width = pie.height = CHART_HEIGHT - 30
     pie.data = values
     pie.labels = [str(row.get("name") or "")[:16] for row in rows]
     pie.slices.fontSize = 7
     for i in range(len(values)):
          pie.slices[i].fillColor = PALETTE[i % len(PALETTE)]
     drawing.add(pie)
     return drawing


def chart_drawing(chart, rows) -> Optional[Drawing]:
     """A drawing for one chart, or None when there is nothing to plot."""
     if not rows:
          return None
     if chart.type in ("pie", "donut"):
          if not any(_number(row.get("value")) for row in rows):
               return None
          drawing = _pie_drawing(chart, rows)
     else:
          drawing = _bar_drawing(chart, rows, line=chart.type in ("line", "area"))
     drawing.add(String(0, CHART_HEIGHT - 10, chart.title, fontName="Helvetica-Bold", fontSize=10))
     return drawing


def _data_table(config, rows: list[dict], styles):
     columns = config.table_columns
     if not rows:
          return Paragraph("No data available", styles["Italic"])

     body = [[col.label for col in columns]]
     for row in rows:
          body.append([format_value(row.get(col.key), col.format or "") for col in columns])

     table = Table(body, repeatRows=1, hAlign="LEFT")
     style = [
          ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
          ("BACKGROUND", (0, 0), (-1, 0), BRAND),
          ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
          ("FONT", (0, 0), (-1, 0), "Helvetica-Bold", 8),
          ("FONT", (0, 1), (-1, -1), "Helvetica", 8),
          ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
     ]
     for index, col in enumerate(columns):
          style.append(("ALIGN", (index, 1), (index, -1), ALIGN.get(col.align, "LEFT")))
     table.setStyle(TableStyle(style))
     return table


def render_report_pdf(config, data, period: tuple[date, date], generated_at: Optional[datetime] = None) -> bytes:
     """
     Render a catalogue report to PDF.

     Args:
          config: ReportConfig with kpis, charts and table_columns
          data: ReportData for the period
          period: (start, end) the data covers
          generated_at: Timestamp printed in the header, defaults to now

     Returns:
          The PDF document as bytes
     """
     generated_at = generated_at or datetime.now(timezone.utc)
     buffer = BytesIO()
     doc = SimpleDocTemplate(
          buffer,
          pagesize=A4,
          rightMargin=40,
          leftMargin=40,
          topMargin=40,
          bottomMargin=40,
          title=config.title,
     )
     styles = getSampleStyleSheet()

     start, end = period
     story = [
          Paragraph(escape(config.title), styles["Title"]),
          Paragraph(f"Period: {fmt_date(start)} - {fmt_date(end)}", styles["Normal"]),
          Paragraph(
               f"Generated: {generated_at.astimezone(NAIROBI_TZ).strftime('%b %d, %Y %H:%M')} EAT",
               styles["Normal"],
          ),
          Spacer(1, 16),
          _kpi_table(config, data.kpis),
          Spacer(1, 16),
     ]

     for chart in config.charts:
          drawing = chart_drawing(chart, data.charts.get(chart.data_key) or [])
          if drawing is not None:
               story.extend([drawing, Spacer(1, 12)])

     story.append(Paragraph("Details", styles["Heading2"]))
     story.append(_data_table(config, data.table, styles))

     doc.build(story)
     return buffer.getvalue()
