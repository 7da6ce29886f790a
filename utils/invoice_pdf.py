# utils/invoice_pdf.py
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from utils.formatting import fmt_currency, fmt_date

COMPANY_NAME = "Zira Homes"
COMPANY_TAGLINE = "Property Management"


def _grid(rows, col_widths, header_background=None) -> Table:
     table = Table(rows, colWidths=col_widths)
     style = [
          ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
          ("TOPPADDING", (0, 0), (-1, -1), 6),
          ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
     ]
     if header_background is not None:
          style.append(("BACKGROUND", (0, 0), (-1, 0), header_background))
     table.setStyle(TableStyle(style))
     return table


def render_invoice_pdf(document: dict) -> bytes:
     """
     Render a rent or service charge invoice.

     document keys: title, invoice_number, invoice_date, due_date, status,
     currency, bill_to (list of (label, value)), items (list of
     (description, amount)), total, payments (list of dicts with date,
     method, reference, amount), notes.
     """
     buffer = BytesIO()
     doc = SimpleDocTemplate(
          buffer,
          pagesize=A4,
          rightMargin=40,
          leftMargin=40,
          topMargin=40,
          bottomMargin=40,
          title=document.get("invoice_number") or "Invoice",
     )
     styles = getSampleStyleSheet()
     styles.add(ParagraphStyle(name="Right", parent=styles["Normal"], alignment=TA_RIGHT))
     currency = document.get("currency") or "KES"
     elements = []

     # Header
     header = Table(
          [[
               Paragraph(f"<b>{COMPANY_NAME}</b><br/>{COMPANY_TAGLINE}", styles["Normal"]),
               Paragraph(
                    f"<b>{escape(document.get('title') or 'INVOICE')}</b><br/>"
                    f"Invoice No: {escape(document.get('invoice_number') or '-')}<br/>"
                    f"Invoice Date: {fmt_date(document.get('invoice_date'))}<br/>"
                    f"Due Date: {fmt_date(document.get('due_date'))}<br/>"
                    f"Status: {escape((document.get('status') or '-').upper())}",
                    styles["Right"],
               ),
          ]],
          colWidths=[300, 215],
     )
     elements.extend([header, Spacer(1, 20)])

     # Bill to
     elements.append(Paragraph("<b>Bill To</b>", styles["Heading2"]))
     bill_to = _grid(
          [[label, str(value or "-")] for label, value in document.get("bill_to") or []] or [["-", "-"]],
          [150, 365],
     )
     bill_to.setStyle(TableStyle([("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke)]))
     elements.extend([bill_to, Spacer(1, 20)])

     # Line items
     elements.append(Paragraph("<b>Description</b>", styles["Heading2"]))
     rows = [["Description", "Amount"]]
     for description, amount in document.get("items") or []:
          rows.append([description, fmt_currency(amount, currency)])
     rows.append(["TOTAL", fmt_currency(document.get("total"), currency)])
     items = _grid(rows, [365, 150], colors.lightgrey)
     items.setStyle(TableStyle([
          ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
          ("FONT", (0, -1), (-1, -1), "Helvetica-Bold"),
          ("BACKGROUND", (0, -1), (-1, -1), colors.lightgrey),
     ]))
     elements.extend([items, Spacer(1, 20)])

     payments = document.get("payments") or []
     if payments:
          elements.append(Paragraph("<b>Payments</b>", styles["Heading2"]))
          payment_rows = [["Date", "Method", "Reference", "Amount"]]
          for payment in payments:
               payment_rows.append([
                    fmt_date(payment.get("date")),
                    payment.get("method") or "-",
                    payment.get("reference") or "-",
                    fmt_currency(payment.get("amount"), currency),
               ])
          table = _grid(payment_rows, [110, 110, 145, 150], colors.lightblue)
          table.setStyle(TableStyle([("ALIGN", (3, 1), (-1, -1), "RIGHT")]))
          elements.extend([table, Spacer(1, 20)])

     if document.get("notes"):
          elements.append(Paragraph(escape(document["notes"]), styles["Normal"]))

     doc.build(elements)
     return buffer.getvalue()
