# schemas/reports.py
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class ReportFiltersPayload(BaseModel):
     """Filters as the client sends them."""
     periodPreset: Optional[str] = None
     startDate: Optional[date] = None
     endDate: Optional[date] = None
     propertyId: Optional[str] = None


class PdfReportRequest(BaseModel):
     reportId: Optional[str] = None
     filters: ReportFiltersPayload = Field(default_factory=ReportFiltersPayload)


class InvoicePdfRequest(BaseModel):
     invoiceId: Optional[str] = None
