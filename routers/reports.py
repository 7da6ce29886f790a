# routers/reports.py
"""
Report, dashboard and document functions.

Role-based access:
- Landlord/Manager: reports gated by plan feature, dashboards, invoice PDFs
- Admin: everything above plus the data integrity report
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, get_current_user, get_supabase, require_admin
from routers import FUNCTIONS_PREFIX, service_error
from schemas.reports import InvoicePdfRequest, PdfReportRequest, ReportFiltersPayload
from services import dashboard_service
from services.feature_access import check_feature_access, get_report_feature
from services.invoice_service import InvoiceError, InvoiceService
from services.report_service import (
     ReportFilters,
     calculate_date_range,
     fetch_report_data,
     get_report_config,
)
from utils.invoice_pdf import render_invoice_pdf
from utils.report_pdf import render_report_pdf
from utils.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["reports"])


def to_report_filters(payload: ReportFiltersPayload, default_period: Optional[str] = None) -> ReportFilters:
     return ReportFilters(
          period=payload.periodPreset or default_period,
          start_date=payload.startDate,
          end_date=payload.endDate,
          property_id=payload.propertyId,
     )


def pdf_response(content: bytes, filename: str) -> Response:
     return Response(
          content=content,
          media_type="application/pdf",
          headers={
               "Content-Disposition": f'attachment; filename="{filename}"',
               "Cache-Control": "no-store",
          },
     )


@router.post("/generate-pdf-report")
def generate_pdf_report(
     body: PdfReportRequest,
     user: CurrentUser = Depends(get_current_user),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Render a catalogue report for a period as a PDF download.

     - **reportId**: catalogue id, e.g. `rent-collection`
     - **filters**: periodPreset, startDate, endDate, propertyId
     """
     if not body.reportId:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reportId is required")
     config = get_report_config(body.reportId)
     if config is None:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown report: {body.reportId}")

     access = check_feature_access(client, user.id, get_report_feature(config.id).value)
     if not access.allowed:
          logger.info("Report %s refused for %s: %s", config.id, user.id, access.reason)
          raise HTTPException(
               status_code=status.HTTP_403_FORBIDDEN,
               detail={"error": "Your plan does not include this report", "reason": access.reason},
          )

     filters = to_report_filters(body.filters, config.default_period)
     period = calculate_date_range(filters.period, filters.start_date, filters.end_date)
     data = fetch_report_data(client, config.query_id, filters, auth_header=user.auth_header)
     pdf = render_report_pdf(config, data, period)
     logger.info("Report %s rendered for %s (%d bytes)", config.id, user.id, len(pdf))
     return pdf_response(pdf, f"{config.id}.pdf")


@router.post("/generate-invoice-pdf")
def generate_invoice_pdf(
     body: InvoicePdfRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          document = InvoiceService.get_invoice_document(db, user.id, body.invoiceId)
     except InvoiceError as e:
          raise service_error(e)
     return pdf_response(render_invoice_pdf(document), f"{document['invoice_number']}.pdf")


@router.get("/landlord-dashboard")
def landlord_dashboard(
     user: CurrentUser = Depends(get_current_user),
     client: SupabaseClient = Depends(get_supabase),
):
     return dashboard_service.get_landlord_dashboard(client, user.auth_header)


@router.get("/dashboard-stats")
def dashboard_stats(
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     return dashboard_service.dashboard_stats(db, user.id)


@router.get("/executive-summary")
def executive_summary(
     periodPreset: Optional[str] = Query(None),
     startDate: Optional[date] = Query(None),
     endDate: Optional[date] = Query(None),
     propertyId: Optional[str] = Query(None),
     user: CurrentUser = Depends(get_current_user),
     client: SupabaseClient = Depends(get_supabase),
):
     filters = to_report_filters(
          ReportFiltersPayload(periodPreset=periodPreset, startDate=startDate, endDate=endDate, propertyId=propertyId),
          get_report_config("executive-summary").default_period,
     )
     return dashboard_service.executive_summary(client, filters, user.auth_header)


@router.get("/data-integrity-report", dependencies=[Depends(require_admin)])
def data_integrity_report(client: SupabaseClient = Depends(get_supabase)):
     return dashboard_service.data_integrity_report(client)
