# services/dashboard_service.py
"""
Dashboard Service - headline numbers for the landlord and admin dashboards.

Two sources:
- backend SQL functions (landlord dashboard, executive summary, data integrity),
  whose replies are validated and normalized here
- direct SQL aggregation over the caller's owned or managed properties
"""
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from models import Lease, MaintenanceRequest, Payment, Property, Unit
from models.lease import LeaseStatus
from models.payment import PaymentStatus
from models.property import UnitStatus
from services.billing_service import month_bounds
from services.report_service import ReportFilters, fetch_report_data
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

EXPIRING_LEASE_DAYS = 90
INTEGRITY_SECTIONS = ("duplicate_emails", "multiple_roles", "orphaned_roles", "role_changes")


def _first(payload):
     """maybeSingle semantics: SQL functions may answer with a row or a list of rows."""
     if isinstance(payload, list):
          return payload[0] if payload else None
     return payload


def _int(value) -> int:
     try:
          return int(float(value))
     except (TypeError, ValueError):
          return 0


def _float(value) -> float:
     try:
          return float(value)
     except (TypeError, ValueError):
          return 0.0


def _list(value) -> list:
     return value if isinstance(value, list) else []


# ---------------------------------------------------------------------------
# Landlord dashboard
# ---------------------------------------------------------------------------

def normalize_landlord_dashboard(payload, tenants_count: Optional[int] = None) -> dict:
     """
     Validate a get_landlord_dashboard_data reply.

     property_stats is None when the reply carries none; otherwise every
     figure is numeric and active_tenants falls back to occupied_units.
     """
     result = _first(payload) or {}
     if not isinstance(result, dict):
          result = {}

     raw_stats = result.get("property_stats")
     stats = None
     if isinstance(raw_stats, dict):
          stats = {
               "total_properties": _int(raw_stats.get("total_properties")),
               "total_units": _int(raw_stats.get("total_units")),
               "occupied_units": _int(raw_stats.get("occupied_units")),
               "monthly_revenue": _float(raw_stats.get("monthly_revenue")),
          }
          stats["active_tenants"] = tenants_count or stats["occupied_units"]

     return {
          "property_stats": stats,
          "recent_payments": _list(result.get("recent_payments")),
          "pending_maintenance": _list(result.get("pending_maintenance")),
     }


def get_landlord_dashboard(client: SupabaseClient, auth_header: Optional[str] = None) -> dict:
     """Raises SupabaseError when the dashboard function itself fails."""
     payload = client.rpc("get_landlord_dashboard_data", {}, auth_header=auth_header)

     tenants_count = None
     try:
          summary = _first(client.rpc(
               "get_landlord_tenants_summary",
               {"p_limit": 1, "p_offset": 0},
               auth_header=auth_header,
          ))
          if isinstance(summary, dict) and summary.get("total_count") is not None:
               tenants_count = _int(summary["total_count"])
     except BACKEND_ERRORS as e:
          logger.warning("Tenant summary unavailable, falling back to occupied units: %s", e)

     return normalize_landlord_dashboard(payload, tenants_count)


# ---------------------------------------------------------------------------
# Dashboard stats (SQL)
# ---------------------------------------------------------------------------

def dashboard_stats(db: Session, user_id: uuid.UUID, today: Optional[date] = None) -> dict:
     """
     Portfolio counters for properties the user owns or manages.

     Returns:
          dict of camelCase counters, all zero for a user with no properties
     """
     today = today or date.today()
     property_ids = [
          row[0]
          for row in db.query(Property.id)
          .filter(or_(Property.owner_id == user_id, Property.manager_id == user_id))
          .all()
     ]
     stats = {
          "totalProperties": len(property_ids),
          "totalUnits": 0,
          "occupiedUnits": 0,
          "vacantUnits": 0,
          "occupancyRate": 0,
          "monthlyRevenue": 0.0,
          "totalTenants": 0,
          "maintenanceRequests": 0,
          "expiringLeases": 0,
          "collectedThisMonth": 0.0,
     }
     if not property_ids:
          return stats

     units = db.query(Unit).filter(Unit.property_id.in_(property_ids))
     total_units = units.count()
     occupied_units = units.filter(Unit.status == UnitStatus.OCCUPIED.value).count()

     active_leases = (
          db.query(Lease)
          .join(Unit, Lease.unit_id == Unit.id)
          .filter(Unit.property_id.in_(property_ids), Lease.status == LeaseStatus.ACTIVE.value)
     )
     monthly_revenue = (
          active_leases.filter(Unit.status == UnitStatus.OCCUPIED.value)
          .with_entities(func.coalesce(func.sum(Lease.monthly_rent), 0))
          .scalar()
     )
     total_tenants = active_leases.with_entities(func.count(func.distinct(Lease.tenant_id))).scalar()
     expiring = active_leases.filter(
          Lease.lease_end_date >= today,
          Lease.lease_end_date <= today + timedelta(days=EXPIRING_LEASE_DAYS),
     ).count()

     maintenance = (
          db.query(MaintenanceRequest)
          .filter(MaintenanceRequest.property_id.in_(property_ids), MaintenanceRequest.status == "pending")
          .count()
     )

     start, end = month_bounds(today)
     collected = (
          db.query(func.coalesce(func.sum(Payment.amount), 0))
          .join(Lease, Payment.lease_id == Lease.id)
          .join(Unit, Lease.unit_id == Unit.id)
          .filter(
               Unit.property_id.in_(property_ids),
               Payment.status == PaymentStatus.COMPLETED.value,
               Payment.payment_date >= start,
               Payment.payment_date <= end,
          )
          .scalar()
     )

     stats.update({
          "totalUnits": total_units,
          "occupiedUnits": occupied_units,
          "vacantUnits": total_units - occupied_units,
          "occupancyRate": round(occupied_units / total_units * 100) if total_units else 0,
          "monthlyRevenue": float(Decimal(str(monthly_revenue or 0))),
          "totalTenants": total_tenants or 0,
          "maintenanceRequests": maintenance,
          "expiringLeases": expiring,
          "collectedThisMonth": float(Decimal(str(collected or 0))),
     })
     return stats


# ---------------------------------------------------------------------------
# Executive summary
# ---------------------------------------------------------------------------

def executive_summary(
     client: SupabaseClient,
     filters: Optional[ReportFilters] = None,
     auth_header: Optional[str] = None,
     today: Optional[date] = None,
) -> dict:
     """
     The executive-summary report for the requested period, plus year-to-date
     revenue, operating expenses and net operating income and the
     outstanding balance as of today.
     """
     today = today or date.today()
     report = fetch_report_data(client, "executive_summary", filters, auth_header, today)

     ytd = ReportFilters(period="ytd")
     revenue = _float(fetch_report_data(client, "rent_collection", ytd, auth_header, today).kpis.get("total_collected"))
     expenses = _float(fetch_report_data(client, "expense_summary", ytd, auth_header, today).kpis.get("total_expenses"))
     outstanding = _float(
          fetch_report_data(
               client,
               "outstanding_balances",
               ReportFilters(start_date=today, end_date=today),
               auth_header,
               today,
          ).kpis.get("total_outstanding")
     )

     return {
          **report.model_dump(),
          "totalRevenue": revenue,
          "totalOperatingExpenses": expenses,
          "netOperatingIncome": revenue - expenses,
          "outstandingAmount": outstanding,
     }


# ---------------------------------------------------------------------------
# Data integrity
# ---------------------------------------------------------------------------

def normalize_integrity_report(payload) -> dict:
     result = _first(payload) or {}
     if not isinstance(result, dict):
          result = {}
     # older backends name the last section recent_role_changes
     if "role_changes" not in result and "recent_role_changes" in result:
          result = {**result, "role_changes": result["recent_role_changes"]}

     report = {section: _list(result.get(section)) for section in INTEGRITY_SECTIONS}
     report["total_issues"] = sum(
          len(report[section]) for section in ("duplicate_emails", "multiple_roles", "orphaned_roles")
     )
     return report


def data_integrity_report(client: SupabaseClient) -> dict:
     report = normalize_integrity_report(client.rpc("get_data_integrity_report", {}))
     if report["total_issues"]:
          logger.warning("Data integrity check found %d issue(s)", report["total_issues"])
     return report
