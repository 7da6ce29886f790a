# services/report_service.py
"""
Report Service - the report catalogue and the data behind each report.

Report figures are computed by backend SQL functions named
get_<query_id>_report; this module picks the date range, calls the function
and shapes the reply into kpis / charts / table.
"""
import logging
from datetime import date, timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field

from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

MAX_TABLE_ROWS = 1000
DEFAULT_ROLES = ["Admin", "Landlord"]


# ---------------------------------------------------------------------------
# Catalogue types
# ---------------------------------------------------------------------------

class KpiConfig(BaseModel):
     key: str
     label: str
     format: str = "number"
     decimals: Optional[int] = None


class ChartConfig(BaseModel):
     type: str
     title: str
     data_key: str
     x_key: Optional[str] = None
     y_keys: list[str] = Field(default_factory=list)


class ColumnConfig(BaseModel):
     key: str
     label: str
     format: Optional[str] = None
     align: str = "left"


class ReportConfig(BaseModel):
     id: str
     title: str
     description: str
     default_period: str
     query_id: str
     roles: list[str] = Field(default_factory=lambda: list(DEFAULT_ROLES))
     kpis: list[KpiConfig]
     charts: list[ChartConfig] = Field(default_factory=list)
     table_columns: list[ColumnConfig] = Field(default_factory=list)


class ReportFilters(BaseModel):
     period: Optional[str] = None
     start_date: Optional[date] = None
     end_date: Optional[date] = None
     property_id: Optional[str] = None


class ReportData(BaseModel):
     kpis: dict[str, Any] = Field(default_factory=dict)
     charts: dict[str, list[dict]] = Field(default_factory=dict)
     table: list[dict] = Field(default_factory=list)

     @property
     def is_empty(self) -> bool:
          return not (self.kpis or any(self.charts.values()) or self.table)


def _kpi(key, label, fmt="number", decimals=None) -> KpiConfig:
     return KpiConfig(key=key, label=label, format=fmt, decimals=decimals)


def _chart(data_key, chart_type, title, x_key=None, y_keys=None) -> ChartConfig:
     return ChartConfig(type=chart_type, title=title, data_key=data_key, x_key=x_key, y_keys=y_keys or [])


def _col(key, label, fmt=None, align="left") -> ColumnConfig:
     return ColumnConfig(key=key, label=label, format=fmt, align=align)


REPORTS: list[ReportConfig] = [
     ReportConfig(
          id="rent-collection",
          title="Rent Collection Report",
          description="Rent collected against rent due, with late and outstanding payments.",
          default_period="current_period",
          query_id="rent_collection",
          kpis=[
               _kpi("total_collected", "Total Collected", "currency"),
               _kpi("collection_rate", "Collection Rate", "percent", 1),
               _kpi("outstanding_amount", "Outstanding", "currency"),
               _kpi("late_payments", "Late Payments"),
          ],
          charts=[
               _chart("collection_trend", "line", "Collection Trend", "month", ["collected", "expected"]),
               _chart("payment_status", "pie", "Payment Status Distribution"),
          ],
          table_columns=[
               _col("payment_date", "Date", "date"),
               _col("property_name", "Property"),
               _col("unit_number", "Unit"),
               _col("tenant_name", "Tenant"),
               _col("amount_due", "Amount Due", "currency", "right"),
               _col("amount_paid", "Amount Paid", "currency", "right"),
               _col("status", "Status", align="center"),
          ],
     ),
     ReportConfig(
          id="financial-summary",
          title="Financial Summary",
          description="Income, expenses and profit margin across the portfolio.",
          default_period="last_12_months",
          query_id="financial_summary",
          kpis=[
               _kpi("total_income", "Total Income", "currency"),
               _kpi("total_expenses", "Total Expenses", "currency"),
               _kpi("net_profit", "Net Profit", "currency"),
               _kpi("profit_margin", "Profit Margin", "percent", 1),
          ],
          charts=[
               _chart("income_vs_expenses", "bar", "Income vs Expenses", "month", ["income", "expenses"]),
               _chart("expense_breakdown", "pie", "Expense Breakdown"),
          ],
          table_columns=[
               _col("category", "Category"),
               _col("type", "Type", align="center"),
               _col("amount", "Amount", "currency", "right"),
               _col("percentage", "Percentage", "percent", "right"),
          ],
     ),
     ReportConfig(
          id="occupancy-report",
          title="Unit Occupancy Report",
          description="Occupied and vacant units per property.",
          default_period="current_period",
          query_id="occupancy_report",
          kpis=[
               _kpi("occupancy_rate", "Occupancy Rate", "percent", 0),
               _kpi("total_units", "Total Units"),
               _kpi("occupied_units", "Occupied Units"),
               _kpi("vacant_units", "Vacant Units"),
          ],
          charts=[
               _chart("occupancy_trend", "line", "Occupancy Trend", "month", ["occupancy_rate"]),
               _chart("property_occupancy", "bar", "Occupancy by Property", "property_name", ["occupancy_rate"]),
          ],
          table_columns=[
               _col("property_name", "Property"),
               _col("total_units", "Total Units", "number", "right"),
               _col("occupied_units", "Occupied", "number", "right"),
               _col("occupancy_rate", "Occupancy Rate", "percent", "right"),
          ],
     ),
     ReportConfig(
          id="maintenance-report",
          title="Maintenance Analytics",
          description="Maintenance volume, resolution time and cost.",
          default_period="last_6_months",
          query_id="maintenance_report",
          kpis=[
               _kpi("total_requests", "Total Requests"),
               _kpi("completed_requests", "Completed"),
               _kpi("avg_resolution_time", "Avg Resolution Time", "duration"),
               _kpi("total_cost", "Total Cost", "currency"),
          ],
          charts=[
               _chart("requests_by_status", "pie", "Requests by Status"),
               _chart("monthly_requests", "bar", "Monthly Requests", "month", ["requests"]),
          ],
          table_columns=[
               _col("created_date", "Date", "date"),
               _col("property_name", "Property"),
               _col("category", "Category"),
               _col("status", "Status", align="center"),
               _col("cost", "Cost", "currency", "right"),
          ],
     ),
     ReportConfig(
          id="lease-expiry",
          title="Lease Expiry Report",
          description="Leases ending soon and the rent at risk.",
          default_period="next_90_days",
          query_id="lease_expiry",
          kpis=[
               _kpi("expiring_leases", "Expiring Leases"),
               _kpi("renewal_rate", "Renewal Rate", "percent", 1),
               _kpi("potential_revenue_loss", "Potential Revenue Loss", "currency"),
               _kpi("avg_lease_duration", "Avg Lease Duration", "duration"),
          ],
          charts=[_chart("expiry_timeline", "bar", "Lease Expiries by Month", "month", ["count"])],
          table_columns=[
               _col("lease_end_date", "Lease End Date", "date"),
               _col("property_name", "Property"),
               _col("unit_number", "Unit"),
               _col("tenant_name", "Tenant"),
               _col("monthly_rent", "Monthly Rent", "currency", "right"),
               _col("days_until_expiry", "Days Left", "number", "right"),
          ],
     ),
     ReportConfig(
          id="tenant-turnover",
          title="Tenant Turnover Report",
          description="Move-ins, move-outs and average tenancy length.",
          default_period="last_12_months",
          query_id="tenant_turnover",
          kpis=[
               _kpi("turnover_rate", "Turnover Rate", "percent", 1),
               _kpi("avg_tenancy_duration", "Avg Tenancy Duration", "duration"),
               _kpi("new_tenants", "New Tenants"),
               _kpi("departed_tenants", "Departed Tenants"),
          ],
          charts=[_chart("turnover_trend", "line", "Turnover Trend", "month", ["move_ins", "move_outs"])],
          table_columns=[
               _col("lease_end_date", "Lease End Date", "date"),
               _col("property_name", "Property"),
               _col("unit_number", "Unit"),
               _col("tenant_name", "Former Tenant"),
               _col("tenancy_duration", "Tenancy Duration", "duration", "right"),
          ],
     ),
     ReportConfig(
          id="outstanding-balances",
          title="Outstanding Balances",
          description="Unpaid invoices by age and risk.",
          default_period="as_of_today",
          query_id="outstanding_balances",
          kpis=[
               _kpi("total_outstanding", "Total Outstanding", "currency"),
               _kpi("overdue_count", "Overdue Invoices"),
               _kpi("avg_balance", "Average Balance", "currency"),
               _kpi("at_risk_amount", "At Risk Amount", "currency"),
          ],
          charts=[
               _chart("aging_analysis", "bar", "Aging Analysis", "aging_bucket", ["amount"]),
               _chart("risk_breakdown", "pie", "Risk Breakdown"),
          ],
          table_columns=[
               _col("due_date", "Due Date", "date"),
               _col("tenant_name", "Tenant"),
               _col("property_name", "Property"),
               _col("outstanding_amount", "Outstanding", "currency", "right"),
               _col("days_overdue", "Days Overdue", "number", "right"),
               _col("risk_level", "Risk Level", align="center"),
          ],
     ),
     ReportConfig(
          id="property-performance",
          title="Property Performance",
          description="Revenue, expenses and yield per property.",
          default_period="ytd",
          query_id="property_performance",
          kpis=[
               _kpi("total_revenue", "Total Revenue", "currency"),
               _kpi("total_expenses", "Total Expenses", "currency"),
               _kpi("net_income", "Net Income", "currency"),
               _kpi("avg_yield", "Average Yield", "percent", 2),
          ],
          charts=[
               _chart("revenue_vs_expenses", "bar", "Revenue vs Expenses", "property_name", ["revenue", "expenses"]),
               _chart("yield_comparison", "line", "Yield Comparison", "property_name", ["yield"]),
          ],
          table_columns=[
               _col("property_name", "Property"),
               _col("revenue", "Revenue", "currency", "right"),
               _col("expenses", "Expenses", "currency", "right"),
               _col("net_income", "Net Income", "currency", "right"),
               _col("yield", "Yield %", "percent", "right"),
          ],
     ),
     ReportConfig(
          id="profit-loss",
          title="Profit & Loss Report",
          description="Monthly revenue, expenses and profit.",
          default_period="last_12_months",
          query_id="profit_loss",
          kpis=[
               _kpi("total_revenue", "Total Revenue", "currency"),
               _kpi("total_expenses", "Total Expenses", "currency"),
               _kpi("net_profit", "Net Profit", "currency"),
               _kpi("profit_margin", "Profit Margin", "percent", 1),
          ],
          charts=[
               _chart("monthly_pnl", "bar", "Monthly P&L", "month", ["revenue", "expenses", "profit"]),
               _chart("expense_breakdown", "pie", "Expense Breakdown"),
          ],
          table_columns=[
               _col("transaction_date", "Date", "date"),
               _col("category", "Category"),
               _col("amount", "Amount", "currency", "right"),
               _col("percentage", "Percentage", "percent", "right"),
          ],
     ),
     ReportConfig(
          id="revenue-vs-expenses",
          title="Revenue vs Expenses",
          description="Month-by-month comparison of revenue and spending.",
          default_period="last_12_months",
          query_id="revenue_vs_expenses",
          kpis=[
               _kpi("total_revenue", "Total Revenue", "currency"),
               _kpi("total_expenses", "Total Expenses", "currency"),
               _kpi("net_income", "Net Income", "currency"),
               _kpi("expense_ratio", "Expense Ratio", "percent", 1),
          ],
          charts=[
               _chart("monthly_comparison", "line", "Monthly Comparison", "month", ["revenue", "expenses"]),
               _chart("trend_analysis", "bar", "Net Income Trend", "month", ["net_income"]),
          ],
          table_columns=[
               _col("month", "Month"),
               _col("revenue", "Revenue", "currency", "right"),
               _col("expenses", "Expenses", "currency", "right"),
               _col("net_income", "Net Income", "currency", "right"),
          ],
     ),
     ReportConfig(
          id="expense-summary",
          title="Expense Summary",
          description="Spending by category and property.",
          default_period="last_12_months",
          query_id="expense_summary",
          kpis=[
               _kpi("total_expenses", "Total Expenses", "currency"),
               _kpi("maintenance_costs", "Maintenance Costs", "currency"),
               _kpi("operational_costs", "Operational Costs", "currency"),
               _kpi("expense_per_unit", "Expense per Unit", "currency"),
          ],
          charts=[
               _chart("expense_categories", "pie", "Expense Categories"),
               _chart("monthly_expenses", "bar", "Monthly Expenses", "month", ["expenses"]),
          ],
          table_columns=[
               _col("expense_date", "Date", "date"),
               _col("expense_category", "Category"),
               _col("description", "Description"),
               _col("amount", "Amount", "currency", "right"),
               _col("property_name", "Property"),
               _col("vendor", "Vendor"),
          ],
     ),
     ReportConfig(
          id="cash-flow",
          title="Cash Flow Analysis",
          description="Cash in, cash out and net flow per month.",
          default_period="last_12_months",
          query_id="cash_flow",
          kpis=[
               _kpi("cash_inflow", "Cash Inflow", "currency"),
               _kpi("cash_outflow", "Cash Outflow", "currency"),
               _kpi("net_cash_flow", "Net Cash Flow", "currency"),
               _kpi("cash_flow_margin", "Cash Flow Margin", "percent", 1),
          ],
          charts=[_chart("cash_flow_trend", "line", "Cash Flow Trend", "month", ["inflow", "outflow", "net"])],
          table_columns=[
               _col("month", "Month"),
               _col("inflow", "Cash Inflow", "currency", "right"),
               _col("outflow", "Cash Outflow", "currency", "right"),
               _col("net_flow", "Net Cash Flow", "currency", "right"),
          ],
     ),
     ReportConfig(
          id="executive-summary",
          title="Executive Summary Report",
          description="Portfolio headline figures for the period.",
          default_period="current_period",
          query_id="executive_summary",
          kpis=[
               _kpi("total_properties", "Total Properties"),
               _kpi("total_units", "Total Units"),
               _kpi("collection_rate", "Collection Rate", "percent", 1),
               _kpi("occupancy_rate", "Occupancy Rate", "percent", 0),
          ],
          charts=[
               _chart("portfolio_overview", "bar", "Portfolio Overview", "month", ["revenue", "expenses"]),
               _chart("property_performance", "pie", "Revenue by Property"),
          ],
          table_columns=[
               _col("property_name", "Property"),
               _col("units", "Units", "number", "center"),
               _col("revenue", "Revenue", "currency", "right"),
               _col("occupancy", "Occupancy", "percent", "right"),
          ],
     ),
]

REPORTS_BY_ID = {report.id: report for report in REPORTS}


def get_report_config(report_id: Optional[str]) -> Optional[ReportConfig]:
     return REPORTS_BY_ID.get(report_id or "")


def reports_for_role(role: Optional[str]) -> list[ReportConfig]:
     return [report for report in REPORTS if role in report.roles]


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------

def _shift_months(day: date, months: int) -> date:
     """First day of the month `months` away from day's month."""
     index = day.year * 12 + (day.month - 1) + months
     return date(index // 12, index % 12 + 1, 1)


def calculate_date_range(
     period: Optional[str],
     start: Optional[date] = None,
     end: Optional[date] = None,
     today: Optional[date] = None,
) -> tuple[date, date]:
     """
     Resolve a period preset to (start, end), both inclusive.

     Explicit start and end dates always win over the preset. Unknown presets
     cover the current calendar month.
     """
     if start and end:
          return start, end

     today = today or date.today()
     month_start = today.replace(day=1)

     if period == "current_period":
          return month_start, today
     if period == "last_12_months":
          return _shift_months(today, -12), today
     if period in ("ytd", "as_of_today"):
          return date(today.year, 1, 1), today
     if period == "last_6_months":
          return _shift_months(today, -6), today
     if period == "next_90_days":
          return today, today + timedelta(days=90)
     return month_start, _shift_months(today, 1) - timedelta(days=1)


# ---------------------------------------------------------------------------
# Shaping
# ---------------------------------------------------------------------------

_NAME_FALLBACKS = ("property_name", "category", "status", "month", "label")
_VALUE_FALLBACKS = ("amount", "count", "total")


def normalize_chart_data(rows) -> list[dict]:
     """Give every chart row a name and a value, keeping its other fields."""
     if not isinstance(rows, list):
          return []
     normalized = []
     for row in rows:
          if not isinstance(row, dict):
               continue
          item = dict(row)
          if item.get("name") is None:
               item["name"] = next((row[k] for k in _NAME_FALLBACKS if row.get(k)), None)
          if item.get("value") is None:
               item["value"] = next((row[k] for k in _VALUE_FALLBACKS if row.get(k) is not None), None)
          normalized.append(item)
     return normalized


def _number(value) -> Optional[float]:
     try:
          return float(value)
     except (TypeError, ValueError):
          return None


def compute_missing_kpis(query_id: str, kpis: dict) -> dict:
     """Derive KPIs the SQL function may leave out from the ones it returned."""
     computed = dict(kpis)
     revenue = _number(computed.get("total_revenue"))
     expenses = _number(computed.get("total_expenses"))

     if query_id == "profit_loss":
          if revenue is not None and expenses is not None and computed.get("net_profit") is None:
               computed["net_profit"] = revenue - expenses
          income = _number(computed.get("total_income"))
          if income is not None and expenses is not None and computed.get("profit") is None:
               computed["profit"] = income - expenses

     elif query_id == "revenue_vs_expenses":
          if revenue is not None and expenses is not None:
               if computed.get("net_income") is None:
                    computed["net_income"] = revenue - expenses
               if computed.get("profit_margin") is None:
                    computed["profit_margin"] = (revenue - expenses) / revenue * 100 if revenue > 0 else 0

     elif query_id == "property_performance":
          if revenue is not None and expenses is not None and computed.get("net_income") is None:
               computed["net_income"] = revenue - expenses
          net_income = _number(computed.get("net_income"))
          if net_income is not None and revenue is not None and computed.get("avg_yield") is None:
               computed["avg_yield"] = net_income / revenue * 100 if revenue > 0 else 0

     return computed


def shape_report(query_id: str, payload) -> ReportData:
     """Turn a SQL function reply into ReportData."""
     if not isinstance(payload, dict):
          return ReportData()

     kpis = {key: (0 if value is None else value) for key, value in (payload.get("kpis") or {}).items()}
     charts = {key: normalize_chart_data(rows) for key, rows in (payload.get("charts") or {}).items()}
     table = payload.get("table") or []
     if not isinstance(table, list):
          table = []
     if len(table) > MAX_TABLE_ROWS:
          logger.info("Report %s table limited to %d rows (was %d)", query_id, MAX_TABLE_ROWS, len(table))
          table = table[:MAX_TABLE_ROWS]

     return ReportData(kpis=compute_missing_kpis(query_id, kpis), charts=charts, table=table)


def fetch_report_data(
     client: SupabaseClient,
     query_id: str,
     filters: Optional[ReportFilters] = None,
     auth_header: Optional[str] = None,
     today: Optional[date] = None,
) -> ReportData:
     """
     Call get_<query_id>_report for the filtered period.

     Args:
          client: Backend client
          query_id: Catalogue query id, e.g. "rent_collection"
          filters: Period preset or explicit dates, optional property
          auth_header: Caller's Authorization header so row-level security applies

     Returns:
          ReportData; empty when the query is unknown or the call fails
     """
     known = {report.query_id for report in REPORTS}
     if query_id not in known:
          logger.warning("No report query named %s", query_id)
          return ReportData()

     filters = filters or ReportFilters()
     start, end = calculate_date_range(filters.period, filters.start_date, filters.end_date, today)
     params = {"p_start_date": start.isoformat(), "p_end_date": end.isoformat()}
     if filters.property_id:
          params["p_property_id"] = filters.property_id

     try:
          payload = client.rpc(f"get_{query_id}_report", params, auth_header=auth_header)
     except BACKEND_ERRORS as e:
          logger.error("Report %s failed for %s..%s: %s", query_id, start, end, e)
          return ReportData()

     data = shape_report(query_id, payload)
     if data.is_empty:
          logger.info("Report %s returned no data for %s..%s", query_id, start, end)
     return data
