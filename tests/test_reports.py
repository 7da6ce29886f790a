from datetime import date
from decimal import Decimal

import pytest

from conftest import add_rent_invoice, add_user, auth_headers
from models import ServiceChargeInvoice
from services.report_service import (
    MAX_TABLE_ROWS,
    REPORTS,
    ReportData,
    ReportFilters,
    calculate_date_range,
    compute_missing_kpis,
    fetch_report_data,
    get_report_config,
    normalize_chart_data,
    reports_for_role,
    shape_report,
)
from utils.report_pdf import render_report_pdf
from utils.supabase_client import SupabaseError

TODAY = date(2026, 10, 18)


# ---------------------------------------------------------------------------
# Catalogue and periods
# ---------------------------------------------------------------------------

def test_catalogue_ids_are_unique_and_role_filtered():
    ids = [report.id for report in REPORTS]

    assert len(ids) == len(set(ids))
    assert get_report_config("cash-flow").query_id == "cash_flow"
    assert get_report_config("market-rent") is None
    assert len(reports_for_role("Landlord")) == len(REPORTS)
    assert reports_for_role("Tenant") == []


@pytest.mark.parametrize(
    "period, expected",
    [
        ("current_period", (date(2026, 10, 1), TODAY)),
        ("last_12_months", (date(2025, 10, 1), TODAY)),
        ("last_6_months", (date(2026, 4, 1), TODAY)),
        ("ytd", (date(2026, 1, 1), TODAY)),
        ("as_of_today", (date(2026, 1, 1), TODAY)),
        ("next_90_days", (TODAY, date(2027, 1, 16))),
        ("something-else", (date(2026, 10, 1), date(2026, 10, 31))),
        (None, (date(2026, 10, 1), date(2026, 10, 31))),
    ],
)
def test_period_presets(period, expected):
    assert calculate_date_range(period, today=TODAY) == expected


def test_explicit_dates_win_over_preset():
    assert calculate_date_range("ytd", date(2026, 2, 1), date(2026, 2, 28), TODAY) == (
        date(2026, 2, 1),
        date(2026, 2, 28),
    )


def test_december_month_arithmetic():
    assert calculate_date_range("other", today=date(2026, 12, 5)) == (date(2026, 12, 1), date(2026, 12, 31))


# ---------------------------------------------------------------------------
# Shaping
# ---------------------------------------------------------------------------

def test_chart_rows_get_name_and_value():
    rows = normalize_chart_data([
        {"property_name": "Riverside", "amount": 100},
        {"name": "kept", "value": 2, "extra": True},
        {"status": "paid", "count": 0},
        "junk",
    ])

    assert rows[0]["name"] == "Riverside" and rows[0]["value"] == 100
    assert rows[1] == {"name": "kept", "value": 2, "extra": True}
    assert rows[2]["value"] == 0
    assert len(rows) == 3
    assert normalize_chart_data(None) == []


def test_missing_kpis_are_derived():
    assert compute_missing_kpis("profit_loss", {"total_revenue": 1000, "total_expenses": 400})["net_profit"] == 600
    revenue = compute_missing_kpis("revenue_vs_expenses", {"total_revenue": 1000, "total_expenses": 250})
    assert revenue["net_income"] == 750
    assert revenue["profit_margin"] == 75
    performance = compute_missing_kpis("property_performance", {"total_revenue": 0, "total_expenses": 0})
    assert performance["avg_yield"] == 0
    assert compute_missing_kpis("cash_flow", {"net_cash_flow": 5}) == {"net_cash_flow": 5}


def test_shape_report_zeroes_null_kpis_and_caps_table():
    payload = {
        "kpis": {"total_collected": None, "collection_rate": 91.5},
        "charts": {"payment_status": [{"status": "paid", "count": 4}]},
        "table": [{"row": i} for i in range(MAX_TABLE_ROWS + 5)],
    }

    data = shape_report("rent_collection", payload)

    assert data.kpis == {"total_collected": 0, "collection_rate": 91.5}
    assert data.charts["payment_status"][0]["name"] == "paid"
    assert len(data.table) == MAX_TABLE_ROWS
    assert shape_report("rent_collection", "not a dict").is_empty


def test_fetch_report_data_calls_named_function(fake_supabase):
    fake_supabase.rpc_results["get_lease_expiry_report"] = {"kpis": {"expiring_leases": 3}}

    data = fetch_report_data(
        fake_supabase,
        "lease_expiry",
        ReportFilters(period="next_90_days", property_id="p-1"),
        auth_header="Bearer caller",
        today=TODAY,
    )

    assert data.kpis["expiring_leases"] == 3
    _, _, params, auth = fake_supabase.calls_to("rpc", "get_lease_expiry_report")[0]
    assert params == {"p_start_date": "2026-10-18", "p_end_date": "2027-01-16", "p_property_id": "p-1"}
    assert auth == "Bearer caller"


def test_fetch_report_data_is_empty_on_failure_or_unknown_query(fake_supabase):
    fake_supabase.rpc_results["get_cash_flow_report"] = SupabaseError(500, {}, "boom")

    assert fetch_report_data(fake_supabase, "cash_flow", today=TODAY).is_empty
    assert fetch_report_data(fake_supabase, "market_rent", today=TODAY).is_empty
    assert fake_supabase.calls_to("rpc", "get_market_rent_report") == []


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

def test_report_pdf_renders_every_chart_kind():
    config = get_report_config("rent-collection")
    data = ReportData(
        kpis={"total_collected": 150000, "collection_rate": 92.5, "outstanding_amount": 12000, "late_payments": 3},
        charts={
            "collection_trend": [{"month": "2026-09", "collected": 140000, "expected": 150000}],
            "payment_status": normalize_chart_data([{"status": "paid", "count": 12}, {"status": "late", "count": 3}]),
        },
        table=[{"payment_date": "2026-10-02", "property_name": "Riverside", "amount_paid": 15000, "status": "paid"}],
    )

    pdf = render_report_pdf(config, data, (date(2026, 10, 1), TODAY))

    assert pdf.startswith(b"%PDF")


def test_empty_report_still_renders():
    pdf = render_report_pdf(get_report_config("cash-flow"), ReportData(), (date(2026, 1, 1), TODAY))

    assert pdf.startswith(b"%PDF")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def test_pdf_report_route(client, fake_supabase, landlord):
    fake_supabase.rpc_results["check_plan_feature_access"] = {"allowed": True}
    fake_supabase.rpc_results["get_occupancy_report_report"] = {"kpis": {"occupancy_rate": 80}}

    response = client.post(
        "/functions/v1/generate-pdf-report",
        json={"reportId": "occupancy-report", "filters": {"periodPreset": "ytd"}},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["Content-Disposition"] == 'attachment; filename="occupancy-report.pdf"'
    assert response.content.startswith(b"%PDF")


def test_pdf_report_refused_by_plan(client, fake_supabase, landlord):
    fake_supabase.rpc_results["check_plan_feature_access"] = {"allowed": False, "reason": "plan_restriction"}

    response = client.post(
        "/functions/v1/generate-pdf-report",
        json={"reportId": "profit-loss"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 403
    assert response.json() == {"error": "Your plan does not include this report", "reason": "plan_restriction"}
    assert fake_supabase.calls_to("rpc", "get_profit_loss_report") == []


@pytest.mark.parametrize(
    "payload, error",
    [({}, "reportId is required"), ({"reportId": "horoscope"}, "Unknown report: horoscope")],
)
def test_pdf_report_bad_requests(client, landlord, payload, error):
    response = client.post("/functions/v1/generate-pdf-report", json=payload, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"] == error


def test_invoice_pdf_for_owner_and_tenant(client, db, landlord):
    tenant_user = add_user(db, "Tenant")
    invoice = add_rent_invoice(db, landlord, tenant_user_id=tenant_user)

    as_owner = client.post(
        "/functions/v1/generate-invoice-pdf", json={"invoiceId": str(invoice.id)}, headers=auth_headers(landlord)
    )
    as_tenant = client.post(
        "/functions/v1/generate-invoice-pdf", json={"invoiceId": str(invoice.id)}, headers=auth_headers(tenant_user)
    )

    assert as_owner.status_code == 200
    assert as_owner.headers["Content-Disposition"] == 'attachment; filename="INV-202610-0001.pdf"'
    assert as_owner.content.startswith(b"%PDF")
    assert as_tenant.status_code == 200


def test_invoice_pdf_refused_for_strangers(client, db, landlord):
    invoice = add_rent_invoice(db, landlord)
    stranger = add_user(db, "Landlord")

    response = client.post(
        "/functions/v1/generate-invoice-pdf", json={"invoiceId": str(invoice.id)}, headers=auth_headers(stranger)
    )

    assert response.status_code == 403


def test_service_invoice_pdf(client, db, landlord):
    invoice = ServiceChargeInvoice(
        landlord_id=landlord,
        invoice_number="SRV-202609-ABC123",
        billing_period_start=date(2026, 9, 1),
        billing_period_end=date(2026, 9, 30),
        rent_collected=Decimal("20000"),
        service_charge_rate=Decimal("5"),
        service_charge_amount=Decimal("1000"),
        sms_charges=Decimal("5"),
        other_charges=Decimal("1000"),
        total_amount=Decimal("2005"),
    )
    db.add(invoice)
    db.commit()

    response = client.post(
        "/functions/v1/generate-invoice-pdf", json={"invoiceId": str(invoice.id)}, headers=auth_headers(landlord)
    )

    assert response.status_code == 200
    assert 'filename="SRV-202609-ABC123.pdf"' in response.headers["Content-Disposition"]


@pytest.mark.parametrize("invoice_id, status", [(None, 400), ("7b7f6f57-0000-4000-8000-000000000000", 404)])
def test_invoice_pdf_errors(client, landlord, invoice_id, status):
    response = client.post(
        "/functions/v1/generate-invoice-pdf", json={"invoiceId": invoice_id}, headers=auth_headers(landlord)
    )

    assert response.status_code == status
