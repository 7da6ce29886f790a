from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import SAFARICOM_IP, add_rent_invoice, add_user, auth_headers, callback_body
from models import (
    BillingPlan,
    Expense,
    LandlordSubscription,
    MpesaTransaction,
    Payment,
    ServiceChargeInvoice,
    SmsUsageLog,
)
from models.profile import AppRole
from services.billing_service import BillingService


@pytest.fixture
def fixed_plan(db):
    plan = BillingPlan(name="Pro", price=Decimal("2500"), billing_model="fixed_per_unit", sms_credits_included=200)
    db.add(plan)
    db.commit()
    return plan


@pytest.fixture
def percentage_plan(db):
    plan = BillingPlan(name="Commission", price=0, billing_model="percentage", percentage_rate=Decimal("5"))
    db.add(plan)
    db.commit()
    return plan


def subscribe(db, landlord_id, plan):
    db.add(LandlordSubscription(landlord_id=landlord_id, billing_plan_id=plan.id, status="active"))
    db.commit()


# ---------------------------------------------------------------------------
# Checkout and upgrade
# ---------------------------------------------------------------------------

def test_checkout_requires_plan(client, landlord):
    response = client.post("/functions/v1/create-billing-checkout", json={}, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"] == "Plan ID is required"


def test_checkout_unknown_plan(client, landlord):
    response = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": "not-a-plan", "phoneNumber": "0712345678"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Plan not found or inactive"


def test_percentage_plan_needs_no_payment(client, db, landlord, percentage_plan):
    response = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(percentage_plan.id)},
        headers=auth_headers(landlord),
    )

    assert response.json() == {
        "type": "direct_activation",
        "message": "Plan activated successfully",
        "requiresPayment": False,
    }
    db.expire_all()
    assert db.query(MpesaTransaction).count() == 0


def test_fixed_plan_checkout_records_pending_upgrade(client, db, landlord, fixed_plan):
    response = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(fixed_plan.id), "phoneNumber": "0712345678"},
        headers=auth_headers(landlord),
    )

    body = response.json()
    assert body["type"] == "mpesa_payment"
    assert body["amount"] == 2500
    assert body["phoneNumber"] == "254712345678"
    db.expire_all()
    transaction = db.query(MpesaTransaction).one()
    assert str(transaction.id) == body["transactionId"]
    assert transaction.payment_type == "plan_upgrade"
    assert transaction.metadata_["plan_id"] == str(fixed_plan.id)


def test_fixed_plan_checkout_requires_phone(client, landlord, fixed_plan):
    response = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(fixed_plan.id)},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Phone number is required for M-Pesa payment"


def test_upgrade_is_refused_until_payment_completes(client, landlord, fixed_plan):
    checkout = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(fixed_plan.id), "phoneNumber": "0712345678"},
        headers=auth_headers(landlord),
    ).json()

    response = client.post(
        "/functions/v1/confirm-billing-upgrade",
        json={"transactionId": checkout["transactionId"]},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Payment not completed"


def test_paid_upgrade_activates_plan(client, db, fake_supabase, daraja, landlord, fixed_plan):
    headers = auth_headers(landlord)
    checkout = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(fixed_plan.id), "phoneNumber": "0712345678"},
        headers=headers,
    ).json()
    push = client.post(
        "/functions/v1/mpesa-stk-push",
        json={
            "phone": "0712345678",
            "amount": 2500,
            "paymentType": "plan_upgrade",
            "transactionId": checkout["transactionId"],
        },
        headers=headers,
    ).json()
    client.post(
        "/functions/v1/mpesa-callback",
        json=callback_body(push["data"]["CheckoutRequestID"], 2500),
        headers=SAFARICOM_IP,
    )

    response = client.post(
        "/functions/v1/confirm-billing-upgrade",
        json={"transactionId": checkout["transactionId"]},
        headers=headers,
    )

    assert response.status_code == 200
    subscription = response.json()["subscription"]
    assert subscription["status"] == "active"
    assert subscription["billing_plan_id"] == str(fixed_plan.id)
    assert subscription["sms_credits_balance"] == 200
    db.expire_all()
    assert db.query(MpesaTransaction).count() == 1
    assert fake_supabase.calls_to("rpc", "log_user_activity")[0][2]["_action"] == "subscription_upgrade"


def test_confirm_plan_directly_only_for_percentage_plans(client, landlord, fixed_plan, percentage_plan):
    refused = client.post(
        "/functions/v1/confirm-billing-upgrade",
        json={"planId": str(fixed_plan.id)},
        headers=auth_headers(landlord),
    )
    accepted = client.post(
        "/functions/v1/confirm-billing-upgrade",
        json={"planId": str(percentage_plan.id)},
        headers=auth_headers(landlord),
    )

    assert refused.status_code == 400
    assert refused.json()["error"] == "Payment is required for this plan"
    assert accepted.json()["subscription"]["status"] == "active"


def test_confirm_someone_elses_transaction(client, db, landlord, fixed_plan):
    other = add_user(db, AppRole.LANDLORD.value)
    checkout = client.post(
        "/functions/v1/create-billing-checkout",
        json={"planId": str(fixed_plan.id), "phoneNumber": "0712345678"},
        headers=auth_headers(other),
    ).json()

    response = client.post(
        "/functions/v1/confirm-billing-upgrade",
        json={"transactionId": checkout["transactionId"]},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Service charge invoices
# ---------------------------------------------------------------------------

def seed_september_activity(db, landlord_id):
    invoice = add_rent_invoice(db, landlord_id, amount=20000)
    db.add(Payment(
        tenant_id=invoice.tenant_id,
        lease_id=invoice.lease_id,
        invoice_id=invoice.id,
        amount=Decimal("20000"),
        payment_date=date(2026, 9, 15),
        payment_method="M-Pesa",
    ))
    for _ in range(2):
        db.add(SmsUsageLog(
            landlord_id=landlord_id,
            recipient_phone="254722000111",
            message_content="Rent reminder",
            cost=Decimal("2.50"),
            sent_at=datetime(2026, 9, 10, 8, 0, tzinfo=timezone.utc),
        ))
    property_id = invoice.lease.unit.property_id
    db.add(Expense(property_id=property_id, category="Security", amount=Decimal("1000"), expense_date=date(2026, 9, 20)))
    db.add(Expense(property_id=property_id, category="Repairs", amount=Decimal("9999"), expense_date=date(2026, 9, 20)))
    db.commit()


def test_service_invoice_sums_rent_share_sms_and_expenses(client, db, fake_supabase, landlord, percentage_plan):
    subscribe(db, landlord, percentage_plan)
    seed_september_activity(db, landlord)
    fake_supabase.rpc_results["generate_service_invoice_number"] = "SRV-202609-000001"

    response = client.post(
        "/functions/v1/generate-service-invoice",
        json={"billing_period_start": "2026-09-01", "billing_period_end": "2026-09-30"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 200
    invoice = response.json()["invoice"]
    assert invoice["invoice_number"] == "SRV-202609-000001"
    assert invoice["rent_collected"] == 20000
    assert invoice["service_charge_rate"] == 5
    assert invoice["service_charge_amount"] == 1000
    assert invoice["sms_charges"] == 5
    assert invoice["other_charges"] == 1000
    assert invoice["total_amount"] == 2005
    assert invoice["status"] == "pending"


def test_service_invoice_number_falls_back_locally(client, landlord):
    response = client.post(
        "/functions/v1/generate-service-invoice",
        json={"billing_period_start": "2026-09-01", "billing_period_end": "2026-09-30"},
        headers=auth_headers(landlord),
    )

    assert response.json()["invoice"]["invoice_number"].startswith("SRV-")
    assert response.json()["invoice"]["total_amount"] == 0


def test_service_invoice_requires_period(client, landlord):
    response = client.post(
        "/functions/v1/generate-service-invoice",
        json={"billing_period_start": "2026-09-01"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "billing_period_start and billing_period_end are required"


def test_service_invoice_rejects_inverted_period(client, landlord):
    response = client.post(
        "/functions/v1/generate-service-invoice",
        json={"billing_period_start": "2026-09-30", "billing_period_end": "2026-09-01"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400


def test_only_admins_bill_other_landlords(client, db, landlord, admin):
    other = add_user(db, AppRole.LANDLORD.value)
    payload = {"landlord_id": str(other), "billing_period_start": "2026-09-01", "billing_period_end": "2026-09-30"}

    refused = client.post("/functions/v1/generate-service-invoice", json=payload, headers=auth_headers(landlord))
    allowed = client.post("/functions/v1/generate-service-invoice", json=payload, headers=auth_headers(admin))

    assert refused.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["invoice"]["landlord_id"] == str(other)


def test_rent_collection_updates_the_month_invoice(db, landlord, percentage_plan):
    subscribe(db, landlord, percentage_plan)
    first = BillingService.record_rent_collection(db, None, landlord, Decimal("10000"), today=date(2026, 10, 3))
    first.rent_collected = Decimal("10000")
    first.service_charge_amount = Decimal("500")
    first.total_amount = Decimal("500")
    db.flush()

    second = BillingService.record_rent_collection(db, None, landlord, Decimal("4000"), today=date(2026, 10, 20))

    assert second.id == first.id
    assert second.rent_collected == Decimal("14000.00")
    assert second.service_charge_amount == Decimal("700.00")
    assert db.query(ServiceChargeInvoice).count() == 1


def test_rent_collection_ignored_for_fixed_plans(db, landlord, fixed_plan):
    subscribe(db, landlord, fixed_plan)

    assert BillingService.record_rent_collection(db, None, landlord, Decimal("10000")) is None
