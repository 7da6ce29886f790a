from datetime import date
from decimal import Decimal

from config import settings
from conftest import SAFARICOM_IP, add_rent_invoice, auth_headers, callback_body
from models import (
    BillingPlan,
    LandlordMpesaConfig,
    LandlordSubscription,
    MpesaTransaction,
    Payment,
    ServiceChargeInvoice,
)
from services.billing_service import BillingError, BillingService, month_bounds
from utils.encryption import decrypt_secret, encrypt_secret


def store_landlord_credentials(db, landlord_id, shortcode="600111"):
    key = settings.data_encryption_key
    db.add(LandlordMpesaConfig(
        landlord_id=landlord_id,
        consumer_key_encrypted=encrypt_secret("ll-key", key),
        consumer_secret_encrypted=encrypt_secret("ll-secret", key),
        shortcode_encrypted=encrypt_secret(shortcode, key),
        passkey_encrypted=encrypt_secret("ll-passkey", key),
        environment="sandbox",
        is_active=True,
    ))
    db.commit()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def test_save_credentials_requires_every_field(client, landlord):
    response = client.post(
        "/functions/v1/save-mpesa-credentials",
        json={"consumer_key": "k", "consumer_secret": "s"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required M-Pesa credentials"


def test_save_credentials_stores_them_encrypted(client, db, fake_supabase, landlord):
    payload = {"consumer_key": "ck", "consumer_secret": "cs", "shortcode": 600111, "passkey": "pk"}

    response = client.post("/functions/v1/save-mpesa-credentials", json=payload, headers=auth_headers(landlord))

    assert response.json() == {"success": True, "message": "M-Pesa credentials saved securely"}
    db.expire_all()
    config = db.query(LandlordMpesaConfig).one()
    assert config.consumer_key_encrypted != "ck"
    assert decrypt_secret(config.shortcode_encrypted, settings.data_encryption_key) == "600111"
    event = fake_supabase.calls_to("rpc", "log_security_event")[0][2]
    assert event["_event_type"] == "mpesa_credentials_updated"


# ---------------------------------------------------------------------------
# STK push
# ---------------------------------------------------------------------------

def test_stk_push_dry_run_does_not_call_daraja(client, daraja, landlord):
    response = client.post(
        "/functions/v1/mpesa-stk-push",
        json={"phone": "0712345678", "amount": 100, "dryRun": True},
        headers=auth_headers(landlord),
    )

    body = response.json()
    assert body["dryRun"] is True
    assert body["data"]["CheckoutRequestID"].startswith("mock-checkout-")
    assert daraja.instances == []


def test_stk_push_requires_phone_and_amount(client, daraja, landlord):
    response = client.post("/functions/v1/mpesa-stk-push", json={"amount": 100}, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"] == "Phone number and amount are required"


def test_rent_push_uses_landlord_credentials(client, db, daraja, landlord):
    store_landlord_credentials(db, landlord)
    invoice = add_rent_invoice(db, landlord)

    response = client.post(
        "/functions/v1/mpesa-stk-push",
        json={"phone": "0722000111", "amount": 15000, "invoiceId": str(invoice.id)},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["UsingLandlordConfig"] is True
    assert data["BusinessShortCode"] == "600111"
    assert daraja.instances[0].credentials["consumer_key"] == "ll-key"
    push = daraja.instances[0].pushes[0]
    assert push["account_reference"] == f"INV-{invoice.id}"
    assert push["callback_url"] == "https://backend.test/functions/v1/mpesa-callback"

    db.expire_all()
    transaction = db.query(MpesaTransaction).one()
    assert transaction.status == "pending"
    assert transaction.invoice_id == invoice.id
    assert transaction.authorized_by == landlord
    assert transaction.phone_number == "254722000111"


def test_service_charge_push_uses_platform_credentials(client, db, daraja, landlord):
    store_landlord_credentials(db, landlord)
    invoice = ServiceChargeInvoice(
        landlord_id=landlord,
        invoice_number="SRV-202610-ABC123",
        billing_period_start=date(2026, 9, 1),
        billing_period_end=date(2026, 9, 30),
        total_amount=Decimal("1250.00"),
    )
    db.add(invoice)
    db.commit()

    response = client.post(
        "/functions/v1/mpesa-stk-push",
        json={"phone": "0712345678", "amount": 1250, "invoiceId": str(invoice.id), "paymentType": "service-charge"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 200
    assert response.json()["data"]["UsingLandlordConfig"] is False
    assert daraja.instances[0].credentials["consumer_key"] == "platform-key"
    assert daraja.instances[0].pushes[0]["account_reference"] == "ZIRA-SERVICE"
    db.expire_all()
    metadata = db.query(MpesaTransaction).one().metadata_
    assert metadata["service_charge_invoice_id"] == str(invoice.id)


def test_service_charge_push_for_unknown_invoice(client, daraja, landlord):
    response = client.post(
        "/functions/v1/mpesa-stk-push",
        json={"phone": "0712345678", "amount": 10, "paymentType": "service-charge"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Service charge invoice not found"


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------

def pending_transaction(db, amount, checkout_id="ws_CO_1", **fields):
    transaction = MpesaTransaction(
        checkout_request_id=checkout_id,
        phone_number="254722000111",
        amount=amount,
        status="pending",
        **fields,
    )
    db.add(transaction)
    db.commit()
    return transaction


def test_callback_from_outside_safaricom_is_refused(client, fake_supabase):
    response = client.post(
        "/functions/v1/mpesa-callback",
        json=callback_body("ws_CO_1", 10),
        headers={"X-Forwarded-For": "8.8.8.8"},
    )

    assert response.status_code == 403
    event = fake_supabase.calls_to("rpc", "log_security_event")[0][2]
    assert event["_event_type"] == "unauthorized_mpesa_callback"


def test_callback_settles_rent_invoice(client, db, outbox, landlord):
    invoice = add_rent_invoice(db, landlord, amount=15000)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    response = client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 15000), headers=SAFARICOM_IP)

    assert response.status_code == 200
    assert response.text == "OK"
    db.expire_all()
    assert db.get(type(invoice), invoice.id).status == "paid"
    payment = db.query(Payment).one()
    assert payment.transaction_id == "QKX1234ABC"
    assert payment.payment_method == "M-Pesa"
    assert db.query(MpesaTransaction).one().status == "completed"
    assert outbox["sms"][0]["phone"] == "0722000111"
    assert "Receipt: QKX1234ABC" in outbox["sms"][0]["message"]


def test_callback_replay_is_acknowledged_once(client, db, outbox, landlord):
    invoice = add_rent_invoice(db, landlord, amount=15000)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 15000), headers=SAFARICOM_IP)
    replay = client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 15000), headers=SAFARICOM_IP)

    assert replay.text == "OK"
    db.expire_all()
    assert db.query(Payment).count() == 1
    assert len(outbox["sms"]) == 1


def test_callback_amount_mismatch(client, db, fake_supabase, landlord):
    invoice = add_rent_invoice(db, landlord, amount=15000)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    response = client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 1), headers=SAFARICOM_IP)

    assert response.status_code == 400
    assert response.json()["error"] == "Amount mismatch"
    db.expire_all()
    assert db.query(MpesaTransaction).one().status == "pending"
    assert fake_supabase.calls_to("rpc", "log_security_event")[0][2]["_severity"] == "critical"


def test_callback_unknown_checkout(client):
    response = client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_404", 5), headers=SAFARICOM_IP)

    assert response.status_code == 404


def test_failed_payment_is_recorded(client, db, outbox, landlord):
    invoice = add_rent_invoice(db, landlord)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    response = client.post(
        "/functions/v1/mpesa-callback",
        json=callback_body("ws_CO_1", 15000, result_code=1032),
        headers=SAFARICOM_IP,
    )

    assert response.text == "OK"
    db.expire_all()
    transaction = db.query(MpesaTransaction).one()
    assert transaction.status == "failed"
    assert transaction.result_code == "1032"
    assert db.get(type(invoice), invoice.id).status == "pending"
    assert outbox["sms"] == []


def test_callback_settles_service_charge(client, db, outbox, landlord):
    invoice = ServiceChargeInvoice(
        landlord_id=landlord,
        invoice_number="SRV-202610-ABC123",
        billing_period_start=date(2026, 9, 1),
        billing_period_end=date(2026, 9, 30),
        total_amount=Decimal("1250.00"),
    )
    db.add(invoice)
    db.commit()
    pending_transaction(
        db,
        1250,
        payment_type="service-charge",
        metadata_={"service_charge_invoice_id": str(invoice.id), "landlord_id": str(landlord)},
    )

    client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 1250), headers=SAFARICOM_IP)

    db.expire_all()
    settled = db.get(ServiceChargeInvoice, invoice.id)
    assert settled.status == "paid"
    assert settled.payment_reference == "QKX1234ABC"
    assert outbox["sms"][0]["phone"] == "0712345678"


def test_callback_without_receipt_still_records_payment(client, db, outbox, landlord):
    invoice = add_rent_invoice(db, landlord, amount=15000)
    db.add(Payment(
        tenant_id=invoice.tenant_id,
        lease_id=invoice.lease_id,
        amount=Decimal("500"),
        payment_date=date(2026, 9, 3),
        payment_method="Cash",
    ))
    db.commit()
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    response = client.post(
        "/functions/v1/mpesa-callback",
        json=callback_body("ws_CO_1", 15000, receipt=None),
        headers=SAFARICOM_IP,
    )

    assert response.text == "OK"
    db.expire_all()
    assert db.get(type(invoice), invoice.id).status == "paid"
    mpesa_payment = db.query(Payment).filter(Payment.payment_method == "M-Pesa").one()
    assert mpesa_payment.payment_reference == "ws_CO_1"
    assert mpesa_payment.transaction_id is None
    assert db.query(Payment).count() == 2
    assert "Receipt" not in outbox["sms"][0]["message"]


def percentage_landlord(db, landlord_id):
    plan = BillingPlan(name="Commission", price=0, billing_model="percentage", percentage_rate=Decimal("5"))
    db.add(plan)
    db.flush()
    db.add(LandlordSubscription(landlord_id=landlord_id, billing_plan_id=plan.id, status="active"))
    db.commit()


def test_rent_callback_folds_into_monthly_service_invoice(client, db, outbox, landlord):
    percentage_landlord(db, landlord)
    start, end = month_bounds(date.today())
    service_invoice = ServiceChargeInvoice(
        landlord_id=landlord,
        invoice_number="SRV-THIS-MONTH",
        billing_period_start=start,
        billing_period_end=end,
        rent_collected=Decimal("14000"),
        service_charge_rate=Decimal("5"),
        service_charge_amount=Decimal("700"),
        sms_charges=Decimal("5"),
        total_amount=Decimal("705"),
    )
    db.add(service_invoice)
    invoice = add_rent_invoice(db, landlord, amount=15000)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 15000), headers=SAFARICOM_IP)

    db.expire_all()
    updated = db.get(ServiceChargeInvoice, service_invoice.id)
    assert updated.rent_collected == Decimal("29000.00")
    assert updated.service_charge_amount == Decimal("1450.00")
    assert updated.total_amount == Decimal("1455.00")
    assert db.query(ServiceChargeInvoice).count() == 1


def test_service_charge_failure_does_not_undo_rent_settlement(client, db, outbox, monkeypatch, landlord):
    invoice = add_rent_invoice(db, landlord, amount=15000)
    pending_transaction(db, 15000, invoice_id=invoice.id, payment_type="rent")

    def failing(*args, **kwargs):
        raise BillingError("No billing plan")

    monkeypatch.setattr(BillingService, "record_rent_collection", staticmethod(failing))

    response = client.post("/functions/v1/mpesa-callback", json=callback_body("ws_CO_1", 15000), headers=SAFARICOM_IP)

    assert response.text == "OK"
    db.expire_all()
    assert db.get(type(invoice), invoice.id).status == "paid"
    assert db.query(Payment).count() == 1
    assert db.query(MpesaTransaction).one().status == "completed"
    assert len(outbox["sms"]) == 1
