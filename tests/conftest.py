import os
import sys
import uuid
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "https://backend.test"
os.environ["SUPABASE_SERVICE_ROLE"] = "service-role-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["DATA_ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["MPESA_CONSUMER_KEY"] = "platform-key"
os.environ["MPESA_CONSUMER_SECRET"] = "platform-secret"
os.environ["MPESA_PASSKEY"] = "platform-passkey"
os.environ["MPESA_SHORTCODE"] = "174379"
os.environ["SMS_PROVIDER_TOKEN"] = "sms-token"
os.environ["RESEND_API_KEY"] = "resend-key"

import pytest
from fastapi.testclient import TestClient
from jose import jwt

import database
from dependencies import get_supabase
from main import app
from models import Base, Invoice, Lease, Profile, Property, Tenant, Unit, UserRole
from models.profile import AppRole


class FakeSupabase:
    """Records every backend call; RPC replies are configured per function."""

    def __init__(self):
        self.calls = []
        self.rpc_results = {}
        self.select_results = {}
        self.auth_users = []
        self.deleted_users = []
        self.recovered = []

    def _reply(self, value, params):
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(params)
        return value

    def rpc(self, fn, params=None, auth_header=None):
        self.calls.append(("rpc", fn, params or {}, auth_header))
        return self._reply(self.rpc_results.get(fn), params or {})

    def select(self, table, params, auth_header=None):
        self.calls.append(("select", table, params, auth_header))
        return self._reply(self.select_results.get(table, []), params)

    def insert(self, table, rows, auth_header=None):
        self.calls.append(("insert", table, rows, auth_header))
        return [{"id": str(uuid.uuid4()), **rows}]

    def update(self, table, filters, values, auth_header=None):
        self.calls.append(("update", table, {"filters": filters, "values": values}, auth_header))
        return [values]

    def get_user(self, token):
        return {}

    def admin_create_user(self, email, password, user_metadata, email_confirm=True):
        user = {"id": str(uuid.uuid4()), "email": email, "user_metadata": user_metadata}
        self.auth_users.append({**user, "password": password})
        return user

    def admin_delete_user(self, user_id):
        self.deleted_users.append(user_id)

    def recover(self, email, redirect_to=None):
        self.recovered.append((email, redirect_to))

    def calls_to(self, kind, name):
        return [call for call in self.calls if call[0] == kind and call[1] == name]


@pytest.fixture
def fake_supabase():
    fake = FakeSupabase()
    app.dependency_overrides[get_supabase] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_supabase, None)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=database.engine)
    session = database.SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def client(db, fake_supabase):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def outbox(monkeypatch):
    """Captures outbound e-mail and SMS from every module that sends them."""
    sent = {"email": [], "sms": []}

    def fake_email(to, subject, html_body, from_address=None):
        sent["email"].append({"to": to, "subject": subject, "html": html_body})
        return {"id": f"email-{len(sent['email'])}"}

    def fake_sms(phone, message, config=None):
        sent["sms"].append({"phone": phone, "message": message})
        return {"success": True}

    for module in ("services.trial_service", "services.notification_service"):
        monkeypatch.setattr(f"{module}.send_email", fake_email)
    for module in ("services.notification_service", "services.user_service", "services.mpesa_service"):
        monkeypatch.setattr(f"{module}.send_sms", fake_sms)
    return sent


class FakeDaraja:
    """Accepts every STK push; instances are kept so tests can inspect credentials."""

    instances = []

    def __init__(self, **credentials):
        self.credentials = credentials
        self.pushes = []
        FakeDaraja.instances.append(self)

    def stk_push(self, **kwargs):
        self.pushes.append(kwargs)
        return {
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CheckoutRequestID": f"ws_CO_{len(FakeDaraja.instances)}",
            "MerchantRequestID": "merchant-1",
        }


@pytest.fixture
def daraja(monkeypatch):
    FakeDaraja.instances = []
    monkeypatch.setattr("services.mpesa_service.DarajaClient", FakeDaraja)
    return FakeDaraja


SAFARICOM_IP = {"X-Forwarded-For": "196.201.214.10"}


def callback_body(checkout_id, amount, receipt="QKX1234ABC", result_code=0):
    callback = {
        "MerchantRequestID": "merchant-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully.",
    }
    if result_code == 0:
        items = [{"Name": "Amount", "Value": amount}, {"Name": "PhoneNumber", "Value": 254722000111}]
        if receipt:
            items.append({"Name": "MpesaReceiptNumber", "Value": receipt})
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}


def make_token(user_id, email=None, secret="test-jwt-secret", audience="authenticated"):
    claims = {"sub": str(user_id), "aud": audience, "role": "authenticated"}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id, email=None):
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


def add_user(db, role, email=None, phone=None, first_name="Test", last_name="User"):
    user_id = uuid.uuid4()
    db.add(Profile(id=user_id, first_name=first_name, last_name=last_name, email=email, phone=phone))
    if role is not None:
        db.add(UserRole(user_id=user_id, role=role))
    db.commit()
    return user_id


@pytest.fixture
def landlord(db):
    return add_user(db, AppRole.LANDLORD.value, email="landlord@example.com", phone="0712345678", first_name="Lena")


@pytest.fixture
def admin(db):
    return add_user(db, AppRole.ADMIN.value, email="admin@example.com", first_name="Ada")


def add_rent_invoice(db, owner_id, amount=15000, tenant_phone="0722000111", tenant_user_id=None):
    """Property -> unit -> tenant -> active lease -> pending invoice."""
    prop = Property(name="Riverside Apartments", owner_id=owner_id)
    unit = Unit(property=prop, unit_number="A1", rent_amount=amount, status="occupied")
    tenant = Tenant(first_name="Amina", last_name="Wanjiku", email="amina@example.com",
                    phone=tenant_phone, user_id=tenant_user_id)
    lease = Lease(tenant=tenant, unit=unit, monthly_rent=amount, lease_start_date=date(2026, 1, 1), status="active")
    invoice = Invoice(lease=lease, tenant=tenant, invoice_number="INV-202610-0001",
                      invoice_date=date(2026, 10, 1), due_date=date(2026, 10, 5), amount=amount)
    db.add_all([prop, unit, tenant, lease, invoice])
    db.commit()
    return invoice
