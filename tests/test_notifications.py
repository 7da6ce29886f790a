import uuid
from decimal import Decimal

from conftest import add_rent_invoice, add_user, auth_headers
from models import Notification, NotificationLog, NotificationPreference, SmsUsageLog
from utils.email import EmailDeliveryError
from utils.sms import SmsDeliveryError


def tenant_of(db, landlord_id, email="amina@example.com", phone="0722000111"):
    tenant_user = add_user(db, "Tenant", email=email, phone=phone, first_name="Amina")
    add_rent_invoice(db, landlord_id, tenant_user_id=tenant_user)
    return tenant_user


def notify(client, sender, **payload):
    return client.post("/functions/v1/send-notification", json=payload, headers=auth_headers(sender))


# ---------------------------------------------------------------------------
# send-notification
# ---------------------------------------------------------------------------

def test_landlord_notifies_own_tenant(client, db, outbox, landlord):
    tenant_user = tenant_of(db, landlord)

    response = notify(client, landlord, user_id=str(tenant_user), title="Rent due", message="Rent is due on the 5th")

    assert response.status_code == 200
    assert response.json()["notifications_sent"] == 1
    assert outbox["email"][0]["to"] == "amina@example.com"
    assert "Rent is due on the 5th" in outbox["email"][0]["html"]
    assert outbox["sms"] == []
    db.expire_all()
    notification = db.query(Notification).one()
    assert notification.user_id == tenant_user
    assert notification.is_read is False
    assert db.query(NotificationLog).one().status == "sent"


def test_landlord_cannot_notify_strangers(client, db, outbox, landlord):
    stranger = add_user(db, "Tenant", email="stranger@example.com")

    response = notify(client, landlord, user_id=str(stranger), title="Hi", message="Hello")

    assert response.status_code == 403
    assert response.json()["error"] == "Not authorized to notify this user"
    assert outbox["email"] == []


def test_tenants_cannot_notify_others(client, db, landlord):
    tenant_user = tenant_of(db, landlord)

    response = notify(client, tenant_user, user_id=str(landlord), title="Hi", message="Hello")

    assert response.status_code == 403


def test_sms_follows_preferences_and_request_flags(client, db, outbox, landlord):
    tenant_user = tenant_of(db, landlord)
    db.add(NotificationPreference(user_id=tenant_user, email_enabled=True, sms_enabled=True))
    db.commit()

    response = notify(
        client, landlord, user_id=str(tenant_user), title="Water", message="Water off at 2pm", send_email=False
    )

    assert [r["channel"] for r in response.json()["responses"]] == ["sms"]
    assert outbox["sms"] == [{"phone": "0722000111", "message": "Water: Water off at 2pm"}]
    assert outbox["email"] == []


def test_request_cannot_enable_a_channel_the_user_turned_off(client, db, outbox, landlord):
    tenant_user = tenant_of(db, landlord)

    notify(client, landlord, user_id=str(tenant_user), title="T", message="M", send_sms=True)

    assert outbox["sms"] == []


def test_failed_email_is_logged_not_raised(client, db, monkeypatch, admin):
    target = add_user(db, "Landlord", email="ll@example.com")

    def failing(to, subject, html):
        raise EmailDeliveryError("Resend error: quota")

    monkeypatch.setattr("services.notification_service.send_email", failing)

    response = notify(client, admin, user_id=str(target), title="Notice", message="Body")

    assert response.status_code == 200
    assert response.json()["responses"] == [{"channel": "email", "success": False, "error": "Resend error: quota"}]
    db.expire_all()
    log = db.query(NotificationLog).one()
    assert log.status == "failed"
    assert db.query(Notification).count() == 1


def test_notification_validation(client, admin):
    missing_user = notify(client, admin, title="T", message="M")
    missing_text = notify(client, admin, user_id=str(uuid.uuid4()), title="T")
    unknown_user = notify(client, admin, user_id=str(uuid.uuid4()), title="T", message="M")

    assert missing_user.json() == {"error": "user_id is required"}
    assert missing_text.json() == {"error": "title and message are required"}
    assert unknown_user.status_code == 404


# ---------------------------------------------------------------------------
# Listing and read state
# ---------------------------------------------------------------------------

def test_list_and_mark_read(client, db, landlord):
    first = Notification(user_id=landlord, title="One", message="1")
    second = Notification(user_id=landlord, title="Two", message="2")
    db.add_all([first, second, Notification(user_id=uuid.uuid4(), title="Other", message="x")])
    db.commit()
    headers = auth_headers(landlord)

    assert len(client.get("/functions/v1/notifications", headers=headers).json()) == 2

    marked = client.post(
        "/functions/v1/mark-notification-read", json={"notification_id": str(first.id)}, headers=headers
    )
    unread = client.get("/functions/v1/notifications", params={"unread_only": True}, headers=headers).json()

    assert marked.json() == {"success": True, "updated": 1}
    assert [n["title"] for n in unread] == ["Two"]

    everything = client.post("/functions/v1/mark-notification-read", json={"all": True}, headers=headers)
    assert everything.json()["updated"] == 1


def test_mark_read_requires_id(client, landlord):
    response = client.post("/functions/v1/mark-notification-read", json={}, headers=auth_headers(landlord))

    assert response.status_code == 400
    assert response.json()["error"] == "notification_id is required"


# ---------------------------------------------------------------------------
# Direct SMS and e-mail
# ---------------------------------------------------------------------------

def test_send_sms_records_landlord_usage(client, db, outbox, landlord):
    response = client.post(
        "/functions/v1/send-sms",
        json={"phone_number": "0722000111", "message": "Reminder", "landlord_id": str(landlord)},
        headers=auth_headers(landlord),
    )

    assert response.json()["cost"] == 2.5
    assert outbox["sms"][0]["message"] == "Reminder"
    db.expire_all()
    usage = db.query(SmsUsageLog).one()
    assert usage.cost == Decimal("2.50")
    assert usage.landlord_id == landlord


def test_send_sms_provider_failure_is_500(client, db, monkeypatch, landlord):
    def failing(phone, message, config=None):
        raise SmsDeliveryError("InHouse SMS API error: 401")

    monkeypatch.setattr("services.notification_service.send_sms", failing)

    response = client.post(
        "/functions/v1/send-sms",
        json={"phone_number": "0722000111", "message": "Reminder", "landlord_id": str(landlord)},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 500
    assert response.json() == {"error": "InHouse SMS API error: 401"}
    db.expire_all()
    assert db.query(SmsUsageLog).count() == 0


def test_send_sms_requires_phone_and_message(client, landlord):
    response = client.post("/functions/v1/send-sms", json={"message": "x"}, headers=auth_headers(landlord))

    assert response.status_code == 400


def test_notification_email(client, outbox, landlord):
    response = client.post(
        "/functions/v1/send-notification-email",
        json={"to": "amina@example.com", "subject": "Lease renewal", "message": "Please sign", "type": "lease"},
        headers=auth_headers(landlord),
    )
    invalid = client.post("/functions/v1/send-notification-email", json={"to": "x@example.com"},
                          headers=auth_headers(landlord))

    assert response.json() == {"success": True, "id": "email-1"}
    assert outbox["email"][0]["subject"] == "Lease renewal"
    assert invalid.status_code == 400
