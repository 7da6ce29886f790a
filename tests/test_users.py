from datetime import timedelta

from conftest import add_user, auth_headers
from models import ImpersonationSession, LandlordSubscription, Profile, Property, SubUser, UserRole
from models.base import as_utc, utcnow
from models.profile import AppRole


def test_create_sub_user_rejects_other_methods(client):
    response = client.get("/functions/v1/create-sub-user")

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_create_sub_user_requires_landlord_role(client, fake_supabase, landlord):
    fake_supabase.rpc_results["has_role"] = False

    response = client.post(
        "/functions/v1/create-sub-user",
        json={"email": "staff@example.com", "first_name": "Sam", "last_name": "K"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 403
    assert response.json()["error"] == "Only landlords can create sub-users"


def test_create_sub_user_with_new_account(client, db, fake_supabase, landlord):
    fake_supabase.rpc_results["has_role"] = True
    fake_supabase.rpc_results["find_user_by_email"] = []

    response = client.post(
        "/functions/v1/create-sub-user",
        json={
            "email": "Staff@Example.com",
            "first_name": "Sam",
            "last_name": "Kariuki",
            "title": "Caretaker",
            "permissions": {"manage_tenants": True, "delete_everything": True},
        },
        headers=auth_headers(landlord),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["temporary_password"].startswith("TempPass")
    assert fake_supabase.auth_users[0]["email"] == "staff@example.com"
    assert fake_supabase.auth_users[0]["user_metadata"]["role"] == AppRole.SUB_USER.value

    db.expire_all()
    row = db.query(SubUser).filter(SubUser.landlord_id == landlord).one()
    assert row.permissions == {
        "manage_properties": False,
        "manage_tenants": True,
        "manage_leases": False,
        "manage_maintenance": False,
        "view_reports": False,
    }

    listed = client.post("/functions/v1/list-landlord-sub-users", headers=auth_headers(landlord)).json()
    assert listed["success"] is True
    assert listed["sub_users"][0]["profile"]["email"] == "staff@example.com"


def test_create_sub_user_refuses_duplicate(client, db, fake_supabase, landlord):
    existing = add_user(db, AppRole.SUB_USER.value, email="staff@example.com")
    db.add(SubUser(landlord_id=landlord, user_id=existing, permissions={}, status="active"))
    db.commit()
    fake_supabase.rpc_results["has_role"] = True
    fake_supabase.rpc_results["find_user_by_email"] = [{"id": str(existing)}]

    response = client.post(
        "/functions/v1/create-sub-user",
        json={"email": "staff@example.com", "first_name": "Sam", "last_name": "K"},
        headers=auth_headers(landlord),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "User is already a sub-user for this landlord"


def test_create_admin_user(client, db, fake_supabase, admin):
    response = client.post(
        "/functions/v1/create-admin-user",
        json={"email": "ops@example.com", "password": "S3cret!!", "first_name": "Opal", "last_name": "M"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    new_id = response.json()["user"]["id"]
    db.expire_all()
    assert db.query(UserRole).filter(UserRole.role == AppRole.ADMIN.value).count() == 2
    assert fake_supabase.calls_to("rpc", "log_user_activity")[0][2]["_entity_id"] == new_id


def test_password_reset_by_email(client, fake_supabase, outbox):
    response = client.post("/functions/v1/send-password-reset", json={"email": "someone@example.com"})

    assert response.status_code == 200
    assert response.json()["channels_used"] == ["email"]
    assert fake_supabase.recovered[0][0] == "someone@example.com"
    assert outbox["sms"] == []


def test_password_reset_needs_email_or_user(client):
    response = client.post("/functions/v1/send-password-reset", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "email or user_id is required"


def test_admin_operation_unknown(client, admin, landlord):
    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "launch_rockets", "userId": str(landlord)},
        headers=auth_headers(admin),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Unknown operation: launch_rockets"


def test_admin_operation_suspend_calls_backend_and_audits(client, fake_supabase, admin, landlord):
    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "suspend_user", "userId": str(landlord), "reason": "fraud"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert fake_supabase.calls_to("rpc", "suspend_user")[0][2] == {"_user_id": str(landlord)}
    assert len(fake_supabase.calls_to("rpc", "log_user_audit")) == 1


def test_cannot_impersonate_admins(client, db, admin):
    other_admin = add_user(db, AppRole.ADMIN.value)

    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "start_impersonation", "userId": str(other_admin)},
        headers=auth_headers(admin),
    )

    assert response.status_code == 403


def test_impersonation_start_and_stop(client, db, admin, landlord):
    start = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "start_impersonation", "userId": str(landlord)},
        headers=auth_headers(admin),
    )
    stop = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "stop_impersonation", "userId": str(landlord)},
        headers=auth_headers(admin),
    )

    assert start.status_code == 200
    assert stop.status_code == 200
    db.expire_all()
    session = db.query(ImpersonationSession).one()
    assert session.is_active is False
    assert session.ended_at is not None


def test_reset_trial_extends_end_date(client, db, admin, landlord):
    db.add(LandlordSubscription(landlord_id=landlord, status="suspended"))
    db.commit()

    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "reset_trial", "userId": str(landlord), "trialDays": 14},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    db.expire_all()
    subscription = db.query(LandlordSubscription).one()
    assert subscription.status == "trial"
    remaining = as_utc(subscription.trial_end_date) - utcnow()
    assert timedelta(days=13) < remaining <= timedelta(days=14)


def test_soft_delete_refused_with_properties(client, db, admin, landlord):
    db.add(Property(name="Riverside", owner_id=landlord))
    db.commit()

    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "soft_delete_user", "userId": str(landlord)},
        headers=auth_headers(admin),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["transfer_required"] is True
    assert body["dependencies"]["hasActiveProperties"] is True


def test_permanent_delete_removes_profile(client, db, fake_supabase, admin):
    target = add_user(db, AppRole.TENANT.value, email="gone@example.com")

    response = client.post(
        "/functions/v1/admin-user-operations",
        json={"operation": "permanently_delete_user", "userId": str(target)},
        headers=auth_headers(admin),
    )

    assert response.status_code == 200
    assert fake_supabase.deleted_users == [str(target)]
    db.expire_all()
    assert db.get(Profile, target) is None
