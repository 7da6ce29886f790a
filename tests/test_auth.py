import uuid

from conftest import auth_headers, make_token


def test_missing_token_is_401(client):
    response = client.get("/functions/v1/trial-status")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_token_signed_with_other_secret_is_rejected(client):
    token = make_token(uuid.uuid4(), secret="someone-elses-secret")

    response = client.get("/functions/v1/trial-status", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid authentication"}


def test_token_for_other_audience_is_rejected(client):
    token = make_token(uuid.uuid4(), audience="anon")

    response = client.get("/functions/v1/trial-status", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_valid_token_without_role_is_not_trial_checked(client):
    response = client.get("/functions/v1/trial-status", headers=auth_headers(uuid.uuid4()))

    assert response.status_code == 200
    assert response.json()["status"] == "not_applicable"
    assert response.json()["is_active"] is True


def test_admin_only_function_refuses_landlord(client, landlord):
    response = client.get("/functions/v1/support-stats", headers=auth_headers(landlord))

    assert response.status_code == 403
    assert response.json() == {"error": "Insufficient permissions"}


def test_admin_only_function_allows_admin(client, admin):
    response = client.get("/functions/v1/support-stats", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json() == {"openTickets": 0, "inProgressTickets": 0, "resolvedToday": 0, "totalTickets": 0}


def test_trial_manager_accepts_service_role_key(client, fake_supabase):
    response = client.post(
        "/functions/v1/trial-manager",
        headers={"Authorization": "Bearer service-role-key"},
    )

    assert response.status_code == 200
    assert response.json()["processed"] == 0


def test_trial_manager_refuses_ordinary_users(client, landlord):
    response = client.post("/functions/v1/trial-manager", headers=auth_headers(landlord))

    assert response.status_code == 403
