"""
HTTP API flows through the FastAPI app
"""
from unittest.mock import MagicMock

import pytest

from ictacademy.utils.security import create_access_token, create_reset_token


def _login(client, phone, password):
    response = client.post("/api/auth/login", json={"phone": phone, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_headers(client, make_profile):
    make_profile("0700000001", password="adminpass", roles=["admin"])
    return _login(client, "0700000001", "adminpass")


@pytest.fixture
def student(make_profile):
    return make_profile("771234567@phone.ictacademy.lk", password="student1", first_name="Nimal")


# OTP

def test_send_and_verify_new_number(client, sms_backend):
    response = client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "register"})
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "OTP sent successfully",
        "phone": "4567",
        "expires_in": 300,
    }

    response = client.post("/api/auth/verify-otp", json={
        "phone": "0771234567",
        "otp": sms_backend.last_code(),
        "purpose": "REGISTER",
    })
    assert response.status_code == 200
    data = response.json()
    assert data["verified"] is True
    assert data["account_exists"] is False
    assert data["profile"] is None
    assert data["reset_token"] is None


def test_verify_existing_account(client, sms_backend, student):
    client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "LOGIN"})
    response = client.post("/api/auth/verify-otp", json={
        "phone": "0771234567",
        "otp": sms_backend.last_code(),
        "purpose": "LOGIN",
    })
    data = response.json()
    assert data["account_exists"] is True
    assert data["profile"] == {"id": student.id, "first_name": "Nimal", "last_name": "Student"}


def test_wrong_codes_error_format(client, sms_backend):
    client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "LOGIN"})
    body = {"phone": "0771234567", "otp": "000000", "purpose": "LOGIN"}
    if sms_backend.last_code() == "000000":
        body["otp"] = "111111"

    first = client.post("/api/auth/verify-otp", json=body)
    assert first.status_code == 400
    assert first.json() == {
        "success": False,
        "error": "Invalid OTP. 2 attempts remaining.",
        "code": "invalid_code",
    }

    assert client.post("/api/auth/verify-otp", json=body).json()["code"] == "invalid_code"
    assert client.post("/api/auth/verify-otp", json=body).json()["code"] == "too_many_attempts"

    body["otp"] = sms_backend.last_code()
    assert client.post("/api/auth/verify-otp", json=body).json()["code"] == "challenge_not_found"


def test_verify_missing_fields(client):
    response = client.post("/api/auth/verify-otp", json={"phone": "0771234567"})
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_register_existing_number_refused(client, student):
    response = client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "REGISTER"})
    assert response.status_code == 400
    assert response.json()["code"] == "already_registered"


def test_sms_failure_is_internal_error(client, failing_sms):
    from ictacademy.services.sms_service import get_sms_dispatcher
    from ictacademy.main import app

    app.dependency_overrides[get_sms_dispatcher] = lambda: failing_sms
    response = client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "LOGIN"})
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error", "code": "internal_error"}


# Password recovery

def test_recovery_flow(client, sms_backend, student):
    client.post("/api/auth/send-otp", json={"phone": "0771234567", "purpose": "RESET_PASSWORD"})
    response = client.post("/api/auth/verify-otp", json={
        "phone": "0771234567",
        "otp": sms_backend.last_code(),
        "purpose": "RECOVERY",
    })
    reset_token = response.json()["reset_token"]
    assert reset_token

    response = client.post("/api/auth/reset-password", json={
        "phone": "0771234567",
        "new_password": "newpass1",
        "reset_token": reset_token,
    })
    assert response.status_code == 200
    assert response.json()["success"] is True

    _login(client, "+94 77 123 4567", "newpass1")


def test_reset_token_for_other_phone_rejected(client, student):
    response = client.post("/api/auth/reset-password", json={
        "phone": "0771234567",
        "new_password": "newpass1",
        "reset_token": create_reset_token("94779999999"),
    })
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_access_token_is_not_a_reset_token(client, student):
    response = client.post("/api/auth/reset-password", json={
        "phone": "0771234567",
        "new_password": "newpass1",
        "reset_token": create_access_token({"sub": student.id}),
    })
    assert response.status_code == 401


def test_reset_without_proof_forbidden(client, student):
    response = client.post("/api/auth/reset-password", json={
        "phone": "0771234567",
        "new_password": "newpass1",
    })
    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "error": "Verify your phone number or sign in as an administrator",
        "code": "forbidden",
    }

    headers = _login(client, "0771234567", "student1")
    response = client.post("/api/auth/reset-password", headers=headers, json={
        "phone": "0771234567",
        "new_password": "newpass1",
    })
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_reset_with_invalid_bearer_forbidden(client, student):
    response = client.post(
        "/api/auth/reset-password",
        headers={"Authorization": "Bearer not-a-token"},
        json={"phone": "0771234567", "new_password": "newpass1"},
    )
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_admin_resets_by_user_id(client, admin_headers, student):
    response = client.post("/api/auth/reset-password", headers=admin_headers, json={
        "user_id": student.id,
        "new_password": "newpass1",
    })
    assert response.status_code == 200
    _login(client, "0771234567", "newpass1")


def test_short_password_rejected_without_database_access(client):
    from ictacademy.database import get_db
    from ictacademy.main import app

    mock_db = MagicMock()

    def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    response = client.post("/api/auth/reset-password", json={
        "phone": "0771234567",
        "new_password": "12345",
    })

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Password must be at least 6 characters",
        "code": "validation_error",
    }
    mock_db.query.assert_not_called()


# Login and session

def test_login_returns_session_roles(client, student):
    response = client.post("/api/auth/login", json={"phone": "0771234567", "password": "student1"})
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["session"] == {
        "user_id": student.id,
        "roles": ["student"],
        "is_admin": False,
        "is_moderator_or_above": False,
    }


def test_login_wrong_password(client, student):
    response = client.post("/api/auth/login", json={"phone": "0771234567", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_session_requires_token(client):
    assert client.get("/api/auth/session").status_code == 401


def test_session_rejects_reset_token(client, student):
    headers = {"Authorization": f"Bearer {create_reset_token('94771234567')}"}
    assert client.get("/api/auth/session", headers=headers).status_code == 401


def test_session_store_failure_is_internal_error(client, db, student, monkeypatch):
    from sqlalchemy.exc import OperationalError

    headers = _login(client, "0771234567", "student1")

    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "query", broken_query)
    response = client.get("/api/auth/session", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error", "code": "internal_error"}


def test_login_degrades_when_roles_cannot_load(client, make_profile, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from ictacademy.services.role_service import SessionRoleResolver

    make_profile("0771111111", password="adminpass", roles=["admin"])

    def broken(self, user_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(SessionRoleResolver, "load_roles", broken)
    response = client.post("/api/auth/login", json={"phone": "0771111111", "password": "adminpass"})

    assert response.status_code == 200
    assert response.json()["session"]["roles"] == ["student"]
    assert response.json()["session"]["is_admin"] is False


# Admin

def test_moderator_management(client, admin_headers, student):
    response = client.post(f"/api/admin/moderators/{student.id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["id"] == student.id

    # Granting twice is a no-op
    assert client.post(f"/api/admin/moderators/{student.id}", headers=admin_headers).status_code == 200

    moderators = client.get("/api/admin/moderators", headers=admin_headers).json()["moderators"]
    assert [m["id"] for m in moderators] == [student.id]

    # The grant applies to an existing session without signing in again
    student_headers = _login(client, "0771234567", "student1")
    session = client.get("/api/auth/session", headers=student_headers).json()
    assert session["is_moderator_or_above"] is True

    response = client.delete(f"/api/admin/moderators/{student.id}", headers=admin_headers)
    assert response.json() == {"success": True, "revoked": True}

    session = client.get("/api/auth/session", headers=student_headers).json()
    assert session["is_moderator_or_above"] is False


def test_grant_unknown_user(client, admin_headers):
    response = client.post("/api/admin/moderators/missing", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "account_not_found"


def test_admin_routes_refuse_non_admin(client, make_profile):
    make_profile("0771111111", password="modpass1", roles=["moderator"])
    headers = _login(client, "0771111111", "modpass1")

    assert client.get("/api/admin/moderators", headers=headers).status_code == 403
    assert client.delete("/api/admin/moderators/anyone", headers=headers).status_code == 403


def test_bulk_sms_for_moderators(client, make_profile, sms_backend):
    make_profile("0771111111", password="modpass1", roles=["moderator"])
    headers = _login(client, "0771111111", "modpass1")

    response = client.post("/api/admin/sms/bulk", headers=headers, json={
        "recipients": ["0771234567", "+94771234567", "0712345678"],
        "message": "Paper class moved to Saturday",
    })
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "SMS sent successfully",
        "sent": 2,
        "failed": 0,
    }
    assert sms_backend.sent[-1][0] == ["94771234567", "94712345678"]


def test_bulk_sms_refused_for_students(client, student):
    headers = _login(client, "0771234567", "student1")
    response = client.post("/api/admin/sms/bulk", headers=headers, json={
        "recipients": ["0771234567"],
        "message": "Hi",
    })
    assert response.status_code == 403


def test_health_and_security_headers(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_auth_responses_not_cached(client):
    response = client.post("/api/auth/verify-otp", json={})
    assert response.headers["Cache-Control"] == "no-store"
