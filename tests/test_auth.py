from datetime import timedelta

import pytest

from clinic.core.security import UserRole, create_access_token, verify_token
from clinic.models import PatientProfile

from .conftest import make_user

# Test data
test_user_data = {
    "email": "test@example.com",
    "password": "TestPassword123",
    "name": "Test User",
    "phone": "9876543210",
    "gender": "Female"
}

test_login_data = {
    "email": "test@example.com",
    "password": "TestPassword123"
}


class TestAuthentication:

    def test_register_user(self, client, db):
        """Test patient registration."""
        response = client.post("/api/v1/auth/register", json=test_user_data)
        assert response.status_code == 201

        data = response.json()
        assert data["email"] == test_user_data["email"]
        assert data["role"] == "PATIENT"
        assert "password" not in data and "passwordHash" not in data

        profile = db.query(PatientProfile).filter(PatientProfile.user_id == data["id"]).one()
        assert profile.gender == "Female"
        assert profile.has_completed_medical_history is False

    def test_register_duplicate_email(self, client, test_db):
        """Test registration with duplicate email."""
        client.post("/api/v1/auth/register", json=test_user_data)

        duplicate = dict(test_user_data, email="TEST@example.com")
        response = client.post("/api/v1/auth/register", json=duplicate)
        assert response.status_code == 400
        assert "already registered" in response.json()["error"]

    @pytest.mark.parametrize("password", ["weak", "onlyletters", "12345678"])
    def test_register_invalid_password(self, client, test_db, password):
        """Test registration with invalid password."""
        invalid_data = dict(test_user_data, password=password)

        response = client.post("/api/v1/auth/register", json=invalid_data)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_login_success(self, client, test_db):
        """Test successful login."""
        client.post("/api/v1/auth/register", json=test_user_data)

        response = client.post("/api/v1/auth/login", json=test_login_data)
        assert response.status_code == 200

        data = response.json()
        assert "accessToken" in data
        assert data["tokenType"] == "bearer"
        assert data["user"]["email"] == test_user_data["email"]

    def test_login_invalid_credentials(self, client, test_db):
        """Test login with invalid credentials."""
        invalid_login = {
            "email": "nonexistent@example.com",
            "password": "wrongpassword1"
        }

        response = client.post("/api/v1/auth/login", json=invalid_login)
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}

    def test_login_wrong_password(self, client, test_db):
        """Test login with wrong password."""
        client.post("/api/v1/auth/register", json=test_user_data)

        wrong_login = dict(test_login_data, password="wrongpassword1")
        response = client.post("/api/v1/auth/login", json=wrong_login)
        assert response.status_code == 401

    def test_login_deactivated_user(self, client, db):
        """Test login of a deactivated account."""
        user = make_user(db, email="inactive@example.com")
        user.is_active = False
        db.commit()

        response = client.post("/api/v1/auth/login", json={"email": "inactive@example.com", "password": "Secret123"})
        assert response.status_code == 401

    def test_get_current_user(self, client, test_db):
        """Test getting current user info."""
        client.post("/api/v1/auth/register", json=test_user_data)
        login_response = client.post("/api/v1/auth/login", json=test_login_data)

        token = login_response.json()["accessToken"]
        headers = {"Authorization": f"Bearer {token}"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["email"] == test_user_data["email"]

    def test_get_current_user_invalid_token(self, client, test_db):
        """Test get current user with invalid token."""
        headers = {"Authorization": "Bearer invalid_token"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired token"}

    def test_expired_token(self, client, db):
        """Test that expired tokens are rejected."""
        user = make_user(db)
        token = create_access_token(user.id, user.email, user.role, expires_delta=timedelta(minutes=-1))

        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestRoles:
    """Test role normalization."""

    @pytest.mark.parametrize("raw,role", [
        ("PATIENT", UserRole.PATIENT),
        ("doctor", UserRole.DOCTOR),
        (" Admin ", UserRole.ADMIN),
    ])
    def test_roles_are_case_insensitive(self, raw, role):
        assert UserRole(raw) is role

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            UserRole("nurse")

    def test_staff_roles(self):
        assert UserRole.DOCTOR.is_staff and UserRole.ADMIN.is_staff
        assert not UserRole.PATIENT.is_staff

    def test_token_round_trip(self):
        payload = verify_token(create_access_token(7, "doc@example.com", "doctor"))
        assert payload.sub == 7
        assert UserRole(payload.role) is UserRole.DOCTOR
        assert payload.token_type == "access"


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_api_info(self, client):
        response = client.get("/api/v1/info")
        assert response.status_code == 200
        assert "appointments" in response.json()["endpoints"]

    def test_unknown_route(self, client):
        response = client.get("/api/v1/nothing-here")
        assert response.status_code == 404
        assert "error" in response.json()
