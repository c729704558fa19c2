"""Tests for authentication endpoints and token handling."""

from datetime import datetime, timedelta, timezone

import pytest

from services.auth_service import (
    AuthError,
    create_access_token,
    decode_access_token,
    hash_password,
    hash_token,
    verify_password,
)

REGISTER_BODY = {
    "business_name": "Acme HVAC",
    "business_type": "HVAC",
    "owner_name": "Jo Smith",
    "email": "Owner@AcmeHVAC.com",
    "password": "supersecret",
    "phone": "(555) 555-0100",
}


class TestTokens:
    def test_round_trip(self):
        token = create_access_token("user-1", "biz-1", "owner")
        payload = decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["business_id"] == "biz-1"
        assert payload["role"] == "owner"

    def test_expired_token_is_rejected(self):
        token = create_access_token("user-1", "biz-1", "owner", expires_delta=timedelta(seconds=-10))
        with pytest.raises(AuthError):
            decode_access_token(token)

    def test_garbage_token_is_rejected(self):
        with pytest.raises(AuthError):
            decode_access_token("not-a-jwt")


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("supersecret")
        assert hashed != "supersecret"
        assert verify_password("supersecret", hashed)
        assert not verify_password("wrong", hashed)

    def test_missing_hash_never_verifies(self):
        assert not verify_password("anything", None)

    def test_overlong_password_is_rejected_before_hashing(self):
        with pytest.raises(AuthError) as exc:
            hash_password("a" * 100)
        assert exc.value.status_code == 400


class TestRegister:
    def test_register_creates_business_and_owner(self, client, mock_db):
        mock_db.get_user_by_email.return_value = None
        mock_db.create_business.return_value = {"id": "biz-9", "business_name": "Acme HVAC"}
        mock_db.create_user.return_value = {
            "id": "user-9", "email": "owner@acmehvac.com", "name": "Jo Smith",
            "role": "owner", "business_id": "biz-9",
        }

        response = client.post("/api/auth/register", json=REGISTER_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["user"]["business_id"] == "biz-9"
        assert decode_access_token(data["token"])["business_id"] == "biz-9"

        business_data = mock_db.create_business.call_args[0][0]
        assert business_data["email"] == "owner@acmehvac.com"
        assert business_data["phone"] == "+15555550100"
        assert business_data["onboarding_completed"] is False
        user_data = mock_db.create_user.call_args[0][0]
        assert user_data["password_hash"] != "supersecret"
        mock_db.update_business.assert_awaited_once_with("biz-9", {"owner_id": "user-9"})

    def test_duplicate_email_is_conflict(self, client, mock_db):
        mock_db.get_user_by_email.return_value = {"id": "user-1"}

        response = client.post("/api/auth/register", json=REGISTER_BODY)

        assert response.status_code == 409
        mock_db.create_business.assert_not_awaited()

    def test_invalid_phone(self, client, mock_db):
        response = client.post("/api/auth/register", json={**REGISTER_BODY, "phone": "123"})
        assert response.status_code == 400

    def test_business_is_removed_when_user_insert_fails(self, client, mock_db):
        mock_db.get_user_by_email.return_value = None
        mock_db.create_business.return_value = {"id": "biz-9"}
        mock_db.create_user.side_effect = RuntimeError("insert failed")

        with pytest.raises(RuntimeError):
            client.post("/api/auth/register", json=REGISTER_BODY)

        mock_db.delete_business.assert_awaited_once_with("biz-9")

    def test_password_over_72_bytes_is_validation_error(self, client, mock_db):
        response = client.post("/api/auth/register", json={**REGISTER_BODY, "password": "a" * 100})

        assert response.status_code == 422
        mock_db.create_business.assert_not_awaited()
        mock_db.delete_business.assert_not_awaited()

    def test_multibyte_password_is_measured_in_bytes(self, client, mock_db):
        # 30 characters, 90 bytes
        response = client.post("/api/auth/register", json={**REGISTER_BODY, "password": "\u20ac" * 30})
        assert response.status_code == 422

    def test_padded_password_logs_in_as_typed(self, client, mock_db, business):
        mock_db.get_user_by_email.return_value = None
        mock_db.create_business.return_value = {"id": "biz-9", "business_name": "Acme HVAC"}
        mock_db.create_user.return_value = {
            "id": "user-9", "email": "owner@acmehvac.com", "role": "owner", "business_id": "biz-9",
        }

        response = client.post("/api/auth/register", json={**REGISTER_BODY, "password": "  supersecret  "})
        assert response.status_code == 200

        stored_hash = mock_db.create_user.call_args[0][0]["password_hash"]
        mock_db.get_user_by_email.return_value = {
            "id": "user-9", "email": "owner@acmehvac.com", "password_hash": stored_hash,
            "status": "active", "role": "owner", "business_id": "biz-9",
        }
        mock_db.get_business.return_value = business

        for typed in ("  supersecret  ", "supersecret"):
            response = client.post("/api/auth/login", json={"email": "owner@acmehvac.com", "password": typed})
            assert response.status_code == 200


class TestLogin:
    def test_login_success(self, client, mock_db, business):
        mock_db.get_user_by_email.return_value = {
            "id": "user-1", "email": "owner@acmehvac.com", "password_hash": hash_password("supersecret"),
            "status": "active", "role": "owner", "business_id": business["id"],
        }
        mock_db.get_business.return_value = business

        response = client.post("/api/auth/login", json={"email": "owner@acmehvac.com", "password": "supersecret"})

        assert response.status_code == 200
        assert response.json()["business"]["id"] == business["id"]
        mock_db.update_user.assert_awaited_once()

    def test_wrong_password(self, client, mock_db):
        mock_db.get_user_by_email.return_value = {
            "id": "user-1", "password_hash": hash_password("supersecret"), "status": "active", "business_id": "biz-1",
        }
        response = client.post("/api/auth/login", json={"email": "owner@acmehvac.com", "password": "nope"})
        assert response.status_code == 401

    def test_inactive_account(self, client, mock_db):
        mock_db.get_user_by_email.return_value = {
            "id": "user-1", "password_hash": hash_password("supersecret"), "status": "suspended", "business_id": "biz-1",
        }
        response = client.post("/api/auth/login", json={"email": "owner@acmehvac.com", "password": "supersecret"})
        assert response.status_code == 401


class TestPasswordReset:
    def test_forgot_password_is_silent_for_unknown_email(self, client, mock_db):
        mock_db.get_user_by_email.return_value = None
        response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 200
        mock_db.update_user.assert_not_awaited()

    def test_forgot_password_stores_token_hash(self, client, mock_db):
        mock_db.get_user_by_email.return_value = {"id": "user-1", "email": "owner@acmehvac.com", "name": "Jo"}
        response = client.post("/api/auth/forgot-password", json={"email": "owner@acmehvac.com"})
        assert response.status_code == 200
        updates = mock_db.update_user.call_args[0][1]
        assert len(updates["reset_token_hash"]) == 64

    def test_reset_password(self, client, mock_db):
        expires = (datetime.now(timezone.utc) + timedelta(minutes=30)).isoformat()
        mock_db.get_user_by_reset_token.return_value = {"id": "user-1", "reset_token_expires_at": expires}

        response = client.post("/api/auth/reset-password", json={"token": "tok", "password": "newpassword"})

        assert response.status_code == 200
        mock_db.get_user_by_reset_token.assert_awaited_once_with(hash_token("tok"))
        updates = mock_db.update_user.call_args[0][1]
        assert verify_password("newpassword", updates["password_hash"])
        assert updates["reset_token_hash"] is None

    def test_expired_reset_token(self, client, mock_db):
        expired = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        mock_db.get_user_by_reset_token.return_value = {"id": "user-1", "reset_token_expires_at": expired}
        response = client.post("/api/auth/reset-password", json={"token": "tok", "password": "newpassword"})
        assert response.status_code == 400

    def test_reset_with_overlong_password_is_validation_error(self, client, mock_db):
        response = client.post("/api/auth/reset-password", json={"token": "tok", "password": "b" * 100})

        assert response.status_code == 422
        mock_db.update_user.assert_not_awaited()

    def test_reset_password_is_stored_stripped(self, client, mock_db):
        expires = (datetime.now(timezone.utc) + timedelta(minutes=30)).isoformat()
        mock_db.get_user_by_reset_token.return_value = {"id": "user-1", "reset_token_expires_at": expires}

        response = client.post("/api/auth/reset-password", json={"token": "tok", "password": " newpassword "})

        assert response.status_code == 200
        updates = mock_db.update_user.call_args[0][1]
        assert verify_password("newpassword", updates["password_hash"])


class TestProtectedRoutes:
    def test_missing_token(self, client):
        response = client.get("/api/business")
        assert response.status_code == 401

    def test_get_business(self, client, mock_db, business, auth_headers):
        mock_db.get_business.return_value = business
        response = client.get("/api/business", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["business"]["business_name"] == "Acme HVAC"
