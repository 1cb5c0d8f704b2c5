"""Unit tests for bearer session tokens."""

import pytest
from flask import Flask

from errors import AuthError, PermissionDenied
from session_utils import create_session_token, current_user, verify_session_token


class TestTokens:
    def test_round_trip(self):
        token = create_session_token("u1", "teacher", wallet_address="WALLET")
        payload = verify_session_token(token)
        assert payload["sub"] == "u1"
        assert payload["role"] == "teacher"
        assert payload["wallet"] == "WALLET"

    def test_tampered_payload_is_rejected(self):
        token = create_session_token("u1", "student")
        other = create_session_token("u1", "admin")
        forged = other.split(".")[0] + "." + token.split(".")[1]
        with pytest.raises(ValueError, match="signature"):
            verify_session_token(forged)

    def test_expired_token(self):
        token = create_session_token("u1", "student", ttl_seconds=-10)
        with pytest.raises(ValueError, match="expired"):
            verify_session_token(token)

    def test_malformed_token(self):
        with pytest.raises(ValueError):
            verify_session_token("no-dot-here")

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            create_session_token("u1", "janitor")


class TestCurrentUser:
    """Tests for request-bound role checks."""

    @pytest.fixture
    def flask_app(self):
        return Flask(__name__)

    def test_missing_header(self, flask_app):
        with flask_app.test_request_context("/"):
            with pytest.raises(AuthError):
                current_user()

    def test_role_allowed(self, flask_app):
        headers = {"Authorization": f"Bearer {create_session_token('t1', 'teacher')}"}
        with flask_app.test_request_context("/", headers=headers):
            user = current_user("teacher", "admin")
        assert user.id == "t1"
        assert user.role == "teacher"

    def test_role_denied(self, flask_app):
        headers = {"Authorization": f"Bearer {create_session_token('s1', 'student')}"}
        with flask_app.test_request_context("/", headers=headers):
            with pytest.raises(PermissionDenied):
                current_user("admin")

    def test_bad_token_is_auth_error(self, flask_app):
        with flask_app.test_request_context("/", headers={"Authorization": "Bearer junk.junk"}):
            with pytest.raises(AuthError):
                current_user()
