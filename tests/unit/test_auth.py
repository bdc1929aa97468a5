"""Unit tests for authentication functions."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from jose import jwt

from booking_core.auth import (
    authenticate_user,
    create_access_token,
    create_token_for_user,
    decode_token,
    get_password_hash,
    peek_requester_id,
    requester_id_from_claims,
    verify_password,
)
from booking_core.config import get_settings
from booking_core.models import RoleEnum, User

settings = get_settings()


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_password_hash_and_verify(self):
        password = "MySecurePassword123!"
        hashed = get_password_hash(password)

        assert hashed != password
        assert verify_password(password, hashed) is True
        assert verify_password("WrongPassword", hashed) is False

    def test_same_password_different_hashes(self):
        password = "TestPassword123"

        assert get_password_hash(password) != get_password_hash(password)


class TestJWTTokens:
    """Test JWT token creation and decoding."""

    def test_create_access_token(self):
        token = create_access_token({"sub": "testuser", "role": "admin"})

        decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        assert decoded["sub"] == "testuser"
        assert decoded["role"] == "admin"
        assert decoded["exp"] > datetime.utcnow().timestamp()

    def test_token_for_user_carries_id_and_role(self):
        user = User(id=5, username="svc", email="svc@example.com", name="Svc", role=RoleEnum.SERVICE, hashed_password="x")

        decoded = decode_token(create_token_for_user(user))

        assert decoded["sub"] == "5"
        assert requester_id_from_claims(decoded) == 5
        assert decoded["role"] == "service"

    def test_decode_token_invalid(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token("invalid.token.here")

        assert exc_info.value.status_code == 401
        assert "Invalid token" in str(exc_info.value.detail)

    def test_decode_token_expired(self):
        token = create_access_token({"sub": "testuser"}, timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)

        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("claims", [{}, {"sub": "alice"}, {"sub": None}])
    def test_requester_id_requires_numeric_subject(self, claims):
        with pytest.raises(HTTPException) as exc_info:
            requester_id_from_claims(claims)

        assert exc_info.value.status_code == 401

    def test_peek_requester_id(self):
        assert peek_requester_id(create_access_token({"sub": "42"})) == 42
        assert peek_requester_id(create_access_token({"sub": "42"}, timedelta(hours=-1))) is None
        assert peek_requester_id("garbage") is None


class TestUserAuthentication:
    """Test user authentication logic."""

    def _user(self, password: str) -> User:
        return User(
            id=1,
            username="testuser",
            email="test@example.com",
            name="Test User",
            role=RoleEnum.REGULAR,
            is_active=True,
            hashed_password=get_password_hash(password),
        )

    def test_authenticate_user_success(self):
        mock_db = MagicMock()
        mock_db.query.return_value.filter.return_value.first.return_value = self._user("TestPass123")

        result = authenticate_user(mock_db, "testuser", "TestPass123")

        assert result is not None
        assert result.id == 1

    def test_authenticate_user_wrong_password(self):
        mock_db = MagicMock()
        mock_db.query.return_value.filter.return_value.first.return_value = self._user("CorrectPassword")

        assert authenticate_user(mock_db, "testuser", "WrongPassword") is None

    def test_authenticate_user_deactivated(self):
        user = self._user("TestPass123")
        user.is_active = False
        mock_db = MagicMock()
        mock_db.query.return_value.filter.return_value.first.return_value = user

        assert authenticate_user(mock_db, "testuser", "TestPass123") is None

    def test_authenticate_user_not_found(self):
        mock_db = MagicMock()
        mock_db.query.return_value.filter.return_value.first.return_value = None

        assert authenticate_user(mock_db, "nonexistent", "anypassword") is None
