"""
Unit tests for authentication service.
Tests password hashing, JWT tokens, email normalization and the password policy.
"""
import pytest
from datetime import timedelta
from padelxp.services import auth_service


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_password(self):
        """Test password hashing produces different hashes for same password."""
        password = "test_password_123"
        hash1 = auth_service.hash_password(password)
        hash2 = auth_service.hash_password(password)

        # Hashes should be different (due to salt)
        assert hash1 != hash2
        assert auth_service.verify_password(password, hash1)
        assert auth_service.verify_password(password, hash2)

    def test_verify_password_incorrect(self):
        password_hash = auth_service.hash_password("test_password_123")
        assert auth_service.verify_password("wrong_password", password_hash) is False

    def test_verify_password_empty(self):
        password_hash = auth_service.hash_password("test_password_123")
        assert auth_service.verify_password("", password_hash) is False

    def test_verify_password_malformed_hash(self):
        assert auth_service.verify_password("test_password_123", "not-a-bcrypt-hash") is False


class TestJWTTokens:
    """Tests for JWT token creation and verification."""

    def test_verify_token_valid(self):
        token = auth_service.create_access_token({"user_id": 1, "email": "joueur@example.com"})
        decoded = auth_service.verify_token(token)
        assert decoded is not None
        assert decoded["user_id"] == 1
        assert decoded["email"] == "joueur@example.com"

    def test_verify_token_invalid(self):
        assert auth_service.verify_token("invalid_token_string") is None

    def test_verify_token_expired(self):
        token = auth_service.create_access_token({"user_id": 1}, expires_delta=timedelta(seconds=-1))
        assert auth_service.verify_token(token) is None

    def test_refresh_tokens_are_unique(self):
        assert auth_service.generate_refresh_token() != auth_service.generate_refresh_token()


class TestEmailAndPassword:
    def test_normalize_email(self):
        assert auth_service.normalize_email("  Joueur@Example.COM ") == "joueur@example.com"

    @pytest.mark.parametrize("email", ["", "joueur", "@example.com", "joueur@example"])
    def test_normalize_email_invalid(self, email):
        with pytest.raises(ValueError):
            auth_service.normalize_email(email)

    def test_validate_password_ok(self):
        auth_service.validate_password("padel2024")

    def test_validate_password_too_short(self):
        with pytest.raises(ValueError, match="at least 8"):
            auth_service.validate_password("pad1")

    def test_validate_password_needs_digit(self):
        with pytest.raises(ValueError, match="number"):
            auth_service.validate_password("padelpadel")
