"""
Tests for password hashing.
"""
import bcrypt

from accountguard.auth.passwords import (
    hash_password,
    verify_password,
    password_fits_bcrypt,
)


class TestPasswordHashing:

    def test_hash_verifies(self):
        hashed = hash_password("s3cret-password")
        assert hashed.startswith("$2")
        assert verify_password("s3cret-password", hashed)

    def test_wrong_password_rejected(self):
        hashed = hash_password("s3cret-password")
        assert not verify_password("s3cret-passworD", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_cost_factor_from_environment(self, monkeypatch):
        monkeypatch.setenv("BCRYPT_ROUNDS", "5")
        assert hash_password("pw").startswith("$2b$05$")

    def test_missing_hash_never_verifies(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "")

    def test_malformed_hash_returns_false(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_compatible_with_bcrypt_hashes(self):
        hashed = bcrypt.hashpw(b"legacy", bcrypt.gensalt(rounds=4)).decode()
        assert verify_password("legacy", hashed)


class TestPasswordLength:

    def test_72_bytes_fits(self):
        assert password_fits_bcrypt("a" * 72)

    def test_73_bytes_does_not_fit(self):
        assert not password_fits_bcrypt("a" * 73)

    def test_multibyte_characters_count_as_bytes(self):
        # 25 * 3 bytes
        assert not password_fits_bcrypt("€" * 25)
