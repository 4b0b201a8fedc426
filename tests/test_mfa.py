"""
Tests for TOTP, backup codes and the MFA enrollment engine.

Covers:
- TOTP verification window
- Backup code generation, hashing and single use
- Enrollment bound to a server-issued pending secret
- Re-enrollment and disable
"""
import re
from datetime import timedelta
from urllib.parse import unquote

import pytest

from accountguard.auth import mfa
from accountguard.errors import InputValidationError, MfaInvalidError
from accountguard.services.mfa_enrollment import (
    MfaEnrollmentService,
    enrollment_identifier,
)

from conftest import totp_at


@pytest.fixture
def service(db, tokens, clock):
    return MfaEnrollmentService(db, tokens=tokens, clock=clock)


@pytest.fixture
def identity(alice, login_as):
    identity, _ = login_as(alice)
    return identity


def enroll(service, identity, clock):
    payload = service.begin_enrollment(identity)
    codes = service.confirm_enrollment(identity, totp_at(payload.secret, clock()), payload.secret)
    return payload.secret, codes


# ============================================
# TOTP Primitives
# ============================================

class TestTotp:

    def test_secret_is_base32(self):
        secret = mfa.generate_totp_secret()
        assert re.fullmatch(r"[A-Z2-7]{32}", secret)

    def test_provisioning_uri(self, monkeypatch):
        monkeypatch.delenv("MFA_ISSUER", raising=False)
        uri = mfa.get_totp_provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com")
        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "alice@example.com" in unquote(uri)
        assert "issuer=CareOS" in uri

    def test_qr_code_is_png_data_uri(self):
        data_uri = mfa.generate_qr_code_data_uri("otpauth://totp/x?secret=JBSWY3DPEHPK3PXP")
        assert data_uri.startswith("data:image/png;base64,iVBOR")

    def test_current_step_accepted(self, clock):
        secret = mfa.generate_totp_secret()
        assert mfa.verify_totp(secret, totp_at(secret, clock()), for_time=clock())

    @pytest.mark.parametrize("offset", [-30, 30])
    def test_adjacent_steps_accepted(self, clock, offset):
        secret = mfa.generate_totp_secret()
        code = totp_at(secret, clock() + timedelta(seconds=offset))
        assert mfa.verify_totp(secret, code, for_time=clock())

    @pytest.mark.parametrize("offset", [-60, 60, -300])
    def test_outside_window_rejected(self, clock, offset):
        secret = mfa.generate_totp_secret()
        code = totp_at(secret, clock() + timedelta(seconds=offset))
        current = totp_at(secret, clock())
        if code == current:
            pytest.skip("codes collided")
        assert not mfa.verify_totp(secret, code, for_time=clock())

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef", None])
    def test_malformed_codes_rejected(self, code, clock):
        assert not mfa.verify_totp("JBSWY3DPEHPK3PXP", code, for_time=clock())

    @pytest.mark.parametrize("secret", ["!!!!!!!!!!!!!!!!", "JBSWY3DPEHPK3PX1"])
    def test_non_base32_secret_rejected(self, secret, clock):
        assert mfa.verify_totp(secret, "123456", for_time=clock()) is False

    def test_spaces_tolerated(self, clock):
        secret = mfa.generate_totp_secret()
        code = totp_at(secret, clock())
        assert mfa.verify_totp(secret, f"{code[:3]} {code[3:]}", for_time=clock())


# ============================================
# Backup Code Primitives
# ============================================

class TestBackupCodes:

    def test_ten_unique_codes(self):
        codes = mfa.generate_backup_codes()
        assert len(codes) == 10
        assert len(set(codes)) == 10

    def test_code_format(self):
        for code in mfa.generate_backup_codes():
            assert re.fullmatch(r"[A-Z0-9]{8}", code)

    def test_hash_and_match(self):
        codes = mfa.generate_backup_codes(count=3)
        hashed = mfa.hash_backup_codes(codes)

        assert mfa.find_matching_backup_code(codes[1], hashed) == 1
        assert mfa.find_matching_backup_code("ZZZZZZZZ", hashed) is None

    def test_input_normalized(self):
        hashed = [mfa.hash_backup_code("AB12CD34")]
        assert mfa.find_matching_backup_code("ab12-cd34", hashed) == 0
        assert mfa.find_matching_backup_code(" ab12 cd34 ", hashed) == 0

    def test_empty_code_never_matches(self):
        hashed = [mfa.hash_backup_code("AB12CD34")]
        assert mfa.find_matching_backup_code("", hashed) is None


# ============================================
# Enrollment Engine
# ============================================

class TestEnrollment:

    def test_begin_returns_payload(self, service, identity):
        payload = service.begin_enrollment(identity)

        assert payload.secret
        assert payload.provisioning_uri.startswith("otpauth://totp/")
        assert payload.qr_code_url.startswith("data:image/png;base64,")

    def test_begin_does_not_enable(self, service, identity, db):
        service.begin_enrollment(identity)
        user = db.get_user_by_id(identity.user_id)
        assert not user["mfa_enabled"]
        assert user["mfa_secret"] is None

    def test_begin_records_pending_secret(self, service, identity, db):
        service.begin_enrollment(identity)
        assert db.get_verification_token(enrollment_identifier(identity.user_id)) is not None

    def test_confirm_with_non_base32_secret(self, service, identity, db):
        service.begin_enrollment(identity)

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, "123456", "!!!!!!!!!!!!!!!!")

        assert not db.get_user_by_id(identity.user_id)["mfa_enabled"]
        assert db.get_verification_token(enrollment_identifier(identity.user_id)) is not None

    def test_confirm_enables_mfa(self, service, identity, clock, db):
        secret, codes = enroll(service, identity, clock)

        user = db.get_user_by_id(identity.user_id)
        assert user["mfa_enabled"]
        assert user["mfa_secret"] == secret
        assert len(codes) == 10
        assert len(set(codes)) == 10

    def test_backup_codes_stored_hashed(self, service, identity, clock, db):
        _, codes = enroll(service, identity, clock)

        stored = db.get_backup_codes(identity.user_id)
        assert len(stored) == 10
        assert not set(codes) & set(stored)
        assert all(h.startswith("$2") for h in stored)

    def test_wrong_code_keeps_pending(self, service, identity, clock, db):
        payload = service.begin_enrollment(identity)
        wrong = totp_at(payload.secret, clock() + timedelta(minutes=5))

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, wrong, payload.secret)

        assert not db.get_user_by_id(identity.user_id)["mfa_enabled"]
        # Retry with the right code still works
        codes = service.confirm_enrollment(identity, totp_at(payload.secret, clock()), payload.secret)
        assert len(codes) == 10

    def test_secret_not_issued_by_server_rejected(self, service, identity, clock, db):
        service.begin_enrollment(identity)
        forged = mfa.generate_totp_secret()

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, totp_at(forged, clock()), forged)

        assert not db.get_user_by_id(identity.user_id)["mfa_enabled"]

    def test_confirm_without_begin_rejected(self, service, identity, clock):
        secret = mfa.generate_totp_secret()
        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, totp_at(secret, clock()), secret)

    def test_pending_secret_of_other_user_rejected(self, service, identity, bob, login_as, clock):
        bob_identity, _ = login_as(bob)
        payload = service.begin_enrollment(bob_identity)

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, totp_at(payload.secret, clock()), payload.secret)

    def test_pending_enrollment_expires(self, service, identity, clock):
        payload = service.begin_enrollment(identity)
        clock.advance(seconds=601)

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, totp_at(payload.secret, clock()), payload.secret)

    def test_new_begin_replaces_pending_secret(self, service, identity, clock):
        first = service.begin_enrollment(identity)
        second = service.begin_enrollment(identity)

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, totp_at(first.secret, clock()), first.secret)
        assert service.confirm_enrollment(identity, totp_at(second.secret, clock()), second.secret)

    def test_pending_secret_single_use(self, service, identity, clock):
        payload = service.begin_enrollment(identity)
        code = totp_at(payload.secret, clock())
        service.confirm_enrollment(identity, code, payload.secret)

        with pytest.raises(MfaInvalidError):
            service.confirm_enrollment(identity, code, payload.secret)

    def test_reenrollment_replaces_codes(self, service, identity, clock, db):
        old_secret, old_codes = enroll(service, identity, clock)
        new_secret, new_codes = enroll(service, identity, clock)

        assert new_secret != old_secret
        assert not set(old_codes) & set(new_codes)
        assert db.get_user_by_id(identity.user_id)["mfa_secret"] == new_secret
        assert not service.consume_backup_code(identity.user_id, old_codes[0])
        assert service.consume_backup_code(identity.user_id, new_codes[0])


class TestBackupCodeConsumption:

    def test_code_works_once(self, service, identity, clock, db):
        _, codes = enroll(service, identity, clock)

        assert service.consume_backup_code(identity.user_id, codes[3])
        assert not service.consume_backup_code(identity.user_id, codes[3])
        assert len(db.get_backup_codes(identity.user_id)) == 9

    def test_other_codes_unaffected(self, service, identity, clock):
        _, codes = enroll(service, identity, clock)
        service.consume_backup_code(identity.user_id, codes[0])

        assert service.consume_backup_code(identity.user_id, codes[1])

    def test_unknown_code(self, service, identity, clock, db):
        enroll(service, identity, clock)
        assert not service.consume_backup_code(identity.user_id, "NOTACODE")
        assert len(db.get_backup_codes(identity.user_id)) == 10

    def test_not_enrolled(self, service, identity):
        assert not service.consume_backup_code(identity.user_id, "AAAAAAAA")

    def test_second_factor_prefers_totp(self, service, identity, clock, db):
        secret, codes = enroll(service, identity, clock)
        user = db.get_user_by_id(identity.user_id)

        assert service.verify_second_factor(user, totp_code=totp_at(secret, clock()))
        assert service.verify_second_factor(user, totp_code="000000", backup_code=codes[0])
        assert not service.verify_second_factor(user)


class TestDisable:

    def test_disable_clears_state(self, service, identity, clock, db):
        secret, _ = enroll(service, identity, clock)

        service.disable(identity, totp_at(secret, clock()))

        user = db.get_user_by_id(identity.user_id)
        assert not user["mfa_enabled"]
        assert user["mfa_secret"] is None
        assert db.get_backup_codes(identity.user_id) == []

    def test_disable_requires_valid_code(self, service, identity, clock, db):
        secret, _ = enroll(service, identity, clock)
        wrong = totp_at(secret, clock() + timedelta(minutes=10))

        with pytest.raises(MfaInvalidError):
            service.disable(identity, wrong)
        assert db.get_user_by_id(identity.user_id)["mfa_enabled"]

    def test_disable_when_not_enabled(self, service, identity):
        with pytest.raises(InputValidationError):
            service.disable(identity, "123456")
