import http
import threading
from datetime import timedelta

import pytest

from database.db import time_now
from models import OTPVerification, User
from modules.authentication.auth_schema import AuthErrorCode
from modules.authentication.auth_service import AuthService
from modules.sms import NotificationError, SMSSender
from modules.user.user_schema import UserInsertModel
from utils.jwt_token_handler import AccessTokenClaims, RefreshTokenClaims
from utils.keyed_lock import KeyedLock
from utils.pin_handler import PinHandler

from conftest import CANONICAL_MOBILE, MOBILE


def _wrong_code(code):
    return "000000" if code != "000000" else "111111"


def _age_latest_otp(db_session, seconds):
    """Move the latest challenge's creation time into the past."""
    otp = (
        db_session.query(OTPVerification)
        .filter(OTPVerification.mobile_number == CANONICAL_MOBILE)
        .order_by(OTPVerification.id.desc())
        .first()
    )
    otp.created_at = time_now() - timedelta(seconds=seconds)
    db_session.commit()


# ==================== SEND OTP ====================


def test_send_otp_creates_challenge_and_delivers_code(auth_service, sms_sender):
    response = auth_service.send_otp(MOBILE)

    assert response.status_code == http.HTTPStatus.OK
    assert response.status is True
    assert response.data.expires_in == 300

    otp = OTPVerification.get_latest_active_otp(CANONICAL_MOBILE)
    assert otp is not None
    assert otp.attempt_count == 0
    assert sms_sender.last_code_for(CANONICAL_MOBILE) == otp.otp_code


def test_send_otp_rejects_invalid_mobile(auth_service, sms_sender):
    response = auth_service.send_otp("12345")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.INVALID_MOBILE.value
    assert len(sms_sender.sent_messages) == 0


def test_send_otp_within_cooldown_is_rate_limited(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)

    response = auth_service.send_otp("+91" + MOBILE)

    assert response.status_code == http.HTTPStatus.TOO_MANY_REQUESTS
    assert response.error_code == AuthErrorCode.RATE_LIMITED.value
    assert 0 < response.data["seconds_remaining"] <= 60
    assert len(sms_sender.sent_messages) == 1


def test_send_otp_after_cooldown_retires_previous_challenge(auth_service, db_session):
    auth_service.send_otp(MOBILE)
    first = OTPVerification.get_latest_active_otp(CANONICAL_MOBILE)
    _age_latest_otp(db_session, 61)

    response = auth_service.send_otp(MOBILE)

    assert response.status is True
    active = (
        db_session.query(OTPVerification)
        .filter(
            OTPVerification.mobile_number == CANONICAL_MOBILE,
            OTPVerification.expires_at > time_now(),
        )
        .all()
    )
    assert len(active) == 1
    assert active[0].id != first.id


class FailingSMSSender(SMSSender):
    def send_code(self, mobile_number, otp_code):
        raise NotificationError("provider down")


def test_send_otp_delivery_failure_leaves_no_challenge(db_session, token_issuer):
    service = AuthService(token_issuer=token_issuer, sms_sender=FailingSMSSender())

    response = service.send_otp(MOBILE)

    assert response.status_code == http.HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.error_code == AuthErrorCode.NOTIFICATION_FAILED.value
    assert OTPVerification.get_latest_unverified_otp(CANONICAL_MOBILE) is None


# ==================== VERIFY OTP ====================


def test_verify_otp_registers_new_user(auth_service, sms_sender, token_issuer):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, code, name="Asha Rao", pin="4826")

    assert response.status_code == http.HTTPStatus.OK
    user = response.data.user
    assert user.mobile_number == CANONICAL_MOBILE
    assert user.is_verified is True

    access = token_issuer.validate_token(response.data.access_token)
    refresh = token_issuer.validate_token(response.data.refresh_token)
    assert isinstance(access, AccessTokenClaims)
    assert isinstance(refresh, RefreshTokenClaims)
    assert access.user_id == refresh.user_id == user.id

    stored = User.get_by_id(user.id)
    assert stored.pin_hash != "4826"
    assert PinHandler.verify_pin("4826", stored.pin_hash)


def test_verify_otp_logs_in_existing_user(auth_service, sms_sender, registered_user):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, code)

    assert response.status is True
    assert response.data.user.id == registered_user.id


def test_verify_otp_new_user_needs_name_and_pin(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, code)

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.REGISTRATION_INCOMPLETE.value
    assert User.get_by_mobile_number(CANONICAL_MOBILE) is None


def test_verify_otp_rejects_weak_pin_on_registration(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, code, name="Asha", pin="1234")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.WEAK_PIN.value
    assert response.message == PinHandler.MSG_WEAK


def test_verify_otp_without_challenge(auth_service):
    response = auth_service.verify_otp(MOBILE, "123456")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.OTP_NOT_FOUND.value


def test_verify_otp_expired(auth_service, sms_sender, db_session):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)
    db_session.query(OTPVerification).update(
        {"expires_at": time_now() - timedelta(seconds=1)}
    )
    db_session.commit()

    response = auth_service.verify_otp(MOBILE, code, name="Asha", pin="4826")

    assert response.error_code == AuthErrorCode.OTP_EXPIRED.value


def test_verify_otp_mismatch_counts_attempts(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, _wrong_code(code))

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.OTP_MISMATCH.value
    assert response.data["attempts_remaining"] == 2
    assert OTPVerification.get_latest_unverified_otp(CANONICAL_MOBILE).attempt_count == 1


def test_right_code_is_refused_after_three_mismatches(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    for _ in range(3):
        auth_service.verify_otp(MOBILE, _wrong_code(code))

    response = auth_service.verify_otp(MOBILE, code, name="Asha", pin="4826")

    assert response.status_code == http.HTTPStatus.TOO_MANY_REQUESTS
    assert response.error_code == AuthErrorCode.OTP_ATTEMPTS_EXCEEDED.value
    assert User.get_by_mobile_number(CANONICAL_MOBILE) is None


def test_verified_code_cannot_be_replayed(auth_service, sms_sender):
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)
    auth_service.verify_otp(MOBILE, code, name="Asha", pin="4826")

    response = auth_service.verify_otp(MOBILE, code)

    assert response.error_code == AuthErrorCode.OTP_NOT_FOUND.value


def test_verify_otp_marks_unverified_user_verified(auth_service, sms_sender, db_session):
    User.create_user(
        UserInsertModel(
            mobile_number=CANONICAL_MOBILE,
            name="Pending",
            pin_hash=PinHandler.hash_pin("4826"),
            is_verified=False,
        )
    )
    db_session.commit()
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.verify_otp(MOBILE, code)

    assert response.status is True
    assert response.data.user.is_verified is True


# ==================== PIN LOGIN ====================


def test_login_with_pin(auth_service, registered_user, token_issuer):
    response = auth_service.login_with_pin("+91 98765 43210", "4826")

    assert response.status_code == http.HTTPStatus.OK
    assert response.data.user.id == registered_user.id
    claims = token_issuer.validate_token(response.data.access_token)
    assert claims.user_id == registered_user.id


def test_login_failures_are_indistinguishable(auth_service, registered_user, db_session):
    User.create_user(
        UserInsertModel(
            mobile_number="+919123456780",
            name="Pending",
            pin_hash=PinHandler.hash_pin("4826"),
            is_verified=False,
        )
    )
    db_session.commit()

    wrong_pin = auth_service.login_with_pin(MOBILE, "4827")
    unknown = auth_service.login_with_pin("9000000001", "4826")
    unverified = auth_service.login_with_pin("9123456780", "4826")

    for response in (wrong_pin, unknown, unverified):
        assert response.status_code == http.HTTPStatus.UNAUTHORIZED
        assert response.error_code == AuthErrorCode.INVALID_CREDENTIALS.value
        assert response.message == "Invalid mobile number or PIN"
        assert response.data == {}


def test_login_with_corrupt_hash_is_invalid_credentials(auth_service, registered_user, db_session):
    User.update_pin_hash(registered_user.id, "not-a-hash")
    db_session.commit()

    response = auth_service.login_with_pin(MOBILE, "4826")

    assert response.status_code == http.HTTPStatus.UNAUTHORIZED
    assert response.error_code == AuthErrorCode.INVALID_CREDENTIALS.value


def test_login_rejects_malformed_pin(auth_service):
    response = auth_service.login_with_pin(MOBILE, "12a4")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.INVALID_PIN.value


# ==================== FORGOT / RESET PIN ====================


def test_forgot_pin_requires_registered_user(auth_service):
    response = auth_service.forgot_pin(MOBILE)

    assert response.status_code == http.HTTPStatus.NOT_FOUND
    assert response.error_code == AuthErrorCode.USER_NOT_FOUND.value


def test_forgot_pin_respects_cooldown(auth_service, sms_sender, registered_user):
    assert auth_service.forgot_pin(MOBILE).status is True

    response = auth_service.forgot_pin(MOBILE)

    assert response.status_code == http.HTTPStatus.TOO_MANY_REQUESTS
    assert response.error_code == AuthErrorCode.RATE_LIMITED.value


def test_reset_pin_replaces_credential(auth_service, sms_sender, registered_user):
    assert auth_service.forgot_pin(MOBILE).status is True
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    response = auth_service.reset_pin(MOBILE, code, "5031")

    assert response.status_code == http.HTTPStatus.OK
    assert response.data == {}
    assert auth_service.login_with_pin(MOBILE, "5031").status is True
    assert auth_service.login_with_pin(MOBILE, "4826").status is False


def test_reset_pin_rejects_weak_pin(auth_service, registered_user):
    response = auth_service.reset_pin(MOBILE, "123456", "1111")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.WEAK_PIN.value


def test_reset_pin_wrong_code_is_generic_and_counted(auth_service, sms_sender, registered_user):
    auth_service.forgot_pin(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)

    for _ in range(3):
        response = auth_service.reset_pin(MOBILE, _wrong_code(code), "5031")
        assert response.error_code == AuthErrorCode.INVALID_OTP.value
        assert response.message == "Invalid or expired OTP"

    response = auth_service.reset_pin(MOBILE, code, "5031")

    assert response.error_code == AuthErrorCode.INVALID_OTP.value
    assert auth_service.login_with_pin(MOBILE, "4826").status is True


# ==================== TOKENS ====================


def test_refresh_returns_new_access_token(auth_service, registered_user, token_issuer):
    login = auth_service.login_with_pin(MOBILE, "4826")

    response = auth_service.refresh_access_token(login.data.refresh_token)

    assert response.status_code == http.HTTPStatus.OK
    claims = token_issuer.validate_token(response.data.access_token)
    assert isinstance(claims, AccessTokenClaims)
    assert response.data.user.id == registered_user.id


def test_refresh_rejects_access_token(auth_service, registered_user):
    login = auth_service.login_with_pin(MOBILE, "4826")

    response = auth_service.refresh_access_token(login.data.access_token)

    assert response.status_code == http.HTTPStatus.UNAUTHORIZED
    assert response.error_code == AuthErrorCode.INVALID_TOKEN_TYPE.value
    assert response.message == "Invalid token type"


def test_refresh_rejects_garbage(auth_service):
    response = auth_service.refresh_access_token("garbage")

    assert response.status_code == http.HTTPStatus.UNAUTHORIZED
    assert response.error_code == AuthErrorCode.INVALID_TOKEN.value


def test_get_profile(auth_service, registered_user):
    assert auth_service.get_profile(registered_user.id).data["user"].id == registered_user.id
    assert auth_service.get_profile(registered_user.id + 100).status_code == http.HTTPStatus.NOT_FOUND


# ==================== KEYED LOCK ====================


def test_keyed_lock_serialises_same_key():
    lock = KeyedLock()
    inside = []
    overlaps = []

    def worker():
        with lock.hold(CANONICAL_MOBILE):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(1)
            threading.Event().wait(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert len(lock) == 0


def test_keyed_lock_keys_are_independent():
    lock = KeyedLock()

    with lock.hold("a"):
        with lock.hold("b"):
            assert len(lock) == 2

    assert len(lock) == 0


@pytest.mark.parametrize("mobile", ["9876543210", "+919876543210", "919876543210"])
def test_every_mobile_shape_maps_to_one_identity(auth_service, registered_user, mobile):
    assert auth_service.login_with_pin(mobile, "4826").data.user.id == registered_user.id


def test_send_otp_rejects_non_ascii_digits(auth_service, sms_sender):
    response = auth_service.send_otp("9८७६५४३२१०")

    assert response.status_code == http.HTTPStatus.BAD_REQUEST
    assert response.error_code == AuthErrorCode.INVALID_MOBILE.value
    assert len(sms_sender.sent_messages) == 0
