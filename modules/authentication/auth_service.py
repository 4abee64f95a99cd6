import http
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from logger import logger
from context_manager.context import get_db_session

# models
from models import User, OTPVerification

# schema
from schema.base import GenericResponseModel
from modules.user.user_schema import UserInsertModel, UserResponseModel
from .auth_schema import (
    AuthErrorCode,
    AuthResponseData,
    OTPSentResponseData,
    RefreshResponseData,
)

# services
from modules.sms import SMSSender, NotificationError

# utils
from utils.audit_logger import AuditLogger
from utils.jwt_token_handler import (
    RefreshTokenClaims,
    TokenGenerationError,
    TokenIssuer,
    TokenValidationError,
)
from utils.keyed_lock import KeyedLock
from utils.otp_handler import OTPHandler
from utils.pin_handler import PinHandler, PinHashFormatError, PinValidationError


INVALID_CREDENTIALS_MESSAGE = "Invalid mobile number or PIN"
INTERNAL_ERROR_MESSAGE = "An internal server error occurred. Please try again later."

PURPOSE_LOGIN = "login"
PURPOSE_PIN_RESET = "pin_reset"


def _failure(status_code, message: str, error_code: AuthErrorCode, data=None):
    return GenericResponseModel(
        status_code=status_code,
        status=False,
        message=message,
        error_code=error_code.value,
        data=data or {},
    )


def _internal_error(message: str = INTERNAL_ERROR_MESSAGE, error_code=AuthErrorCode.INTERNAL_ERROR):
    return _failure(http.HTTPStatus.INTERNAL_SERVER_ERROR, message, error_code)


class AuthService:
    """
    Authentication flows for mobile number + OTP and mobile number + PIN.

    Every method runs on the request's database session, commits its own
    changes and returns a GenericResponseModel. Flows that read and then
    write OTP challenges for a number are serialised per number.
    """

    _dummy_pin_hash: Optional[str] = None

    def __init__(self, token_issuer: TokenIssuer, sms_sender: SMSSender):
        self.token_issuer = token_issuer
        self.sms_sender = sms_sender
        self._phone_locks = KeyedLock()

    # ==================== SHARED STEPS ====================

    def _issue_otp(self, mobile_number: str, purpose: str) -> GenericResponseModel:
        """Cooldown check, new challenge, delivery. Caller holds the phone lock."""
        db = get_db_session()

        active_otp = OTPVerification.get_latest_active_otp(mobile_number, for_update=True)
        if active_otp:
            seconds_remaining = OTPHandler.cooldown_seconds_remaining(active_otp.created_at)
            if seconds_remaining > 0:
                logger.warning(
                    msg=f"Cooldown active for {OTPHandler.mask_mobile_number(mobile_number)}, "
                    f"{seconds_remaining}s remaining"
                )
                AuditLogger.log_otp_rate_limit_exceeded(
                    mobile_number=mobile_number, seconds_remaining=seconds_remaining
                )
                return _failure(
                    http.HTTPStatus.TOO_MANY_REQUESTS,
                    f"Please wait {seconds_remaining} seconds before requesting another OTP.",
                    AuthErrorCode.RATE_LIMITED,
                    data={
                        "seconds_remaining": seconds_remaining,
                        "cooldown_seconds": OTPHandler.RESEND_COOLDOWN_SECONDS,
                    },
                )

            # older than the cooldown but still live: retire it before issuing
            OTPVerification.invalidate_active_otps(mobile_number)

        otp_data = OTPHandler.create_otp_data(mobile_number)
        OTPVerification.create_otp(otp_data)

        try:
            self.sms_sender.send_code(mobile_number, otp_data["otp_code"])
        except NotificationError as e:
            db.rollback()
            logger.error(msg=f"Failed to deliver OTP ({purpose}): {str(e)}")
            return _internal_error(
                "Failed to send OTP. Please try again.",
                AuthErrorCode.NOTIFICATION_FAILED,
            )

        db.commit()

        AuditLogger.log_otp_sent(mobile_number=mobile_number, purpose=purpose)

        return GenericResponseModel(
            status_code=http.HTTPStatus.OK,
            status=True,
            message=f"OTP sent successfully to {OTPHandler.mask_mobile_number(mobile_number)}",
            data=OTPSentResponseData(expires_in=OTPHandler.expires_in_seconds()),
        )

    def _auth_success(self, user, message: str) -> GenericResponseModel:
        token_pair = self.token_issuer.generate_token_pair(user)
        return GenericResponseModel(
            status_code=http.HTTPStatus.OK,
            status=True,
            message=message,
            data=AuthResponseData(
                access_token=token_pair.access_token,
                refresh_token=token_pair.refresh_token,
                user=UserResponseModel.from_user(user),
            ),
        )

    @classmethod
    def _get_dummy_pin_hash(cls) -> str:
        if cls._dummy_pin_hash is None:
            cls._dummy_pin_hash = PinHandler.hash_pin(PinHandler.generate_random_pin())
        return cls._dummy_pin_hash

    @staticmethod
    def _pin_matches(pin: str, pin_hash: Optional[str]) -> bool:
        if not pin_hash:
            return False
        try:
            return PinHandler.verify_pin(pin, pin_hash)
        except PinHashFormatError:
            logger.error(msg="Stored PIN hash is malformed")
            return False

    # ==================== OTP FLOW ====================

    def send_otp(self, mobile_number: str) -> GenericResponseModel:
        """Issue an OTP for registration or login."""
        if not OTPHandler.validate_mobile_number(mobile_number):
            return _failure(
                http.HTTPStatus.BAD_REQUEST,
                "Invalid mobile number format. Please provide a valid Indian mobile number.",
                AuthErrorCode.INVALID_MOBILE,
            )

        normalized_mobile = OTPHandler.normalize_mobile_number(mobile_number)
        db = get_db_session()

        try:
            with self._phone_locks.hold(normalized_mobile):
                return self._issue_otp(normalized_mobile, purpose=PURPOSE_LOGIN)

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(msg=f"Database error during OTP generation: {str(e)}", exc_info=True)
            return _internal_error("Failed to generate OTP. Please try again.")

        except Exception as e:
            db.rollback()
            logger.error(msg=f"Unexpected error during OTP generation: {str(e)}", exc_info=True)
            return _internal_error()

    def verify_otp(
        self,
        mobile_number: str,
        otp_code: str,
        name: Optional[str] = None,
        pin: Optional[str] = None,
    ) -> GenericResponseModel:
        """
        Verify an OTP, then register the number or log the existing user in.

        New numbers need both `name` and `pin`.
        """
        if not OTPHandler.validate_mobile_number(mobile_number):
            return _failure(
                http.HTTPStatus.BAD_REQUEST,
                "Invalid mobile number format",
                AuthErrorCode.INVALID_MOBILE,
            )

        normalized_mobile = OTPHandler.normalize_mobile_number(mobile_number)
        db = get_db_session()

        try:
            with self._phone_locks.hold(normalized_mobile):
                otp_record = OTPVerification.get_latest_unverified_otp(
                    normalized_mobile, for_update=True
                )

                if not otp_record:
                    logger.warning(
                        msg=f"No pending OTP for {OTPHandler.mask_mobile_number(normalized_mobile)}"
                    )
                    return _failure(
                        http.HTTPStatus.BAD_REQUEST,
                        "No valid OTP found. Please request a new OTP.",
                        AuthErrorCode.OTP_NOT_FOUND,
                    )

                if OTPHandler.is_otp_expired(otp_record.expires_at):
                    return _failure(
                        http.HTTPStatus.BAD_REQUEST,
                        "OTP has expired. Please request a new OTP.",
                        AuthErrorCode.OTP_EXPIRED,
                    )

                if otp_record.attempt_count >= OTPHandler.MAX_OTP_ATTEMPTS:
                    AuditLogger.log_otp_max_attempts_exceeded(mobile_number=normalized_mobile)
                    return _failure(
                        http.HTTPStatus.TOO_MANY_REQUESTS,
                        "Maximum OTP attempts exceeded. Please request a new OTP.",
                        AuthErrorCode.OTP_ATTEMPTS_EXCEEDED,
                    )

                if not OTPHandler.validate_otp_code(otp_code, otp_record.otp_code):
                    attempts = OTPVerification.increment_attempts(otp_record.id)
                    db.commit()

                    remaining_attempts = max(0, OTPHandler.MAX_OTP_ATTEMPTS - attempts)
                    AuditLogger.log_otp_verification_failed(
                        mobile_number=normalized_mobile,
                        attempts=attempts,
                        max_attempts=OTPHandler.MAX_OTP_ATTEMPTS,
                    )
                    return _failure(
                        http.HTTPStatus.BAD_REQUEST,
                        "Invalid OTP. Please check and try again.",
                        AuthErrorCode.OTP_MISMATCH,
                        data={"attempts_remaining": remaining_attempts},
                    )

                OTPVerification.mark_otp_as_verified(otp_record.id)
                db.commit()
                AuditLogger.log_otp_verified(
                    mobile_number=normalized_mobile, attempts=otp_record.attempt_count
                )

            return self._resolve_identity(normalized_mobile, name=name, pin=pin)

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(msg=f"Database error during OTP verification: {str(e)}", exc_info=True)
            return _internal_error("Database error occurred")

        except TokenGenerationError:
            return _internal_error("Failed to generate authentication tokens")

        except Exception as e:
            db.rollback()
            logger.error(msg=f"Unexpected error during OTP verification: {str(e)}", exc_info=True)
            return _internal_error()

    def _resolve_identity(
        self, mobile_number: str, name: Optional[str], pin: Optional[str]
    ) -> GenericResponseModel:
        db = get_db_session()
        user = User.get_by_mobile_number(mobile_number)

        if user is None:
            if not name:
                return _failure(
                    http.HTTPStatus.BAD_REQUEST,
                    "Name is required for new user registration",
                    AuthErrorCode.REGISTRATION_INCOMPLETE,
                )
            if not pin:
                return _failure(
                    http.HTTPStatus.BAD_REQUEST,
                    "PIN is required for new user registration",
                    AuthErrorCode.REGISTRATION_INCOMPLETE,
                )

            try:
                PinHandler.validate_pin(pin)
            except PinValidationError as e:
                return _failure(http.HTTPStatus.BAD_REQUEST, str(e), AuthErrorCode.WEAK_PIN)

            user = User.create_user(
                UserInsertModel(
                    mobile_number=mobile_number,
                    name=name,
                    pin_hash=PinHandler.hash_pin(pin),
                    is_verified=True,
                )
            )
            db.commit()

            AuditLogger.log_user_registered(user_id=user.id, mobile_number=mobile_number)
            logger.info(msg=f"User registered with id: {user.id}")

        elif not user.is_verified:
            User.mark_verified(user.id)
            db.commit()
            user = User.get_by_id(user.id)

        AuditLogger.log_login_success(user_id=user.id, mobile_number=mobile_number, method="otp")
        return self._auth_success(user, "Authentication successful")

    # ==================== PIN FLOW ====================

    def login_with_pin(self, mobile_number: str, pin: str) -> GenericResponseModel:
        """
        Log in with mobile number and PIN.

        Unknown numbers, unverified users and wrong PINs get the same answer.
        """
        normalized_mobile = OTPHandler.normalize_mobile_number(mobile_number)

        try:
            PinHandler.validate_pin(pin)
        except PinValidationError as e:
            return _failure(http.HTTPStatus.BAD_REQUEST, str(e), AuthErrorCode.INVALID_PIN)

        try:
            user = User.get_by_mobile_number(normalized_mobile, verified_only=True)

            if user is None:
                # keeps the response time close to the wrong-PIN case
                self._pin_matches(pin, self._get_dummy_pin_hash())
                AuditLogger.log_login_failed(
                    mobile_number=normalized_mobile, reason="unknown or unverified user"
                )
                return _failure(
                    http.HTTPStatus.UNAUTHORIZED,
                    INVALID_CREDENTIALS_MESSAGE,
                    AuthErrorCode.INVALID_CREDENTIALS,
                )

            if not self._pin_matches(pin, user.pin_hash):
                AuditLogger.log_login_failed(mobile_number=normalized_mobile, reason="wrong PIN")
                return _failure(
                    http.HTTPStatus.UNAUTHORIZED,
                    INVALID_CREDENTIALS_MESSAGE,
                    AuthErrorCode.INVALID_CREDENTIALS,
                )

            AuditLogger.log_login_success(
                user_id=user.id, mobile_number=normalized_mobile, method="pin"
            )
            return self._auth_success(user, "Login successful")

        except SQLAlchemyError as e:
            logger.error(msg=f"Database error during login: {str(e)}", exc_info=True)
            return _internal_error("Database error")

        except TokenGenerationError:
            return _internal_error("Failed to generate authentication tokens")

        except Exception as e:
            logger.error(msg=f"Unexpected error during login: {str(e)}", exc_info=True)
            return _internal_error()

    def forgot_pin(self, mobile_number: str) -> GenericResponseModel:
        """Send a PIN reset OTP to a registered, verified number."""
        normalized_mobile = OTPHandler.normalize_mobile_number(mobile_number)
        db = get_db_session()

        try:
            user = User.get_by_mobile_number(normalized_mobile, verified_only=True)
            if user is None:
                return _failure(
                    http.HTTPStatus.NOT_FOUND,
                    "No account found with this mobile number",
                    AuthErrorCode.USER_NOT_FOUND,
                )

            with self._phone_locks.hold(normalized_mobile):
                response = self._issue_otp(normalized_mobile, purpose=PURPOSE_PIN_RESET)

            if response.status:
                response.message = "OTP sent successfully for PIN reset"
            return response

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(msg=f"Database error during forgot PIN: {str(e)}", exc_info=True)
            return _internal_error("Failed to generate OTP. Please try again.")

        except Exception as e:
            db.rollback()
            logger.error(msg=f"Unexpected error during forgot PIN: {str(e)}", exc_info=True)
            return _internal_error()

    def reset_pin(self, mobile_number: str, otp_code: str, new_pin: str) -> GenericResponseModel:
        """
        Replace the PIN after proving possession of the number with an OTP.

        Does not log the user in.
        """
        normalized_mobile = OTPHandler.normalize_mobile_number(mobile_number)

        try:
            PinHandler.validate_pin(new_pin)
        except PinValidationError as e:
            return _failure(http.HTTPStatus.BAD_REQUEST, str(e), AuthErrorCode.WEAK_PIN)

        invalid_otp = _failure(
            http.HTTPStatus.BAD_REQUEST,
            "Invalid or expired OTP",
            AuthErrorCode.INVALID_OTP,
        )
        db = get_db_session()

        try:
            with self._phone_locks.hold(normalized_mobile):
                otp_record = OTPVerification.get_latest_active_otp(
                    normalized_mobile, for_update=True
                )
                if otp_record is None:
                    return invalid_otp

                if otp_record.attempt_count >= OTPHandler.MAX_OTP_ATTEMPTS:
                    AuditLogger.log_otp_max_attempts_exceeded(mobile_number=normalized_mobile)
                    return invalid_otp

                if not OTPHandler.validate_otp_code(otp_code, otp_record.otp_code):
                    attempts = OTPVerification.increment_attempts(otp_record.id)
                    db.commit()
                    AuditLogger.log_otp_verification_failed(
                        mobile_number=normalized_mobile,
                        attempts=attempts,
                        max_attempts=OTPHandler.MAX_OTP_ATTEMPTS,
                    )
                    return invalid_otp

                OTPVerification.mark_otp_as_verified(otp_record.id)
                db.commit()

            user = User.get_by_mobile_number(normalized_mobile, verified_only=True)
            if user is None:
                return _failure(
                    http.HTTPStatus.NOT_FOUND,
                    "User not found",
                    AuthErrorCode.USER_NOT_FOUND,
                )

            User.update_pin_hash(user.id, PinHandler.hash_pin(new_pin))
            db.commit()

            AuditLogger.log_pin_reset(user_id=user.id, mobile_number=normalized_mobile)

            return GenericResponseModel(
                status_code=http.HTTPStatus.OK,
                status=True,
                message="PIN reset successfully",
            )

        except SQLAlchemyError as e:
            db.rollback()
            logger.error(msg=f"Database error during PIN reset: {str(e)}", exc_info=True)
            return _internal_error("Failed to update PIN")

        except Exception as e:
            db.rollback()
            logger.error(msg=f"Unexpected error during PIN reset: {str(e)}", exc_info=True)
            return _internal_error()

    # ==================== TOKENS ====================

    def refresh_access_token(self, refresh_token: str) -> GenericResponseModel:
        """Exchange a refresh token for a new access token (the refresh token is not rotated)."""
        try:
            claims = self.token_issuer.validate_token(refresh_token)
        except TokenValidationError:
            AuditLogger.log_invalid_token(reason="refresh token failed validation")
            return _failure(
                http.HTTPStatus.UNAUTHORIZED,
                "Invalid or expired refresh token",
                AuthErrorCode.INVALID_TOKEN,
            )

        if not isinstance(claims, RefreshTokenClaims):
            AuditLogger.log_invalid_token(reason="access token used for refresh")
            return _failure(
                http.HTTPStatus.UNAUTHORIZED,
                "Invalid token type",
                AuthErrorCode.INVALID_TOKEN_TYPE,
            )

        try:
            user = User.get_by_id(claims.user_id)
            if user is None:
                return _failure(
                    http.HTTPStatus.UNAUTHORIZED,
                    "User not found",
                    AuthErrorCode.USER_NOT_FOUND,
                )

            access_token = self.token_issuer.generate_access_token(user)
            AuditLogger.log_token_refreshed(user_id=user.id)

            return GenericResponseModel(
                status_code=http.HTTPStatus.OK,
                status=True,
                message="Token refreshed successfully",
                data=RefreshResponseData(
                    access_token=access_token,
                    user=UserResponseModel.from_user(user),
                ),
            )

        except SQLAlchemyError as e:
            logger.error(msg=f"Database error during token refresh: {str(e)}", exc_info=True)
            return _internal_error()

        except TokenGenerationError:
            return _internal_error("Failed to generate new access token")

    def get_profile(self, user_id: int) -> GenericResponseModel:
        try:
            user = User.get_by_id(user_id)
        except SQLAlchemyError as e:
            logger.error(msg=f"Database error while loading profile: {str(e)}", exc_info=True)
            return _internal_error()

        if user is None:
            return _failure(
                http.HTTPStatus.NOT_FOUND,
                "User not found",
                AuthErrorCode.USER_NOT_FOUND,
            )

        return GenericResponseModel(
            status_code=http.HTTPStatus.OK,
            status=True,
            message="Profile fetched successfully",
            data={"user": UserResponseModel.from_user(user)},
        )
