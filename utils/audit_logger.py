"""
Audit Logger
Structured log lines for security events in the authentication flows.

Phone numbers are masked; OTP codes, PINs and tokens are never passed in.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from logger import logger
from database.db import UTC


class AuditLogger:
    """Centralized audit logging for security events"""

    # Event types
    EVENT_USER_LOGIN_SUCCESS = "user_login_success"
    EVENT_USER_LOGIN_FAILED = "user_login_failed"
    EVENT_USER_REGISTERED = "user_registered"
    EVENT_OTP_SENT = "otp_sent"
    EVENT_OTP_VERIFIED = "otp_verified"
    EVENT_OTP_VERIFICATION_FAILED = "otp_verification_failed"
    EVENT_OTP_MAX_ATTEMPTS_EXCEEDED = "otp_max_attempts_exceeded"
    EVENT_OTP_RATE_LIMIT_EXCEEDED = "otp_rate_limit_exceeded"
    EVENT_PIN_RESET = "pin_reset"
    EVENT_TOKEN_REFRESHED = "token_refreshed"
    EVENT_INVALID_TOKEN = "invalid_token"
    EVENT_UNAUTHORIZED_ACCESS_ATTEMPT = "unauthorized_access_attempt"

    # Event categories
    CATEGORY_AUTHENTICATION = "authentication"
    CATEGORY_AUTHORIZATION = "authorization"
    CATEGORY_SECURITY = "security"
    CATEGORY_USER_ACTION = "user_action"

    @staticmethod
    def _mask(mobile_number: Optional[str]) -> Optional[str]:
        from utils.otp_handler import OTPHandler

        if mobile_number is None:
            return None
        return OTPHandler.mask_mobile_number(mobile_number)

    @staticmethod
    def log_event(
        event_type: str,
        user_id: Optional[int] = None,
        mobile_number: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: str = "info",
        category: str = "security",
    ):
        """
        Log a security/audit event.
        Request origin (IP, user agent, endpoint) is taken from the request context.

        Args:
            event_type: Type of event (use EVENT_* constants)
            user_id: User ID if applicable
            mobile_number: Phone number if applicable (masked before logging)
            details: Additional event-specific details
            severity: Log severity (info, warning, error, critical)
            category: Event category (authentication, authorization, security, user_action)
        """
        from context_manager.context import get_request_info

        request_info = get_request_info()
        masked_mobile = AuditLogger._mask(mobile_number)

        log_data = {
            "event_type": event_type,
            "category": category,
            "timestamp": datetime.now(UTC).isoformat(),
            "user_id": user_id,
            "mobile_number": masked_mobile,
            "ip_address": request_info.get("ip_address"),
            "user_agent": request_info.get("user_agent"),
            "endpoint": request_info.get("endpoint"),
            "details": details or {},
        }

        message = f"[AUDIT] {event_type}"
        if masked_mobile:
            message += f" | Mobile: {masked_mobile}"
        if user_id:
            message += f" | ID: {user_id}"
        if request_info.get("ip_address") not in (None, "unknown"):
            message += f" | IP: {request_info['ip_address']}"

        if severity == "critical":
            logger.critical(extra=log_data, msg=message)
        elif severity == "error":
            logger.error(extra=log_data, msg=message)
        elif severity == "warning":
            logger.warning(extra=log_data, msg=message)
        else:
            logger.info(extra=log_data, msg=message)

    @staticmethod
    def log_login_success(user_id: int, mobile_number: str, method: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_USER_LOGIN_SUCCESS,
            user_id=user_id,
            mobile_number=mobile_number,
            details={"method": method},
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_login_failed(mobile_number: str, reason: str):
        """Log failed login attempt. The reason stays in the logs only."""
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_USER_LOGIN_FAILED,
            mobile_number=mobile_number,
            details={"reason": reason},
            severity="warning",
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_user_registered(user_id: int, mobile_number: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_USER_REGISTERED,
            user_id=user_id,
            mobile_number=mobile_number,
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_otp_sent(mobile_number: str, purpose: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_OTP_SENT,
            mobile_number=mobile_number,
            details={"purpose": purpose},
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_otp_verified(mobile_number: str, attempts: int):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_OTP_VERIFIED,
            mobile_number=mobile_number,
            details={"failed_attempts": attempts},
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_otp_verification_failed(mobile_number: str, attempts: int, max_attempts: int):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_OTP_VERIFICATION_FAILED,
            mobile_number=mobile_number,
            details={
                "attempts": attempts,
                "max_attempts": max_attempts,
                "remaining_attempts": max(0, max_attempts - attempts),
            },
            severity="warning",
            category=AuditLogger.CATEGORY_SECURITY,
        )

    @staticmethod
    def log_otp_max_attempts_exceeded(mobile_number: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_OTP_MAX_ATTEMPTS_EXCEEDED,
            mobile_number=mobile_number,
            severity="error",
            category=AuditLogger.CATEGORY_SECURITY,
        )

    @staticmethod
    def log_otp_rate_limit_exceeded(mobile_number: str, seconds_remaining: int):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_OTP_RATE_LIMIT_EXCEEDED,
            mobile_number=mobile_number,
            details={"seconds_remaining": seconds_remaining},
            severity="warning",
            category=AuditLogger.CATEGORY_SECURITY,
        )

    @staticmethod
    def log_pin_reset(user_id: int, mobile_number: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_PIN_RESET,
            user_id=user_id,
            mobile_number=mobile_number,
            category=AuditLogger.CATEGORY_USER_ACTION,
        )

    @staticmethod
    def log_token_refreshed(user_id: int):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_TOKEN_REFRESHED,
            user_id=user_id,
            category=AuditLogger.CATEGORY_AUTHENTICATION,
        )

    @staticmethod
    def log_invalid_token(reason: str):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_INVALID_TOKEN,
            details={"reason": reason},
            severity="warning",
            category=AuditLogger.CATEGORY_AUTHORIZATION,
        )

    @staticmethod
    def log_unauthorized_access(user_id: Optional[int] = None, reason: str = ""):
        AuditLogger.log_event(
            event_type=AuditLogger.EVENT_UNAUTHORIZED_ACCESS_ATTEMPT,
            user_id=user_id,
            details={"reason": reason},
            severity="error",
            category=AuditLogger.CATEGORY_AUTHORIZATION,
        )
