"""
OTP Handler
Code generation, expiry helpers and mobile number rules for OTP challenges.
The request flows that use these live in AuthService.
"""

import hmac
import re
import secrets
from datetime import datetime, timedelta
from typing import Dict, Any

from logger import logger
from database.db import as_utc, time_now


# ASCII digits only: \d also matches digits from other scripts
NON_DIGITS = re.compile(r"[^0-9]")
NATIONAL_NUMBER = re.compile(r"^[6-9][0-9]{9}$")
NUMBER_WITH_COUNTRY_CODE = re.compile(r"^91[6-9][0-9]{9}$")


class OTPHandler:
    """
    OTP primitives shared by registration, login and PIN reset.

    Mobile numbers follow the Indian dialing plan: a 10-digit national number
    starting with 6-9, optionally prefixed by country code 91.
    """

    # OTP Configuration
    OTP_LENGTH = 6
    OTP_EXPIRY_MINUTES = 5

    # Rate Limiting & Security
    MAX_OTP_ATTEMPTS = 3
    RESEND_COOLDOWN_SECONDS = 60

    COUNTRY_CODE = "91"

    @staticmethod
    def generate_otp() -> str:
        """
        Generate a 6-digit OTP code.

        Each digit is drawn independently from the OS CSPRNG, so leading
        zeros and repeated digits are possible.
        """
        return "".join(
            str(secrets.randbelow(10)) for _ in range(OTPHandler.OTP_LENGTH)
        )

    @staticmethod
    def get_otp_expiry_time(now: datetime = None) -> datetime:
        now = now or time_now()
        return now + timedelta(minutes=OTPHandler.OTP_EXPIRY_MINUTES)

    @staticmethod
    def expires_in_seconds() -> int:
        return OTPHandler.OTP_EXPIRY_MINUTES * 60

    @staticmethod
    def is_otp_expired(expires_at: datetime) -> bool:
        """
        Check if OTP has expired.

        Args:
            expires_at: OTP expiry timestamp (naive values are treated as UTC)

        Returns:
            bool: True if expired, False otherwise
        """
        current_time = time_now()
        is_expired = current_time >= as_utc(expires_at)

        if is_expired:
            logger.info(f"OTP expired. Expiry: {expires_at}, Current: {current_time}")

        return is_expired

    @staticmethod
    def cooldown_seconds_remaining(created_at: datetime) -> int:
        """Seconds left before another OTP may be issued after one created at `created_at`."""
        elapsed = (time_now() - as_utc(created_at)).total_seconds()
        remaining = OTPHandler.RESEND_COOLDOWN_SECONDS - elapsed
        if remaining <= 0:
            return 0
        return max(1, int(remaining))

    @staticmethod
    def validate_otp_code(input_otp: str, stored_otp: str) -> bool:
        """Constant-time comparison of the submitted code with the stored one."""
        return hmac.compare_digest(
            (input_otp or "").strip().encode("utf-8"),
            stored_otp.strip().encode("utf-8"),
        )

    @staticmethod
    def create_otp_data(mobile_number: str) -> Dict[str, Any]:
        """
        Generate OTP data for database storage.

        Args:
            mobile_number: Canonical mobile number

        Returns:
            dict: OTP data including code and expiry
        """
        now = time_now()
        return {
            "mobile_number": mobile_number,
            "otp_code": OTPHandler.generate_otp(),
            "expires_at": OTPHandler.get_otp_expiry_time(now),
            "is_verified": False,
            "attempt_count": 0,
            "created_at": now,
        }

    # ==================== MOBILE NUMBER RULES ====================

    @staticmethod
    def _digits_only(mobile: str) -> str:
        return NON_DIGITS.sub("", mobile or "")

    @staticmethod
    def validate_mobile_number(mobile: str) -> bool:
        digits = OTPHandler._digits_only(mobile)

        if len(digits) == 10:
            return bool(NATIONAL_NUMBER.match(digits))

        # "+91XXXXXXXXXX" lands here once the "+" is stripped
        if len(digits) == 12 and digits.startswith(OTPHandler.COUNTRY_CODE):
            return bool(NUMBER_WITH_COUNTRY_CODE.match(digits))

        return False

    @staticmethod
    def normalize_mobile_number(mobile: str) -> str:
        """
        Rewrite a mobile number to "+91XXXXXXXXXX".

        Unrecognised shapes come back as their digits only; callers that need
        a guarantee must call validate_mobile_number first.
        """
        digits = OTPHandler._digits_only(mobile)

        if len(digits) == 10 and NATIONAL_NUMBER.match(digits):
            return f"+{OTPHandler.COUNTRY_CODE}{digits}"

        if len(digits) == 12 and digits.startswith(OTPHandler.COUNTRY_CODE):
            return f"+{digits}"

        return digits

    @staticmethod
    def mask_mobile_number(mobile: str) -> str:
        if not mobile or len(mobile) < 4:
            return "****"
        return f"****{mobile[-4:]}"
