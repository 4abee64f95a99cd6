"""
OTP Verification Schema
Pydantic models for OTP challenge serialization.
"""

from pydantic import Field
from datetime import datetime
from schema.base import DBBaseModel


class OTPVerificationModel(DBBaseModel):
    """
    A single issued one-time passcode.

    Attributes:
        mobile_number: Canonical (+91) number the code was sent to
        otp_code: 6-digit OTP code
        expires_at: Expiration timestamp
        is_verified: Terminal flag, set once the code has been accepted
        attempt_count: Number of failed verification attempts
    """

    mobile_number: str
    otp_code: str = Field(..., min_length=6, max_length=6)
    expires_at: datetime
    is_verified: bool = False
    attempt_count: int = Field(default=0, ge=0)
