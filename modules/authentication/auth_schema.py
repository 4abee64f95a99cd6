import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

# schema
from modules.user.user_schema import UserResponseModel


class AuthErrorCode(str, Enum):
    INVALID_MOBILE = "INVALID_MOBILE"
    INVALID_PIN = "INVALID_PIN"
    WEAK_PIN = "WEAK_PIN"
    RATE_LIMITED = "RATE_LIMITED"
    OTP_NOT_FOUND = "OTP_NOT_FOUND"
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_ATTEMPTS_EXCEEDED = "OTP_ATTEMPTS_EXCEEDED"
    OTP_MISMATCH = "OTP_MISMATCH"
    INVALID_OTP = "INVALID_OTP"
    REGISTRATION_INCOMPLETE = "REGISTRATION_INCOMPLETE"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_TOKEN_TYPE = "INVALID_TOKEN_TYPE"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


class SendOTPRequestModel(BaseModel):
    # room for spaces, dashes and brackets; the service strips them
    mobile_number: str = Field(..., min_length=10, max_length=20)

    @field_validator("mobile_number", mode="before")
    @classmethod
    def sanitize_mobile_number(cls, v):
        return _strip(v)


class VerifyOTPRequestModel(SendOTPRequestModel):
    otp_code: str = Field(..., min_length=6, max_length=6)
    name: Optional[str] = Field(default=None, max_length=100)
    pin: Optional[str] = None

    @field_validator("otp_code", "pin", mode="before")
    @classmethod
    def sanitize_codes(cls, v):
        return _strip(v)

    @field_validator("name", mode="before")
    @classmethod
    def sanitize_name(cls, v):
        """Sanitize name: trim whitespace and normalize spaces."""
        if isinstance(v, str):
            v = re.sub(r"\s+", " ", v.strip())
            return v or None
        return v


class PinLoginRequestModel(SendOTPRequestModel):
    pin: str

    @field_validator("pin", mode="before")
    @classmethod
    def sanitize_pin(cls, v):
        return _strip(v)


class ForgotPinRequestModel(SendOTPRequestModel):
    pass


class ResetPinRequestModel(SendOTPRequestModel):
    otp_code: str = Field(..., min_length=6, max_length=6)
    new_pin: str

    @field_validator("otp_code", "new_pin", mode="before")
    @classmethod
    def sanitize_codes(cls, v):
        return _strip(v)


class RefreshTokenRequestModel(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class OTPSentResponseData(BaseModel):
    expires_in: int


class AuthResponseData(BaseModel):
    access_token: str
    refresh_token: str
    user: UserResponseModel


class RefreshResponseData(BaseModel):
    access_token: str
    user: UserResponseModel
