from .user import User
from .otp_verification import OTPVerification

__all__ = ["User", "OTPVerification"]
