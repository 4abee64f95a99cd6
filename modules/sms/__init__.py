"""
SMS Module
Delivery of one-time codes to phone numbers
"""

from .sms_service import (
    SMSSender,
    TwilioSMSSender,
    LoggingSMSSender,
    NotificationError,
    build_sms_sender,
)

__all__ = [
    "SMSSender",
    "TwilioSMSSender",
    "LoggingSMSSender",
    "NotificationError",
    "build_sms_sender",
]
