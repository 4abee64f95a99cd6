from abc import ABC, abstractmethod
from collections import deque
from typing import Optional

import requests

from config import AppSettings, ConfigurationError, SMS_PROVIDER_TWILIO
from logger import logger
from utils.otp_handler import OTPHandler


class NotificationError(Exception):
    """The code could not be handed to the delivery channel."""


def build_otp_message(otp_code: str) -> str:
    return (
        f"Your CapiFy verification code is: {otp_code}. "
        f"This code will expire in {OTPHandler.OTP_EXPIRY_MINUTES} minutes. "
        "Don't share this code with anyone."
    )


class SMSSender(ABC):
    """Delivers a one-time code to a phone number."""

    @abstractmethod
    def send_code(self, mobile_number: str, otp_code: str) -> None:
        """Send the code or raise NotificationError."""


class TwilioSMSSender(SMSSender):

    API_BASE_URL = "https://api.twilio.com/2010-04-01"
    TIMEOUT_SECONDS = 10

    def __init__(self, account_sid: str, auth_token: str, from_number: str, session=None):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.session = session or requests.Session()

    @property
    def messages_url(self) -> str:
        return f"{self.API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    def send_code(self, mobile_number: str, otp_code: str) -> None:
        masked = OTPHandler.mask_mobile_number(mobile_number)
        payload = {
            "To": mobile_number,
            "From": self.from_number,
            "Body": build_otp_message(otp_code),
        }

        try:
            logger.info(f"Sending OTP SMS to: {masked}")
            response = self.session.post(
                self.messages_url,
                data=payload,
                auth=(self.account_sid, self.auth_token),
                timeout=self.TIMEOUT_SECONDS,
            )

        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout while sending OTP SMS to {masked}")
            raise NotificationError("SMS provider timed out") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Request error while sending OTP SMS: {str(e)}")
            raise NotificationError("SMS provider request failed") from e

        if response.status_code >= 400:
            try:
                error_message = response.json().get("message", "Unknown error")
            except ValueError:
                error_message = response.text
            logger.error(
                f"Failed to send OTP SMS to {masked}. "
                f"Status: {response.status_code}, Error: {error_message}"
            )
            raise NotificationError(f"SMS provider rejected the message ({response.status_code})")

        logger.info(f"OTP SMS sent successfully to {masked}")


class LoggingSMSSender(SMSSender):
    """
    Development sender: nothing leaves the process.

    The last messages are kept in `sent_messages` so local runs and tests
    can read the code back.
    """

    def __init__(self, history_size: int = 100):
        self.sent_messages = deque(maxlen=history_size)

    def send_code(self, mobile_number: str, otp_code: str) -> None:
        self.sent_messages.append((mobile_number, otp_code))
        logger.info("=" * 50)
        logger.info("📱 SENDING OTP VIA SMS (LOG ONLY)")
        logger.info(f"Phone Number: {OTPHandler.mask_mobile_number(mobile_number)}")
        logger.info("=" * 50)

    def last_code_for(self, mobile_number: str) -> Optional[str]:
        for number, code in reversed(self.sent_messages):
            if number == mobile_number:
                return code
        return None


def build_sms_sender(settings: AppSettings) -> SMSSender:
    """Pick the delivery channel once, at startup."""
    if settings.sms_provider == SMS_PROVIDER_TWILIO:
        if not (
            settings.twilio_account_sid
            and settings.twilio_auth_token
            and settings.twilio_phone_number
        ):
            raise ConfigurationError(
                "SMS_PROVIDER=twilio requires TWILIO_ACCOUNT_SID, "
                "TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER"
            )
        logger.info("Using Twilio SMS sender")
        return TwilioSMSSender(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
        )

    if settings.is_production:
        raise ConfigurationError("The logging SMS sender cannot be used in production")

    logger.warning("Using logging SMS sender, OTP codes are not delivered")
    return LoggingSMSSender()
