from .settings import (
    AppSettings,
    ConfigurationError,
    get_settings,
    load_settings,
    SMS_PROVIDER_LOG,
    SMS_PROVIDER_TWILIO,
)

__all__ = [
    "AppSettings",
    "ConfigurationError",
    "get_settings",
    "load_settings",
    "SMS_PROVIDER_LOG",
    "SMS_PROVIDER_TWILIO",
]
