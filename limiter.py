from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi.responses import JSONResponse

from config import get_settings
from logger import logger

# per-IP throttling of the auth endpoints; the per-phone OTP cooldown lives in AuthService
limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)


def rate_limit_handler(request, exc: RateLimitExceeded):
    logger.warning(msg=f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "status": False,
            "message": "Too many requests. Slow down!",
            "data": {},
            "error_code": "RATE_LIMITED",
        },
    )
