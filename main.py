import uvicorn
import asyncio
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded

from logger import logger
from config import get_settings
from utils.exception_handler import (
    handle_validation_error,
    handle_request_validation_error,
    custom_http_exception_handler,
)

from router import CommonRouter, OpenRouter

from database.db import init_models  # sync DB init

from limiter import limiter, rate_limit_handler
from modules.authentication import AuthService
from modules.sms import build_sms_sender
from utils.jwt_token_handler import TokenIssuer
from utils.pin_handler import PinHandler

app = FastAPI(title="CapiFy Backend")

# Routers
app.include_router(OpenRouter)
app.include_router(CommonRouter)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Exception handlers
app.add_exception_handler(ValidationError, handle_validation_error)
app.add_exception_handler(RequestValidationError, handle_request_validation_error)
app.add_exception_handler(HTTPException, custom_http_exception_handler)


# -------------------------------
# Startup event
# -------------------------------
@app.on_event("startup")
async def startup_event():
    # a bad configuration fails startup here, before any request is served
    settings = get_settings()

    loop = asyncio.get_running_loop()
    # Initialize DB safely in executor
    await loop.run_in_executor(None, init_models)

    PinHandler.configure(
        time_cost=settings.pin_hash_time_cost,
        max_concurrency=settings.pin_hash_max_concurrency,
    )

    token_issuer = TokenIssuer.from_settings(settings)
    sms_sender = build_sms_sender(settings)

    app.state.token_issuer = token_issuer
    app.state.sms_sender = sms_sender
    app.state.auth_service = AuthService(token_issuer=token_issuer, sms_sender=sms_sender)

    logger.info(
        f"Auth service ready (env={settings.app_environment}, sms={settings.sms_provider})"
    )


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
