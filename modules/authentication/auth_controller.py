import http
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from schema.base import GenericResponseModel
from context_manager.context import build_request_context

# schema
from .auth_schema import (
    SendOTPRequestModel,
    VerifyOTPRequestModel,
    PinLoginRequestModel,
    ForgotPinRequestModel,
    ResetPinRequestModel,
    RefreshTokenRequestModel,
)

# utils
from utils.response_handler import build_api_response

# service
from .auth_service import AuthService

# limiter import
from limiter import limiter

# creating an auth router
auth_router = APIRouter(tags=["auth"], prefix="/auth")


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


# PIN hashing and SMS delivery block, so every service call runs on the threadpool


@auth_router.post("/send-otp", status_code=http.HTTPStatus.OK)
@limiter.limit("5/minute")
async def send_otp(
    otp_request: SendOTPRequestModel,
    request: Request,  # ⬅ REQUIRED for SlowAPI
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).send_otp, otp_request.mobile_number
    )
    return build_api_response(response)


@auth_router.post("/verify-otp", status_code=http.HTTPStatus.OK)
@limiter.limit("10/minute")
async def verify_otp(
    verify_request: VerifyOTPRequestModel,
    request: Request,  # ⬅ REQUIRED
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).verify_otp,
        verify_request.mobile_number,
        verify_request.otp_code,
        verify_request.name,
        verify_request.pin,
    )
    return build_api_response(response)


@auth_router.post("/login", status_code=http.HTTPStatus.OK)
@limiter.limit("10/minute")
async def login_with_pin(
    login_request: PinLoginRequestModel,
    request: Request,  # ⬅ REQUIRED
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).login_with_pin,
        login_request.mobile_number,
        login_request.pin,
    )
    return build_api_response(response)


@auth_router.post("/forgot-pin", status_code=http.HTTPStatus.OK)
@limiter.limit("3/minute")
async def forgot_pin(
    forgot_request: ForgotPinRequestModel,
    request: Request,  # ⬅ REQUIRED
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).forgot_pin, forgot_request.mobile_number
    )
    return build_api_response(response)


@auth_router.post("/reset-pin", status_code=http.HTTPStatus.OK)
@limiter.limit("5/minute")
async def reset_pin(
    reset_request: ResetPinRequestModel,
    request: Request,  # ⬅ REQUIRED
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).reset_pin,
        reset_request.mobile_number,
        reset_request.otp_code,
        reset_request.new_pin,
    )
    return build_api_response(response)


@auth_router.post("/refresh-token", status_code=http.HTTPStatus.OK)
@limiter.limit("20/minute")
async def refresh_token(
    refresh_request: RefreshTokenRequestModel,
    request: Request,  # ⬅ REQUIRED
    _=Depends(build_request_context),
):
    response: GenericResponseModel = await run_in_threadpool(
        get_auth_service(request).refresh_access_token,
        refresh_request.refresh_token,
    )
    return build_api_response(response)
