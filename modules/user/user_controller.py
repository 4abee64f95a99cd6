import http
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from context_manager.context import get_user_data

# schema
from schema.base import GenericResponseModel

# utils
from utils.response_handler import build_api_response

# Creating user router (authenticated endpoints only, mounted on CommonRouter)
user_router = APIRouter(tags=["user"], prefix="/auth")


@user_router.get(
    "/profile",
    status_code=http.HTTPStatus.OK,
    response_model=GenericResponseModel,
)
async def get_profile(request: Request):
    """Profile of the user behind the bearer access token."""
    user_data = get_user_data()

    response: GenericResponseModel = await run_in_threadpool(
        request.app.state.auth_service.get_profile, user_data.user_id
    )
    return build_api_response(response)
