from fastapi import APIRouter

# routers
from modules.authentication import auth_router


# create a common master router for the routes that need no bearer token;
# the auth endpoints build the request context themselves
OpenRouter = APIRouter(prefix="/api/v1")


# add all the routes to the master router
OpenRouter.include_router(auth_router)  # Includes /auth/send-otp, /auth/login, ...
