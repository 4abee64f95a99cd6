from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from context_manager.context import build_request_context, context_user_data

security = HTTPBearer()

# utils
from utils.jwt_token_handler import AccessTokenClaims, TokenValidationError

# routers
from modules.user import user_router


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
):
    """
    Authenticate the caller from the bearer access token.
    This dependency ensures:
    1. Valid, unexpired token signed by this service
    2. Token is an access token (refresh tokens are rejected)
    3. User exists in database
    4. User has completed OTP verification
    """
    from models.user import User
    from utils.audit_logger import AuditLogger

    token = credentials.credentials
    try:
        claims = request.app.state.token_issuer.validate_token(token)
    except TokenValidationError:
        AuditLogger.log_invalid_token(reason="bearer token failed validation")
        raise HTTPException(
            status_code=401,
            detail={"message": "Invalid or expired token", "status": False},
        )

    if not isinstance(claims, AccessTokenClaims):
        AuditLogger.log_unauthorized_access(
            user_id=claims.user_id, reason="Refresh token used as bearer token"
        )
        raise HTTPException(
            status_code=401,
            detail={"message": "Invalid token type", "status": False},
        )

    # Fetch user from database to check current status
    user = User.get_by_id(claims.user_id)

    if not user:
        AuditLogger.log_unauthorized_access(
            user_id=claims.user_id, reason="User not found in database"
        )
        raise HTTPException(
            status_code=401, detail={"message": "User not found", "status": False}
        )

    # Check if user has completed OTP verification
    if not user.is_verified:
        AuditLogger.log_unauthorized_access(
            user_id=claims.user_id, reason="OTP not verified"
        )
        raise HTTPException(
            status_code=403,
            detail={
                "message": "Please verify your phone number to continue",
                "status": False,
            },
        )

    context_user_data.set(claims)
    return claims


# create a common master router for all the authenticated routes in the service
CommonRouter = APIRouter(
    prefix="/api/v1",
    dependencies=[Depends(build_request_context), Depends(get_current_user)],
)


# add all the routes to the master router
CommonRouter.include_router(user_router)
