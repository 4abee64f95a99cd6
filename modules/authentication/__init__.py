from .auth_controller import auth_router
from .auth_service import AuthService
