from .user_controller import user_router
