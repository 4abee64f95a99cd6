from .api_router import CommonRouter, get_current_user
from .open_router import OpenRouter
