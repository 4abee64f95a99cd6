from contextvars import ContextVar
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from logger import logger

from database.db import get_db

# defining the context variables to store different types of required data

context_db_session: ContextVar[Session] = ContextVar("db_session", default=None)
context_user_data: ContextVar[str] = ContextVar("user_data", default="")
context_request_info: ContextVar[dict] = ContextVar("request_info", default=None)


def _extract_request_info(request: Request) -> dict:
    # proxies put the original client first in X-Forwarded-For
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = "unknown"

    return {
        "ip_address": ip_address,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "endpoint": request.url.path,
    }


# whenever an api is hit, define the context variables for it
async def build_request_context(request: Request, db: Session = Depends(get_db)):
    context_db_session.set(db)
    context_request_info.set(_extract_request_info(request))
    logger.info(msg="REQUEST_INITIATED")


# get the same session everywhere
# the db session is stored in context at the time of the building request context
def get_db_session() -> Session:
    session = context_db_session.get()
    if session is None:
        raise RuntimeError("No database session bound to the current context")

    return session


def get_request_info() -> dict:
    return context_request_info.get() or {
        "ip_address": "unknown",
        "user_agent": "unknown",
        "endpoint": "unknown",
    }


def get_user_data():
    """
    Safely get user data from context.
    Returns None if context is not set or holds no authenticated user.
    """
    user_data = context_user_data.get()
    if not user_data or not hasattr(user_data, "user_id"):
        return None
    return user_data
