import os

# The settings are read at import time by the database and limiter modules,
# so the environment has to be in place before anything from the app is imported.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-signing-secret-0123456789"
os.environ["SMS_PROVIDER"] = "log"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PIN_HASH_TIME_COST"] = "1"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from context_manager.context import context_db_session
from database.db import DBBase, SessionLocal, db_engine
from modules.authentication.auth_service import AuthService
from modules.sms import LoggingSMSSender
from utils.jwt_token_handler import TokenIssuer

import models  # noqa: F401  registers the mapped classes


TEST_JWT_SECRET = os.environ["JWT_SECRET"]
MOBILE = "9876543210"
CANONICAL_MOBILE = "+919876543210"


@pytest.fixture
def db_session():
    """Fresh schema and a session bound to the request context."""
    DBBase.metadata.create_all(bind=db_engine)
    session = SessionLocal()
    token = context_db_session.set(session)

    yield session

    context_db_session.reset(token)
    session.rollback()
    session.close()
    DBBase.metadata.drop_all(bind=db_engine)


@pytest.fixture
def token_issuer():
    return TokenIssuer(secret=TEST_JWT_SECRET)


@pytest.fixture
def sms_sender():
    return LoggingSMSSender()


@pytest.fixture
def auth_service(db_session, token_issuer, sms_sender):
    return AuthService(token_issuer=token_issuer, sms_sender=sms_sender)


@pytest.fixture
def registered_user(auth_service, sms_sender):
    """A verified user with PIN 4826, registered through the OTP flow."""
    auth_service.send_otp(MOBILE)
    code = sms_sender.last_code_for(CANONICAL_MOBILE)
    response = auth_service.verify_otp(MOBILE, code, name="Asha Rao", pin="4826")
    assert response.status, response.message
    return response.data.user
