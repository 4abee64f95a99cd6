"""
Database Configuration Module

Connection Pooling Strategy:
- PostgreSQL: pool_size=10, max_overflow=10, pre-ping and hourly recycle
- SQLite (local runs and tests): a single shared connection (StaticPool)

Every request gets its own session from `get_db`; the session is committed
when the request finishes and rolled back if the request raised.
"""

import uuid as uuid
from datetime import datetime

from pytz import timezone

from sqlalchemy import Column, DateTime, Boolean, Integer, Uuid, create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from config import get_settings
from logger import logging


# ============================================
# CONNECTION POOL SETTINGS
# ============================================

POOL_CONFIG = {
    # Base pool size - always maintain this many connections
    "pool_size": 10,
    # Additional connections allowed during login bursts
    "max_overflow": 10,
    # Timeout waiting for a connection from pool (seconds)
    "pool_timeout": 30,
    # Test connection health before using (handles stale connections)
    "pool_pre_ping": True,
    # Recycle connections after 60 minutes
    "pool_recycle": 3600,
    "echo": False,
    "poolclass": QueuePool,
}

SQLITE_CONFIG = {
    "connect_args": {"check_same_thread": False},
    "poolclass": StaticPool,
    "echo": False,
}


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return SQLITE_CONFIG
    return POOL_CONFIG


CORE_SQLALCHEMY_DATABASE_URI = get_settings().database_url

db_engine = create_engine(
    CORE_SQLALCHEMY_DATABASE_URI,
    **_engine_options(CORE_SQLALCHEMY_DATABASE_URI),
)

# ============================================
# SESSION CONFIGURATION
# ============================================

SessionLocal = sessionmaker(
    autoflush=False,  # Manual flush for better control
    bind=db_engine,
    expire_on_commit=False,  # Prevent attribute expiration on commit
)

# Timezone configuration
UTC = timezone("UTC")


def time_now():
    """Get current UTC time"""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the database as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ============================================
# CONNECTION POOL MONITORING
# ============================================

@event.listens_for(db_engine, "checkout")
def receive_checkout(dbapi_connection, connection_record, connection_proxy):
    """Log when connection is checked out from pool"""
    logging.debug("Connection checked out from pool")


@event.listens_for(db_engine, "checkin")
def receive_checkin(dbapi_connection, connection_record):
    """Log when connection is returned to pool"""
    logging.debug("Connection returned to pool")


# ============================================
# DECLARATIVE BASE
# ============================================

DBBase = declarative_base()


def init_models():
    """Create missing tables. Schema migrations are managed outside the service."""
    import models  # noqa: F401  registers the mapped classes

    DBBase.metadata.create_all(bind=db_engine)
    logging.info("Database tables ensured")


# ============================================
# SESSION MANAGEMENT
# ============================================

def get_db():
    """
    Generator function for database session dependency injection.

    Handles:
    - Session creation
    - Automatic commit on success
    - Rollback on error
    - Session cleanup
    """
    db: Session = SessionLocal()
    try:
        logging.debug("DB session created")
        yield db

        logging.debug("Committing DB session")
        db.commit()

    except Exception as e:
        logging.error(f"DB session error: {e}")
        db.rollback()
        raise
    finally:
        logging.debug("Closing DB session")
        db.close()


# ============================================
# BASE MODEL CLASS
# ============================================

class DBBaseClass:
    """
    Base class for all database models.

    Provides:
    - Auto-incrementing primary key (id)
    - UUID for external references
    - Created/updated timestamps
    - Soft delete flag
    - Common query methods
    """

    id = Column(Integer, primary_key=True, unique=True, autoincrement=True)

    # UUID for external API references (don't expose internal IDs)
    uuid = Column(Uuid(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=time_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=time_now,
        onupdate=time_now,
        nullable=False,
    )

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    @classmethod
    def get_by_id(cls, id):
        """Get record by ID"""
        from context_manager.context import get_db_session
        db: Session = get_db_session()
        return db.query(cls).filter(cls.id == id, cls.is_deleted.is_(False)).first()
