"""
Database Configuration and Session Management
"""

from sqlalchemy import create_engine, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import settings
import structlog

logger = structlog.get_logger(__name__)

# Create SQLAlchemy engine
engine = None
SessionLocal = None

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def init_db():
    """Initialize database connection"""
    global engine, SessionLocal

    if not settings.database_url:
        logger.warning("database_not_configured", detail="DATABASE_URL missing - database features disabled")
        return

    db_url = settings.database_url
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)

    logger.info("database_connecting")
    engine = create_engine(
        db_url,
        pool_pre_ping=True,  # Verify connections before using them
        pool_size=5,
        max_overflow=10
    )

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("database_connected")


def get_db():
    """
    Dependency for getting database session
    Usage: db: Session = Depends(get_db)

    Yields None if PostgreSQL is not configured; routers answer 503 in that case.
    """
    if SessionLocal is None:
        logger.warning("database_session_unavailable")
        yield None
        return

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Base class for all models
Base = declarative_base()
