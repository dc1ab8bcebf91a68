"""adcache — Database Engine & Session Factory."""

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from adcache.config import settings
from adcache.core.logging import get_logger

# Registers the tables on SQLModel.metadata
from adcache.models import records  # noqa: F401

logger = get_logger("database")

db_url = settings.effective_database_url


def _mask_url(url: str) -> str:
    """Hide the password of a server URL for logging."""
    scheme, sep, rest = url.partition("//")
    credentials, at, host = rest.rpartition("@")
    if not at or ":" not in credentials:
        return url
    user = credentials.split(":", 1)[0]
    return f"{scheme}{sep}{user}:****@{host}"


def engine_options(url: str) -> dict:
    """Engine kwargs per backend; SQLite is shared across threads, servers get a pool."""
    if url.startswith("sqlite"):
        logger.info(f"📦 Database backend: SQLite ({url})")
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    logger.info(f"🐘 Database backend: PostgreSQL ({_mask_url(url)})")
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }


engine = create_engine(db_url, **engine_options(db_url))


def test_connection() -> bool:
    """Test the database connection with SELECT 1."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            conn.commit()
        logger.info("✅ Database connection test: SUCCESS")
        return True
    except SQLAlchemyError as e:
        logger.error(f"❌ Database connection test: FAILED: {e}")
        return False


def init_db() -> None:
    """Create all tables."""
    logger.info("🔨 Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("✅ Database tables ready")


def session_factory() -> Session:
    """New session; loaded objects stay readable after commit."""
    return Session(engine, expire_on_commit=False)
