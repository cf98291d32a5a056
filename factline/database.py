"""Factline — Database Engine & Session Factory.

SQLite is the default store; any SQLAlchemy URL (e.g. PostgreSQL) works
through ``DATABASE_URL``.
"""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlmodel import SQLModel, Session, create_engine

from factline.config import settings
from factline.core.logging import get_logger

logger = get_logger("database")


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sync passes write from the event loop while reads run in the threadpool
        return {"echo": False, "connect_args": {"check_same_thread": False}}
    return {
        "echo": False,
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
    }


def _safe_url(url: str) -> str:
    """Render the URL with its password hidden."""
    return make_url(url).render_as_string(hide_password=True)


db_url = settings.effective_database_url
engine = create_engine(db_url, **_engine_options(db_url))
logger.info(f"📦 Database engine created ({engine.dialect.name}): {_safe_url(db_url)}")


def test_connection() -> bool:
    """True when the store answers ``SELECT 1``."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Database unreachable: {e}")
        return False
    logger.info("✅ Database reachable")
    return True


def init_db() -> None:
    """Create the store tables and their indices if missing."""
    from factline.models import store_models  # noqa: F401  (registers tables)

    SQLModel.metadata.create_all(engine)
    logger.info("✅ Store tables ready")


def new_session() -> Session:
    """Standalone session for sync passes."""
    return Session(engine)


def get_session():
    """Request-scoped session dependency."""
    with Session(engine) as session:
        yield session
