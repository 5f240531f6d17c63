"""Database session management."""

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from climarisk_api.settings import get_settings

settings = get_settings()


def engine_options(database_url: str, pool_size: int, max_overflow: int) -> dict:
    """create_engine keyword arguments for the backend named by ``database_url``."""
    if make_url(database_url).get_backend_name() == "sqlite":
        # Sessions are handed across FastAPI's threadpool
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": pool_size, "max_overflow": max_overflow}


engine = create_engine(
    settings.database_url_computed,
    **engine_options(settings.database_url_computed, pool_size=10, max_overflow=20),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
