"""Database session for worker."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from climarisk_api.db.session import engine_options
from climarisk_worker.settings import get_settings

settings = get_settings()

# One decision cycle per process at a time, so a small pool is enough
engine = create_engine(
    settings.database_url_computed,
    **engine_options(settings.database_url_computed, pool_size=5, max_overflow=10),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
