"""Database session management"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from reelflow.core.config import settings
from reelflow.models.base import Base


def _engine_options(url: str) -> dict:
    # SQLite (local runs, tests) is shared across the request threadpool
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


# Create engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables for every registered model"""
    import reelflow.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
