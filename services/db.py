from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from config import DB_URL
from models.base import Base


def _engine_options(url: str) -> dict:
    """SQLite needs cross-thread access; in-memory databases share one connection."""
    if not url.startswith("sqlite"):
        return {}
    options = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(DB_URL, **_engine_options(DB_URL))
SessionLocal = sessionmaker(bind=engine)

def init_db():
    """Create all tables in the database."""
    # Models must be imported so their tables are registered on Base.metadata
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)

def drop_db():
    """Drop all tables (used by tests and the reset command)."""
    import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
