from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from stocktrack.config import settings


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # writers queue on the database lock instead of failing fast
        connect_args["timeout"] = 30
    return create_engine(url, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with values read back from SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Sessions for work that outlives a single request session (imports, cleanup)."""
    return SessionLocal


def import_models():
    # Import all models so Base.metadata knows about them
    import stocktrack.models.audit_log  # noqa: F401
    import stocktrack.models.cleanup_log  # noqa: F401
    import stocktrack.models.inset  # noqa: F401
    import stocktrack.models.inventory  # noqa: F401
    import stocktrack.models.metadata  # noqa: F401
    import stocktrack.models.outset  # noqa: F401
    import stocktrack.models.user  # noqa: F401


def init_db(bind=None):
    import_models()
    Base.metadata.create_all(bind=bind or engine)
