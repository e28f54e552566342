"""
Database configuration
"""
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool
from core.config import get_settings

# Create engine lazily to allow test configuration to be applied
_engine = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # file_blobs relies on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(uri: str):
    """
    Create an engine for the given URI.
    In-memory sqlite shares a single connection so every session sees the same tables.
    """
    if uri.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if uri in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(uri, echo=False, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(uri, echo=False)


def get_engine():
    """
    Get or create the database engine.
    This lazy initialization allows test settings to be applied properly.
    """
    global _engine
    if _engine is None:
        _engine = build_engine(str(get_settings().SQLALCHEMY_DATABASE_URI))
    return _engine


def reset_engine():
    """
    Reset the engine to None.
    This is useful for tests that need to switch between different settings.
    """
    global _engine
    _engine = None


def create_db_and_tables():
    # Register the table models with SQLModel.metadata
    import api.files.models  # noqa: F401
    SQLModel.metadata.create_all(get_engine())
