"""
Database connection via SQLAlchemy.

SQLite is the default (file created on first use); any SQLAlchemy URL works.
Engines are built explicitly from settings so tests can point at a
throwaway database.
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """Create an engine, preparing the SQLite directory when needed."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Store calls run in executor threads
        connect_args["check_same_thread"] = False
        db_path = database_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(database_url, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables if they don't exist."""
    from clarity.storage import tables  # noqa: F401
    Base.metadata.create_all(bind=engine)
