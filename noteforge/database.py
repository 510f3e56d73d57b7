"""Database engine setup for the snapshot store."""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLite engine backing the key-value snapshot store.

    In-memory URLs share a single connection so every session sees the
    same database.
    """
    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args=connect_args,
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def create_db_and_tables(engine: Engine) -> None:
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)

