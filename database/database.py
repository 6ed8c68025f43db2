from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with pooling suited to the database backend."""
    if "sqlite" in database_url:
        # SQLite connections are shared between request threads
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool
        )
    # For production databases, use connection pooling
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True
    )


def init_db(bind: Engine):
    """Initialize database and create all tables."""
    from .models import Base
    Base.metadata.create_all(bind)
