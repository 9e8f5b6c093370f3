from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vsanlab.config import DATABASE_URL
from vsanlab.models import Base


def build_engine(url: str = DATABASE_URL) -> Engine:
    """
    Create the state-store engine.

    The default URL is an in-memory SQLite database: lab state lives only as
    long as the process. StaticPool keeps the single connection alive so the
    in-memory schema survives across sessions.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=True, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
