from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from bookshare.config import settings


def build_engine(url: str, **kwargs) -> Engine:
    """
    Engine for ``url``. Postgres connections are health-checked and recycled
    every 30 minutes; SQLite (tests, local runs) may be shared across threads.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_recycle", 1800)
    return create_engine(url, echo=False, **kwargs)


engine = build_engine(settings.database_url)


def create_db_and_tables():
    from bookshare import models  # noqa: F401  (registers every table)
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
