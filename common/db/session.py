from contextlib import contextmanager
import os
from pathlib import Path
from typing import Callable, ContextManager, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/orders.db")

SessionFactory = Callable[[], ContextManager[Session]]


def build_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        # one engine is shared by request threads and feed dispatchers
        connect_args["check_same_thread"] = False
        if url.startswith("sqlite:///") and ":memory:" not in url:
            db_path = url.split("sqlite:///")[-1]
            # ensure the parent directory exists to avoid 'unable to open database file'
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, future=True, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create tables (idempotent)."""
    from ..models.base import Base
    from ..models import order  # noqa: F401

    Base.metadata.create_all(bind=engine)


def build_session_factory(engine: Engine) -> SessionFactory:
    maker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def get_session():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return get_session
