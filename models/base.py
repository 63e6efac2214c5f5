# models/base.py
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from contextlib import contextmanager
import os


class Base(DeclarativeBase):
    pass


def make_engine_from_env():
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    return make_engine(url)


def make_engine(url: str):
    kwargs = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # Flask's dev server and test client may hop threads
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(url, **kwargs)


# Private globals
_Engine = None
_SessionFactory = None


def init_engine_and_session():
    """Idempotently init engine + session factory and return them."""
    global _Engine, _SessionFactory
    if _Engine is None:
        _Engine = make_engine_from_env()
        _SessionFactory = sessionmaker(
            bind=_Engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,  # prevents DetachedInstanceError after commit
        )
    return _Engine, _SessionFactory


def SessionLocal():
    """Return a new Session bound to the current engine."""
    _, factory = init_engine_and_session()
    return factory()


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations."""
    s = SessionLocal()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
