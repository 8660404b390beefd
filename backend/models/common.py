"""Common database utilities"""

from contextlib import contextmanager
from typing import Generator

from sqlmodel import create_engine, Session

import logging

logger = logging.getLogger("friendgraph.db")


def get_engine():  # pragma: no cover
    from settings import DATABASE_URL

    return create_engine(DATABASE_URL)


@contextmanager
def get_db(engine) -> Generator[Session, None, None]:
    """Context manager for a short-lived database session"""
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
    except Exception as e:
        logger.debug(f"Exception in the database session rolling back - {e}")
        session.rollback()
        raise
    finally:
        session.close()


def parse_bool(bool_str: str | bool):
    if isinstance(bool_str, str):
        return bool_str.lower() in ("true", "1")
    return bool(bool_str)
