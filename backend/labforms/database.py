"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` and provides small helpers used by services,
scripts and tests. SQLite connections get foreign key enforcement turned
on so cascades and link rows behave the same as on a server database.
"""

import logging

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from .config import settings

logger = logging.getLogger("labforms.db")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, **kwargs):
    """Create an engine for `url`.

    Extra keyword arguments are passed to `create_engine` (tests use this
    to hand in a `StaticPool` for in-memory SQLite).
    """
    kwargs.setdefault("echo", settings.SQL_ECHO)
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args = kwargs.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
    eng = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
    return eng


engine = make_engine(settings.DATABASE_URL)


def create_db_and_tables(bind=None):
    """Create database tables using SQLModel metadata.

    Intended for local development, scripts and tests; schema changes in
    a deployed database belong to a migration tool.
    """
    from . import models  # noqa: F401  registers the tables on the metadata

    target = bind if bind is not None else engine
    SQLModel.metadata.create_all(target)
    logger.info("tables ensured on %s", target.url.render_as_string(hide_password=True))


def get_session():
    """Yield a database `Session` scoped to one unit of work.

    The generator yields a session and ensures it is closed when the
    caller's scope finishes.
    """
    with Session(engine) as session:
        yield session
