"""
Database handle and migration helpers.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, sessionmaker

import chatgate.config as config
from chatgate.errors import StorageError


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _ensure_sqlite_directory(database_url: str) -> None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return
    path = database_url[len(prefix):]
    if not path or path == ":memory:":
        return
    Path(path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def create_store_engine(database_url: str) -> Engine:
    engine_kwargs = {"pool_pre_ping": True}
    is_sqlite = database_url.lower().startswith("sqlite")
    if is_sqlite:
        _ensure_sqlite_directory(database_url)
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class Store:
    """Explicit database handle (engine + session factory), passed to each component."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "Store":
        return cls(create_store_engine(database_url))

    @contextmanager
    def transaction(self) -> Iterator[DBSession]:
        """Yield an ORM session; commit on success, roll back on any failure."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(str(exc)) from exc
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    def dispose(self) -> None:
        self.engine.dispose()


def _get_alembic_config(database_url: str):
    try:
        from alembic.config import Config
    except ImportError as exc:
        raise RuntimeError("Alembic is required for migrations") from exc

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    alembic_cfg = Config(os.path.join(base_dir, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(base_dir, "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    return alembic_cfg


def get_schema_revisions(engine: Engine) -> tuple[Optional[str], Optional[str]]:
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    alembic_cfg = _get_alembic_config(engine.url.render_as_string(hide_password=False))
    script = ScriptDirectory.from_config(alembic_cfg)
    head_revision = script.get_current_head()
    with engine.connect() as conn:
        context = MigrationContext.configure(conn)
        current_revision = context.get_current_revision()
    return current_revision, head_revision


def ensure_schema_up_to_date(engine: Engine, auto_migrate: bool) -> None:
    from alembic import command

    current_rev, head_rev = get_schema_revisions(engine)
    if current_rev == head_rev:
        return

    if auto_migrate:
        config.logger.info(
            "Applying migrations",
            extra={"current_revision": current_rev, "head_revision": head_rev},
        )
        alembic_cfg = _get_alembic_config(engine.url.render_as_string(hide_password=False))
        command.upgrade(alembic_cfg, "head")
        new_current, _ = get_schema_revisions(engine)
        if new_current != head_rev:
            raise RuntimeError("Database migration did not reach expected revision")
    else:
        raise RuntimeError(
            f"Database schema out of date (current={current_rev}, expected={head_rev}). "
            "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true for dev."
        )


def init_store(database_url: Optional[str] = None) -> Store:
    """Validate config, connect, and bring the schema up to date."""
    config.validate_and_prepare_config()
    url = database_url or config.DATABASE_URL

    config.logger.info("Connecting to database...")
    store = Store.from_url(url)
    ensure_schema_up_to_date(store.engine, config.AUTO_MIGRATE_ON_STARTUP)
    config.logger.info("Database initialized")
    return store


@contextmanager
def open_store(database_url: Optional[str] = None) -> Iterator[Store]:
    """Scoped store lifecycle: created once at start, disposed once at shutdown."""
    store = init_store(database_url)
    try:
        yield store
    finally:
        store.dispose()
        config.logger.info("Database closed")
