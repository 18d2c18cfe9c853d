from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from flowforge.core.config import settings
from flowforge.data import models  # noqa: F401 registers tables on SQLModel.metadata


logger = logging.getLogger(__name__)

_engine = create_engine(settings.database_url, echo=False, future=True)


def init_db(engine: Optional[Engine] = None) -> None:
    """Idempotently ensure all tables exist and match the model schema. If missing, create. If mismatched, error."""
    engine = engine or _engine
    inspector = inspect(engine)
    required_tables = set(SQLModel.metadata.tables.keys())
    existing_tables = set(inspector.get_table_names())

    missing = required_tables - existing_tables
    if missing:
        logger.info("Creating missing tables: %s", sorted(missing))
        SQLModel.metadata.create_all(engine)
        return

    # Check schema for each table
    for table_name, model_table in SQLModel.metadata.tables.items():
        db_columns = {col["name"] for col in inspector.get_columns(table_name)}
        model_columns = set(model_table.columns.keys())
        if db_columns != model_columns:
            logger.error(
                "Schema mismatch for table '%s': DB columns %s vs Model columns %s",
                table_name,
                sorted(db_columns),
                sorted(model_columns),
            )
            raise RuntimeError(f"Database schema mismatch for table '{table_name}'. Please recreate the database.")


@contextmanager
def session_scope(engine: Optional[Engine] = None) -> Iterator[Session]:
    """Provide a transactional scope for database operations."""

    session = Session(engine or _engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_engine() -> Engine:
    """Return the shared SQLModel engine instance."""
    return _engine
