"""
Schema management for the local store.

Tables come from the model metadata (created with checkfirst, the equivalent
of CREATE TABLE IF NOT EXISTS). Column additions made after the first
release are expressed as forward-only migrations keyed by version and
recorded in schema_version.

A migration whose column already exists (a store created from the current
metadata already has every column) fails with "duplicate column name"; that
single failure is treated as "already applied" and recorded. Any other
failure propagates and leaves the version unrecorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError

from ..extensions import db
from ..models import SchemaVersion
from .concurrency import atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statement: str


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "Add products.user_id", "ALTER TABLE products ADD COLUMN user_id INTEGER REFERENCES users(id)"),
    Migration(2, "Add products.note", "ALTER TABLE products ADD COLUMN note TEXT"),
    Migration(3, "Add products.delivery_date", "ALTER TABLE products ADD COLUMN delivery_date TEXT"),
)


def is_duplicate_column_error(exc: OperationalError) -> bool:
    return "duplicate column name" in str(exc.orig if exc.orig is not None else exc).lower()


def current_schema_version() -> int:
    return db.session.query(func.max(SchemaVersion.version)).scalar() or 0


def list_applied_migrations() -> list[dict]:
    """Recorded migrations, oldest first."""
    rows = db.session.query(SchemaVersion).order_by(SchemaVersion.version.asc()).all()
    return [row.to_dict() for row in rows]


def _record(migration: Migration) -> None:
    with atomic():
        db.session.add(SchemaVersion(version=migration.version, description=migration.description))


def _apply_migration(migration: Migration) -> None:
    try:
        with atomic():
            db.session.execute(text(migration.statement))
            db.session.add(SchemaVersion(version=migration.version, description=migration.description))
    except OperationalError as exc:
        if not is_duplicate_column_error(exc):
            logger.error("Schema migration %d failed: %s", migration.version, migration.description)
            raise
        logger.info("Schema migration %d already present (%s)", migration.version, migration.description)
        _record(migration)
    else:
        logger.info("Applied schema migration %d: %s", migration.version, migration.description)


def apply_migrations(migrations: Iterable[Migration] = MIGRATIONS) -> int:
    """Apply pending migrations in version order; returns the resulting version."""
    current = current_schema_version()
    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= current:
            continue
        _apply_migration(migration)
    return current_schema_version()


def init_schema(migrations: Iterable[Migration] = MIGRATIONS) -> int:
    """Create missing tables, then bring the schema up to the latest version."""
    db.create_all()
    version = apply_migrations(migrations)
    logger.debug("Schema ready at version %d", version)
    return version


def reset_schema(migrations: Iterable[Migration] = MIGRATIONS) -> int:
    """DEV/TEST only: drop every table and rebuild from scratch."""
    db.session.remove()
    db.drop_all()
    return init_schema(migrations)
