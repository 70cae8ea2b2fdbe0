"""SQLAlchemy-backed stash store.

Stashed sessions are kept in the ``sso_stash`` table with an absolute
expiry. Expired rows are never returned and are purged on write.
"""

import json
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .exceptions import ServerError
from .stores import Clock, utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()


class StashRecord(Base):
    """Stashed session row.

    Attributes:
        id: Opaque stash identifier
        attributes: JSON-encoded {AccessToken, RefreshToken, Profile}
        date_inserted: When the row was created (UTC)
        date_expires: Absolute expiry (UTC)
    """

    __tablename__ = "sso_stash"

    id = Column(String(64), primary_key=True)
    attributes = Column(Text, nullable=False)
    date_inserted = Column(DateTime, nullable=False)
    date_expires = Column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<StashRecord(id={self.id}, date_expires={self.date_expires})>"


def _naive_utc(moment: datetime) -> datetime:
    """Convert to naive UTC for storage in SQLite DateTime columns."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def create_stash_engine(database_path: str) -> Engine:
    """Create an engine for a SQLite stash database, creating its directory."""
    if database_path == ":memory:":
        from sqlalchemy.pool import StaticPool

        return create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    db_path = Path(os.path.expanduser(database_path))
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )


class SqlStashStore:
    """Stash store persisted with SQLAlchemy."""

    def __init__(self, engine: Engine, clock: Clock = utcnow):
        """
        Initialize the store and create its table.

        Args:
            engine: SQLAlchemy engine
            clock: Source of the current time
        """
        self.engine = engine
        self.clock = clock
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(bind=engine)
        logger.debug(f"SqlStashStore initialized on {engine.url}")

    def put(self, record: Mapping[str, Any], ttl: int) -> str:
        """
        Stash a record.

        Args:
            record: {AccessToken, RefreshToken, Profile}
            ttl: Lifetime in seconds

        Returns:
            Stash identifier

        Raises:
            ServerError: If the record cannot be written
        """
        stash_id = secrets.token_urlsafe(24)
        now = _naive_utc(self.clock())

        session = self._session_factory()
        try:
            session.query(StashRecord).filter(StashRecord.date_expires <= now).delete()
            session.add(
                StashRecord(
                    id=stash_id,
                    attributes=json.dumps(dict(record)),
                    date_inserted=now,
                    date_expires=now + timedelta(seconds=ttl),
                )
            )
            session.commit()
        except (SQLAlchemyError, TypeError) as e:
            session.rollback()
            logger.error(f"Failed to stash session: {e}")
            raise ServerError(f"Failed to stash session: {e}") from e
        finally:
            session.close()

        return stash_id

    def get_and_keep(self, stash_id: str) -> Optional[dict[str, Any]]:
        """
        Read a stashed record without deleting it.

        Returns:
            The record, or None if absent or expired
        """
        now = _naive_utc(self.clock())

        session = self._session_factory()
        try:
            row = (
                session.query(StashRecord)
                .filter(StashRecord.id == stash_id, StashRecord.date_expires > now)
                .first()
            )
            if row is None:
                return None
            return json.loads(row.attributes)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read stashed session: {e}")
            raise ServerError(f"Failed to read stashed session: {e}") from e
        finally:
            session.close()
