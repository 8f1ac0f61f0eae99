"""Durable nullifier store backed by SQLAlchemy."""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from voile.crypto.nullifier import NullifierRecord, NullifierStore, validate_nullifier
from voile.exceptions import NullifierPersistenceError
from voile.storage.database import DatabaseManager, get_db_manager
from voile.utils.encoding import short_hex

logger = logging.getLogger(__name__)


class SQLNullifierStore(NullifierStore):
    """
    Nullifier set persisted in a relational database.

    The unique constraint on ``nullifier_hash`` makes inserts linearizable
    across processes sharing the database: a concurrent duplicate insert
    fails with IntegrityError and is reported as "already present".
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.db_manager.create_tables()

    def add(self, nullifier: bytes) -> bool:
        nullifier = validate_nullifier(nullifier)
        with self.db_manager.get_session() as session:
            try:
                self.db_manager.add_spent_nullifier(session, nullifier)
                return True
            except IntegrityError:
                session.rollback()
                logger.debug(f"Nullifier {short_hex(nullifier)} already recorded")
                return False
            except SQLAlchemyError as e:
                session.rollback()
                raise NullifierPersistenceError(f"Failed to record nullifier: {e}") from e

    def contains(self, nullifier: bytes) -> bool:
        with self.db_manager.get_session() as session:
            try:
                return self.db_manager.is_nullifier_spent(session, bytes(nullifier))
            except SQLAlchemyError as e:
                raise NullifierPersistenceError(f"Failed to query nullifier: {e}") from e

    def get_record(self, nullifier: bytes) -> Optional[NullifierRecord]:
        with self.db_manager.get_session() as session:
            try:
                row = self.db_manager.get_spent_nullifier(session, bytes(nullifier))
            except SQLAlchemyError as e:
                raise NullifierPersistenceError(f"Failed to query nullifier: {e}") from e
            if row is None:
                return None
            return NullifierRecord(nullifier=row.nullifier_hash, spent_at=row.spent_at)

    def __len__(self) -> int:
        with self.db_manager.get_session() as session:
            try:
                return self.db_manager.count_spent_nullifiers(session)
            except SQLAlchemyError as e:
                raise NullifierPersistenceError(f"Failed to count nullifiers: {e}") from e
