"""Durable local staging of captured scans."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import Engine, func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from src.database import make_engine
from src.device.config import get_device_settings
from src.device.models import PendingScan, QueueBase

logger = logging.getLogger(__name__)


class LocalScanQueue:
    """SQLite-backed queue of scans awaiting server confirmation.

    The capture path and the sync reconciler both write to it, so every
    operation runs in its own transaction.
    """

    def __init__(self, database_url: str | None = None, engine: Engine | None = None) -> None:
        self.engine = engine or make_engine(
            database_url or get_device_settings().queue_database_url
        )
        QueueBase.metadata.create_all(bind=self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def enqueue(
        self,
        url: str,
        user_id: int | None = None,
        html_snapshot: str | None = None,
    ) -> PendingScan:
        """Stage a scan, keeping one entry per URL.

        Re-scanning a queued URL keeps the first capture time and fills in
        the snapshot or user when the new capture has them.
        """
        stmt = sqlite_insert(PendingScan).values(
            url=url,
            user_id=user_id,
            html_snapshot=html_snapshot,
            captured_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PendingScan.url],
            set_={
                "user_id": func.coalesce(stmt.excluded.user_id, PendingScan.user_id),
                "html_snapshot": func.coalesce(
                    stmt.excluded.html_snapshot, PendingScan.html_snapshot
                ),
            },
        )
        with self._transaction() as session:
            session.execute(stmt)
            entry = session.query(PendingScan).filter(PendingScan.url == url).one()

        logger.info(f"Queued scan {entry.id} for {url} (user {user_id})")
        return entry

    def get(self, url: str) -> PendingScan | None:
        with self._transaction() as session:
            return session.query(PendingScan).filter(PendingScan.url == url).first()

    def list_pending(self) -> list[PendingScan]:
        """Get all queued scans, oldest capture first."""
        with self._transaction() as session:
            return (
                session.query(PendingScan)
                .order_by(PendingScan.captured_at, PendingScan.id)
                .all()
            )

    def delete_by_url(self, url: str) -> int:
        """Remove the entry for url. Returns the number of rows deleted."""
        with self._transaction() as session:
            deleted = session.query(PendingScan).filter(PendingScan.url == url).delete()

        if deleted:
            logger.info(f"Removed delivered scan {url} from queue")
        return deleted

    def count(self) -> int:
        with self._transaction() as session:
            return session.query(PendingScan).count()
