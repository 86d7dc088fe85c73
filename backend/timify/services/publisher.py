from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timify.core.exceptions import (
    AppError,
    ConcurrentCatalogChange,
    PersistenceError,
    ResourceNotFoundError,
    SchedulerError,
)
from timify.models.timetable import Timetable, TimetableStatus
from timify.models.user import User
from timify.services.audit import log_activity
from timify.services.constraints import Placement
from timify.services.repository import TimetableMeta, TimetableRepository

logger = logging.getLogger(__name__)


class TimetablePublisher:
    """Moves assignment sets into persisted timetables.

    Each public method is one unit of work: it commits on success and rolls
    back everything it staged on failure, so the previously published
    timetable stays authoritative.
    """

    def __init__(self, db: Session, repository: TimetableRepository | None = None) -> None:
        self.db = db
        self.repository = repository or TimetableRepository(db)

    def publish(self, assignments: list[Placement], meta: TimetableMeta, *, user: User | None = None) -> str:
        def write() -> Timetable:
            self._check_version(meta.catalog_version)
            archived = self.repository.archive_published()
            timetable = self.repository.insert_timetable(meta, assignments, TimetableStatus.published)
            log_activity(
                self.db,
                user=user,
                action="timetable.publish",
                entity_type="timetable",
                entity_id=timetable.id,
                details={"slots": len(assignments), "archived": archived, "catalog_version": meta.catalog_version},
            )
            return timetable

        timetable = self._commit(write, action="publish")
        logger.info(
            "TIMETABLE PUBLISHED | timetable_id=%s | slots=%s | catalog_version=%s",
            timetable.id,
            len(assignments),
            meta.catalog_version,
        )
        return timetable.id

    def save_draft(self, assignments: list[Placement], meta: TimetableMeta, *, user: User | None = None) -> str:
        def write() -> Timetable:
            timetable = self.repository.insert_timetable(meta, assignments, TimetableStatus.draft)
            log_activity(
                self.db,
                user=user,
                action="timetable.draft",
                entity_type="timetable",
                entity_id=timetable.id,
                details={"slots": len(assignments), "catalog_version": meta.catalog_version},
            )
            return timetable

        timetable = self._commit(write, action="draft")
        logger.info("TIMETABLE DRAFT SAVED | timetable_id=%s | slots=%s", timetable.id, len(assignments))
        return timetable.id

    def publish_draft(self, timetable_id: str, *, user: User | None = None) -> Timetable:
        def write() -> Timetable:
            timetable = self.repository.get_timetable(timetable_id)
            if timetable is None:
                raise ResourceNotFoundError("Timetable", timetable_id)
            if timetable.status != TimetableStatus.draft:
                raise SchedulerError(
                    "Only draft timetables can be published",
                    details={"status": timetable.status.value},
                )
            self._check_version(timetable.catalog_version)
            archived = self.repository.archive_published()
            timetable.status = TimetableStatus.published
            timetable.published_at = datetime.now(timezone.utc)
            self.db.flush()
            log_activity(
                self.db,
                user=user,
                action="timetable.publish",
                entity_type="timetable",
                entity_id=timetable.id,
                details={"archived": archived, "from_draft": True},
            )
            return timetable

        timetable = self._commit(write, action="publish_draft")
        logger.info("TIMETABLE PUBLISHED | timetable_id=%s | from_draft=true", timetable.id)
        return timetable

    def _check_version(self, expected: int) -> None:
        current = self.repository.catalog_version(lock=True)
        if current != expected:
            raise ConcurrentCatalogChange(expected, current)

    def _commit(self, write, *, action: str) -> Timetable:
        try:
            timetable = write()
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("TIMETABLE WRITE FAILED | action=%s", action)
            raise PersistenceError(
                "Timetable could not be saved; the previous published timetable is unchanged",
                details={"action": action},
            ) from exc
        self.db.refresh(timetable)
        return timetable
