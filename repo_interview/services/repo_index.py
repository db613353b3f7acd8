# repo_interview/services/repo_index.py

"""
Lifecycle of the RepoIndex record.

    pending -> indexing -> ready | failed
    ready   -> indexing        (explicit re-trigger)
    failed  -> indexing        (explicit re-trigger, never automatic)

Entering `indexing` is a compare-and-swap on the current status so two
triggers for the same submission cannot both run the pipeline.
"""

import traceback
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from repo_interview.errors import (
    IndexingInProgressError,
    InvalidStatusTransitionError,
    NotIndexedError,
)
from repo_interview.models import RepoIndex
from repo_interview.utils.logging import logger


class IndexStatus(str, Enum):
    PENDING = "pending"
    INDEXING = "indexing"
    READY = "ready"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    IndexStatus.PENDING: {IndexStatus.INDEXING},
    IndexStatus.INDEXING: {IndexStatus.READY, IndexStatus.FAILED},
    IndexStatus.READY: {IndexStatus.INDEXING},
    IndexStatus.FAILED: {IndexStatus.INDEXING},
}


def check_transition(current: str, target: str) -> None:
    if IndexStatus(target) not in ALLOWED_TRANSITIONS[IndexStatus(current)]:
        raise InvalidStatusTransitionError(current, target)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_current_index(db: Session, submission_id: str) -> RepoIndex | None:
    """Latest non-superseded record for the submission."""
    return db.execute(
        select(RepoIndex)
        .where(RepoIndex.submission_id == submission_id, RepoIndex.superseded_at.is_(None))
        .order_by(RepoIndex.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def get_index_for_commit(db: Session, submission_id: str, pinned_commit_sha: str) -> RepoIndex | None:
    return db.execute(
        select(RepoIndex).where(
            RepoIndex.submission_id == submission_id,
            RepoIndex.pinned_commit_sha == pinned_commit_sha,
        )
    ).scalar_one_or_none()


def supersede_other_commits(db: Session, submission_id: str, pinned_commit_sha: str) -> int:
    result = db.execute(
        update(RepoIndex)
        .where(
            RepoIndex.submission_id == submission_id,
            RepoIndex.pinned_commit_sha != pinned_commit_sha,
            RepoIndex.superseded_at.is_(None),
        )
        .values(superseded_at=_utcnow())
    )
    db.commit()
    return result.rowcount or 0


def claim_for_indexing(db: Session, record: RepoIndex) -> None:
    """Atomically move `record` into `indexing`, resetting stats and error."""
    expected = record.status
    if expected == IndexStatus.INDEXING.value:
        raise IndexingInProgressError(record.submission_id)
    check_transition(expected, IndexStatus.INDEXING.value)

    result = db.execute(
        update(RepoIndex)
        .where(RepoIndex.id == record.id, RepoIndex.status == expected)
        .values(
            status=IndexStatus.INDEXING.value,
            file_count=0,
            chunk_count=0,
            total_chars=0,
            files_skipped=0,
            error_message=None,
            error_detail=None,
            error_at=None,
            superseded_at=None,
            updated_at=_utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        logger.warning(
            f"Lost indexing claim for submission {record.submission_id}: status changed from '{expected}'"
        )
        raise IndexingInProgressError(record.submission_id)
    db.refresh(record)


def mark_ready(db: Session, record: RepoIndex, file_count: int, chunk_count: int, total_chars: int, files_skipped: int) -> None:
    check_transition(record.status, IndexStatus.READY.value)
    record.status = IndexStatus.READY.value
    record.file_count = file_count
    record.chunk_count = chunk_count
    record.total_chars = total_chars
    record.files_skipped = files_skipped
    record.error_message = None
    record.error_detail = None
    record.error_at = None
    db.commit()


def mark_failed(db: Session, record: RepoIndex, exc: BaseException) -> None:
    db.rollback()
    db.refresh(record)
    check_transition(record.status, IndexStatus.FAILED.value)
    record.status = IndexStatus.FAILED.value
    record.error_message = str(exc) or exc.__class__.__name__
    record.error_detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    record.error_at = _utcnow()
    db.commit()


def require_ready(db: Session, submission_id: str) -> RepoIndex:
    record = get_current_index(db, submission_id)
    if record is None:
        raise NotIndexedError(NotIndexedError.NOT_INDEXED)
    if record.status in (IndexStatus.PENDING.value, IndexStatus.INDEXING.value):
        raise NotIndexedError(NotIndexedError.IN_PROGRESS)
    if record.status == IndexStatus.FAILED.value:
        raise NotIndexedError(NotIndexedError.FAILED)
    return record
