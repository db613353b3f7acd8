# repo_interview/services/indexing.py

"""
Indexing pipeline: snapshot -> chunk -> embed -> upsert -> mark ready.

This module is the single place where a pipeline exception becomes a
`failed` RepoIndex. Temporary snapshot files are removed on every path.
"""

from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from repo_interview.config import settings
from repo_interview.errors import (
    EmptyRepositoryError,
    IndexingInProgressError,
    RepoNotFinalizedError,
    SubmissionNotFoundError,
)
from repo_interview.models import RepoIndex, Submission
from repo_interview.services import repo_index as lifecycle
from repo_interview.services.chunker import Chunker
from repo_interview.services.embeddings import embedding_text
from repo_interview.services.snapshot import SnapshotFetcher, open_snapshot
from repo_interview.services.vector_store import VectorRecord, namespace_for
from repo_interview.utils.logging import logger


@dataclass
class IndexingResult:
    status: str
    chunk_count: int = 0
    file_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        body = {"status": self.status, "chunkCount": self.chunk_count, "fileCount": self.file_count}
        if self.error:
            body["error"] = self.error
        return body


class IndexingPipeline:
    def __init__(
        self,
        db: Session,
        embedder,
        store,
        fetcher: SnapshotFetcher | None = None,
        chunker: Chunker | None = None,
        index_name: str | None = None,
        after_ready: Callable[[str], None] | None = None,
    ):
        self.db = db
        self.embedder = embedder
        self.store = store
        self.fetcher = fetcher or SnapshotFetcher()
        self.chunker = chunker or Chunker()
        self.index_name = index_name or settings.vector_index_name
        self.after_ready = after_ready

    def _load_submission(self, submission_id: str):
        submission = self.db.get(Submission, submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        ref = submission.github_ref
        if ref is None:
            raise RepoNotFinalizedError(submission_id)
        return submission, ref

    def prepare_record(self, submission_id: str, ref):
        """
        Find or create the record for the pinned commit. When the submission
        has moved to a new commit the old namespace is purged first.

        Returns (record, purged); a purged namespace must be rebuilt even if
        the record for this commit was ready before.
        """
        purged = False
        current = lifecycle.get_current_index(self.db, submission_id)
        if current is not None and current.pinned_commit_sha != ref.pinned_commit_sha:
            if current.status == lifecycle.IndexStatus.INDEXING.value:
                raise IndexingInProgressError(submission_id)
            logger.info(
                f"Submission {submission_id} moved from {current.pinned_commit_sha[:7]} to "
                f"{ref.pinned_commit_sha[:7]}; purging namespace {current.vector_namespace}"
            )
            self.store.delete_namespace(current.vector_index_name, current.vector_namespace)
            lifecycle.supersede_other_commits(self.db, submission_id, ref.pinned_commit_sha)
            purged = True

        record = lifecycle.get_index_for_commit(self.db, submission_id, ref.pinned_commit_sha)
        if record is not None:
            return record, purged

        record = RepoIndex(
            submission_id=submission_id,
            owner=ref.owner,
            repo=ref.repo,
            pinned_commit_sha=ref.pinned_commit_sha,
            status=lifecycle.IndexStatus.PENDING.value,
            vector_index_name=self.index_name,
            vector_namespace=namespace_for(submission_id),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # Another trigger created it first
            self.db.rollback()
            raise IndexingInProgressError(submission_id)
        return record, purged

    def run(self, submission_id: str, force: bool = False) -> IndexingResult:
        _, ref = self._load_submission(submission_id)
        record, purged = self.prepare_record(submission_id, ref)

        reusable = (
            record.status == lifecycle.IndexStatus.READY.value
            and record.superseded_at is None
            and not purged
        )
        if reusable and not force:
            logger.info(f"Submission {submission_id} already indexed at {ref.pinned_commit_sha[:7]}")
            return IndexingResult("ready", record.chunk_count, record.file_count)

        lifecycle.claim_for_indexing(self.db, record)
        short_sha = ref.pinned_commit_sha[:7]
        logger.info(f"Indexing submission {submission_id}: {ref.owner}/{ref.repo}@{short_sha}")

        try:
            with open_snapshot(self.fetcher, ref.owner, ref.repo, ref.pinned_commit_sha, submission_id) as snapshot:
                chunking = self.chunker.chunk(snapshot.repo_root_path)
                if not chunking.chunks:
                    raise EmptyRepositoryError(
                        f"No indexable content: {chunking.files_indexed} eligible files, "
                        f"{len(chunking.skipped)} skipped"
                    )

                vectors = self.embedder.embed([embedding_text(c) for c in chunking.chunks])
                records = [
                    VectorRecord.for_chunk(submission_id, chunk, values)
                    for chunk, values in zip(chunking.chunks, vectors)
                ]
                self.store.upsert(record.vector_index_name, record.vector_namespace, records)

                lifecycle.mark_ready(
                    self.db,
                    record,
                    file_count=chunking.files_indexed,
                    chunk_count=len(chunking.chunks),
                    total_chars=chunking.total_chars,
                    files_skipped=len(chunking.skipped),
                )
        except Exception as exc:
            logger.exception(f"Indexing failed for submission {submission_id} at {short_sha}: {exc}")
            lifecycle.mark_failed(self.db, record, exc)
            return IndexingResult("failed", error=record.error_message)

        logger.info(
            f"Indexing completed for submission {submission_id}: {record.chunk_count} chunks "
            f"from {record.file_count} files ({record.files_skipped} skipped)"
        )

        if self.after_ready is not None:
            try:
                self.after_ready(submission_id)
            except Exception as exc:
                # Question generation never changes the index outcome
                logger.exception(f"Post-index hook failed for submission {submission_id}: {exc}")

        return IndexingResult("ready", record.chunk_count, record.file_count)
