# repo_interview/executor.py

"""
Background indexing jobs.

Requests hand a submission id to `IndexingQueue.submit` and return
immediately; the job runs on the worker pool with its own DB session.
Failures reach the RepoIndex record through the pipeline, and anything
raised outside it (unknown submission, concurrent run) is logged by the
future's done callback instead of disappearing.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict

from repo_interview.config import settings
from repo_interview.db import SessionLocal
from repo_interview.errors import IndexingInProgressError
from repo_interview.utils.logging import logger

executor = ThreadPoolExecutor(
    max_workers=settings.indexing_workers,
    thread_name_prefix="repo-indexer",
)


class IndexingQueue:
    def __init__(self, pipeline_factory: Callable, pool: ThreadPoolExecutor | None = None, session_factory=None):
        self.pipeline_factory = pipeline_factory
        self.pool = pool or executor
        self.session_factory = session_factory or SessionLocal
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def _run(self, submission_id: str, force: bool):
        db = self.session_factory()
        try:
            logger.info(f"[INDEX {submission_id}] Worker started")
            result = self.pipeline_factory(db).run(submission_id, force=force)
            logger.info(f"[INDEX {submission_id}] Worker finished with status={result.status}")
            return result
        finally:
            db.close()

    def _on_done(self, submission_id: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(submission_id) is future:
                del self._in_flight[submission_id]
        exc = future.exception()
        if exc is not None:
            logger.error(f"[INDEX {submission_id}] Job raised before completing: {exc!r}")

    def submit(self, submission_id: str, force: bool = False) -> Future:
        with self._lock:
            running = self._in_flight.get(submission_id)
            if running is not None and not running.done():
                raise IndexingInProgressError(submission_id)
            future = self.pool.submit(self._run, submission_id, force)
            self._in_flight[submission_id] = future

        future.add_done_callback(lambda f: self._on_done(submission_id, f))
        logger.info(f"[INDEX {submission_id}] Job queued (force={force})")
        return future

    def is_running(self, submission_id: str) -> bool:
        with self._lock:
            future = self._in_flight.get(submission_id)
            return future is not None and not future.done()
