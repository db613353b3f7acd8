import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from tests.support import new_session

from repo_interview.errors import IndexingInProgressError
from repo_interview.executor import IndexingQueue
from repo_interview.services.indexing import IndexingResult


class BlockingPipeline:
    def __init__(self, release, runs):
        self.release = release
        self.runs = runs

    def run(self, submission_id, force=False):
        self.runs.append((submission_id, force))
        self.release.wait(5)
        return IndexingResult("ready", chunk_count=2, file_count=1)


class IndexingQueueTests(unittest.TestCase):
    def setUp(self):
        self.pool = ThreadPoolExecutor(max_workers=2)
        self.addCleanup(self.pool.shutdown, True)
        self.release = threading.Event()
        self.addCleanup(self.release.set)
        self.runs = []
        self.queue = IndexingQueue(
            lambda db: BlockingPipeline(self.release, self.runs),
            pool=self.pool,
            session_factory=new_session,
        )

    def test_second_submit_while_running_is_rejected(self):
        future = self.queue.submit("sub-1")
        self.assertTrue(self.queue.is_running("sub-1"))

        with self.assertRaises(IndexingInProgressError):
            self.queue.submit("sub-1")

        self.release.set()
        self.assertEqual(future.result(timeout=5).status, "ready")
        self.assertEqual(self.runs, [("sub-1", False)])

    def test_resubmit_after_completion(self):
        self.release.set()
        self.queue.submit("sub-2").result(timeout=5)
        self.queue.submit("sub-2", force=True).result(timeout=5)
        self.assertEqual(self.runs, [("sub-2", False), ("sub-2", True)])

    def test_job_error_surfaces_on_future(self):
        def broken(db):
            raise RuntimeError("no pipeline")

        queue = IndexingQueue(broken, pool=self.pool, session_factory=new_session)
        future = queue.submit("sub-3")
        with self.assertRaises(RuntimeError):
            future.result(timeout=5)


if __name__ == "__main__":
    unittest.main()
