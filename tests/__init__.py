import os
import tempfile

# Settings are read at import time; point them at throwaway locations first
_TEST_ROOT = tempfile.mkdtemp(prefix="repo-interview-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_DIR"] = os.path.join(_TEST_ROOT, "logs")
os.environ["SNAPSHOT_DIR"] = os.path.join(_TEST_ROOT, "snapshots")
os.environ.pop("AGENT_SECRET", None)
os.environ.pop("OPENAI_API_KEY", None)
