"""Shared fakes and fixtures for the test suite."""

import hashlib
import io
import json
import math
import re
import stat
import zipfile
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
from jose import jwt

from repo_interview.config import settings
from repo_interview.db import Base, SessionLocal, engine
from repo_interview.models import Assessment, RepoIndex, Submission
from repo_interview.services.snapshot import SnapshotFetcher
from repo_interview.services.vector_store import QueryMatch, namespace_for

DIMENSIONS = 16
COMMIT = "abc123"


def create_token(employer_id):
    """Bearer token as the hiring platform would issue it."""
    return jwt.encode({"sub": str(employer_id)}, settings.jwt_secret, algorithm=settings.jwt_algo)


def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def new_session():
    return SessionLocal()


def seed_submission(
    db,
    owner_id="employer-1",
    description="Build an authentication service with token refresh.",
    github_owner="octo",
    github_repo="shop",
    commit=COMMIT,
    status="submitted",
    smart_interviewer_enabled=True,
    num_interview_questions=2,
    custom_instructions=None,
):
    assessment = Assessment(
        owner_id=owner_id,
        title="Backend take-home",
        description=description,
        num_interview_questions=num_interview_questions,
        interviewer_custom_instructions=custom_instructions,
        smart_interviewer_enabled=smart_interviewer_enabled,
    )
    submission = Submission(
        candidate_name="Sam Doe",
        status=status,
        github_owner=github_owner,
        github_repo=github_repo,
        pinned_commit_sha=commit,
    )
    assessment.submissions.append(submission)
    db.add(assessment)
    db.commit()
    db.refresh(submission)
    return submission


def add_record(db, submission, status="pending", commit=None, superseded=False):
    record = RepoIndex(
        submission_id=submission.id,
        owner=submission.github_owner,
        repo=submission.github_repo,
        pinned_commit_sha=commit or submission.pinned_commit_sha,
        status=status,
        vector_index_name="code-chunks",
        vector_namespace=namespace_for(submission.id),
        superseded_at=datetime.now(timezone.utc) if superseded else None,
    )
    db.add(record)
    db.commit()
    return record


def numbered_lines(count, prefix="line"):
    return "\n".join(f"{prefix} {i}" for i in range(1, count + 1)) + "\n"


# --- archives / GitHub ------------------------------------------------------

def make_zipball(files, top_level="octo-shop-abc123", symlinks=None, raw_entries=None):
    """Zip bytes shaped like a GitHub zipball: one top-level directory."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(f"{top_level}/", "")
        for path, content in files.items():
            archive.writestr(f"{top_level}/{path}", content)
        for path, target in (symlinks or {}).items():
            info = zipfile.ZipInfo(f"{top_level}/{path}")
            info.external_attr = (stat.S_IFLNK | 0o777) << 16
            archive.writestr(info, target)
        for name, content in (raw_entries or {}).items():
            archive.writestr(name, content)
    return buf.getvalue()


class FakeGitHub:
    """httpx transport serving zipballs keyed by (owner, repo, sha)."""

    def __init__(self):
        self.archives = {}
        self.requests = []

    def add(self, owner, repo, sha, files, **kwargs):
        top_level = kwargs.pop("top_level", f"{owner}-{repo}-{sha[:7]}")
        self.archives[(owner, repo, sha)] = make_zipball(files, top_level=top_level, **kwargs)

    def handler(self, request):
        self.requests.append(request)
        m = re.match(r"^/repos/([^/]+)/([^/]+)/zipball/([^/]+)$", request.url.path)
        if not m:
            return httpx.Response(404)
        body = self.archives.get(m.groups())
        if body is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, content=body, headers={"content-type": "application/zip"})

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def fetcher(self, base_dir, max_bytes=None):
        return SnapshotFetcher(http_client=self.client(), base_dir=base_dir, max_bytes=max_bytes)


# --- hosted model doubles ---------------------------------------------------

def _tokens(text):
    return re.findall(r"[a-z0-9]+", text.lower())


def hashed_vector(text, dimensions=DIMENSIONS):
    vec = [0.0] * dimensions
    for token in _tokens(text):
        digest = hashlib.md5(token.encode("utf-8")).digest()
        vec[digest[0] % dimensions] += 1.0
    if not any(vec):
        vec[0] = 1.0
    return vec


class FakeEmbedder:
    """Deterministic bag-of-words vectors; same interface as Embedder."""

    def __init__(self, dimensions=DIMENSIONS, fail_with=None):
        self.dimensions = dimensions
        self.fail_with = fail_with
        self.calls = []

    def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [hashed_vector(t, self.dimensions) for t in texts]

    def embed_one(self, text):
        return self.embed([text])[0]


class FakeChatModel:
    def __init__(self, reply=None):
        self.reply = reply
        self.calls = []

    def complete_json(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if callable(self.reply):
            return self.reply(system_prompt, user_prompt)
        if isinstance(self.reply, (dict, list)):
            return json.dumps(self.reply)
        return self.reply


def anchored_reply(prompts=("Walk me through this code.",)):
    """Chat reply that anchors each question on the first snippet it was shown."""

    def reply(system_prompt, user_prompt):
        m = re.search(r'1\. path: "([^"]+)", startLine: (\d+), endLine: (\d+)', user_prompt)
        anchor = {"path": m.group(1), "startLine": int(m.group(2)), "endLine": int(m.group(3))}
        return json.dumps({"questions": [{"prompt": p, "anchors": [anchor]} for p in prompts]})

    return reply


class FakeOpenAIEmbeddings:
    """Stands in for `OpenAI().embeddings`; returns items in reverse order."""

    def __init__(self, dimensions=DIMENSIONS, width=None):
        self.dimensions = dimensions
        self.width = width or dimensions
        self.requests = []

    def create(self, model, input, dimensions):
        self.requests.append({"model": model, "input": list(input), "dimensions": dimensions})
        data = [
            SimpleNamespace(index=i, embedding=[float(len(text))] + [0.0] * (self.width - 1))
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=list(reversed(data)))


def fake_openai_client(**kwargs):
    return SimpleNamespace(embeddings=FakeOpenAIEmbeddings(**kwargs))


# --- vector store double ----------------------------------------------------

def _cosine(a, b):
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore:
    """Namespace-partitioned store with the VectorStore interface."""

    def __init__(self):
        self.namespaces = {}
        self.deleted = []

    def upsert(self, index_name, namespace, records):
        bucket = self.namespaces.setdefault((index_name, namespace), {})
        for r in records:
            bucket[r.id] = (list(r.values), r.chunk)

    def query(self, index_name, namespace, vector, top_k):
        bucket = self.namespaces.get((index_name, namespace), {})
        scored = [
            QueryMatch(
                id=vid,
                score=_cosine(vector, values),
                metadata={
                    "path": chunk.path,
                    "language": chunk.language,
                    "startLine": chunk.start_line,
                    "endLine": chunk.end_line,
                    "content": chunk.content,
                },
            )
            for vid, (values, chunk) in bucket.items()
        ]
        scored.sort(key=lambda m: (-m.score, m.id))
        return scored[:top_k]

    def delete_namespace(self, index_name, namespace):
        self.deleted.append((index_name, namespace))
        return len(self.namespaces.pop((index_name, namespace), {}))

    def count(self, index_name, namespace):
        return len(self.namespaces.get((index_name, namespace), {}))


class StaticVectorStore(InMemoryVectorStore):
    """Returns a fixed match list regardless of the query vector."""

    def __init__(self, matches):
        super().__init__()
        self.matches = matches

    def query(self, index_name, namespace, vector, top_k):
        return self.matches[:top_k]


def match(path, start, end, score, content="x"):
    return QueryMatch(
        id=f"{path}:{start}-{end}",
        score=score,
        metadata={"path": path, "language": "python", "startLine": start, "endLine": end, "content": content},
    )
