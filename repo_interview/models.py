import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import VECTOR

from .config import settings
from .db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GithubRepoRef:
    owner: str
    repo: str
    pinned_commit_sha: str


class Assessment(Base):
    __tablename__ = "assessments"
    id = Column(String(32), primary_key=True, default=_new_id)
    owner_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=True)
    num_interview_questions = Column(Integer, nullable=False, default=2)
    interviewer_custom_instructions = Column(Text, nullable=True)
    smart_interviewer_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    submissions = relationship(
        "Submission",
        back_populates="assessment",
        cascade="all, delete-orphan",
    )


class Submission(Base):
    __tablename__ = "submissions"
    id = Column(String(32), primary_key=True, default=_new_id)
    assessment_id = Column(
        String(32), ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    candidate_name = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="pending")  # pending | submitted | expired
    github_owner = Column(String(255), nullable=True)
    github_repo = Column(String(255), nullable=True)
    pinned_commit_sha = Column(String(64), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    assessment = relationship("Assessment", back_populates="submissions")
    repo_indexes = relationship(
        "RepoIndex",
        back_populates="submission",
        cascade="all, delete-orphan",
    )
    interview_questions = relationship(
        "InterviewQuestion",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="InterviewQuestion.position",
    )

    @property
    def github_ref(self) -> GithubRepoRef | None:
        """Finalized repo reference, or None until all three fields are set."""
        if not (self.github_owner and self.github_repo and self.pinned_commit_sha):
            return None
        return GithubRepoRef(self.github_owner, self.github_repo, self.pinned_commit_sha)


class RepoIndex(Base):
    """
    Control-plane record for one submission at one pinned commit.
    The vectors themselves live in code_chunk_vectors under `vector_namespace`.
    """

    __tablename__ = "repo_indexes"
    id = Column(String(32), primary_key=True, default=_new_id)
    submission_id = Column(
        String(32), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner = Column(String(255), nullable=False)
    repo = Column(String(255), nullable=False)
    pinned_commit_sha = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="pending")

    vector_index_name = Column(String(128), nullable=False)
    vector_namespace = Column(String(128), nullable=False)

    file_count = Column(Integer, nullable=False, default=0)
    chunk_count = Column(Integer, nullable=False, default=0)
    total_chars = Column(Integer, nullable=False, default=0)
    files_skipped = Column(Integer, nullable=False, default=0)

    error_message = Column(Text, nullable=True)
    error_detail = Column(Text, nullable=True)
    error_at = Column(DateTime(timezone=True), nullable=True)

    superseded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    submission = relationship("Submission", back_populates="repo_indexes")

    __table_args__ = (
        UniqueConstraint("submission_id", "pinned_commit_sha", name="uq_repo_index_submission_commit"),
    )

    @property
    def stats(self) -> dict:
        return {
            "fileCount": self.file_count,
            "chunkCount": self.chunk_count,
            "totalChars": self.total_chars,
            "filesSkipped": self.files_skipped,
        }

    @property
    def error(self) -> dict | None:
        if self.status != "failed":
            return None
        return {
            "message": self.error_message,
            "at": self.error_at.isoformat() if self.error_at else None,
        }


class InterviewQuestion(Base):
    __tablename__ = "interview_questions"
    id = Column(Integer, primary_key=True)
    submission_id = Column(
        String(32), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    prompt = Column(Text, nullable=False)
    anchors = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    submission = relationship("Submission", back_populates="interview_questions")


class CodeChunkVector(Base):
    __tablename__ = "code_chunk_vectors"
    id = Column(String(64), primary_key=True)  # stable per submission + path + line range
    index_name = Column(String(128), nullable=False)
    namespace = Column(String(128), nullable=False)
    submission_id = Column(String(32), nullable=False)
    path = Column(Text, nullable=False)
    language = Column(String(32), nullable=False, default="unknown")
    start_line = Column(Integer, nullable=False)
    end_line = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(VECTOR(dim=settings.embedding_dimensions))
    __table_args__ = (
        Index("ix_chunk_vectors_index_namespace", "index_name", "namespace"),
    )
