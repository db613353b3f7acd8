# repo_interview/services/vector_store.py

import hashlib
from dataclasses import dataclass, field
from typing import List, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from repo_interview.services.chunker import CodeChunk
from repo_interview.utils.logging import logger


def namespace_for(submission_id: str) -> str:
    return f"submission-{submission_id}"


def chunk_vector_id(submission_id: str, path: str, start_line: int, end_line: int) -> str:
    digest = hashlib.sha1(f"{path}:{start_line}:{end_line}".encode("utf-8")).hexdigest()
    return f"{submission_id}-{digest[:24]}"


def _vector_literal(values: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(v)) for v in values) + "]"


@dataclass
class VectorRecord:
    id: str
    values: List[float]
    submission_id: str
    chunk: CodeChunk

    @classmethod
    def for_chunk(cls, submission_id: str, chunk: CodeChunk, values: List[float]) -> "VectorRecord":
        return cls(
            id=chunk_vector_id(submission_id, chunk.path, chunk.start_line, chunk.end_line),
            values=values,
            submission_id=submission_id,
            chunk=chunk,
        )


@dataclass
class QueryMatch:
    id: str
    score: float
    metadata: dict = field(default_factory=dict)


class VectorStore:
    """
    pgvector-backed store partitioned by (index_name, namespace).
    Every statement is scoped to a single namespace.
    """

    def __init__(self, db: Session, batch_size: int = 100):
        self.db = db
        self.batch_size = batch_size
        logger.debug("VectorStore instance created")

    def upsert(self, index_name: str, namespace: str, records: List[VectorRecord]) -> None:
        logger.info(
            f"Upserting {len(records)} vectors into index={index_name}, namespace={namespace}"
        )
        sql = text(
            """
            INSERT INTO code_chunk_vectors
                (id, index_name, namespace, submission_id, path, language,
                 start_line, end_line, content, embedding)
            VALUES
                (:id, :index_name, :namespace, :submission_id, :path, :language,
                 :start_line, :end_line, :content, (:embedding)::vector)
            ON CONFLICT (id) DO UPDATE SET
                index_name = EXCLUDED.index_name,
                namespace = EXCLUDED.namespace,
                path = EXCLUDED.path,
                language = EXCLUDED.language,
                start_line = EXCLUDED.start_line,
                end_line = EXCLUDED.end_line,
                content = EXCLUDED.content,
                embedding = EXCLUDED.embedding
            """
        )
        try:
            for i in range(0, len(records), self.batch_size):
                batch = records[i:i + self.batch_size]
                self.db.execute(
                    sql,
                    [
                        {
                            "id": r.id,
                            "index_name": index_name,
                            "namespace": namespace,
                            "submission_id": r.submission_id,
                            "path": r.chunk.path,
                            "language": r.chunk.language,
                            "start_line": r.chunk.start_line,
                            "end_line": r.chunk.end_line,
                            "content": r.chunk.content,
                            "embedding": _vector_literal(r.values),
                        }
                        for r in batch
                    ],
                )
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception(f"Error upserting vectors into namespace={namespace}: {exc}")
            raise

    def query(self, index_name: str, namespace: str, vector: List[float], top_k: int) -> List[QueryMatch]:
        """Cosine similarity search; score is 1 - cosine distance."""
        logger.info(f"Querying top_k={top_k} vectors: index={index_name}, namespace={namespace}")
        try:
            rows = self.db.execute(
                text(
                    """
                    SELECT
                        id,
                        path,
                        language,
                        start_line,
                        end_line,
                        content,
                        1 - (embedding <=> (:qvec)::vector) AS score
                    FROM code_chunk_vectors
                    WHERE index_name = :index_name
                      AND namespace = :namespace
                    ORDER BY embedding <=> (:qvec)::vector ASC
                    LIMIT :k
                    """
                ),
                {
                    "qvec": _vector_literal(vector),
                    "index_name": index_name,
                    "namespace": namespace,
                    "k": top_k,
                },
            ).all()
        except Exception as exc:
            logger.exception(f"Error querying namespace={namespace}: {exc}")
            raise

        logger.info(f"Vector query returned {len(rows)} rows")
        return [
            QueryMatch(
                id=row.id,
                score=float(row.score),
                metadata={
                    "path": row.path,
                    "language": row.language,
                    "startLine": row.start_line,
                    "endLine": row.end_line,
                    "content": row.content,
                },
            )
            for row in rows
        ]

    def delete_namespace(self, index_name: str, namespace: str) -> int:
        logger.info(f"Deleting all vectors: index={index_name}, namespace={namespace}")
        try:
            result = self.db.execute(
                text(
                    "DELETE FROM code_chunk_vectors "
                    "WHERE index_name = :index_name AND namespace = :namespace"
                ),
                {"index_name": index_name, "namespace": namespace},
            )
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception(f"Error deleting namespace={namespace}: {exc}")
            raise
        return result.rowcount or 0
