# repo_interview/services/retrieval.py

from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from repo_interview.config import settings
from repo_interview.errors import InvalidQueryError
from repo_interview.services.chunker import CodeChunk
from repo_interview.services.repo_index import require_ready
from repo_interview.utils.logging import logger

# Same-file chunks whose line ranges overlap by more than this share of
# their union are treated as duplicates
DEDUP_OVERLAP_RATIO = 0.3


@dataclass
class SearchOptions:
    top_k: int | None = None
    max_chunks: int | None = None
    max_chunk_chars: int | None = None
    max_total_chars: int | None = None

    def resolved(self) -> "SearchOptions":
        top_k = self.top_k if self.top_k is not None else settings.retrieval_top_k
        return SearchOptions(
            top_k=max(1, min(top_k, settings.retrieval_max_top_k)),
            max_chunks=self.max_chunks if self.max_chunks is not None else settings.retrieval_max_chunks,
            max_chunk_chars=(
                self.max_chunk_chars if self.max_chunk_chars is not None else settings.retrieval_max_chunk_chars
            ),
            max_total_chars=(
                self.max_total_chars if self.max_total_chars is not None else settings.retrieval_max_total_chars
            ),
        )


@dataclass
class SearchResult:
    chunks: List[CodeChunk] = field(default_factory=list)
    requested_top_k: int = 0
    total_chars: int = 0

    @property
    def stats(self) -> dict:
        return {
            "requestedTopK": self.requested_top_k,
            "returnedChunks": len(self.chunks),
            "totalCharsReturned": self.total_chars,
        }


def overlap_ratio(start1: int, end1: int, start2: int, end2: int) -> float:
    """Shared lines over union lines for two inclusive ranges."""
    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)
    if overlap_end < overlap_start:
        return 0.0
    overlap = overlap_end - overlap_start + 1
    union = max(end1, end2) - min(start1, start2) + 1
    return overlap / union


def is_duplicate(a: CodeChunk, b: CodeChunk) -> bool:
    if a.path != b.path:
        return False
    return overlap_ratio(a.start_line, a.end_line, b.start_line, b.end_line) > DEDUP_OVERLAP_RATIO


def rank(chunks: List[CodeChunk]) -> List[CodeChunk]:
    """Descending score; ties broken by location so output is stable."""
    return sorted(chunks, key=lambda c: (-c.score, c.path, c.start_line, c.end_line))


def deduplicate(chunks: List[CodeChunk]) -> List[CodeChunk]:
    kept: List[CodeChunk] = []
    for chunk in rank(chunks):
        if not any(is_duplicate(chunk, existing) for existing in kept):
            kept.append(chunk)
    return kept


def apply_budgets(chunks: List[CodeChunk], max_chunks: int, max_chunk_chars: int, max_total_chars: int):
    """
    Truncate each chunk to max_chunk_chars, then accept chunks in order until
    the next one would exceed max_total_chars or max_chunks is reached.
    Returns (accepted, total_chars).
    """
    accepted: List[CodeChunk] = []
    total = 0

    for chunk in chunks:
        if len(accepted) >= max_chunks:
            break

        content = chunk.content
        if len(content) > max_chunk_chars:
            logger.debug(
                f"Truncated {chunk.path}:{chunk.start_line} from {len(content)} to {max_chunk_chars} chars"
            )
            content = content[:max_chunk_chars]

        if total + len(content) > max_total_chars:
            logger.info(
                f"Stopping at {len(accepted)} chunks ({total} chars) to stay under {max_total_chars} chars"
            )
            break

        accepted.append(chunk.with_content(content))
        total += len(content)

    return accepted, total


def match_to_chunk(match) -> CodeChunk | None:
    meta = match.metadata or {}
    path = str(meta.get("path") or "")
    if not path:
        logger.warning(f"Match {match.id} missing path metadata")
        return None
    try:
        start_line = int(meta.get("startLine"))
        end_line = int(meta.get("endLine"))
        return CodeChunk(
            path=path,
            start_line=start_line,
            end_line=end_line,
            content=str(meta.get("content") or ""),
            language=str(meta.get("language") or "unknown"),
            score=float(match.score),
        )
    except (TypeError, ValueError) as exc:
        logger.warning(f"Match {match.id} has unusable line metadata: {exc}")
        return None


class Retriever:
    def __init__(self, db: Session, embedder, store):
        self.db = db
        self.embedder = embedder
        self.store = store

    def search(self, submission_id: str, query: str, options: SearchOptions | None = None) -> SearchResult:
        trimmed = (query or "").strip()
        if not trimmed:
            raise InvalidQueryError("query is required and cannot be empty")

        opts = (options or SearchOptions()).resolved()
        record = require_ready(self.db, submission_id)

        logger.info(
            f"Searching submission {submission_id}: topK={opts.top_k}, "
            f"query_len={len(trimmed)}"
        )
        query_vector = self.embedder.embed_one(trimmed)
        matches = self.store.query(
            record.vector_index_name, record.vector_namespace, query_vector, opts.top_k
        )
        logger.info(f"Found {len(matches)} matches")

        candidates = [c for c in (match_to_chunk(m) for m in matches) if c is not None]
        unique = deduplicate(candidates)
        logger.info(f"Deduplicated: {len(candidates)} -> {len(unique)} chunks")

        final, total = apply_budgets(unique, opts.max_chunks, opts.max_chunk_chars, opts.max_total_chars)
        logger.info(f"Final result: {len(final)} chunks, {total} total chars")

        return SearchResult(chunks=final, requested_top_k=opts.top_k, total_chars=total)
