from typing import List

from repo_interview.config import settings
from repo_interview.errors import EmbeddingDimensionError, EmbeddingError
from repo_interview.services.chunker import CodeChunk
from repo_interview.services.clients import get_openai_client
from repo_interview.utils.logging import logger


def embedding_text(chunk: CodeChunk) -> str:
    return f"File: {chunk.path}\nLines: {chunk.start_line}-{chunk.end_line}\n\n{chunk.content}"


class Embedder:
    """
    Batched calls to the hosted embedding model. Any failed batch fails the
    whole call; nothing is returned for the batches that did succeed.
    """

    def __init__(
        self,
        client=None,
        model: str | None = None,
        dimensions: int | None = None,
        batch_size: int | None = None,
    ):
        self._client = client
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        try:
            resp = self.client.embeddings.create(
                model=self.model,
                input=batch,
                dimensions=self.dimensions,
            )
        except Exception as exc:
            logger.exception(f"Embedding request failed: {exc}")
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        # The API may return items out of order; `index` is authoritative
        data = sorted(resp.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]

        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding API returned {len(vectors)} vectors for {len(batch)} inputs"
            )
        for vec in vectors:
            if len(vec) != self.dimensions:
                raise EmbeddingDimensionError(
                    f"Embedding dimension {len(vec)} does not match index dimension {self.dimensions}"
                )
        return vectors

    def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        logger.info(f"Creating embeddings for {len(texts)} texts in {total_batches} batches")

        vectors: List[List[float]] = []
        for number, i in enumerate(range(0, len(texts), self.batch_size), start=1):
            vectors.extend(self._embed_batch(texts[i:i + self.batch_size]))
            logger.debug(f"Embedded batch {number}/{total_batches}")
        return vectors

    def embed_one(self, text: str) -> List[float]:
        return self.embed([text])[0]
