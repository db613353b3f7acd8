# repo_interview/deps.py

"""FastAPI dependency factories; tests replace these via dependency_overrides."""

from fastapi import Depends
from sqlalchemy.orm import Session

from repo_interview.config import settings
from repo_interview.db import get_db
from repo_interview.executor import IndexingQueue
from repo_interview.services.embeddings import Embedder
from repo_interview.services.indexing import IndexingPipeline
from repo_interview.services.llm import ChatModel
from repo_interview.services.question_generation import QuestionGenerator, generate_after_indexing
from repo_interview.services.retrieval import Retriever
from repo_interview.services.vector_store import VectorStore


def get_embedder() -> Embedder:
    return Embedder()


def get_chat_model() -> ChatModel:
    return ChatModel()


def get_vector_store(db: Session = Depends(get_db)) -> VectorStore:
    return VectorStore(db, batch_size=settings.upsert_batch_size)


def get_retriever(
    db: Session = Depends(get_db),
    embedder=Depends(get_embedder),
    store=Depends(get_vector_store),
) -> Retriever:
    return Retriever(db, embedder, store)


def get_question_generator(
    retriever: Retriever = Depends(get_retriever),
    chat_model=Depends(get_chat_model),
) -> QuestionGenerator:
    return QuestionGenerator(retriever, chat_model)


def build_indexing_pipeline(db: Session, embedder=None, store=None, chat_model=None, fetcher=None) -> IndexingPipeline:
    embedder = embedder or Embedder()
    store = store or VectorStore(db, batch_size=settings.upsert_batch_size)
    chat_model = chat_model or ChatModel()
    generator = QuestionGenerator(Retriever(db, embedder, store), chat_model)

    return IndexingPipeline(
        db,
        embedder=embedder,
        store=store,
        fetcher=fetcher,
        after_ready=lambda submission_id: generate_after_indexing(db, generator, submission_id),
    )


def get_indexing_pipeline(
    db: Session = Depends(get_db),
    embedder=Depends(get_embedder),
    store=Depends(get_vector_store),
    chat_model=Depends(get_chat_model),
) -> IndexingPipeline:
    return build_indexing_pipeline(db, embedder, store, chat_model)


_queue: IndexingQueue | None = None


def get_indexing_queue() -> IndexingQueue:
    global _queue
    if _queue is None:
        _queue = IndexingQueue(build_indexing_pipeline)
    return _queue
