from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_employer, load_owned_submission
from ..db import get_db
from ..deps import get_question_generator, get_retriever
from ..models import Submission
from ..services.question_generation import QuestionGenerator, generate_for_submission
from ..services.retrieval import Retriever, SearchOptions
from .. import schemas

from repo_interview.utils.logging import logger

router = APIRouter(prefix="/api/submissions")


def chunk_out(chunk) -> schemas.CodeChunkOut:
    return schemas.CodeChunkOut(
        path=chunk.path,
        startLine=chunk.start_line,
        endLine=chunk.end_line,
        content=chunk.content,
        score=chunk.score,
        language=chunk.language,
    )


@router.post("/{submission_id}/search-code", response_model=schemas.SearchCodeResponse)
def search_code(
    submission_id: str,
    payload: schemas.SearchCodeRequest,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
    retriever: Retriever = Depends(get_retriever),
):
    # A deleted submission has no index left; the retriever reports not_indexed
    if db.get(Submission, submission_id) is not None:
        load_owned_submission(db, submission_id, employer_id)

    logger.info(
        f"/search-code called by employer={employer_id} for submission={submission_id}, "
        f"topK={payload.topK}, query='{payload.query[:100]}{'...' if len(payload.query) > 100 else ''}'"
    )
    result = retriever.search(submission_id, payload.query, SearchOptions(top_k=payload.topK))

    return schemas.SearchCodeResponse(
        chunks=[chunk_out(c) for c in result.chunks],
        stats=result.stats,
    )


@router.post("/{submission_id}/generate-interview", response_model=schemas.GenerateQuestionsResponse)
def generate_interview(
    submission_id: str,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
    generator: QuestionGenerator = Depends(get_question_generator),
):
    submission = load_owned_submission(db, submission_id, employer_id)
    logger.info(f"/generate-interview called by employer={employer_id} for submission={submission.id}")

    rows, result = generate_for_submission(db, generator, submission)

    return schemas.GenerateQuestionsResponse(
        submissionId=submission.id,
        questions=[
            schemas.InterviewQuestionOut(prompt=r.prompt, anchors=r.anchors, createdAt=r.created_at)
            for r in rows
        ],
        retrievedChunkCount=result.retrieved_chunk_count,
        chunkPaths=result.chunk_paths,
        strippedAnchorCount=result.stripped_anchor_count,
    )
