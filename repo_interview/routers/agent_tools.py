from fastapi import APIRouter, Depends

from ..auth import verify_agent_secret
from ..deps import get_question_generator
from ..errors import InvalidQueryError
from ..services.question_generation import QuestionGenerator
from .. import schemas
from .search import chunk_out

from repo_interview.utils.logging import logger

router = APIRouter(prefix="/api/agent-tools", dependencies=[Depends(verify_agent_secret)])


@router.post("/get-context", response_model=schemas.AgentContextResponse)
def get_context(
    payload: schemas.AgentContextRequest,
    generator: QuestionGenerator = Depends(get_question_generator),
):
    for name in ("submissionId", "currentQuestion", "candidateAnswer"):
        if not getattr(payload, name).strip():
            raise InvalidQueryError(f"{name} is required and cannot be empty")

    logger.info(f"[get_context] Retrieving follow-up context for submission {payload.submissionId}")
    chunks, total = generator.follow_up_context(
        payload.submissionId, payload.currentQuestion, payload.candidateAnswer
    )

    return schemas.AgentContextResponse(
        contextChunks=[chunk_out(c) for c in chunks],
        stats=schemas.AgentContextStats(chunksReturned=len(chunks), totalCharsReturned=total),
    )
