from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import get_current_employer, load_owned_submission
from ..db import get_db
from ..deps import get_indexing_pipeline, get_indexing_queue
from ..executor import IndexingQueue
from ..services.indexing import IndexingPipeline
from ..services.repo_index import get_current_index
from .. import schemas

from repo_interview.utils.logging import logger

router = APIRouter(prefix="/api/submissions")


@router.post("/{submission_id}/index-repo", response_model=schemas.IndexRepoResponse)
def index_repo(
    submission_id: str,
    response: Response,
    wait: bool = True,
    force: bool = False,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
    pipeline: IndexingPipeline = Depends(get_indexing_pipeline),
    queue: IndexingQueue = Depends(get_indexing_queue),
):
    submission = load_owned_submission(db, submission_id, employer_id)
    logger.info(
        f"/index-repo called by employer={employer_id} for submission={submission.id} "
        f"(wait={wait}, force={force})"
    )

    if not wait:
        queue.submit(submission.id, force=force)
        response.status_code = status.HTTP_202_ACCEPTED
        return schemas.IndexRepoResponse(status="pending")

    result = pipeline.run(submission.id, force=force)
    logger.info(
        f"/index-repo finished for submission={submission.id}: status={result.status}, "
        f"chunks={result.chunk_count}, files={result.file_count}"
    )
    return schemas.IndexRepoResponse(**result.to_dict())


@router.get("/{submission_id}/repo-index/status", response_model=schemas.RepoIndexStatusResponse)
def repo_index_status(
    submission_id: str,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
):
    submission = load_owned_submission(db, submission_id, employer_id)

    record = get_current_index(db, submission.id)
    if record is None:
        logger.info(f"No repo index for submission={submission.id}")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Repository has not been indexed", "code": "not_indexed", "status": "not_indexed"},
        )

    return schemas.RepoIndexStatusResponse(
        status=record.status,
        pinnedCommitSha=record.pinned_commit_sha,
        stats=record.stats,
        error=record.error,
        createdAt=record.created_at,
        updatedAt=record.updated_at,
    )
