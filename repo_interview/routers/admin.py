from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_employer, load_owned_assessment, load_owned_submission
from ..db import get_db
from ..deps import get_indexing_queue, get_vector_store
from ..errors import IndexingInProgressError
from ..executor import IndexingQueue
from ..services.cleanup import delete_assessment, delete_submission
from .. import schemas

from repo_interview.utils.logging import logger

router = APIRouter(prefix="/api")


def ensure_no_queued_job(queue: IndexingQueue, submission_ids) -> None:
    # A queued job has not claimed its record yet, so the row status alone misses it
    for submission_id in submission_ids:
        if queue.is_running(submission_id):
            logger.warning(f"Refusing delete: indexing job in flight for submission={submission_id}")
            raise IndexingInProgressError(submission_id)


@router.delete("/submissions/{submission_id}", response_model=schemas.DeleteResponse)
def remove_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
    store=Depends(get_vector_store),
    queue: IndexingQueue = Depends(get_indexing_queue),
):
    load_owned_submission(db, submission_id, employer_id)
    ensure_no_queued_job(queue, [submission_id])
    logger.info(f"Deleting submission={submission_id} for employer={employer_id}")
    delete_submission(db, store, submission_id)
    return schemas.DeleteResponse(submissionsDeleted=1)


@router.delete("/assessments/{assessment_id}", response_model=schemas.DeleteResponse)
def remove_assessment(
    assessment_id: str,
    db: Session = Depends(get_db),
    employer_id: str = Depends(get_current_employer),
    store=Depends(get_vector_store),
    queue: IndexingQueue = Depends(get_indexing_queue),
):
    assessment = load_owned_assessment(db, assessment_id, employer_id)
    ensure_no_queued_job(queue, [s.id for s in assessment.submissions])
    logger.info(f"Deleting assessment={assessment_id} for employer={employer_id}")
    count = delete_assessment(db, store, assessment_id)
    return schemas.DeleteResponse(submissionsDeleted=count)
