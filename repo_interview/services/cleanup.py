# repo_interview/services/cleanup.py

from sqlalchemy.orm import Session

from repo_interview.errors import AssessmentNotFoundError, IndexingInProgressError, SubmissionNotFoundError
from repo_interview.models import Assessment, Submission
from repo_interview.services.repo_index import IndexStatus
from repo_interview.utils.logging import logger


def ensure_not_indexing(submission: Submission) -> None:
    """A running pipeline would write vectors after the purge; refuse instead."""
    if any(r.status == IndexStatus.INDEXING.value for r in submission.repo_indexes):
        logger.warning(f"Refusing to delete submission {submission.id} while it is being indexed")
        raise IndexingInProgressError(submission.id)


def purge_submission_vectors(store, submission: Submission) -> int:
    """Delete every namespace bound to the submission's index records."""
    purged = 0
    bindings = {(r.vector_index_name, r.vector_namespace) for r in submission.repo_indexes}
    for index_name, namespace in sorted(bindings):
        store.delete_namespace(index_name, namespace)
        purged += 1
        logger.info(f"Purged namespace {namespace} for submission {submission.id}")
    return purged


def delete_submission(db: Session, store, submission_id: str) -> None:
    submission = db.get(Submission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)

    ensure_not_indexing(submission)
    purge_submission_vectors(store, submission)
    db.delete(submission)  # cascades to repo_indexes and interview_questions
    db.commit()
    logger.info(f"Deleted submission {submission_id}")


def delete_assessment(db: Session, store, assessment_id: str) -> int:
    assessment = db.get(Assessment, assessment_id)
    if assessment is None:
        raise AssessmentNotFoundError(assessment_id)

    # All-or-nothing: check every submission before purging any of them
    for submission in assessment.submissions:
        ensure_not_indexing(submission)

    count = len(assessment.submissions)
    for submission in assessment.submissions:
        purge_submission_vectors(store, submission)
    db.delete(assessment)
    db.commit()
    logger.info(f"Deleted assessment {assessment_id} and {count} submissions")
    return count
