"""
Typed errors raised by the indexing and generation pipeline.

Each error carries the HTTP status and machine-readable code the API layer
renders, so callers can tell "still indexing" from "never indexed" from
"description missing" without parsing messages.
"""


class RepoInterviewError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(RepoInterviewError):
    code = "configuration_error"


# --- lookups / input -------------------------------------------------------

class SubmissionNotFoundError(RepoInterviewError):
    status_code = 404
    code = "submission_not_found"

    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found")


class AssessmentNotFoundError(RepoInterviewError):
    status_code = 404
    code = "assessment_not_found"

    def __init__(self, assessment_id: str):
        super().__init__(f"Assessment {assessment_id} not found")


class RepoNotFinalizedError(RepoInterviewError):
    status_code = 400
    code = "repo_not_finalized"

    def __init__(self, submission_id: str):
        super().__init__(
            f"GitHub repository information not found for submission {submission_id}"
        )


class DescriptionRequiredError(RepoInterviewError):
    status_code = 400
    code = "description_required"

    def __init__(self):
        super().__init__("Assessment description is required and cannot be empty")


class InvalidQueryError(RepoInterviewError):
    status_code = 400
    code = "invalid_query"


class SmartInterviewerDisabledError(RepoInterviewError):
    status_code = 403
    code = "smart_interviewer_disabled"

    def __init__(self):
        super().__init__("Smart AI Interviewer is disabled for this assessment")


# --- index lifecycle -------------------------------------------------------

class NotIndexedError(RepoInterviewError):
    """Retrieval attempted before the submission's index is ready."""

    status_code = 409

    NOT_INDEXED = "not_indexed"
    IN_PROGRESS = "indexing_in_progress"
    FAILED = "index_failed"

    _MESSAGES = {
        NOT_INDEXED: "Repository has not been indexed",
        IN_PROGRESS: "Repository indexing is still in progress",
        FAILED: "Repository indexing failed; re-trigger indexing to retry",
    }

    def __init__(self, reason: str):
        super().__init__(self._MESSAGES.get(reason, "Repository not indexed"))
        self.reason = reason
        self.code = reason


class IndexingInProgressError(RepoInterviewError):
    status_code = 409
    code = "indexing_in_progress"

    def __init__(self, submission_id: str):
        super().__init__(f"Indexing already in progress for submission {submission_id}")


class InvalidStatusTransitionError(RepoInterviewError):
    status_code = 409
    code = "invalid_status_transition"

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move repo index from '{current}' to '{target}'")
        self.current = current
        self.target = target


class NoRelevantChunksError(RepoInterviewError):
    status_code = 409
    code = "no_relevant_chunks"

    def __init__(self):
        super().__init__("Repo indexed but no relevant code chunks found")


# --- pipeline failures -----------------------------------------------------

class SnapshotError(RepoInterviewError):
    status_code = 502
    code = "snapshot_failed"


class DownloadError(SnapshotError):
    status_code = 502
    code = "download_failed"


class ExtractError(SnapshotError):
    status_code = 422
    code = "extract_failed"


class EmptyRepositoryError(RepoInterviewError):
    status_code = 422
    code = "no_indexable_content"


class EmbeddingError(RepoInterviewError):
    status_code = 502
    code = "embedding_failed"


class EmbeddingDimensionError(EmbeddingError):
    """Embedding width differs from the vector index; a deployment error."""

    status_code = 500
    code = "embedding_dimension_mismatch"


class ModelOutputError(RepoInterviewError):
    status_code = 502
    code = "invalid_model_output"
