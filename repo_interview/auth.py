import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from .errors import AssessmentNotFoundError, SubmissionNotFoundError
from .models import Assessment, Submission
from repo_interview.config import settings
from repo_interview.utils.logging import logger

security = HTTPBearer()

SECRET = settings.jwt_secret
ALGO = settings.jwt_algo


def get_current_employer(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Employer id (`sub`) from a verified bearer token."""
    token = creds.credentials
    logger.debug("Decoding JWT token for current employer")

    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGO])
        employer_id = str(payload["sub"])
    except (JWTError, KeyError) as exc:
        logger.warning(f"Invalid token: {exc}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if not employer_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return employer_id


def load_owned_submission(db: Session, submission_id: str, employer_id: str) -> Submission:
    # Another employer's submission is indistinguishable from a missing one
    submission = db.get(Submission, submission_id)
    if submission is None or submission.assessment.owner_id != employer_id:
        logger.warning(f"Submission {submission_id} not found for employer {employer_id}")
        raise SubmissionNotFoundError(submission_id)
    return submission


def load_owned_assessment(db: Session, assessment_id: str, employer_id: str) -> Assessment:
    assessment = db.get(Assessment, assessment_id)
    if assessment is None or assessment.owner_id != employer_id:
        logger.warning(f"Assessment {assessment_id} not found for employer {employer_id}")
        raise AssessmentNotFoundError(assessment_id)
    return assessment


def verify_agent_secret(x_agent_secret: str | None = Header(default=None)) -> None:
    """Shared-secret check for voice-agent tool calls; open when unset."""
    if not settings.agent_secret:
        logger.warning("AGENT_SECRET not configured; allowing agent tool access without auth")
        return
    if not x_agent_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization required. Missing X-Agent-Secret header.",
        )
    if not hmac.compare_digest(x_agent_secret, settings.agent_secret):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid authorization. X-Agent-Secret header is incorrect.",
        )
