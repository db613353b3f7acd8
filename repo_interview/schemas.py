from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class AnchorOut(BaseModel):
    path: str
    startLine: int
    endLine: int


class CodeChunkOut(BaseModel):
    path: str
    startLine: int
    endLine: int
    content: str
    score: float
    language: Optional[str] = None


class IndexRepoResponse(BaseModel):
    status: str
    chunkCount: int = 0
    fileCount: int = 0
    error: Optional[str] = None


class RepoIndexStats(BaseModel):
    fileCount: int
    chunkCount: int
    totalChars: int
    filesSkipped: int


class RepoIndexError(BaseModel):
    message: Optional[str] = None
    at: Optional[str] = None


class RepoIndexStatusResponse(BaseModel):
    status: str
    pinnedCommitSha: str
    stats: RepoIndexStats
    error: Optional[RepoIndexError] = None
    createdAt: datetime
    updatedAt: datetime


class SearchCodeRequest(BaseModel):
    query: str
    topK: Optional[int] = Field(default=None, ge=1)


class SearchStats(BaseModel):
    requestedTopK: int
    returnedChunks: int
    totalCharsReturned: int


class SearchCodeResponse(BaseModel):
    chunks: List[CodeChunkOut]
    stats: SearchStats


class InterviewQuestionOut(BaseModel):
    prompt: str
    anchors: List[AnchorOut]
    createdAt: datetime


class GenerateQuestionsResponse(BaseModel):
    submissionId: str
    questions: List[InterviewQuestionOut]
    retrievedChunkCount: int
    chunkPaths: List[str]
    strippedAnchorCount: int = 0


class AgentContextRequest(BaseModel):
    submissionId: str
    currentQuestion: str
    candidateAnswer: str


class AgentContextStats(BaseModel):
    chunksReturned: int
    totalCharsReturned: int


class AgentContextResponse(BaseModel):
    contextChunks: List[CodeChunkOut]
    stats: AgentContextStats


class DeleteResponse(BaseModel):
    status: str = "deleted"
    submissionsDeleted: int = 0
