from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routers import admin, agent_tools, repo_index, search
from .db import Base, engine
from .errors import RepoInterviewError
from repo_interview.utils.logging import logger

# Create all tables
logger.info("Creating database tables (if not exist)")
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Repo Interview Core (FastAPI)")
logger.info("FastAPI app instance created")


# Routers
app.include_router(repo_index.router)
app.include_router(search.router)
app.include_router(agent_tools.router)
app.include_router(admin.router)
logger.info("Routers registered: repo_index, search, agent_tools, admin")


@app.get("/health")
def health():
    logger.info("Health check /health endpoint called")
    return {"status": "ok"}


@app.exception_handler(RepoInterviewError)
async def repo_interview_error_handler(request: Request, exc: RepoInterviewError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on path {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on path {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


# Global exception handler (nice for logging unexpected errors)
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on path {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
