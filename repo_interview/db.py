from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from repo_interview.config import settings
from repo_interview.utils.logging import logger


# SQLite (local runs, tests) is touched from worker threads
_connect_args = (
    {"check_same_thread": False}
    if settings.database_url.startswith("sqlite")
    else {}
)

engine = create_engine(
    settings.database_url,
    echo=False,
    future=True,
    connect_args=_connect_args,
)
logger.info("Database engine created")

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    logger.debug("DB session created")
    try:
        yield db
    except Exception as exc:
        logger.exception(f"Error during DB session usage: {exc}")
        raise
    finally:
        db.close()
        logger.debug("DB session closed")
