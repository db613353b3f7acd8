# repo_interview/utils/logging.py

import logging
from logging.handlers import RotatingFileHandler
import os

LOG_DIR = os.environ.get("LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

formatter = logging.Formatter(LOG_FORMAT)

# ---------------------------
# Console Handler
# ---------------------------
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(formatter)

# ---------------------------
# Rotating File Handler
# ---------------------------
file_handler = RotatingFileHandler(
    f"{LOG_DIR}/app.log",
    maxBytes=5 * 1024 * 1024,   # 5MB
    backupCount=5,
    encoding="utf-8",
)
file_handler.setLevel(logging.INFO)
file_handler.setFormatter(formatter)

# ---------------------------
# Package Logger Configuration
# ---------------------------
logger = logging.getLogger("repo_interview")
logger.setLevel(logging.DEBUG if os.environ.get("LOG_DEBUG") else logging.INFO)

# Uvicorn --reload re-imports this module
if not logger.handlers:
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

logger.propagate = False
