# repo_interview/services/clients.py

"""
Process-wide hosted-model client.

Initialised once on first use; a missing API key fails at that point with
ConfigurationError instead of surfacing later as an auth error mid-pipeline.
"""

import threading

from openai import OpenAI

from repo_interview.config import settings
from repo_interview.errors import ConfigurationError
from repo_interview.utils.logging import logger

_client: OpenAI | None = None
_lock = threading.Lock()


def get_openai_client() -> OpenAI:
    global _client
    if _client is not None:
        return _client

    with _lock:
        if _client is None:
            if not settings.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY environment variable is not set")
            _client = OpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=2,
            )
            logger.info("OpenAI client initialized")
    return _client
