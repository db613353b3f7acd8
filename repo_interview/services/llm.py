from repo_interview.config import settings
from repo_interview.services.clients import get_openai_client
from repo_interview.utils.logging import logger


class ChatModel:
    def __init__(self, client=None, model: str | None = None, temperature: float = 0.3, max_tokens: int = 1500):
        self._client = client
        self.model = model or settings.chat_model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def complete_json(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw JSON-mode completion text."""
        logger.info(f"Calling chat model {self.model} (json mode)")
        resp = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        return resp.choices[0].message.content or ""
