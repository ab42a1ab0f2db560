from __future__ import annotations

import anthropic


class ClassifierError(Exception):
    """Raised when the classification service cannot produce a response."""


class AnthropicClassifierClient:
    def __init__(self, api_key: str, *, model: str, max_tokens: int = 2000, timeout_seconds: float = 30.0) -> None:
        self.model = model
        self.max_tokens = max_tokens
        # Failed batches fall back to rejection instead of being retried.
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    async def complete(self, prompt: str) -> str:
        try:
            message = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ClassifierError(f"classification request failed: {exc}") from exc
        return "".join(block.text for block in message.content if block.type == "text")

    async def close(self) -> None:
        await self._client.close()
