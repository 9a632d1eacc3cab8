"""Completion request and result schemas."""

from pydantic import BaseModel, Field


class CompletionRequest(BaseModel):
    """A single system + user exchange.

    The engine only ever asks one-shot questions (summaries), so there is
    no multi-turn message list.
    """

    model: str
    system: str
    prompt: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    api_base: str | None = None
    api_key: str | None = None

    def to_messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.prompt},
        ]


class Completion(BaseModel):
    """Model answer with its token accounting."""

    text: str
    model: str
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    finish_reason: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def truncated(self) -> bool:
        """The model stopped at ``max_tokens``."""
        return self.finish_reason == "length"
