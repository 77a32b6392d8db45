"""Request/response dataclasses for upstream model calls.

WHY: The pipeline should not care which chat-completions service sits on
the other end. It builds a ModelRequest, hands it to any ModelClient, and
gets back a ModelResponse with raw text.

HOW: ModelRequest.to_payload() renders the chat-completions JSON body.
ModelResponse.from_dict() reads the first choice's message content.
ModelClient is a Protocol so tests can pass scripted fakes.

RULES:
- content may be empty or malformed; callers run it through JSON recovery
- structured_output=True requests a single JSON object response
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ModelRequest:
    """One upstream call: system instructions, user content, sampling params.

    RULES:
    - label names the call site for logs and timeout messages
    - max_output_tokens bounds the reply size
    """

    instructions: str
    user_content: str
    temperature: float = 0.5
    max_output_tokens: int = 3000
    structured_output: bool = True
    label: str = "openai"

    def to_payload(self, model: str) -> dict[str, Any]:
        """Render the chat-completions request body for model."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": self.instructions},
                {"role": "user", "content": self.user_content},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
        }
        if self.structured_output:
            payload["response_format"] = {"type": "json_object"}
        return payload


@dataclass(frozen=True)
class ModelResponse:
    """Raw text content of a model reply."""

    content: str

    @classmethod
    def from_dict(cls, data: Any) -> ModelResponse:
        """Read the first choice's content.

        Raises:
            ValueError: if the envelope is not a chat-completions object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"envelope is {type(data).__name__}, not an object")
        choices = data.get("choices") or []
        if not choices:
            return cls(content="")
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise ValueError("choices is not a list of objects")
        message = choices[0].get("message") or {}
        if not isinstance(message, dict):
            raise ValueError("choices[0].message is not an object")
        content = message.get("content") or ""
        return cls(content=content if isinstance(content, str) else str(content))


class ModelClient(Protocol):
    """Anything that can complete a ModelRequest."""

    async def complete(self, request: ModelRequest) -> ModelResponse:
        ...
