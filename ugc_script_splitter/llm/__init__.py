"""Upstream language-model client package.

WHY: The pipeline needs structured JSON from a chat-completions model for
base descriptions, segments, voice profiles and JSON repair. This package
encapsulates all model HTTP communication behind an async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. OpenAIChatClient turns
a ModelRequest into a POST /chat/completions and returns a ModelResponse.

RULES:
- All model HTTP calls go through OpenAIChatClient (no direct httpx usage elsewhere)
- Authentication is via Bearer token from config
"""

from ugc_script_splitter.llm.client import OpenAIChatClient
from ugc_script_splitter.llm.models import ModelClient, ModelRequest, ModelResponse

__all__ = ["ModelClient", "ModelRequest", "ModelResponse", "OpenAIChatClient"]
