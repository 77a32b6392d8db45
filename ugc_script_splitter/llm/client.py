"""Async HTTP client for an OpenAI-compatible chat-completions API.

WHY: Every structured segment, base description, voice profile and JSON
repair comes from a chat-completions call. This module encapsulates that
HTTP exchange behind one client class so the pipeline only deals with
ModelRequest/ModelResponse and typed errors.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. OpenAIChatClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. complete() POSTs /chat/completions and returns
the first choice's content.

RULES:
- Always use the async context manager (async with OpenAIChatClient(...) as client:)
- No retries here; the pipeline's resilience layer owns retry policy
- Failures are classified on the spot:
  429 / 5xx / connection errors → TransientUpstreamError
  request timeouts → UpstreamTimeoutError
  other 4xx → FatalUpstreamError
- api_key defaults to load_api_key() from .env
"""

from __future__ import annotations

import logging

import httpx

from ugc_script_splitter.config import OPENAI_BASE_URL, OPENAI_MODEL, load_api_key
from ugc_script_splitter.llm.models import ModelRequest, ModelResponse
from ugc_script_splitter.pipeline.errors import (
    FatalUpstreamError,
    TransientUpstreamError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

# Transport timeout is a backstop; the per-call budget is enforced above us.
_HTTP_TIMEOUT = httpx.Timeout(300.0, connect=30.0)

_ERROR_BODY_PREVIEW_CHARS = 500


class OpenAIChatClient:
    """Async client for POST /chat/completions.

    WHY: Provides a clean, typed interface for one model call. Handles
    auth, status-code classification, and response parsing.

    HOW: Wraps httpx.AsyncClient with Bearer token auth. Use as an async
    context manager to ensure the HTTP connection pool is properly closed.

    RULES:
    - Use as: async with OpenAIChatClient() as client: ...
    - base_url defaults to OPENAI_BASE_URL from config
    - model defaults to OPENAI_MODEL from config
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self.model = model or OPENAI_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> OpenAIChatClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=_HTTP_TIMEOUT,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "OpenAIChatClient must be used as an async context manager: "
                "async with OpenAIChatClient() as client: ..."
            )
        return self._client

    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Send one chat-completions request and return the reply text.

        RULES:
        - Raises UpstreamTimeoutError when httpx times out
        - Raises TransientUpstreamError on 429, 5xx, or transport errors
        - Raises FatalUpstreamError on any other non-2xx status
        - Raises TransientUpstreamError when the envelope is not JSON or not shaped like a completion
        - Returns ModelResponse(content="") when the reply has no choices

        Args:
            request: The assembled model request.

        Returns:
            ModelResponse with the first choice's message content.
        """
        client = self._ensure_client()
        payload = request.to_payload(self.model)

        try:
            resp = await client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(request.label) from exc
        except httpx.TransportError as exc:
            raise TransientUpstreamError(
                f"Connection error calling model: {exc}", label=request.label,
            ) from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientUpstreamError(
                f"Model API error {resp.status_code}: {resp.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                label=request.label,
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise FatalUpstreamError(
                f"Model API error {resp.status_code}: {resp.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                label=request.label,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientUpstreamError(
                "Model API returned a non-JSON envelope", label=request.label,
            ) from exc

        try:
            response = ModelResponse.from_dict(data)
        except ValueError as exc:
            raise TransientUpstreamError(
                f"Model API returned an unexpected envelope: {exc}", label=request.label,
            ) from exc
        logger.debug("%s: %d chars of content", request.label, len(response.content))
        return response
