"""FastAPI application with generation routes and OpenAPI docs.

WHY: The browser client (and curl, n8n, other tools) needs an HTTP API to
turn a script into structured segments, continue an existing character,
and download segments as a ZIP. FastAPI provides automatic OpenAPI
documentation and request validation.

HOW: One FastAPI app. The lifespan opens a single OpenAIChatClient and
builds one GenerationService that every request shares through the
get_service dependency. Generation routes run the pipeline inside
respond_within_deadline(), so whichever of {pipeline, route deadline}
finishes first writes the response.

RULES:
- Script shorter than 50 characters (stripped) → 400 before any model call
- Error kind → status: timeout 504, malformed 502, validation 400, other 500
- Error body is {error, message}; message is generic outside development
- Missing API key: fatal at startup in production, 503 on generation routes otherwise
- Generation routes are rate limited per client address (429)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import io
import json
import logging
import uuid
import zipfile
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ugc_script_splitter import __version__, config
from ugc_script_splitter.core.models import RunResult, VoiceProfile
from ugc_script_splitter.llm.client import OpenAIChatClient
from ugc_script_splitter.pipeline.errors import (
    ErrorKind,
    InputValidationError,
    classify_exception,
)
from ugc_script_splitter.pipeline.orchestrator import GenerationService, PipelineSettings
from ugc_script_splitter.server.guard import respond_within_deadline
from ugc_script_splitter.server.models import (
    ContinuationRequest,
    DownloadRequest,
    ErrorResponse,
    GeneratePlusRequest,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    MinimalContinuationRequest,
    MinimalContinuationResponse,
    RunMetadata,
)
from ugc_script_splitter.server.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and shared state
# ---------------------------------------------------------------------------

rate_limiter = RateLimiter(
    max_requests=config.RATE_LIMIT_MAX_REQUESTS,
    window_s=config.RATE_LIMIT_WINDOW_S,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the model client on startup, close it on shutdown."""
    if getattr(app.state, "service", None) is not None:
        yield
        return

    if not config.has_api_key():
        if config.IS_PRODUCTION:
            raise RuntimeError("OPENAI_API_KEY is required in production")
        logger.warning("OPENAI_API_KEY not set; generation routes will answer 503")
        app.state.service = None
        yield
        return

    async with OpenAIChatClient() as client:
        app.state.service = GenerationService(client, PipelineSettings.from_config())
        logger.info(
            "Generation service ready (env=%s, model=%s, route deadline=%.0fs)",
            config.APP_ENV, client.model, config.API_ROUTE_TIMEOUT_S,
        )
        yield
    app.state.service = None


app = FastAPI(
    lifespan=lifespan,
    title="UGC Script Splitter API",
    description=(
        "REST API that splits a marketing script into 6-8 second segments and "
        "generates a structured Veo 3 video prompt for each one, keeping the "
        "character, voice and scene consistent across segments."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# ---------------------------------------------------------------------------
# Dependencies and error handling
# ---------------------------------------------------------------------------


def get_service(request: Request) -> GenerationService:
    """Return the shared GenerationService, or 503 when it is not configured."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="Generation service unavailable: OPENAI_API_KEY not configured",
        )
    return service


def enforce_rate_limit(request: Request) -> None:
    """Count this request against the caller's window; 429 when over the limit."""
    key = request.client.host if request.client else "unknown"
    if not rate_limiter.hit(key):
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers={"Retry-After": str(rate_limiter.retry_after(key))},
        )


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(InputValidationError)
async def _validation_error_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


_STATUS_BY_KIND = {
    ErrorKind.TIMEOUT: 504,
    ErrorKind.MALFORMED: 502,
    ErrorKind.VALIDATION: 400,
}


def status_for_exception(exc: BaseException) -> int:
    """HTTP status for a pipeline failure, derived from its error kind."""
    return _STATUS_BY_KIND.get(classify_exception(exc), 500)


def error_response(exc: BaseException, title: str, request_id: str) -> JSONResponse:
    """Build the JSON error response for a failed generation request."""
    status = status_for_exception(exc)
    logger.error("[%s] %s (%d)", request_id, title, status, exc_info=exc)
    message = str(exc) if config.IS_DEVELOPMENT else "Internal server error"
    return JSONResponse(status_code=status, content={"error": title, "message": message})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _request_id(prefix: str) -> str:
    return f"{prefix}:{uuid.uuid4().hex[:8]}"


def _validate_script(script: str) -> None:
    if len((script or "").strip()) < config.MIN_SCRIPT_CHARS:
        raise InputValidationError(
            f"Script must be at least {config.MIN_SCRIPT_CHARS} characters long"
        )


def _run_result_response(result: RunResult) -> JSONResponse:
    body = GenerateResponse(
        segments=result.segments,
        metadata=RunMetadata(
            total_segments=result.total_segments,
            estimated_duration_seconds=result.estimated_duration_s,
            character_id=result.character_id,
            mode=result.mode,
        ),
        voice_profile=result.voice_profile.to_dict() if result.voice_profile else None,
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


async def _generate(
    work: Any,
    *,
    request_id: str,
    error_title: str,
) -> Response:
    return await respond_within_deadline(
        work,
        deadline_s=config.API_ROUTE_TIMEOUT_S,
        on_success=_run_result_response,
        on_error=lambda exc: error_response(exc, error_title, request_id),
        name=request_id,
    )


def build_segments_zip(segments: List[Dict[str, Any]]) -> bytes:
    """Package segments as segment_01.json, segment_02.json, ... plus README.txt."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for index, segment in enumerate(segments, start=1):
            archive.writestr(
                f"segment_{index:02d}.json",
                json.dumps(segment, indent=2, ensure_ascii=False),
            )
        archive.writestr(
            "README.txt",
            "Instructions for Veo 3:\n"
            "1. Upload each JSON in order\n"
            "2. Generate 8-second clips\n"
            "3. Edit together with overlaps",
        )
    return buffer.getvalue()


_GENERATION_ERRORS = {
    400: {"model": ErrorResponse, "description": "Script too short or invalid input"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Generation failed"},
    502: {"model": ErrorResponse, "description": "Model output was not recoverable JSON"},
    503: {"model": ErrorResponse, "description": "Model API key not configured"},
    504: {"model": ErrorResponse, "description": "Upstream call or route deadline timed out"},
}


# ---------------------------------------------------------------------------
# Endpoints: Generation
# ---------------------------------------------------------------------------


@app.post(
    "/api/generate",
    response_model=GenerateResponse,
    tags=["generation"],
    summary="Generate segments from a script",
    description=(
        "Split the script into 6-8 second segments and generate one structured "
        "Veo 3 prompt per segment. Set continuationMode to run the voice-profile "
        "continuity pipeline instead."
    ),
    responses=_GENERATION_ERRORS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def generate(
    body: GenerateRequest,
    service: GenerationService = Depends(get_service),
) -> Response:
    request_id = _request_id("generate")
    _validate_script(body.script)
    params = body.to_params()
    logger.info(
        "[%s] script=%d chars format=%s mode=%s continuation=%s",
        request_id, len(params.script), params.json_format, params.setting_mode,
        params.continuation_mode,
    )
    return await _generate(
        service.run(params), request_id=request_id, error_title="Failed to generate segments",
    )


@app.post(
    "/api/generate-plus",
    response_model=GenerateResponse,
    tags=["generation"],
    summary="Generate segments with the enhanced format",
    description="Same as /api/generate but jsonFormat defaults to 'enhanced'.",
    responses=_GENERATION_ERRORS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def generate_plus(
    body: GeneratePlusRequest,
    service: GenerationService = Depends(get_service),
) -> Response:
    request_id = _request_id("generate-plus")
    _validate_script(body.script)
    params = body.to_params()
    logger.info("[%s] script=%d chars format=%s", request_id, len(params.script), params.json_format)
    return await _generate(
        service.run(params), request_id=request_id, error_title="Failed to generate segments (plus)",
    )


@app.post(
    "/api/generate-continuation",
    response_model=GenerateResponse,
    tags=["generation"],
    summary="Continue a character with a known voice profile",
    description=(
        "Generate new segments for an existing character. The supplied voice "
        "profile is kept for every segment; previousSegment, when given, is "
        "where the new chain picks up."
    ),
    responses=_GENERATION_ERRORS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def generate_continuation(
    body: ContinuationRequest,
    service: GenerationService = Depends(get_service),
) -> Response:
    request_id = _request_id("continuation")
    _validate_script(body.script)
    if not isinstance(body.voice_profile, dict):
        raise InputValidationError("voiceProfile (object) is required")

    params = body.to_params()
    extra = body.voice_profile
    params.voice_type = params.voice_type or extra.get("voiceType")
    params.energy_level = params.energy_level or _optional_str(extra.get("energyLevel"))
    params.accent_region = params.accent_region or extra.get("accentRegion")
    voice_profile = VoiceProfile.from_dict(body.voice_profile)

    logger.info(
        "[%s] script=%d chars format=%s previous=%s",
        request_id, len(params.script), params.json_format, body.previous_segment is not None,
    )
    return await _generate(
        service.generate_continuation(params, voice_profile, body.previous_segment),
        request_id=request_id,
        error_title="Failed to generate continuation",
    )


def _optional_str(value: Any) -> Any:
    return None if value is None else str(value)


@app.post(
    "/api/generate-continuation-minimal",
    response_model=MinimalContinuationResponse,
    tags=["generation"],
    summary="Generate one minimal continuation segment",
    description=(
        "Generate a single continuation segment that references the character "
        "by image instead of redescribing them, matching the voice profile."
    ),
    responses=_GENERATION_ERRORS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def generate_continuation_minimal(
    body: MinimalContinuationRequest,
    service: GenerationService = Depends(get_service),
) -> Response:
    request_id = _request_id("continuation-minimal")
    if not body.script.strip():
        raise InputValidationError("script is required")
    if not isinstance(body.voice_profile, dict):
        raise InputValidationError("voiceProfile (object) is required")

    work = service.generate_minimal_continuation(
        body.script.strip(),
        VoiceProfile.from_dict(body.voice_profile),
        image_url=body.image_url,
        previous_segment=body.previous_segment,
        product=body.product,
        maintain_energy=body.maintain_energy,
    )
    return await respond_within_deadline(
        work,
        deadline_s=config.API_ROUTE_TIMEOUT_S,
        on_success=lambda segment: JSONResponse(
            content=MinimalContinuationResponse(segment=segment).model_dump(),
        ),
        on_error=lambda exc: error_response(exc, "Failed to generate continuation", request_id),
        name=request_id,
    )


# ---------------------------------------------------------------------------
# Endpoints: Download
# ---------------------------------------------------------------------------


def _zip_response(segments: List[Dict[str, Any]]) -> Response:
    return Response(
        content=build_segments_zip(segments),
        media_type="application/zip",
        headers={"Content-Disposition": 'attachment; filename="veo3-segments.zip"'},
    )


@app.post(
    "/api/download",
    tags=["download"],
    summary="Download segments as a ZIP",
    description="Package segment_01.json, segment_02.json, ... and a README.txt into a ZIP.",
    responses={422: {"description": "No segments supplied"}},
)
async def download(body: DownloadRequest) -> Response:
    return _zip_response(body.segments)


@app.post(
    "/api/download-plus",
    tags=["download"],
    summary="Download segments as a ZIP (plus)",
    description="Same as /api/download; kept for the plus form.",
    responses={422: {"description": "No segments supplied"}},
)
async def download_plus(body: DownloadRequest) -> Response:
    return _zip_response(body.segments)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/api/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check plus the active environment profile.",
)
async def health_check() -> JSONResponse:
    body = HealthResponse(
        status="ok",
        environment=config.APP_ENV,
        api_key_configured=config.has_api_key(),
        route_timeout_s=config.API_ROUTE_TIMEOUT_S,
        rate_limit=rate_limiter.describe(),
        cors_origins=config.CORS_ORIGINS,
        version=__version__,
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


def run_api(host: str = "0.0.0.0", port: Optional[int] = None) -> None:
    """Entry point for the ugc-splitter-api console script."""
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=host, port=port or config.PORT)
