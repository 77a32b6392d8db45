"""Generation orchestrator: script → base descriptions → structured segments.

WHY: This is where segmentation, prompt assembly and the unreliable
upstream model meet. The orchestrator decides how segments are scheduled
(a strict continuity chain or bounded concurrency), threads the right
context into each call, and makes sure every call goes through the same
timeout/retry/JSON-recovery path.

HOW: GenerationService is constructed once per process with a model
client, a TemplateStore and PipelineSettings. It holds no per-request
state, so one instance serves every request. Each run:
  1. split the script and apply the optional segment cap
  2. choose sequential vs concurrent execution
  3. derive the location sequence
  4. generate BaseDescriptions once
  5. generate each segment (chained or under map_ordered)
  6. assemble a RunResult

RULES:
- Output order == script order in both execution modes
- Sequential: segment i's call sees exactly segment i-1's parsed result
- Concurrent: no call sees another segment's result
- Any segment failure fails the run; no partial results
- Voice-profile extraction failure is the one exception: it falls back to
  DEFAULT_VOICE_PROFILE and the run continues
- The service never reads the environment; PipelineSettings carries policy
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ugc_script_splitter import config
from ugc_script_splitter.core.context import build_location_sequence, generate_character_id
from ugc_script_splitter.core.models import (
    DEFAULT_VOICE_PROFILE,
    BaseDescriptions,
    ContinuityState,
    GenerationContext,
    GenerationParams,
    RunResult,
    SegmentationConfig,
    TextSegment,
    VoiceProfile,
)
from ugc_script_splitter.core.segmenter import split_script
from ugc_script_splitter.llm.models import ModelClient, ModelRequest, ModelResponse
from ugc_script_splitter.pipeline.errors import InputValidationError
from ugc_script_splitter.pipeline.json_recovery import recover_json
from ugc_script_splitter.pipeline.prompts import (
    CallKind,
    TemplateStore,
    build_base_description_request,
    build_continuation_style_request,
    build_minimal_continuation_request,
    build_repair_request,
    build_segment_request,
    build_voice_profile_request,
    describe_request,
)
from ugc_script_splitter.pipeline.resilience import Sleep, map_ordered, with_retry, with_timeout
from ugc_script_splitter.pipeline.validation import parse_base_descriptions, parse_voice_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineSettings:
    """Policy knobs for one GenerationService.

    RULES:
    - call_timeout_s: budget per upstream attempt
    - retry_count: extra attempts for timeout/transient failures
    - retry_base_delay_s: backoff base (delays base, 2*base, ...)
    - concurrency: segment calls in flight in concurrent mode
    - sequential_threshold: segment count at which runs default to sequential
    """

    call_timeout_s: float = 60.0
    retry_count: int = 2
    retry_base_delay_s: float = 1.0
    concurrency: int = 2
    sequential_threshold: int = 8
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)

    @classmethod
    def from_config(cls) -> PipelineSettings:
        """Build settings from the environment-derived config constants."""
        return cls(
            call_timeout_s=config.OPENAI_CALL_TIMEOUT_S,
            retry_count=config.OPENAI_RETRY_COUNT,
            retry_base_delay_s=config.OPENAI_RETRY_BASE_DELAY_S,
            concurrency=config.SEGMENT_CONCURRENCY,
            sequential_threshold=config.SEQUENTIAL_THRESHOLD,
        )


class GenerationService:
    """Runs generation pipelines against one model client.

    WHY: Routes, the CLI and tests all need the same pipeline with
    different clients and policies. Passing those in explicitly keeps the
    service free of globals.

    RULES:
    - Safe to share across concurrent requests (only the template cache
      is shared, and it is append-only)
    - sleep is injectable so tests can observe backoff without waiting
    """

    def __init__(
        self,
        client: ModelClient,
        settings: PipelineSettings | None = None,
        templates: TemplateStore | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._client = client
        self.settings = settings or PipelineSettings()
        self.templates = templates or TemplateStore()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Planning helpers
    # ------------------------------------------------------------------

    def split_script(self, script: str) -> list[TextSegment]:
        """Split a script with this service's segmentation rules."""
        return split_script(script, self.settings.segmentation)

    def _plan(self, params: GenerationParams) -> tuple[list[TextSegment], list[str]]:
        segments = self.split_script(params.script)
        if params.max_segments is not None and params.max_segments > 0:
            segments = segments[: params.max_segments]
        if not segments:
            raise InputValidationError("Script produced no speakable segments")

        locations = build_location_sequence(
            params.setting_mode, len(segments), room=params.room, locations=params.locations,
        )
        logger.info("Script split into %d segments", len(segments))
        return segments, locations

    def is_sequential(self, params: GenerationParams, segment_count: int) -> bool:
        """Decide the execution mode for a run.

        An explicit params.sequential wins. Otherwise runs are sequential
        from sequential_threshold segments up, and always in continuation mode.
        """
        if params.sequential is not None:
            return params.sequential
        return segment_count >= self.settings.sequential_threshold or params.continuation_mode

    @staticmethod
    def _context(
        index: int,
        segments: list[TextSegment],
        locations: list[str],
        base: BaseDescriptions,
        continuity: ContinuityState,
    ) -> GenerationContext:
        return GenerationContext(
            segment_number=index + 1,
            total_segments=len(segments),
            script_part=segments[index].text,
            base_descriptions=base,
            current_location=locations[index],
            previous_location=locations[index - 1] if index > 0 else None,
            next_location=locations[index + 1] if index < len(locations) - 1 else None,
            continuity=continuity,
        )

    # ------------------------------------------------------------------
    # Resilient model call
    # ------------------------------------------------------------------

    async def _complete(self, request: ModelRequest) -> ModelResponse:
        """One upstream call with per-attempt timeout and bounded retry."""
        settings = self.settings
        return await with_retry(
            lambda: with_timeout(self._client.complete(request), settings.call_timeout_s, request.label),
            retries=settings.retry_count,
            base_delay_s=settings.retry_base_delay_s,
            label=request.label,
            sleep=self._sleep,
        )

    async def call_json(self, request: ModelRequest, kind: CallKind) -> dict[str, Any]:
        """Run request through resilience and JSON recovery; return the parsed object."""
        logger.debug("Calling model: %s", describe_request(request))
        response = await self._complete(request)

        async def repair(raw: str) -> str:
            repaired = await self._complete(build_repair_request(raw, kind, label=request.label))
            return repaired.content

        return await recover_json(response.content, repair, label=request.label)

    # ------------------------------------------------------------------
    # Single-call steps
    # ------------------------------------------------------------------

    async def generate_base_descriptions(
        self,
        params: GenerationParams,
        template: str,
        *,
        label: str = "openai_base",
    ) -> BaseDescriptions:
        logger.info("Generating base descriptions")
        data = await self.call_json(
            build_base_description_request(params, template, label=label), CallKind.BASE_DESCRIPTION,
        )
        return parse_base_descriptions(data, label=label)

    async def extract_voice_profile(
        self,
        params: GenerationParams,
        segment: dict[str, Any] | None,
    ) -> VoiceProfile:
        """Extract a VoiceProfile from a generated segment's dialogue.

        Never raises: any failure is logged
        and DEFAULT_VOICE_PROFILE is returned so the run can finish.
        """
        dialogue = ContinuityState(previous_segment=segment).previous_dialogue()
        try:
            data = await self.call_json(build_voice_profile_request(params, dialogue), CallKind.VOICE_PROFILE)
            return parse_voice_profile(data)
        except Exception:
            logger.error("Voice profile extraction failed; using default profile", exc_info=True)
            return DEFAULT_VOICE_PROFILE

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def run(self, params: GenerationParams) -> RunResult:
        """Entry point: continuation mode runs the voice-profile pipeline."""
        if params.continuation_mode:
            return await self.generate_segments_with_voice_profile(params)
        return await self.generate_segments(params)

    async def generate_segments(self, params: GenerationParams) -> RunResult:
        """Standard pipeline: base descriptions then one full call per segment.

        Returns:
            RunResult with segments in script order.
        """
        segments, locations = self._plan(params)
        sequential = self.is_sequential(params, len(segments))
        concurrency = 1 if sequential else self.settings.concurrency
        logger.info(
            "Generating %d segments (format=%s, sequential=%s, concurrency=%d)",
            len(segments), params.json_format, sequential, concurrency,
        )

        template = await self.templates.load(TemplateStore.name_for_format(params.json_format))
        base = await self.generate_base_descriptions(params, template)

        if sequential:
            results: List[Dict[str, Any]] = []
            previous: Optional[Dict[str, Any]] = None
            for index in range(len(segments)):
                context = self._context(
                    index, segments, locations, base, ContinuityState(previous_segment=previous),
                )
                logger.info("Generating segment %d/%d", index + 1, len(segments))
                previous = await self.call_json(
                    build_segment_request(params, context, template), CallKind.SEGMENT,
                )
                results.append(previous)
        else:
            async def worker(_segment: TextSegment, index: int) -> dict[str, Any]:
                context = self._context(index, segments, locations, base, ContinuityState())
                logger.info("Generating segment %d/%d", index + 1, len(segments))
                return await self.call_json(
                    build_segment_request(params, context, template), CallKind.SEGMENT,
                )

            results = await map_ordered(segments, worker, concurrency)

        logger.info("All %d segments generated", len(results))
        return RunResult(
            segments=results,
            character_id=generate_character_id(params),
            mode="standard",
        )

    async def _continuation_chain(
        self,
        params: GenerationParams,
        segments: list[TextSegment],
        locations: list[str],
        base: BaseDescriptions,
        template: str,
        voice_profile: VoiceProfile,
        start: int,
        previous: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        """Generate segments[start:] as a continuation-style chain."""
        results: list[dict[str, Any]] = []
        for index in range(start, len(segments)):
            continuity = ContinuityState(previous_segment=previous, voice_profile=voice_profile)
            context = self._context(index, segments, locations, base, continuity)
            logger.info("Generating continuation segment %d/%d", index + 1, len(segments))
            previous = await self.call_json(
                build_continuation_style_request(params, context, template),
                CallKind.CONTINUATION_STYLE,
            )
            results.append(previous)
        return results

    async def generate_segments_with_voice_profile(self, params: GenerationParams) -> RunResult:
        """Continuity pipeline: detailed first segment, voice profile, then a chain.

        Always sequential. Uses the enhanced template for every call.
        """
        params = dataclasses.replace(params, json_format="enhanced")
        segments, locations = self._plan(params)
        logger.info("Generating %d segments with voice profile (sequential)", len(segments))

        template = await self.templates.load("enhanced")
        base = await self.generate_base_descriptions(params, template, label="openai_voice_base")

        first_context = self._context(0, segments, locations, base, ContinuityState())
        first = await self.call_json(
            build_segment_request(params, first_context, template, label="openai_voice_first"),
            CallKind.SEGMENT,
        )

        voice_profile = await self.extract_voice_profile(params, first)
        rest = await self._continuation_chain(
            params, segments, locations, base, template, voice_profile, start=1, previous=first,
        )

        return RunResult(
            segments=[first, *rest],
            character_id=generate_character_id(params),
            mode="voice-profile",
            voice_profile=voice_profile,
        )

    async def generate_continuation(
        self,
        params: GenerationParams,
        voice_profile: VoiceProfile,
        previous_segment: dict[str, Any] | None = None,
    ) -> RunResult:
        """Continue an existing character with a caller-supplied voice profile.

        RULES:
        - Always sequential continuation-style calls
        - previous_segment, when given, seeds the continuity chain
        - product is optional
        """
        segments, locations = self._plan(params)
        logger.info(
            "Generating %d continuation segments (previous segment: %s)",
            len(segments), previous_segment is not None,
        )

        template = await self.templates.load(TemplateStore.name_for_format(params.json_format))
        base = await self.generate_base_descriptions(params, template)
        results = await self._continuation_chain(
            params, segments, locations, base, template, voice_profile, start=0, previous=previous_segment,
        )

        return RunResult(
            segments=results,
            character_id=generate_character_id(params),
            mode="continuation",
            voice_profile=voice_profile,
        )

    async def generate_minimal_continuation(
        self,
        dialogue: str,
        voice_profile: VoiceProfile | None,
        *,
        image_url: str | None = None,
        previous_segment: dict[str, Any] | None = None,
        product: str | None = None,
        maintain_energy: bool = False,
    ) -> dict[str, Any]:
        """One minimal continuation segment that references the character by image."""
        template = await self.templates.load("minimal")
        previous_dialogue = ContinuityState(previous_segment=previous_segment).previous_dialogue()
        request = build_minimal_continuation_request(
            template,
            dialogue=dialogue,
            voice_profile=voice_profile,
            image_url=image_url,
            previous_dialogue=previous_dialogue,
            product=product,
            maintain_energy=maintain_energy,
        )
        return await self.call_json(request, CallKind.CONTINUATION_MINIMAL)
