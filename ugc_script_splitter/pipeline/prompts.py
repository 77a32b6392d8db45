"""Prompt assembly and template loading for every model call kind.

WHY: Each upstream call needs a system/user message pair and sampling
parameters that fit its job: base descriptions must be long and stable
(low temperature, big budget), per-segment calls a bit looser, voice
profiles short. Keeping the message shapes and parameters in one module
makes the whole prompt surface reviewable in one place.

HOW: CallKind names the call kinds and CALL_PARAMS maps each to a
temperature, output budget and JSON-repair budget. The build_*_request()
functions substitute context fields into fixed message shapes and return
ModelRequest objects. TemplateStore loads the opaque template files and
caches them.

RULES:
- build_* functions are pure: same inputs → same ModelRequest
- Templates are opaque text; nothing here parses them
- Base descriptions are quoted verbatim in every segment prompt
- Template load failure raises TemplateLoadError (fatal for the run)
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ugc_script_splitter.core.context import energy_level, get_camera_style
from ugc_script_splitter.core.models import (
    GenerationContext,
    GenerationParams,
    VoiceProfile,
)
from ugc_script_splitter.llm.models import ModelRequest
from ugc_script_splitter.pipeline.errors import TemplateLoadError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Call kinds and their parameters
# ---------------------------------------------------------------------------


class CallKind(str, enum.Enum):
    BASE_DESCRIPTION = "base-description"
    SEGMENT = "segment"
    CONTINUATION_STYLE = "continuation-style"
    CONTINUATION_MINIMAL = "continuation-minimal"
    VOICE_PROFILE = "voice-profile"


@dataclass(frozen=True)
class CallParams:
    """Sampling parameters for one call kind.

    repair_max_tokens is the output budget of the JSON-repair call made
    when this kind's reply cannot be parsed.
    """

    temperature: float
    max_output_tokens: int
    repair_max_tokens: int


CALL_PARAMS: dict[CallKind, CallParams] = {
    CallKind.BASE_DESCRIPTION: CallParams(temperature=0.3, max_output_tokens=4500, repair_max_tokens=2000),
    CallKind.SEGMENT: CallParams(temperature=0.5, max_output_tokens=3000, repair_max_tokens=3500),
    CallKind.CONTINUATION_STYLE: CallParams(temperature=0.5, max_output_tokens=3000, repair_max_tokens=3200),
    CallKind.CONTINUATION_MINIMAL: CallParams(temperature=0.4, max_output_tokens=2500, repair_max_tokens=2500),
    CallKind.VOICE_PROFILE: CallParams(temperature=0.3, max_output_tokens=1000, repair_max_tokens=1200),
}

REPAIR_TEMPERATURE = 0.0

REPAIR_INSTRUCTIONS = (
    "You fix malformed JSON. Return ONLY valid JSON (single JSON object). "
    "No commentary before or after."
)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

TEMPLATE_FILES: dict[str, str] = {
    "standard": "veo3-json-guidelines.md",
    "enhanced": "veo3-enhanced-continuity.md",
    "minimal": "veo3-continuation-minimal.md",
}


class TemplateStore:
    """Loads prompt templates by name and keeps them in memory.

    WHY: The same template is needed by every segment call of a run and by
    every run of the process. Reading it once keeps file I/O off the hot
    path.

    HOW: load() reads the file in a worker thread on first use and caches
    the text. The cache is only ever added to, so sharing one store
    across concurrent requests is safe.

    RULES:
    - Names are keys of TEMPLATE_FILES ("standard", "enhanced", "minimal")
    - Unknown json formats fall back to "standard"
    - Missing or unreadable files → TemplateLoadError
    """

    def __init__(self, directory: Path | None = None) -> None:
        self._directory = Path(directory) if directory else TEMPLATE_DIR
        self._cache: dict[str, str] = {}

    @staticmethod
    def name_for_format(json_format: str | None) -> str:
        return json_format if json_format in ("standard", "enhanced") else "standard"

    async def load(self, name: str) -> str:
        if name in self._cache:
            return self._cache[name]

        filename = TEMPLATE_FILES.get(name)
        if filename is None:
            raise TemplateLoadError(f"Unknown template: {name}", label="template")

        path = self._directory / filename
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as exc:
            raise TemplateLoadError(f"Failed to load template {path}: {exc}", label="template") from exc

        logger.debug("Loaded template %s (%d chars)", filename, len(text))
        self._cache[name] = text
        return text


# ---------------------------------------------------------------------------
# Shared prompt fragments
# ---------------------------------------------------------------------------


def _advanced_character_lines(params: GenerationParams) -> list[str]:
    """Optional character/ad-framework lines, only for fields that are set."""
    lines: list[str] = []
    if params.avatar_mode == "animal":
        lines.append(f"Avatar: animal ({params.animal_species or 'unspecified species'})")
    optional = [
        ("Ethnicity", params.ethnicity),
        ("Character Features", params.character_features),
        ("Clothing Details", params.clothing_details),
        ("Accent/Region", params.accent_region),
        ("Voice Type", params.voice_type),
        ("Energy Level", params.energy_level),
    ]
    lines.extend(f"{name}: {value}" for name, value in optional if value)

    framework = [
        ("Persona", params.persona),
        ("Core Desire", params.core_desire),
        ("Awareness Level", params.awareness),
        ("Promise", params.promise),
        ("Pattern Breaker", params.pattern_breaker),
        ("Headline Pattern", params.headline_pattern),
        ("Headline", params.headline),
        ("Creative Type", params.creative_type),
    ]
    framework_lines = [f"- {name}: {value}" for name, value in framework if value]
    if framework_lines:
        lines.append("Ad Framework:")
        lines.extend(framework_lines)
    return lines


def _location_lines(context: GenerationContext) -> list[str]:
    lines = [f"Current Location: {context.current_location}"]
    if context.previous_location and context.previous_location != context.current_location:
        lines.append(f"Character just moved from: {context.previous_location}")
    if context.next_location and context.next_location != context.current_location:
        lines.append(f"Character will move to: {context.next_location}")
    return lines


def _base_description_lines(context: GenerationContext) -> list[str]:
    base = context.base_descriptions
    return [
        "Base Descriptions (USE EXACTLY AS PROVIDED):",
        f"Physical: {base.physical}",
        f"Clothing: {base.clothing}",
        f"Base Voice: {base.voice}",
        f"General Environment: {base.environment}",
        f"Product Handling: {base.product_handling}",
    ]


def _continuity_lines(context: GenerationContext) -> list[str]:
    if context.continuity.previous_segment is None:
        return ["This is the opening segment."]
    position = context.continuity.previous_end_position() or "N/A"
    return ["Previous segment ended with:", f"Position: {position}"]


def _voice_profile_json(profile: VoiceProfile | None) -> str:
    return json.dumps(profile.to_dict() if profile else {}, indent=2, ensure_ascii=False)


def _request(kind: CallKind, instructions: str, user_content: str, label: str) -> ModelRequest:
    call = CALL_PARAMS[kind]
    return ModelRequest(
        instructions=instructions,
        user_content=user_content,
        temperature=call.temperature,
        max_output_tokens=call.max_output_tokens,
        structured_output=True,
        label=label,
    )


# ---------------------------------------------------------------------------
# Request builders, one per call kind
# ---------------------------------------------------------------------------


def build_base_description_request(
    params: GenerationParams,
    template: str,
    *,
    label: str = "openai_base",
) -> ModelRequest:
    """Build the single call that produces the run's BaseDescriptions."""
    instructions = (
        f"{template}\n\nGenerate the base descriptions that will remain IDENTICAL across "
        "all segments. Follow the exact word count requirements. Return ONLY valid JSON."
    )

    if params.setting_mode == "single":
        place = f"Room: {params.room or 'living room'}"
    else:
        place = f"Locations: {', '.join(params.locations) if params.locations else 'various'}"

    lines = [
        "Create base descriptions for:",
        f"Age: {params.age_range or 'N/A'}",
        f"Gender: {params.gender or 'N/A'}",
        f"Setting Mode: {params.setting_mode or 'single'}",
        place,
        f"Style: {params.style or 'casual'}",
        f"Product: {params.product or 'None'}",
        f"Camera Style: {params.camera_style or 'static-handheld'}",
        f"Time of Day: {params.time_of_day or 'morning'}",
        f"Background Life: {'Yes' if params.background_life else 'No'}",
        f"Product Display: {params.product_style or 'natural'}",
        f"Energy Arc: {params.energy_arc or 'consistent'}",
        f"Narrative Style: {params.narrative_style or 'direct-review'}",
    ]
    lines.extend(_advanced_character_lines(params))
    lines.extend([
        "",
        "Return a JSON object with these exact keys:",
        "{",
        '  "physical": "[100+ words or 200+ if enhanced]",',
        '  "clothing": "[100+ words or 150+ if enhanced]",',
        '  "environment": "[150+ words or 250+ if enhanced]",',
        '  "voice": "[50+ words or 100+ if enhanced]",',
        '  "productHandling": "[50+ words]"',
        "}",
    ])
    return _request(CallKind.BASE_DESCRIPTION, instructions, "\n".join(lines), label)


def build_segment_request(
    params: GenerationParams,
    context: GenerationContext,
    template: str,
    *,
    label: str | None = None,
) -> ModelRequest:
    """Build one full per-segment call.

    In sequential mode context.continuity carries the previous segment;
    the prompt then names where that segment left the character.
    """
    instructions = (
        f"{template}\n\nGenerate a Veo 3 JSON segment following the exact structure. "
        "Use the provided base descriptions WORD-FOR-WORD."
    )
    camera = get_camera_style(params.camera_style)

    lines = [
        f"Create segment {context.segment_number} of {context.total_segments}:",
        "",
        f'Dialogue for this segment: "{context.script_part}"',
        f"Product: {params.product or 'None'}",
    ]
    lines.extend(_location_lines(context))
    lines.extend([
        "",
        "Visual Settings:",
        f"- Camera Style: {camera.label}",
        f"- Camera Guidance: {camera.guidance}",
        f"- Time of Day: {params.time_of_day or 'morning'}",
        "- Background Life: "
        + ("Include subtle background activity" if params.background_life else "Focus only on character"),
        f"- Energy Level: {energy_level(params.energy_arc, context.segment_number, context.total_segments)}",
        "",
    ])
    lines.extend(_base_description_lines(context))
    lines.append("")
    lines.extend(_continuity_lines(context))

    return _request(
        CallKind.SEGMENT,
        instructions,
        "\n".join(lines),
        label or f"openai_segment_{context.segment_number}",
    )


def build_continuation_style_request(
    params: GenerationParams,
    context: GenerationContext,
    template: str,
    *,
    label: str | None = None,
) -> ModelRequest:
    """Build a segment call that leans on the voice profile for continuity."""
    instructions = (
        f"{template}\n\nGenerate a segment that maintains the EXACT same structure as "
        "standard segments, but with ENHANCED voice and behavior sections."
    )
    camera = get_camera_style(params.camera_style)

    lines = [
        f"Create segment {context.segment_number} of {context.total_segments}:",
        "",
        f'Dialogue for this segment: "{context.script_part}"',
        f"Product: {params.product or 'None'}",
    ]
    lines.extend(_location_lines(context))
    lines.extend([
        f"Camera Style: {camera.label}",
        f"Energy Level: {energy_level(params.energy_arc, context.segment_number, context.total_segments)}",
        "",
    ])
    lines.extend(_base_description_lines(context))
    lines.extend([
        "",
        "Voice Profile to Maintain:",
        _voice_profile_json(context.continuity.voice_profile),
        "",
    ])
    lines.extend(_continuity_lines(context))

    return _request(
        CallKind.CONTINUATION_STYLE,
        instructions,
        "\n".join(lines),
        label or f"openai_continuation_style_{context.segment_number}",
    )


def build_minimal_continuation_request(
    template: str,
    *,
    dialogue: str,
    voice_profile: VoiceProfile | None,
    image_url: str | None = None,
    previous_dialogue: str | None = None,
    product: str | None = None,
    maintain_energy: bool = False,
    label: str = "openai_continuation_minimal",
) -> ModelRequest:
    """Build a continuation call that describes the character only by reference."""
    instructions = (
        f"{template}\n\nGenerate a continuation segment with MINIMAL description but "
        "DETAILED voice/behavior continuity. Return ONLY JSON."
    )
    lines = [
        "Create a continuation segment:",
        "",
        f"Image Context: Character from screenshot at {image_url or 'N/A'}",
        f'Previous Dialogue: "{previous_dialogue or "N/A"}"',
        f'New Dialogue: "{dialogue}"',
        f"Product: {product or 'None'}",
        f"Maintain Energy: {'Yes' if maintain_energy else 'No'}",
        "",
        "Voice Profile to Match EXACTLY:",
        _voice_profile_json(voice_profile),
    ]
    return _request(CallKind.CONTINUATION_MINIMAL, instructions, "\n".join(lines), label)


def build_voice_profile_request(
    params: GenerationParams,
    dialogue: str | None,
    *,
    label: str = "openai_voice_profile",
) -> ModelRequest:
    """Build the call that extracts a VoiceProfile from an early segment's dialogue."""
    instructions = "Generate a detailed voice continuity profile for video consistency. Return ONLY JSON."
    lines = [
        "Create detailed voice profile for:",
        f"Age: {params.age_range or 'N/A'}",
        f"Gender: {params.gender or 'N/A'}",
        f"Energy Level: {params.energy_level or '80'}%",
        f'Script Sample: "{dialogue or params.script}"',
    ]
    if params.accent_region:
        lines.append(f"Accent/Region: {params.accent_region}")
    if params.voice_type:
        lines.append(f"Voice Type: {params.voice_type}")
    lines.extend([
        "",
        "Return:",
        "{",
        '  "pitchRange": "...",',
        '  "speakingRate": "...",',
        '  "toneQualities": "...",',
        '  "breathingPattern": "...",',
        '  "emotionalInflections": { "excitement": "...", "emphasis": "...", "warmth": "..." },',
        '  "uniqueMarkers": ["..."],',
        '  "regionalAccent": "...",',
        '  "vocalTexture": "..."',
        "}",
    ])
    return _request(CallKind.VOICE_PROFILE, instructions, "\n".join(lines), label)


def build_repair_request(raw: str, kind: CallKind, *, label: str) -> ModelRequest:
    """Build the JSON-repair call for a reply of the given kind."""
    return ModelRequest(
        instructions=REPAIR_INSTRUCTIONS,
        user_content=f"Fix this into valid JSON (object only). Keep keys/values intact:\n{raw}",
        temperature=REPAIR_TEMPERATURE,
        max_output_tokens=CALL_PARAMS[kind].repair_max_tokens,
        structured_output=True,
        label=f"{label}_repair",
    )


def describe_request(request: ModelRequest) -> dict[str, Any]:
    """Small summary of a request for debug logs."""
    return {
        "label": request.label,
        "temperature": request.temperature,
        "max_output_tokens": request.max_output_tokens,
        "chars": len(request.instructions) + len(request.user_content),
    }
