"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation. The browser
client speaks camelCase JSON, while the pipeline uses snake_case
dataclasses; these models are the translation point.

HOW: Request models use a camelCase alias generator with
populate_by_name, so both spellings validate. to_params() converts a
request into the pipeline's GenerationParams. All models include Field
descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Script length is checked by the route (400), not here (422)
- Response models serialize with camelCase aliases
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ugc_script_splitter.core.models import GenerationParams


_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AnimalDetails(BaseModel):
    """Animal avatar details (used when avatarMode is "animal")."""

    model_config = _CAMEL_CONFIG

    species: Optional[str] = Field(default=None, description="Animal species, e.g. 'golden retriever'.")


class GenerateRequest(BaseModel):
    """Body of POST /api/generate and /api/generate-plus.

    WHY: One run needs the script plus every demographic, scene and style
    knob the prompts can use. Everything but the script is optional.

    RULES:
    - script must be at least 50 characters after stripping (checked by route)
    - settingMode ∈ single, home-tour, indoor-outdoor, ai-inspired
    - jsonFormat ∈ standard, enhanced
    - sequential overrides automatic execution-mode selection
    - continuationMode runs the voice-profile pipeline
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "script": (
                    "I've been using this serum for two weeks. My skin has never felt "
                    "this smooth. Honestly, I didn't expect it to work this fast."
                ),
                "ageRange": "25-34",
                "gender": "female",
                "product": "Hydrating face serum",
                "room": "bathroom",
                "style": "casual",
                "jsonFormat": "standard",
                "settingMode": "single",
            }
        },
    )

    script: str = Field(default="", description="Marketing script, at least 50 characters.")
    age_range: Optional[str] = Field(default=None, description="Character age range, e.g. '25-34'.")
    gender: Optional[str] = Field(default=None, description="Character gender.")
    product: Optional[str] = Field(default=None, description="Product being presented (optional).")
    room: Optional[str] = Field(default=None, description="Location used in 'single' setting mode.")
    style: Optional[str] = Field(default=None, description="Overall visual/wardrobe style.")
    json_format: Literal["standard", "enhanced"] = Field(
        default="standard", description="Template family: 'standard' or 'enhanced'.",
    )
    setting_mode: Literal["single", "home-tour", "indoor-outdoor", "ai-inspired"] = Field(
        default="single", description="How locations are assigned to segments.",
    )
    locations: List[str] = Field(
        default_factory=list,
        description="Locations for multi-location modes, mapped onto segments in order.",
    )
    camera_style: Optional[str] = Field(default=None, description="Camera style key, e.g. 'slow-push'.")
    time_of_day: Optional[str] = Field(default=None, description="Time of day, e.g. 'morning'.")
    background_life: bool = Field(default=False, description="Include subtle background activity.")
    product_style: Optional[str] = Field(default=None, description="How the product is displayed.")
    energy_arc: Optional[str] = Field(
        default=None, description="Energy arc: building, problem-solution, discovery or consistent.",
    )
    narrative_style: Optional[str] = Field(default=None, description="Narrative style, e.g. 'direct-review'.")
    voice_type: Optional[str] = Field(default=None, description="Voice type preset.")
    energy_level: Optional[str] = Field(default=None, description="Baseline energy level (percent).")
    ethnicity: Optional[str] = Field(default=None, description="Character ethnicity (advanced).")
    character_features: Optional[str] = Field(default=None, description="Distinctive features (advanced).")
    clothing_details: Optional[str] = Field(default=None, description="Clothing details (advanced).")
    accent_region: Optional[str] = Field(default=None, description="Accent or region (advanced).")
    avatar_mode: Optional[str] = Field(default=None, description="'human' (default) or 'animal'.")
    animal: Optional[AnimalDetails] = Field(default=None, description="Animal avatar details.")
    persona: Optional[str] = Field(default=None, description="Ad framework: persona.")
    core_desire: Optional[str] = Field(default=None, description="Ad framework: core desire.")
    awareness: Optional[str] = Field(default=None, description="Ad framework: awareness level.")
    promise: Optional[str] = Field(default=None, description="Ad framework: promise.")
    pattern_breaker: Optional[str] = Field(default=None, description="Ad framework: pattern breaker.")
    headline_pattern: Optional[str] = Field(default=None, description="Ad framework: headline pattern.")
    headline: Optional[str] = Field(default=None, description="Ad framework: headline.")
    creative_type: Optional[str] = Field(default=None, description="Ad framework: creative type.")
    max_segments: Optional[int] = Field(
        default=None, ge=1, description="Only generate the first N segments (debugging, short runs).",
    )
    sequential: Optional[bool] = Field(
        default=None, description="Force sequential (true) or concurrent (false) generation.",
    )
    continuation_mode: bool = Field(
        default=False, description="Run the voice-profile continuity pipeline.",
    )

    def to_params(self) -> GenerationParams:
        """Convert to the pipeline's GenerationParams."""
        return GenerationParams(
            script=self.script.strip(),
            age_range=self.age_range,
            gender=self.gender,
            product=self.product,
            room=self.room,
            style=self.style,
            json_format=self.json_format,
            setting_mode=self.setting_mode,
            locations=list(self.locations),
            camera_style=self.camera_style,
            time_of_day=self.time_of_day,
            background_life=self.background_life,
            product_style=self.product_style,
            energy_arc=self.energy_arc,
            narrative_style=self.narrative_style,
            voice_type=self.voice_type,
            energy_level=self.energy_level,
            ethnicity=self.ethnicity,
            character_features=self.character_features,
            clothing_details=self.clothing_details,
            accent_region=self.accent_region,
            avatar_mode=self.avatar_mode,
            animal_species=self.animal.species if self.animal else None,
            persona=self.persona,
            core_desire=self.core_desire,
            awareness=self.awareness,
            promise=self.promise,
            pattern_breaker=self.pattern_breaker,
            headline_pattern=self.headline_pattern,
            headline=self.headline,
            creative_type=self.creative_type,
            max_segments=self.max_segments,
            sequential=self.sequential,
            continuation_mode=self.continuation_mode,
        )


class GeneratePlusRequest(GenerateRequest):
    """Body of POST /api/generate-plus (same fields, enhanced by default)."""

    json_format: Literal["standard", "enhanced"] = Field(
        default="enhanced", description="Template family; the plus route defaults to 'enhanced'.",
    )


class ContinuationRequest(GenerateRequest):
    """Body of POST /api/generate-continuation.

    RULES:
    - voiceProfile is required (checked by route → 400)
    - product stays optional (talking-only scripts are allowed)
    - previousSegment, when given, seeds the continuity chain
    """

    json_format: Literal["standard", "enhanced"] = Field(
        default="enhanced", description="Template family; continuation defaults to 'enhanced'.",
    )
    room: Optional[str] = Field(default="living room", description="Location used in 'single' setting mode.")
    voice_profile: Optional[Dict[str, Any]] = Field(
        default=None, description="Voice profile to maintain (object).",
    )
    previous_segment: Optional[Dict[str, Any]] = Field(
        default=None, description="Last generated segment of the earlier run, if any.",
    )


class MinimalContinuationRequest(BaseModel):
    """Body of POST /api/generate-continuation-minimal."""

    model_config = _CAMEL_CONFIG

    script: str = Field(default="", description="New dialogue for the continuation segment.")
    voice_profile: Optional[Dict[str, Any]] = Field(
        default=None, description="Voice profile to match exactly (object).",
    )
    image_url: Optional[str] = Field(default=None, description="Screenshot of the character to continue from.")
    previous_segment: Optional[Dict[str, Any]] = Field(
        default=None, description="Previous segment; its dialogue is quoted for continuity.",
    )
    product: Optional[str] = Field(default=None, description="Product being presented (optional).")
    maintain_energy: bool = Field(default=False, description="Keep the previous segment's energy.")


class DownloadRequest(BaseModel):
    """Body of POST /api/download and /api/download-plus."""

    segments: List[Dict[str, Any]] = Field(
        ..., min_length=1, description="Generated segments, in order.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RunMetadata(BaseModel):
    """Summary of one generation run."""

    model_config = _CAMEL_CONFIG

    total_segments: int = Field(description="Number of generated segments.")
    estimated_duration_seconds: int = Field(description="Segments × 8 seconds.")
    character_id: str = Field(description="Identifier for the generated character.")
    mode: str = Field(description="Pipeline that produced the run.")


class GenerateResponse(BaseModel):
    """Successful generation response."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "success": True,
                "segments": [{"segment_info": {"segment_number": 1}}],
                "metadata": {
                    "totalSegments": 1,
                    "estimatedDurationSeconds": 8,
                    "characterId": "human_female_25-34_1767225600000",
                    "mode": "standard",
                },
                "voiceProfile": None,
            }
        },
    )

    success: bool = Field(default=True, description="Always true on success.")
    segments: List[Dict[str, Any]] = Field(description="Generated segments in script order.")
    metadata: RunMetadata = Field(description="Run summary.")
    voice_profile: Optional[Dict[str, Any]] = Field(
        default=None, description="Voice profile used by the run, if any.",
    )


class MinimalContinuationResponse(BaseModel):
    """Successful minimal continuation response."""

    success: bool = Field(default=True, description="Always true on success.")
    segment: Dict[str, Any] = Field(description="The generated continuation segment.")


class ErrorResponse(BaseModel):
    """Error response body."""

    error: str = Field(description="Short error description.")
    message: Optional[str] = Field(
        default=None, description="Details in development; generic text in production.",
    )


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = _CAMEL_CONFIG

    status: str = Field(description="Service status ('ok').")
    environment: str = Field(description="Active environment profile.")
    api_key_configured: bool = Field(description="Whether OPENAI_API_KEY is set.")
    route_timeout_s: float = Field(description="Outer deadline for generation routes.")
    rate_limit: str = Field(description="Rate-limit summary, e.g. '10 requests / 60s'.")
    cors_origins: List[str] = Field(description="Allowed CORS origins.")
    version: str = Field(description="Package version.")
