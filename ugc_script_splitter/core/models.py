"""Typed data model for the segmentation-and-generation pipeline.

WHY: A generation run threads a lot of state between stages — demographic
and style knobs from the caller, the text chunks, a shared description
block, the previous segment for continuity, an extracted voice profile.
Passing one loose dict around makes it impossible to see what segment i
actually hands to segment i+1. Explicit dataclasses per stage make that
contract visible.

HOW: Frozen dataclasses for values that must not change once created
(TextSegment, BaseDescriptions, VoiceProfile, ContinuityState,
GenerationContext). GenerationParams is the caller-facing run request.
RunResult is the request-scoped output. Model-produced segments stay plain
dicts: the pipeline treats them as opaque except for two continuity fields.

RULES:
- Generated segments are never mutated after they are parsed
- BaseDescriptions and VoiceProfile are created once per run, then shared
  read-only by every later call
- Wire format (to_dict) uses the camelCase keys the browser client reads
- Python 3.9+ compatible (Optional/List from typing in runtime-evaluated spots)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

JSON_FORMATS = ("standard", "enhanced")
SETTING_MODES = ("single", "home-tour", "indoor-outdoor", "ai-inspired")
ENERGY_ARCS = ("building", "problem-solution", "discovery", "consistent")

DEFAULT_LOCATION = "living room"


# ---------------------------------------------------------------------------
# Text stage
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SegmentationConfig:
    """Word-count rules for splitting a script into ~6-8 second chunks.

    RULES:
    - min_words: hard floor enforced by borrowing/merging (15 ≈ 6s)
    - max_words: soft ceiling for grouping and borrowing (22 ≈ 8.8s)
    - merge_ceiling_words: absolute cap when merging two raw chunks
    - words_per_second: speaking rate used for duration estimates (150 wpm)
    """

    min_words: int = 15
    target_words: int = 20
    max_words: int = 22
    merge_ceiling_words: int = 30
    words_per_second: float = 2.5


@dataclass(frozen=True)
class TextSegment:
    """A contiguous run of script text representing one clip of speech."""

    text: str
    words_per_second: float = 2.5

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def estimated_duration_s(self) -> float:
        return self.word_count / self.words_per_second


# ---------------------------------------------------------------------------
# Shared descriptions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BaseDescriptions:
    """Character and scene description reused verbatim across all segments.

    WHY: The video model has no memory between clips. Repeating the same
    long-form description word for word in every segment prompt is what
    keeps the character looking and sounding the same.

    RULES:
    - Created once per run from the base-description model call
    - product_handling is optional in model output; defaults to "Natural handling"
    """

    physical: str
    clothing: str
    environment: str
    voice: str
    product_handling: str = "Natural handling"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BaseDescriptions:
        return cls(
            physical=str(data["physical"]),
            clothing=str(data["clothing"]),
            environment=str(data["environment"]),
            voice=str(data["voice"]),
            product_handling=str(data.get("productHandling") or "Natural handling"),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "physical": self.physical,
            "clothing": self.clothing,
            "environment": self.environment,
            "voice": self.voice,
            "productHandling": self.product_handling,
        }


@dataclass(frozen=True)
class VoiceProfile:
    """Vocal-delivery fingerprint extracted from an early segment.

    WHY: Continuation-style prompts skip most of the character
    redescription and lean on this profile to keep delivery consistent.

    HOW: Parsed from the voice-profile model call. Unknown keys in the model
    output are kept in ``extra`` so nothing the model said is lost.
    """

    pitch_range: str = ""
    speaking_rate: str = ""
    tone_qualities: str = ""
    breathing_pattern: str = ""
    emotional_inflections: Dict[str, str] = field(default_factory=dict)
    unique_markers: List[str] = field(default_factory=list)
    regional_accent: str = ""
    vocal_texture: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    _KEYS = {
        "pitchRange": "pitch_range",
        "speakingRate": "speaking_rate",
        "toneQualities": "tone_qualities",
        "breathingPattern": "breathing_pattern",
        "emotionalInflections": "emotional_inflections",
        "uniqueMarkers": "unique_markers",
        "regionalAccent": "regional_accent",
        "vocalTexture": "vocal_texture",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> VoiceProfile:
        known: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = cls._KEYS.get(key)
            if attr is None:
                extra[key] = value
            elif attr == "emotional_inflections":
                if isinstance(value, dict):
                    known[attr] = {str(k): str(v) for k, v in value.items()}
                elif value:
                    extra[key] = value
            elif attr == "unique_markers":
                if isinstance(value, (list, tuple)):
                    known[attr] = [str(m) for m in value]
                elif value:
                    known[attr] = [str(value)]
            else:
                known[attr] = "" if value is None else str(value)
        return cls(extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.extra)
        for key, attr in self._KEYS.items():
            value = getattr(self, attr)
            out[key] = dict(value) if isinstance(value, dict) else (
                list(value) if isinstance(value, list) else value
            )
        return out


DEFAULT_VOICE_PROFILE = VoiceProfile(
    pitch_range="165-185 Hz",
    speaking_rate="145-150 wpm",
    tone_qualities="warm, clear, friendly",
    breathing_pattern="natural pauses between phrases",
    emotional_inflections={
        "excitement": "slightly higher pitch",
        "emphasis": "slight volume increase on key words",
        "warmth": "softened attack, relaxed pace",
    },
    unique_markers=[],
    regional_accent="",
    vocal_texture="smooth",
)
"""Substituted when voice-profile extraction fails so the run can finish."""


# ---------------------------------------------------------------------------
# Run request and per-call context
# ---------------------------------------------------------------------------


@dataclass
class GenerationParams:
    """Everything a caller can ask of one generation run.

    RULES:
    - script is required; length is validated at the boundary, not here
    - setting_mode ∈ SETTING_MODES; json_format ∈ JSON_FORMATS
    - sequential=None lets the orchestrator choose the execution mode
    - product is optional (talking-only scripts are allowed)
    """

    script: str
    age_range: Optional[str] = None
    gender: Optional[str] = None
    product: Optional[str] = None
    room: Optional[str] = None
    style: Optional[str] = None
    json_format: str = "standard"
    setting_mode: str = "single"
    locations: List[str] = field(default_factory=list)
    camera_style: Optional[str] = None
    time_of_day: Optional[str] = None
    background_life: bool = False
    product_style: Optional[str] = None
    energy_arc: Optional[str] = None
    narrative_style: Optional[str] = None
    voice_type: Optional[str] = None
    energy_level: Optional[str] = None
    # advanced character details
    ethnicity: Optional[str] = None
    character_features: Optional[str] = None
    clothing_details: Optional[str] = None
    accent_region: Optional[str] = None
    avatar_mode: Optional[str] = None
    animal_species: Optional[str] = None
    # ad framework fields
    persona: Optional[str] = None
    core_desire: Optional[str] = None
    awareness: Optional[str] = None
    promise: Optional[str] = None
    pattern_breaker: Optional[str] = None
    headline_pattern: Optional[str] = None
    headline: Optional[str] = None
    creative_type: Optional[str] = None
    # run controls
    max_segments: Optional[int] = None
    sequential: Optional[bool] = None
    continuation_mode: bool = False


@dataclass(frozen=True)
class ContinuityState:
    """What segment i hands to segment i+1.

    RULES:
    - previous_segment is the parsed result of segment i-1, or None for the
      opening segment and for every segment in concurrent mode
    - voice_profile is set only in voice-profile / continuation runs
    """

    previous_segment: Optional[Dict[str, Any]] = None
    voice_profile: Optional[VoiceProfile] = None

    def previous_end_position(self) -> Optional[str]:
        """Where the previous segment left the character, if known.

        Reads ``action_timeline.transition_prep`` first, then
        ``segment_info.continuity_markers.end_position``.
        """
        if not self.previous_segment:
            return None
        timeline = self.previous_segment.get("action_timeline") or {}
        if isinstance(timeline, dict) and timeline.get("transition_prep"):
            return str(timeline["transition_prep"])
        info = self.previous_segment.get("segment_info") or {}
        markers = info.get("continuity_markers") if isinstance(info, dict) else None
        if isinstance(markers, dict) and markers.get("end_position"):
            return str(markers["end_position"])
        return None

    def previous_dialogue(self) -> Optional[str]:
        if not self.previous_segment:
            return None
        timeline = self.previous_segment.get("action_timeline") or {}
        if isinstance(timeline, dict) and timeline.get("dialogue"):
            return str(timeline["dialogue"])
        return None


@dataclass(frozen=True)
class GenerationContext:
    """Inputs for one per-segment model call."""

    segment_number: int
    total_segments: int
    script_part: str
    base_descriptions: BaseDescriptions
    current_location: str
    previous_location: Optional[str] = None
    next_location: Optional[str] = None
    continuity: ContinuityState = field(default_factory=ContinuityState)


# ---------------------------------------------------------------------------
# Run output
# ---------------------------------------------------------------------------


@dataclass
class RunResult:
    """Request-scoped output of one generation run.

    RULES:
    - total_segments == len(segments)
    - estimated_duration_s == len(segments) * 8
    - segments are in script order regardless of execution mode
    """

    segments: List[Dict[str, Any]]
    character_id: str
    mode: str = "standard"
    voice_profile: Optional[VoiceProfile] = None

    SECONDS_PER_SEGMENT = 8

    @property
    def total_segments(self) -> int:
        return len(self.segments)

    @property
    def estimated_duration_s(self) -> int:
        return len(self.segments) * self.SECONDS_PER_SEGMENT

    def metadata(self) -> Dict[str, Any]:
        return {
            "totalSegments": self.total_segments,
            "estimatedDurationSeconds": self.estimated_duration_s,
            "characterId": self.character_id,
            "mode": self.mode,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": list(self.segments),
            "metadata": self.metadata(),
            "voiceProfile": self.voice_profile.to_dict() if self.voice_profile else None,
        }
