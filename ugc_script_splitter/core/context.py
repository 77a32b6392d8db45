"""Deterministic per-run context: locations, energy arc, camera style, IDs.

WHY: Several pieces of every segment prompt are not produced by the model
but derived from the caller's settings before generation starts: where
the character is standing in segment i, how energetic the delivery should
be at that point of the script, what the camera is doing. Deriving them
up front, in one place, keeps the per-segment calls independent of each
other in concurrent mode.

HOW: build_location_sequence() maps setting-mode config onto segment
indices. energy_level() is a small state machine over
(energy_arc, segment_number, total_segments). CAMERA_STYLES holds the
named camera styles with a label and short prompt guidance.
generate_character_id() composes a run identifier.

RULES:
- len(build_location_sequence(...)) == number of segments
- single mode repeats one location; other modes map the caller's list
  index-for-index and repeat the last entry for overflow
- Missing locations default to "living room"
- Unknown camera style keys fall back to static-handheld
- All functions are pure except generate_character_id (clock read)
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from typing import Sequence

from ugc_script_splitter.core.models import DEFAULT_LOCATION, GenerationParams


# ---------------------------------------------------------------------------
# Location sequence
# ---------------------------------------------------------------------------


def build_location_sequence(
    setting_mode: str,
    segment_count: int,
    room: str | None = None,
    locations: Sequence[str] | None = None,
) -> list[str]:
    """Derive one location per segment from setting-mode configuration.

    Args:
        setting_mode: "single", "home-tour", "indoor-outdoor" or "ai-inspired".
        segment_count: Number of text segments in the run.
        room: The single location used in "single" mode.
        locations: Caller-supplied list for the multi-location modes.

    Returns:
        List of exactly segment_count location strings.
    """
    if segment_count <= 0:
        return []

    if setting_mode == "single":
        return [room or DEFAULT_LOCATION] * segment_count

    src = [loc for loc in (locations or []) if loc]
    if not src:
        return [DEFAULT_LOCATION] * segment_count
    return [src[i] if i < len(src) else src[-1] for i in range(segment_count)]


# ---------------------------------------------------------------------------
# Energy arc
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def energy_level(energy_arc: str | None, segment_number: int, total_segments: int) -> str:
    """Energy phrasing for a segment's position in the script.

    RULES:
    - progress = segment_number / total_segments (1-based segment_number)
    - building: 60% → 95% linearly across progress
    - problem-solution: <0.3 concerned, <0.7 working, else excited
    - discovery: <0.5 curious, else convinced
    - consistent (and anything unknown): flat 80%
    """
    progress = segment_number / total_segments if total_segments else 1.0

    if energy_arc == "building":
        return f"{_round_half_up(60 + 35 * progress)}% - Building from calm to excited"
    if energy_arc == "problem-solution":
        if progress < 0.3:
            return "70% - Concerned, explaining problem"
        if progress < 0.7:
            return "60% - Working through solution"
        return "90% - Excited about results"
    if energy_arc == "discovery":
        if progress < 0.5:
            return "75% - Curious and exploring"
        return "85% - Convinced and enthusiastic"
    return "80% - Steady, engaging energy throughout"


# ---------------------------------------------------------------------------
# Camera styles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CameraStyle:
    """A named camera behaviour with short guidance for prompts."""

    label: str
    guidance: str


DEFAULT_CAMERA_STYLE = "static-handheld"

CAMERA_STYLES: dict[str, CameraStyle] = {
    "static-handheld": CameraStyle(
        label="Static Handheld",
        guidance=(
            "Hold phone at eye level, arms steady. Minimal sway only. Framing stays "
            "consistent; no deliberate moves. Natural micro-movements are acceptable."
        ),
    ),
    "slow-push": CameraStyle(
        label="Slow Push In",
        guidance=(
            "Begin at medium shot and gently move closer 2-6 inches over the segment. "
            "Speed is slow and continuous. Keep subject centered and in focus."
        ),
    ),
    "orbit": CameraStyle(
        label="Subtle Orbit Movement",
        guidance=(
            "Small circular arc around subject (10-20° total). Keep distance constant. "
            "Movement is smooth and slow; maintain eye-level framing."
        ),
    ),
    "dynamic": CameraStyle(
        label="Dynamic Handheld",
        guidance=(
            "Noticeable handheld energy: quick micro-reframes, slight tilts, minimal "
            "parallax steps. Never whip-pan; keep subject readable at all times."
        ),
    ),
    "pov-selfie": CameraStyle(
        label="POV Selfie (phone-in-hand)",
        guidance=(
            "Front camera. Arm-length distance. Slight arm bends and natural hand "
            "jitters. Face occupies upper-middle frame; look into lens; device visible "
            "only if natural."
        ),
    ),
    "smooth-movement": CameraStyle(
        label="Smooth Movement",
        guidance=(
            "Glide-like motion on a single axis (forward/back/side). No abrupt stops. "
            "Keep horizon level; maintain consistent speed and framing."
        ),
    ),
    "dynamic-cuts": CameraStyle(
        label="Dynamic Cuts",
        guidance=(
            "Plan for quick, clear beats suitable for jump cuts between lines. Each beat "
            "has a distinct micro-reframe or angle to support cutting points."
        ),
    ),
    "documentary-style": CameraStyle(
        label="Documentary Style",
        guidance=(
            "Observational handheld with gentle reframing to follow subject attention. "
            "Occasional micro-zooms; prioritize clarity and authenticity."
        ),
    ),
    "ai-inspired": CameraStyle(
        label="AI Inspired (director's choice)",
        guidance=(
            "Select the most fitting style per segment from the available set, balancing "
            "visual variety with clarity. Avoid extreme motions."
        ),
    ),
}


def get_camera_style(style_key: str | None) -> CameraStyle:
    """Look up a camera style by key (case-insensitive), falling back to static-handheld."""
    key = str(style_key or "").strip().lower()
    return CAMERA_STYLES.get(key, CAMERA_STYLES[DEFAULT_CAMERA_STYLE])


# ---------------------------------------------------------------------------
# Character ID
# ---------------------------------------------------------------------------

_WHITESPACE_RE = re.compile(r"\s+")


def generate_character_id(params: GenerationParams, now_ms: int | None = None) -> str:
    """Compose a character identifier from demographics plus a timestamp.

    Format: ``{species|human}_{gender}_{age_range}_{epoch_ms}`` with any
    whitespace replaced by underscores. Missing demographics read "N/A".
    """
    if params.avatar_mode == "animal":
        kind = params.animal_species or "animal"
    else:
        kind = "human"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    raw = f"{kind}_{params.gender or 'N/A'}_{params.age_range or 'N/A'}_{stamp}"
    return _WHITESPACE_RE.sub("_", raw)
