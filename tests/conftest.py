"""Shared test fixtures for the ugc_script_splitter test suite.

WHY: Most pipeline and API tests need the same scripted model client and
the same predictable scripts. Centralizing them here avoids duplication
and keeps call-count assertions comparable across modules.

HOW: ScriptedModelClient records every ModelRequest and answers either
from a list of canned replies or from a responder function. The default
responder returns well-formed base descriptions, voice profiles and
segments whose continuity fields name the segment they came from.

RULES:
- The upstream model is never called over the network
- make_script(n) yields exactly n text segments (3 five-word sentences each)
- Pipeline settings in tests use zero backoff so retries do not sleep
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from ugc_script_splitter.llm.models import ModelRequest, ModelResponse
from ugc_script_splitter.pipeline.orchestrator import GenerationService, PipelineSettings


# ---------------------------------------------------------------------------
# Canned model output
# ---------------------------------------------------------------------------

BASE_DESCRIPTIONS: Dict[str, str] = {
    "physical": "Woman in her late twenties with shoulder-length brown hair and warm eyes.",
    "clothing": "Oversized cream knit sweater over a white tee, light-wash jeans.",
    "environment": "Bright kitchen with white cabinets, morning light through a window.",
    "voice": "Warm mid-range voice, relaxed pace, friendly and conversational.",
    "productHandling": "Holds the bottle at chest height, label facing the camera.",
}

VOICE_PROFILE: Dict[str, Any] = {
    "pitchRange": "180-200 Hz",
    "speakingRate": "150 wpm",
    "toneQualities": "bright, upbeat",
    "breathingPattern": "short pauses before key claims",
    "emotionalInflections": {"excitement": "rising pitch", "emphasis": "stretched vowels"},
    "uniqueMarkers": ["slight laugh before punchlines"],
    "regionalAccent": "General American",
    "vocalTexture": "clear",
}

_SEGMENT_RE = re.compile(r"Create segment (\d+) of (\d+)")
_DIALOGUE_RE = re.compile(r'Dialogue for this segment: "(.*)"')

Reply = Union[str, Dict[str, Any], BaseException]


def segment_reply(number: int, dialogue: str = "") -> Dict[str, Any]:
    """A generated segment whose continuity fields identify its number."""
    return {
        "segment_info": {
            "segment_number": number,
            "continuity_markers": {"end_position": "end of segment {}".format(number)},
        },
        "character_description": {"physical": BASE_DESCRIPTIONS["physical"]},
        "action_timeline": {
            "dialogue": dialogue,
            "transition_prep": "pose after segment {}".format(number),
        },
        "scene_continuity": {"camera_position": "eye level"},
    }


def default_responder(request: ModelRequest) -> Reply:
    """Answer each call kind with well-formed JSON."""
    if request.label.endswith("_repair"):
        return {"repaired": True}
    if "base" in request.label:
        return dict(BASE_DESCRIPTIONS)
    if request.label == "openai_voice_profile":
        return dict(VOICE_PROFILE)
    if request.label == "openai_continuation_minimal":
        return {"segment_info": {"type": "continuation"}, "action_timeline": {"dialogue": "minimal"}}

    match = _SEGMENT_RE.search(request.user_content)
    number = int(match.group(1)) if match else 0
    dialogue = _DIALOGUE_RE.search(request.user_content)
    return segment_reply(number, dialogue.group(1) if dialogue else "")


class ScriptedModelClient:
    """Model client that answers from a script and records every request."""

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        responder: Optional[Callable[[ModelRequest], Reply]] = None,
    ) -> None:
        self.requests: List[ModelRequest] = []
        self._replies = list(replies or [])
        self._responder = responder

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if self._replies:
            reply = self._replies.pop(0)
        elif self._responder is not None:
            reply = self._responder(request)
        else:
            raise AssertionError("No scripted reply for {}".format(request.label))

        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return ModelResponse(content=reply)

    @property
    def labels(self) -> List[str]:
        return [r.label for r in self.requests]


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

_NUMBERS = [
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen",
    "eighteen", "nineteen", "twenty", "thirty", "forty", "fifty", "sixty", "seventy",
    "eighty", "ninety", "hundred", "thousand", "million",
]


def make_script(segment_count: int) -> str:
    """A script that splits into exactly segment_count chunks of 15 words."""
    sentences = []
    for i in range(segment_count * 3):
        word = _NUMBERS[i % len(_NUMBERS)]
        sentences.append("This is sentence {} {}.".format(word, i))
    return " ".join(sentences)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def model_client():
    """Scripted model client using the default responder."""
    return ScriptedModelClient(responder=default_responder)


@pytest.fixture
def fast_settings():
    """Pipeline settings with zero backoff and a short call timeout."""
    return PipelineSettings(
        call_timeout_s=1.0,
        retry_count=2,
        retry_base_delay_s=0.0,
        concurrency=2,
        sequential_threshold=8,
    )


@pytest.fixture
def service(model_client, fast_settings):
    """GenerationService wired to the scripted client."""
    return GenerationService(model_client, fast_settings)


@pytest.fixture
def script_of():
    """Factory fixture: script_of(n) returns a script of exactly n segments."""
    return make_script


@pytest.fixture
def scripted_client():
    """Factory fixture for ScriptedModelClient with custom replies/responder."""
    return ScriptedModelClient


@pytest.fixture
def base_payload():
    return dict(BASE_DESCRIPTIONS)


@pytest.fixture
def voice_payload():
    return dict(VOICE_PROFILE)


@pytest.fixture
def default_reply():
    """The default responder, for tests that override only some call kinds."""
    return default_responder
