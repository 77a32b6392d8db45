"""JSON-schema validation of model output that the pipeline depends on.

WHY: Most of a generated segment is opaque to the pipeline, but base
descriptions and voice profiles are read field by field and repeated in
every later prompt. A missing "physical" key would silently produce
"Physical: None" in every segment, so those two shapes are checked.

HOW: Schemas live as JSON files in ugc_script_splitter/schemas/ and are
cached after first load. parse_base_descriptions() and
parse_voice_profile() validate with jsonschema and build the dataclasses.

RULES:
- Invalid base descriptions → MalformedOutputError("base_descriptions_invalid")
- Invalid voice profile → jsonschema.ValidationError (the orchestrator
  substitutes the default profile)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema

from ugc_script_splitter.core.models import BaseDescriptions, VoiceProfile
from ugc_script_splitter.pipeline.errors import MalformedOutputError

_SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"

_CACHED_SCHEMAS: dict[str, dict[str, Any]] = {}


def _get_schema(name: str) -> dict[str, Any]:
    """Load a schema by file stem, cached at module level after first call."""
    if name not in _CACHED_SCHEMAS:
        with open(_SCHEMA_DIR / f"{name}.schema.json", encoding="utf-8") as f:
            _CACHED_SCHEMAS[name] = json.load(f)
    return _CACHED_SCHEMAS[name]


def parse_base_descriptions(data: dict[str, Any], *, label: str = "openai_base") -> BaseDescriptions:
    """Validate model output and build BaseDescriptions.

    Raises:
        MalformedOutputError: if data does not match the schema.
    """
    try:
        jsonschema.validate(instance=data, schema=_get_schema("base-descriptions"))
    except jsonschema.ValidationError as exc:
        raise MalformedOutputError(
            f"base_descriptions_invalid: {exc.message}", label=label,
        ) from exc
    return BaseDescriptions.from_dict(data)


def parse_voice_profile(data: dict[str, Any]) -> VoiceProfile:
    """Validate model output and build a VoiceProfile.

    Raises:
        jsonschema.ValidationError: if data does not match the schema.
    """
    jsonschema.validate(instance=data, schema=_get_schema("voice-profile"))
    return VoiceProfile.from_dict(data)
