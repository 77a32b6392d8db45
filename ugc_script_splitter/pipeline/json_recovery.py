"""Tiered recovery of JSON objects from raw model text.

WHY: Even in JSON mode the model sometimes wraps its answer in code fences,
leaves trailing commas, adds chatter around the object, or truncates it.
A segment that is almost JSON should not fail the whole run.

HOW: Three tiers, cheapest first.
  1. json.loads(raw)
  2. cleanup: drop CR/NUL, strip ``` fences, remove trailing commas before
     } or ], slice from the first "{" to the last "}", then json.loads
  3. repair: hand raw to a caller-supplied coroutine (a model call that is
     asked to return only fixed JSON) and run the reply through tiers 1-2

RULES:
- Tier 3 runs only after tiers 1 and 2 both failed
- Exactly one repair call per recover_json() invocation, at most
- A reply that still fails tiers 1-2 → MalformedOutputError("json_repair_failed")
- Only JSON objects count as success; arrays and scalars are rejected
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from ugc_script_splitter.pipeline.errors import MalformedOutputError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

Repair = Callable[[str], Awaitable[str]]


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def clean_json_text(raw: str) -> str:
    """Apply the tier-2 cleanup steps to raw model text."""
    text = raw.replace("\r", "").replace("\x00", "")
    text = _FENCE_RE.sub("", text)
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        text = text[first:last + 1]
    return text.strip()


def try_parse(raw: str | None) -> dict[str, Any] | None:
    """Run tiers 1 and 2. Returns the parsed object or None."""
    if not raw:
        return None
    parsed = _loads_object(raw)
    if parsed is not None:
        return parsed
    return _loads_object(clean_json_text(raw))


async def recover_json(raw: str | None, repair: Repair, *, label: str = "openai") -> dict[str, Any]:
    """Parse raw as a JSON object, falling back to one repair call.

    Args:
        raw: Model reply text.
        repair: Coroutine function returning the repair call's reply text.
        label: Call-site label for logs and errors.

    Returns:
        The parsed JSON object.

    Raises:
        MalformedOutputError: when the repaired text is still not a JSON object.
    """
    parsed = try_parse(raw)
    if parsed is not None:
        return parsed

    logger.warning("%s: unparseable JSON (%d chars), requesting repair", label, len(raw or ""))
    repaired = await repair(raw or "")

    parsed = try_parse(repaired)
    if parsed is not None:
        return parsed

    logger.error("%s: JSON repair failed", label)
    raise MalformedOutputError("json_repair_failed", label=label, raw=raw)
