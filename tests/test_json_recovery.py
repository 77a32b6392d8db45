"""Tests for tiered JSON recovery of model output.

WHY: Each repair is a paid model call. The cheap tiers must absorb the
common failure shapes (fences, trailing commas, chatter) without one, and
the repair tier must run at most once.
"""

import asyncio

import pytest

from ugc_script_splitter.pipeline.errors import ErrorKind, MalformedOutputError
from ugc_script_splitter.pipeline.json_recovery import clean_json_text, recover_json, try_parse


class RecordingRepair:
    """Repair coroutine that returns a fixed reply and counts calls."""

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def __call__(self, raw):
        self.calls.append(raw)
        return self.reply


class TestCleanup:
    def test_strips_fences_and_trailing_commas(self):
        raw = '```json\n{"a": [1, 2,], "b": {"c": 3,},}\n```'
        assert try_parse(raw) == {"a": [1, 2], "b": {"c": 3}}

    def test_slices_chatter_around_object(self):
        raw = 'Sure! Here it is: {"ok": true} Let me know if you need more.'
        assert try_parse(raw) == {"ok": True}

    def test_removes_carriage_returns_and_nul(self):
        assert clean_json_text('{"a":\r\n 1}\x00') == '{"a":\n 1}'

    def test_arrays_are_not_objects(self):
        assert try_parse("[1, 2, 3]") is None

    def test_empty_input(self):
        assert try_parse("") is None
        assert try_parse(None) is None


class TestRecoverJson:
    def test_valid_json_needs_no_repair(self):
        repair = RecordingRepair("{}")
        result = asyncio.run(recover_json('{"segment": 1}', repair))
        assert result == {"segment": 1}
        assert repair.calls == []

    def test_fenced_json_with_trailing_comma_needs_no_repair(self):
        repair = RecordingRepair("{}")
        raw = '```json\n{"dialogue": "hi", "camera": "static",}\n```'
        result = asyncio.run(recover_json(raw, repair))
        assert result == {"dialogue": "hi", "camera": "static"}
        assert repair.calls == []

    def test_truncated_json_triggers_exactly_one_repair(self):
        repair = RecordingRepair('{"dialogue": "fixed"}')
        raw = '{"dialogue": "cut off mid'
        result = asyncio.run(recover_json(raw, repair, label="openai_segment_2"))
        assert result == {"dialogue": "fixed"}
        assert repair.calls == [raw]

    def test_repaired_reply_goes_through_cleanup(self):
        repair = RecordingRepair('```json\n{"a": 1,}\n```')
        assert asyncio.run(recover_json("not json", repair)) == {"a": 1}
        assert len(repair.calls) == 1

    def test_unrepairable_output_raises_malformed(self):
        repair = RecordingRepair("still not json")
        with pytest.raises(MalformedOutputError) as exc_info:
            asyncio.run(recover_json("garbage", repair, label="openai_segment_4"))
        assert str(exc_info.value) == "json_repair_failed"
        assert exc_info.value.kind is ErrorKind.MALFORMED
        assert exc_info.value.label == "openai_segment_4"
        assert exc_info.value.raw == "garbage"
        assert len(repair.calls) == 1
