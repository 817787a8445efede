"""Tests for paperfeed/digest.py"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from paperfeed.digest import assemble_digest, strip_code_fences
from paperfeed.errors import DigestParseError

VALID = json.dumps({
    "overview": "Sparse models are in vogue.",
    "summaries": [
        {"index": 2, "summary": "Second paper summary.", "key_points": ["k1", "k2"]},
        {"index": 1, "summary": "First paper summary.", "key_points": ["k3"]},
    ],
})


class TestStripCodeFences:
    def test_plain_text_unchanged(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```\n') == '{"a": 1}'


class TestAssembleDigest:
    def test_valid_payload(self, papers):
        when = datetime(2025, 3, 2, tzinfo=timezone.utc)
        digest = assemble_digest(VALID, papers, ["llm"], generated_at=when)
        assert digest.overview == "Sparse models are in vogue."
        assert digest.topics == ("llm",)
        assert digest.generated_at == when
        assert [s.paper.title for s in digest.summaries] == ["Paper 2", "Paper 1"]
        assert digest.summaries[0].key_points == ("k1", "k2")

    def test_index_one_maps_to_first_paper(self, papers):
        raw = json.dumps({"overview": "", "summaries": [{"index": 1, "summary": "s"}]})
        digest = assemble_digest(raw, papers, ["llm"])
        assert digest.summaries[0].paper == papers[0]
        assert digest.summaries[0].key_points == ()

    def test_fenced_equals_unfenced(self, papers):
        when = datetime(2025, 3, 2, tzinfo=timezone.utc)
        plain = assemble_digest(VALID, papers, ["llm"], generated_at=when)
        fenced = assemble_digest(f"```json\n{VALID}\n```", papers, ["llm"], generated_at=when)
        assert plain == fenced

    @pytest.mark.parametrize("index", [0, -1, 4, 99])
    def test_out_of_range_indices_dropped(self, papers, index):
        raw = json.dumps({
            "overview": "o",
            "summaries": [
                {"index": index, "summary": "ghost"},
                {"index": 3, "summary": "real"},
            ],
        })
        digest = assemble_digest(raw, papers, ["llm"])
        assert [s.summary for s in digest.summaries] == ["real"]

    def test_empty_summaries_allowed(self, papers):
        digest = assemble_digest('{"overview": "nothing notable", "summaries": []}', papers, ["llm"])
        assert digest.summaries == ()
        assert digest.generated_at.tzinfo is not None

    @pytest.mark.parametrize("raw", [
        "not json at all",
        '{"overview": "x", "summaries": "nope"}',
        '{"overview": "x", "summaries": [{"index": "first"}]}',
        "[1, 2, 3]",
    ])
    def test_malformed_raises_with_raw_text(self, papers, raw):
        with pytest.raises(DigestParseError) as info:
            assemble_digest(raw, papers, ["llm"])
        assert "failed to parse LLM JSON" in str(info.value)
        assert raw in str(info.value)
        assert info.value.raw == raw

    def test_null_fields_read_as_empty(self, papers):
        raw = '{"overview": null, "summaries": [{"index": 1, "summary": null, "key_points": null}]}'
        digest = assemble_digest(raw, papers, ["llm"])
        assert digest.overview == ""
        assert digest.summaries[0].summary == ""
        assert digest.summaries[0].key_points == ()

    def test_null_key_points_alone(self, papers):
        raw = '{"overview":"o","summaries":[{"index":1,"summary":"s","key_points":null}]}'
        digest = assemble_digest(raw, papers, ["llm"])
        assert digest.summaries[0].summary == "s"
        assert digest.summaries[0].key_points == ()

    @pytest.mark.parametrize("entry", [
        {"summary": "no index"},
        {"index": None, "summary": "null index"},
    ])
    def test_missing_or_null_index_is_dropped(self, papers, entry):
        raw = json.dumps({"overview": "o", "summaries": [entry, {"index": 2, "summary": "kept"}]})
        digest = assemble_digest(raw, papers, ["llm"])
        assert [s.summary for s in digest.summaries] == ["kept"]

    def test_null_summaries_list_is_empty(self, papers):
        digest = assemble_digest('{"overview": "o", "summaries": null}', papers, ["llm"])
        assert digest.summaries == ()

    def test_result_is_immutable(self, papers):
        digest = assemble_digest(VALID, papers, ["llm"])
        assert isinstance(digest.summaries, tuple)
        assert isinstance(digest.summaries[0].key_points, tuple)
        assert isinstance(digest.summaries[0].paper.authors, tuple)
