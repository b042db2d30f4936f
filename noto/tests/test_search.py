"""
Tests for text extraction and local search.
"""

from datetime import datetime, timedelta, timezone

import pytest

from noto.models.state import AppState, ChecklistItem, EntityKind, NoteBlock
from noto.services.search import extract_text, make_snippet, normalize_digits, search_state, strip_html

BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _doc(*paragraphs: str) -> dict:
    return {
        "type": "doc",
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": p}]} for p in paragraphs],
    }


class TestTextExtraction:
    """测试纯文本提取"""

    def test_extract_text_walks_nested_content(self):
        assert extract_text(_doc("hello", "world")) == "hello world"
        assert extract_text("  plain  ") == "plain"
        assert extract_text(None) == ""
        assert extract_text({"type": "image"}) == ""

    def test_strip_html(self):
        html = "<h1>Title</h1><p>a <b>bold</b>&amp;<i>it</i></p><script>alert(1)</script><ul><li>x</li><li>y</li></ul>"
        assert strip_html(html) == "Title a bold&it x y"
        assert strip_html("") == ""

    def test_normalize_digits(self):
        assert normalize_digits("۱۲۳ and ٤٥٦") == "123 and 456"


class TestMakeSnippet:
    """测试摘要截取"""

    def test_short_text_is_untouched(self):
        assert make_snippet("buy milk", "milk") == "buy milk"

    def test_window_around_match(self):
        text = "a" * 200 + "needle" + "b" * 200
        snippet = make_snippet(text, "NEEDLE", max_len=40)
        assert snippet.startswith("…") and snippet.endswith("…")
        assert "needle" in snippet
        assert len(snippet) == 42

    def test_no_match_returns_head(self):
        assert make_snippet("x" * 300, "zzz", max_len=10) == "x" * 10


class TestSearchState:
    """测试全文检索"""

    @pytest.fixture
    def state(self):
        return AppState(
            checklist=[
                ChecklistItem(id="c-old", title="Buy milk", updated_at=BASE),
                ChecklistItem(
                    id="c-new",
                    title="Call",
                    description_html="<p>about the milk</p>",
                    updated_at=BASE + timedelta(days=1),
                ),
                ChecklistItem(id="c-pinned", title="milk run", pinned=True, updated_at=BASE),
                ChecklistItem(id="c-archived", title="old milk", archived=True, updated_at=BASE),
            ],
            notes=[
                NoteBlock(id="n-json", title="Recipe", content_json=_doc("add milk slowly"), html="<p>stale</p>"),
                NoteBlock(id="n-html", title="Room ۱۲", html="<p>meeting</p>"),
            ],
        )

    def test_ranking_and_order(self, state):
        hits = search_state(state, "milk")
        assert [(h.kind, h.id) for h in hits] == [
            (EntityKind.CHECKLIST, "c-pinned"),
            (EntityKind.CHECKLIST, "c-new"),
            (EntityKind.CHECKLIST, "c-old"),
            (EntityKind.NOTE, "n-json"),
        ]
        assert hits[1].snippet == "about the milk"

    def test_archived_opt_in(self, state):
        ids = [h.id for h in search_state(state, "milk", include_archived=True)]
        assert "c-archived" in ids

    def test_note_body_prefers_content_json(self, state):
        assert search_state(state, "stale") == []

    def test_digits_are_normalized(self, state):
        assert [h.id for h in search_state(state, "12")] == ["n-html"]
        assert [h.id for h in search_state(state, "۱۲")] == ["n-html"]

    def test_blank_query(self, state):
        assert search_state(state, "   ") == []

    def test_limit_per_collection(self, state):
        hits = search_state(state, "milk", limit=1)
        assert [h.id for h in hits] == ["c-pinned", "n-json"]

    def test_query_too_long(self, state):
        with pytest.raises(ValueError):
            search_state(state, "x" * 201)
