"""
Search - 本地全文检索

Plain-text extraction from rich-text content plus a case-insensitive
substring search over checklist items and notes.

检索规则：
- 查询与文本都先做数字归一化（波斯/阿拉伯数字 → ASCII）
- 置顶优先，其次按 updatedAt 倒序
- 每个集合最多返回 limit 条
"""

import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Any, Optional

from noto.models.state import AppState, EntityKind

PERSIAN_DIGITS = "۰۱۲۳۴۵۶۷۸۹"
ARABIC_INDIC_DIGITS = "٠١٢٣٤٥٦٧٨٩"

_DIGIT_TABLE = str.maketrans(
    {**{d: str(i) for i, d in enumerate(PERSIAN_DIGITS)}, **{d: str(i) for i, d in enumerate(ARABIC_INDIC_DIGITS)}}
)

_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_SNIPPET_LENGTH = 140
DEFAULT_RESULT_LIMIT = 20
MAX_QUERY_LENGTH = 200
ELLIPSIS = "…"


def normalize_digits(text: str) -> str:
    """波斯/阿拉伯-印度数字转换为 ASCII 数字"""
    return text.translate(_DIGIT_TABLE)


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_text(doc: Any) -> str:
    """Flatten a ProseMirror/Tiptap JSON document to plain text.

    Strings are taken as-is, ``text`` nodes contribute their ``text``, and
    nested ``content`` arrays are walked depth-first.
    """
    parts: list[str] = []

    def walk(node: Any) -> None:
        if not node:
            return
        if isinstance(node, str):
            parts.append(node)
            return
        if not isinstance(node, dict):
            return
        if node.get("type") == "text" and isinstance(node.get("text"), str):
            parts.append(node["text"])
        content = node.get("content")
        if isinstance(content, list):
            for child in content:
                walk(child)

    walk(doc)
    return _collapse(" ".join(parts))


class _TextCollector(HTMLParser):
    _SKIPPED = {"script", "style"}
    _BLOCKS = {"p", "div", "br", "li", "ul", "ol", "h1", "h2", "h3", "blockquote", "pre", "tr", "td"}

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self._SKIPPED:
            self._skip_depth += 1
        elif tag in self._BLOCKS:
            # 块级标签之间保留分隔
            self.parts.append(" ")

    def handle_endtag(self, tag):
        if tag in self._SKIPPED and self._skip_depth:
            self._skip_depth -= 1
        elif tag in self._BLOCKS:
            self.parts.append(" ")

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(data)


def strip_html(html: str) -> str:
    """HTML → 纯文本（去标签、解码实体、折叠空白）"""
    if not html:
        return ""
    collector = _TextCollector()
    collector.feed(html)
    collector.close()
    return _collapse("".join(collector.parts))


def make_snippet(text: str, query: str, max_len: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Cut a window of ``max_len`` chars around the first match of ``query``.

    Without a match the head of the text is returned. An ellipsis marks each
    truncated side.
    """
    q = query.strip()
    if not q:
        return text[:max_len]

    idx = text.lower().find(q.lower())
    if idx < 0:
        return text[:max_len]

    start = max(0, idx - max_len // 2)
    end = min(len(text), start + max_len)
    prefix = ELLIPSIS if start > 0 else ""
    suffix = ELLIPSIS if end < len(text) else ""
    return prefix + text[start:end] + suffix


@dataclass(frozen=True)
class SearchHit:
    """单条检索结果"""

    kind: EntityKind
    id: str
    title: str
    snippet: str
    pinned: bool = False


def search_state(
    state: AppState,
    query: str,
    *,
    include_archived: bool = False,
    limit: int = DEFAULT_RESULT_LIMIT,
    max_len: int = DEFAULT_SNIPPET_LENGTH,
) -> list[SearchHit]:
    """Search checklist items (title + description) and notes (title + body).

    Args:
        state: 当前状态
        query: 查询串（1-200 字符，首尾空白忽略）
        include_archived: 是否包含已归档条目
        limit: 每个集合的最大结果数
        max_len: 摘要长度

    Returns:
        清单结果在前、便签结果在后

    Raises:
        ValueError: 查询超过 MAX_QUERY_LENGTH
    """
    q = normalize_digits(query.strip())
    if not q:
        return []
    if len(q) > MAX_QUERY_LENGTH:
        raise ValueError(f"Query is longer than {MAX_QUERY_LENGTH} characters")
    needle = q.lower()

    def rank(entity) -> tuple:
        return (not entity.pinned, -entity.updated_at.timestamp())

    checklist_hits: list[SearchHit] = []
    for item in sorted(state.checklist, key=rank):
        if item.archived and not include_archived:
            continue
        description = normalize_digits(strip_html(item.description_html))
        if needle in normalize_digits(item.title).lower() or needle in description.lower():
            checklist_hits.append(
                SearchHit(EntityKind.CHECKLIST, item.id, item.title, make_snippet(description, q, max_len), item.pinned)
            )
        if len(checklist_hits) >= limit:
            break

    note_hits: list[SearchHit] = []
    for note in sorted(state.notes, key=rank):
        if note.archived and not include_archived:
            continue
        body = _note_body(note.html, note.content_json)
        search_text = normalize_digits(_collapse(f"{note.title} {body}"))
        if needle in search_text.lower():
            note_hits.append(
                SearchHit(EntityKind.NOTE, note.id, note.title, make_snippet(search_text, q, max_len), note.pinned)
            )
        if len(note_hits) >= limit:
            break

    return checklist_hits + note_hits


def _note_body(html: str, content_json: Optional[Any]) -> str:
    text = extract_text(content_json) if content_json else ""
    return text or strip_html(html)


__all__ = [
    "SearchHit",
    "extract_text",
    "make_snippet",
    "normalize_digits",
    "search_state",
    "strip_html",
]
