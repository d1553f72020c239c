"""Turn generated article text into publish-ready HTML with linked citations."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import html
import re

from ..models import CitedSource
from .sources import clean_url, merge_sources

TITLE_MAX_CHARS = 150
BOLD_TITLE_MIN_CHARS = 20
BOLD_HEADING_MIN_CHARS = 20

SECTION_KEYWORDS: tuple[str, ...] = (
    "background",
    "findings",
    "conclusion",
    "introduction",
    "methods",
    "results",
    "discussion",
    "implications",
    "key points",
    "what this means",
    "next steps",
    "expert",
    "study",
)

ATTRIBUTION_OPEN = '<div class="mna-attribution">'

DISCLAIMER_HTML = (
    '<p class="mna-disclaimer"><em>Medical Disclaimer: This article is for informational purposes only '
    "and does not constitute medical advice. Always consult a qualified healthcare professional about "
    "any medical condition or treatment.</em></p>"
)

_HEADLINE_MARKER = re.compile(r"^\*{0,2}\s*headline\s*:\s*\*{0,2}\s*(.*?)\s*\*{0,2}$", re.IGNORECASE)
_MARKDOWN_HEADER = re.compile(r"^(#{1,6})\s+(.+?)\s*#*$")
_BOLD_LINE = re.compile(r"^\*\*([^*]+)\*\*:?$")
_DISCLAIMER_HEADING = re.compile(r"^(?:#{1,6}\s*|\*\*\s*)?medical disclaimer\b", re.IGNORECASE)
_BULLET_ITEM = re.compile(r"^[-*+]\s+(.+)$")
_NUMBERED_ITEM = re.compile(r"^\d+[.)]\s+(.+)$")
_INLINE_BOLD = re.compile(r"\*\*(?!\s)(.+?)(?<!\s)\*\*")
_INLINE_ITALIC = re.compile(r"(?<![*\w])\*(?!\s)([^*\n]+?)(?<!\s)\*(?![*\w])")
_CITATION = re.compile(r"\[Source:\s*(https?://[^\]\s]+)\s*\]", re.IGNORECASE)
_ANCHOR_OR_TAG = re.compile(r"(<a\b[^>]*>.*?</a>|<[^>]+>)", re.IGNORECASE | re.DOTALL)
_HTML_TAG_LINE = re.compile(r"^</?[A-Za-z][A-Za-z0-9]*(?:\s[^>]*)?/?>")
# Bare URLs in escaped body text; the only entity a URL may carry is &amp;.
_ESCAPED_URL = re.compile(r"https?://(?:[^\s\]<>\"'&]|&amp;)+", re.IGNORECASE)


@dataclass(frozen=True)
class ProcessedContent:
    title: str | None
    html: str
    sources: list[CitedSource] = field(default_factory=list)


def _clean_title(text: str) -> str:
    return text.strip().strip("*#").strip().strip("\"'").strip()


def _looks_like_prose(line: str) -> bool:
    return len(line) > TITLE_MAX_CHARS or ". " in line


def _title_from_line(line: str, rule: str) -> str | None:
    if rule == "marker":
        match = _HEADLINE_MARKER.match(line)
        return _clean_title(match.group(1)) if match and _clean_title(match.group(1)) else None
    if rule == "header":
        match = _MARKDOWN_HEADER.match(line)
        return _clean_title(match.group(2)) if match else None
    if rule == "bold":
        match = _BOLD_LINE.match(line)
        if match and BOLD_TITLE_MIN_CHARS <= len(match.group(1).strip()) <= TITLE_MAX_CHARS:
            return _clean_title(match.group(1))
        return None
    if len(line) < TITLE_MAX_CHARS and not line.endswith(".") and not line.startswith("<"):
        return _clean_title(line) or None
    return None


def find_title(text: str) -> tuple[str | None, int | None]:
    """Return the extracted title and the index of the line it came from.

    Only the lines before the first prose-looking line are considered. Within
    that region a ``HEADLINE:`` marker beats a markdown header, which beats a
    standalone bold phrase, which beats the first short line not ending in a
    period.
    """

    lines = text.splitlines()
    candidates: list[tuple[int, str]] = []
    for index, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue
        if _looks_like_prose(line):
            break
        candidates.append((index, line))

    for rule in ("marker", "header", "bold", "fallback"):
        for index, line in candidates:
            title = _title_from_line(line, rule)
            if title:
                return title, index
    return None, None


def extract_title(text: str) -> str | None:
    return find_title(text)[0]


def _body_lines(text: str, title_index: int | None) -> list[str]:
    if ATTRIBUTION_OPEN in text:
        text = text.split(ATTRIBUTION_OPEN, 1)[0]

    body: list[str] = []
    for index, raw in enumerate(text.splitlines()):
        if index == title_index:
            continue
        if _DISCLAIMER_HEADING.match(raw.strip()):
            break
        body.append(raw.rstrip())
    return body


def _is_section_heading(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in SECTION_KEYWORDS) or len(text) > BOLD_HEADING_MIN_CHARS


def _escape(text: str) -> str:
    return html.escape(text, quote=False)


def convert_inline(text: str) -> str:
    text = _INLINE_BOLD.sub(r"<strong>\1</strong>", text)
    return _INLINE_ITALIC.sub(r"<em>\1</em>", text)


def markdown_to_html(lines: Sequence[str]) -> str:
    """Convert the article's markdown subset to HTML blocks.

    Body headers start at ``<h3>`` so nothing competes with the document title.
    """

    blocks: list[str] = []
    paragraph: list[str] = []
    list_tag: str | None = None
    list_items: list[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append(f"<p>{convert_inline(_escape(' '.join(paragraph)))}</p>")
            paragraph.clear()

    def flush_list() -> None:
        nonlocal list_tag
        if list_tag is not None:
            items = "".join(f"<li>{convert_inline(_escape(item))}</li>" for item in list_items)
            blocks.append(f"<{list_tag}>{items}</{list_tag}>")
            list_items.clear()
            list_tag = None

    for raw in lines:
        line = raw.strip()
        if not line:
            flush_paragraph()
            flush_list()
            continue

        header = _MARKDOWN_HEADER.match(line)
        if header:
            flush_paragraph()
            flush_list()
            level = min(len(header.group(1)) + 2, 5)
            blocks.append(f"<h{level}>{convert_inline(_escape(header.group(2)))}</h{level}>")
            continue

        bold = _BOLD_LINE.match(line)
        if bold:
            flush_paragraph()
            flush_list()
            phrase = bold.group(1).strip().rstrip(":")
            if _is_section_heading(phrase):
                blocks.append(f"<h3>{_escape(phrase)}</h3>")
            else:
                blocks.append(f"<p><strong>{_escape(phrase)}</strong></p>")
            continue

        bullet = _BULLET_ITEM.match(line)
        numbered = None if bullet else _NUMBERED_ITEM.match(line)
        if bullet or numbered:
            flush_paragraph()
            tag = "ul" if bullet else "ol"
            if list_tag != tag:
                flush_list()
                list_tag = tag
            list_items.append((bullet or numbered).group(1))
            continue

        if _HTML_TAG_LINE.match(line):
            flush_paragraph()
            flush_list()
            blocks.append(line)
            continue

        flush_list()
        paragraph.append(line)

    flush_paragraph()
    flush_list()
    return "\n\n".join(blocks)


def linkable_sources(sources: Sequence[CitedSource]) -> list[CitedSource]:
    """URL-bearing sources, deduplicated, in first-appearance order."""

    return merge_sources([source for source in sources if source.url])


def _anchor(url: str, label: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}" target="_blank" rel="noopener">{label}</a>'


def link_citations(content: str, sources: Sequence[CitedSource]) -> str:
    """Replace ``[Source: URL]`` markers with numbered links and link bare known URLs."""

    index_by_url: dict[str, int] = {}
    for position, source in enumerate(linkable_sources(sources), start=1):
        index_by_url.setdefault(source.url, position)
        index_by_url.setdefault(source.url.rstrip("/"), position)

    def lookup(url: str) -> int | None:
        return index_by_url.get(url, index_by_url.get(url.rstrip("/")))

    def replace_marker(match: re.Match[str]) -> str:
        url = clean_url(html.unescape(match.group(1)))
        index = lookup(url)
        if index is None:
            return _anchor(url, "[Source]")
        return f"<sup>{_anchor(url, f'[{index}]')}</sup>"

    content = _CITATION.sub(replace_marker, content)

    def replace_bare(match: re.Match[str]) -> str:
        raw = match.group(0)
        cleaned = clean_url(raw)
        url = html.unescape(cleaned)
        if lookup(url) is None:
            return raw
        return _anchor(url, html.escape(url)) + raw[len(cleaned):]

    segments = _ANCHOR_OR_TAG.split(content)
    for position, segment in enumerate(segments):
        if position % 2 == 0 and segment:
            segments[position] = _ESCAPED_URL.sub(replace_bare, segment)
    return "".join(segments)


def build_attribution(sources: Sequence[CitedSource]) -> str:
    parts = [ATTRIBUTION_OPEN]
    entries = linkable_sources(sources)
    if entries:
        parts.append('<hr>\n<h4>Sources</h4>\n<ol class="mna-sources">')
        for source in entries:
            label = html.escape(source.title or source.domain or source.url)
            parts.append(f"<li>{_anchor(source.url, label)}</li>")
        parts.append("</ol>")
    parts.append(DISCLAIMER_HTML)
    parts.append("</div>")
    return "\n".join(parts)


def process_content(raw_text: str, sources: Sequence[CitedSource]) -> ProcessedContent:
    """Extract the title and render the body with citations and attribution."""

    title, title_index = find_title(raw_text)
    body_html = markdown_to_html(_body_lines(raw_text, title_index))
    body_html = link_citations(body_html, sources)
    attribution = build_attribution(sources)
    rendered = f"{body_html}\n\n{attribution}" if body_html else attribution
    return ProcessedContent(title=title, html=rendered, sources=linkable_sources(sources))
