"""Release-notes sanitisation.

Vendor feeds ship notes as anything from plain Markdown to full HTML with
embedded signatures. Notes are reduced to lightweight Markdown-ish text
capped at a fixed length before they are stored or displayed.
"""

import html
import re

from macup.constants import MAX_RELEASE_NOTES_CHARS

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_LI_RE = re.compile(r"<li[^>]*>", re.IGNORECASE)
_LIST_WRAPPER_RE = re.compile(r"</?(?:ul|ol)[^>]*>", re.IGNORECASE)
_P_OPEN_RE = re.compile(r"<p[^>]*>", re.IGNORECASE)
_P_CLOSE_RE = re.compile(r"</p>", re.IGNORECASE)
_HEADING_RE = re.compile(r"<h[1-4][^>]*>(.*?)</h[1-4]>", re.IGNORECASE)
_STRONG_RE = re.compile(r"<(?:strong|b)>(.*?)</(?:strong|b)>", re.IGNORECASE)
_EM_RE = re.compile(r"<(?:em|i)>(.*?)</(?:em|i)>", re.IGNORECASE)
_ANCHOR_RE = re.compile(
    r"""<a\s[^>]*href=["']([^"']+)["'][^>]*>(.*?)</a>""", re.IGNORECASE
)
_CLOSE_TAGS_RE = re.compile(
    r"</(?:li|div|section|article|header|footer|span|code|pre|blockquote"
    r"|td|tr|th|table|thead|tbody)[^>]*>",
    re.IGNORECASE,
)
_MULTI_BLANK_RE = re.compile(r"\n{3,}")


def _semicolons_to_bullets(text: str) -> str:
    """Turn ``a; b; c`` on a single line into a bullet list."""
    if ";" not in text or "\n" in text:
        return text
    parts = [part.strip() for part in text.split(";") if part.strip()]
    if len(parts) < 2:  # noqa: PLR2004
        return text
    return "\n".join(f"- {part}" for part in parts)


def sanitize_release_notes(
    raw: str, max_length: int = MAX_RELEASE_NOTES_CHARS
) -> str:
    """Convert HTML release notes to Markdown-like plain text.

    Input without any tag is assumed to already be Markdown and is only
    trimmed and truncated.

    Args:
        raw: Notes as received from the update source
        max_length: Maximum length of the returned text

    Returns:
        Sanitised notes

    """
    if not _HTML_TAG_RE.search(raw):
        return raw.strip()[:max_length]

    text = _COMMENT_RE.sub("", raw)
    text = _BR_RE.sub("\n", text)
    text = _LI_RE.sub("\n- ", text)
    text = _LIST_WRAPPER_RE.sub("", text)
    text = _P_OPEN_RE.sub("\n\n", text)
    text = _P_CLOSE_RE.sub("", text)
    text = _HEADING_RE.sub(r"\n### \1", text)
    text = _STRONG_RE.sub(r"**\1**", text)
    text = _EM_RE.sub(r"*\1*", text)
    text = _ANCHOR_RE.sub(r"[\2](\1)", text)
    text = _CLOSE_TAGS_RE.sub("", text)
    text = _HTML_TAG_RE.sub("", text)
    text = _semicolons_to_bullets(text)
    text = html.unescape(text).replace("\xa0", " ")
    text = _MULTI_BLANK_RE.sub("\n\n", text).strip()
    return text[:max_length]
