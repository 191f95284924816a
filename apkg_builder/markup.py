"""Field markup helpers: Markdown rendering and HTML stripping."""
from __future__ import annotations

import html
import re

import mistune

from .utils import sha1_hex

_markdown = mistune.create_markdown(escape=False, plugins=["strikethrough"])

_STYLE_RE = re.compile(r"<style.*?>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script.*?>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<.*?>", re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_IMG_RE = re.compile(r"<img[^>]*src=[\"']?([^\"'>]+)[\"']?[^>]*>", re.IGNORECASE)


def markdown_to_html(text: str) -> str:
    """Render Markdown for a note field.

    A lone paragraph is unwrapped and paragraph breaks become <br><br>, which is
    how Anki's own editor stores multi-line text.
    """
    out = _markdown(text).strip()
    if out.startswith("<p>") and out.endswith("</p>") and "<p>" not in out[3:-4]:
        return out[3:-4]
    out = out.replace("</p>\n<p>", "<br><br>")
    return out.replace("<p>", "").replace("</p>", "")


def is_html(text: str) -> bool:
    return "<" in text and ">" in text


def strip_html(text: str) -> str:
    text = _COMMENT_RE.sub("", text)
    text = _STYLE_RE.sub("", text)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text.replace("&nbsp;", " ")).strip()


def strip_html_media(text: str) -> str:
    """Strip HTML but keep image filenames, as Anki does for sort fields."""
    return strip_html(_IMG_RE.sub(r" \1 ", text))


def field_checksum(text: str) -> int:
    # First 32 bits of sha1 over the stripped text; Anki's duplicate check reads this.
    return int(sha1_hex(strip_html_media(text))[:8], 16)
