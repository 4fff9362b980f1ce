"""Charset normalisation applied to HTML before it is handed to the renderer.

Only substring inspection is done here; the HTML is never parsed.
"""

import logging
import re

logger = logging.getLogger(__name__)

META_CHARSET = '<meta charset="utf-8">'

_CHARSET_DECLARATIONS = ('charset="utf-8"', "charset='utf-8'", "charset=utf-8")
# re.IGNORECASE folds one character at a time, so match offsets stay valid
# indices into the original string (str.lower() can change its length).
_CHARSET_RE = re.compile("|".join(re.escape(d) for d in _CHARSET_DECLARATIONS), re.IGNORECASE)
_HEAD_RE = re.compile(re.escape("<head>"), re.IGNORECASE)
_HTML_RE = re.compile(re.escape("<html"), re.IGNORECASE)


def has_utf8_declaration(html: str) -> bool:
    return _CHARSET_RE.search(html) is not None


def insert_charset_meta(html: str) -> str:
    """Insert a UTF-8 meta tag after ``<head>``, or a head block after ``<html ...>``.

    Returns the text unchanged when it already declares UTF-8 or has neither tag.
    """
    if has_utf8_declaration(html):
        return html

    head = _HEAD_RE.search(html)
    if head:
        return f"{html[:head.end()]}\n{META_CHARSET}\n{html[head.end():]}"

    tag = _HTML_RE.search(html)
    if tag:
        close = html.find(">", tag.end())
        if close >= 0:
            return f"{html[:close + 1]}\n<head>{META_CHARSET}</head>\n{html[close + 1:]}"
    return html


def round_trip_utf8(text: str) -> str:
    # Surrogate pairs are joined and each lone surrogate becomes one U+FFFD.
    text = text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")
    return text.encode("utf-8").decode("utf-8")


def ensure_utf8_encoding(html: str, log: logging.Logger | None = None) -> str:
    """Make ``html`` declare UTF-8 and be valid UTF-8. Never raises."""
    log = log or logger
    try:
        return round_trip_utf8(insert_charset_meta(html))
    except Exception:
        log.warning("Error ensuring UTF-8 encoding, using original HTML", exc_info=True)
        return html
