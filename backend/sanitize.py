"""Input cleaning applied before anything reaches the database.

Plain-text fields lose any markup and are trimmed; output escaping happens
in the rendering layer. Rich-text fields (survey intro, call-to-action
description) keep a small allowlist of tags and attributes.
"""
from __future__ import annotations

import html
import re
from html.parser import HTMLParser

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.I | re.S)
_WS_RE = re.compile(r"[\r\n\t ]+")
_KEY_RE = re.compile(r"[^a-z0-9_\-]")
_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

ALLOWED_TAGS = {
    "a": {"href", "title", "target", "rel"},
    "b": set(), "strong": set(), "i": set(), "em": set(), "u": set(),
    "p": set(), "br": set(), "span": set(), "div": set(),
    "ul": set(), "ol": set(), "li": set(), "blockquote": set(),
    "h2": set(), "h3": set(), "h4": set(), "h5": set(), "h6": set(),
    "img": {"src", "alt", "width", "height"},
}
VOID_TAGS = {"br", "img"}
DROP_CONTENT_TAGS = {"script", "style", "iframe", "object", "embed"}
SAFE_SCHEMES = ("http://", "https://", "mailto:")


def _strip_tags(value: str) -> str:
    return _TAG_RE.sub("", _SCRIPT_STYLE_RE.sub("", value))


def sanitize_text(value) -> str:
    """Single-line text: no markup, whitespace collapsed, trimmed."""
    if value is None:
        return ""
    return _WS_RE.sub(" ", _strip_tags(str(value))).strip()


def sanitize_textarea(value) -> str:
    """Multi-line text: no markup, line breaks kept, each line trimmed."""
    if value is None:
        return ""
    text = _strip_tags(str(value)).replace("\r\n", "\n")
    lines = [re.sub(r"[\t ]+", " ", line).strip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def sanitize_key(value, default: str = "") -> str:
    key = _KEY_RE.sub("", str(value or "").strip().lower())
    return key or default


def sanitize_url(value) -> str:
    url = sanitize_text(value)
    if not url:
        return ""
    lowered = url.lower()
    if lowered.startswith(SAFE_SCHEMES) or url.startswith(("/", "#", "?")):
        return url
    if ":" in url.split("/", 1)[0]:
        # unknown scheme such as javascript:
        return ""
    return url


def sanitize_color(value, default: str = "") -> str:
    color = str(value or "").strip()
    return color if _COLOR_RE.match(color) else default


class _AllowlistParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.out: list[str] = []
        self.open: list[str] = []
        self.dropping = 0

    def handle_starttag(self, tag, attrs):
        if tag in DROP_CONTENT_TAGS:
            self.dropping += 1
            return
        if self.dropping or tag not in ALLOWED_TAGS:
            return
        kept = []
        for name, val in attrs:
            if name not in ALLOWED_TAGS[tag] or val is None:
                continue
            if name in ("href", "src"):
                val = sanitize_url(val)
                if not val:
                    continue
            kept.append(f' {name}="{html.escape(val, quote=True)}"')
        self.out.append(f"<{tag}{''.join(kept)}>")
        if tag not in VOID_TAGS:
            self.open.append(tag)

    def handle_startendtag(self, tag, attrs):
        # a self-closed element has no content to drop
        if tag in DROP_CONTENT_TAGS:
            return
        depth = len(self.open)
        self.handle_starttag(tag, attrs)
        if len(self.open) > depth:
            self.handle_endtag(tag)

    def handle_endtag(self, tag):
        if tag in DROP_CONTENT_TAGS:
            self.dropping = max(0, self.dropping - 1)
            return
        if self.dropping or tag not in self.open:
            return
        # close anything left open inside this element
        while self.open:
            current = self.open.pop()
            self.out.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data):
        if not self.dropping:
            self.out.append(html.escape(data, quote=False))

    def result(self) -> str:
        while self.open:
            self.out.append(f"</{self.open.pop()}>")
        return "".join(self.out)


def sanitize_rich_html(value) -> str:
    """Keep a restricted HTML subset; everything else is dropped or escaped."""
    if not value:
        return ""
    parser = _AllowlistParser()
    parser.feed(str(value))
    parser.close()
    return parser.result().strip()
