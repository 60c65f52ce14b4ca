"""
Message Renderer — raw turn text to safe, clickable markup.

Two passes, always in this order:
1. linkify: absolute URLs become external anchors (new tab, no opener or
   referrer); internal site paths like /services/data-analytics become
   anchors tagged with data-internal-link for client-side routing
2. sanitize: bleach strips every tag and attribute not on the allow-list

Only the output of render_message() may be inserted into the page.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import bleach

ALLOWED_TAGS = frozenset({"a", "b", "strong", "em", "i", "br", "code", "span"})
ALLOWED_ATTRIBUTES = {
    "a": ["href", "target", "rel", "data-internal-link", "class"],
}
ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

LINK_CLASS = "chat-link"

# URLs stop at whitespace or anything that could break out of an attribute.
# Paths must start the text or follow whitespace / "(" so "and/or" stays text.
_LINK_RE = re.compile(
    r"(?P<url>https?://[^\s<>\"']+)"
    r"|(?:^|(?<=[\s(]))(?P<path>/[\w-]+(?:/[\w-]+)*)\b"
)
_URL_TRAILING_PUNCTUATION = ".,;:!?)"


@dataclass(frozen=True)
class Link:
    kind: str  # "external" or "internal"
    target: str


def _split_url(url: str):
    stripped = url.rstrip(_URL_TRAILING_PUNCTUATION)
    return stripped, url[len(stripped):]


def find_links(text: str) -> List[Link]:
    """List the URLs and internal paths in `text`, in order of appearance."""
    links = []
    for match in _LINK_RE.finditer(text or ""):
        if match.group("url"):
            url, _ = _split_url(match.group("url"))
            links.append(Link("external", url))
        else:
            links.append(Link("internal", match.group("path")))
    return links


def _wrap(match: re.Match) -> str:
    if match.group("url"):
        url, trailing = _split_url(match.group("url"))
        return (
            f'<a href="{url}" target="_blank" rel="noopener noreferrer" '
            f'class="{LINK_CLASS}">{url}</a>{trailing}'
        )
    path = match.group("path")
    return f'<a href="{path}" data-internal-link="{path}" class="{LINK_CLASS}">{path}</a>'


def linkify(text: str) -> str:
    return _LINK_RE.sub(_wrap, text or "")


def sanitize(markup: str) -> str:
    """Strip anything outside the allow-list. Never raises on hostile input."""
    return bleach.clean(
        markup or "",
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )


def render_message(text: str) -> str:
    return sanitize(linkify(text))


def handle_link_click(
    attrs: Dict[str, str],
    navigate: Callable[[str], None],
    open_external: Optional[Callable[[str], None]] = None,
) -> bool:
    """
    Route a click on a rendered anchor.

    Internal links go through `navigate` instead of a full page load.
    External links are left to the browser (they already carry
    target=_blank and rel=noopener noreferrer) unless `open_external` is
    given. Returns True when the click was handled here.
    """
    path = attrs.get("data-internal-link")
    if path:
        navigate(path)
        return True
    href = attrs.get("href")
    if href and open_external is not None:
        open_external(href)
        return True
    return False
