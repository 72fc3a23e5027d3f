"""HTML and slug helpers shared by the parser and materializer."""

import re
import time
import unicodedata

from bs4 import BeautifulSoup

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def clean_html_content(content: str | None) -> str:
    """Remove HTML tags from content and normalize whitespace.

    Args:
        content: Raw content that may contain HTML

    Returns:
        Clean text content without HTML tags
    """
    if not content:
        return ""

    if "<" not in content and ">" not in content:
        return " ".join(content.split())

    soup = BeautifulSoup(content, "html.parser")

    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator=" ")

    # Stray brackets survive get_text() when the markup was broken
    text = text.replace("<", "").replace(">", "")

    return " ".join(text.split())


def first_image_src(html: str | None) -> str | None:
    """Return the ``src`` of the first ``<img>`` in an HTML fragment."""
    if not html or "<img" not in html.lower():
        return None
    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        if src:
            return src
    return None


def make_excerpt(html: str | None, length: int = 200) -> str:
    return clean_html_content(html)[:length]


def slugify(text: str | None) -> str:
    """Kebab-case ASCII slug; ``untitled`` when nothing usable remains."""
    normalized = unicodedata.normalize("NFKD", text or "")
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    return _SLUG_INVALID.sub("-", ascii_text).strip("-") or "untitled"


class SlugAllocator:
    """Issues slug suffixes from a strictly increasing millisecond clock.

    Two calls never return the same suffix within one process, even when
    they land in the same millisecond.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0

    def next_suffix(self) -> int:
        now_ms = int(self._clock() * 1000)
        self._last = max(now_ms, self._last + 1)
        return self._last

    def allocate(self, title: str | None) -> str:
        return f"{slugify(title)}-{self.next_suffix()}"
