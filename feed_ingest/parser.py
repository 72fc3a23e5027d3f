"""RSS 2.0 / Atom item extraction.

Documents are parsed with feedparser, which recovers from malformed XML,
unwraps CDATA and decodes character references exactly once. Each parsed
entry is then mapped onto a :class:`FeedItem` through ``FIELD_SOURCES``: every
logical field lists the entry attributes to try in order, and a field whose
sources are all missing or malformed degrades to an empty value instead of
failing the item.
"""

import io
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import feedparser
from dateutil import parser as date_parser

from .logging_config import create_execution_logger
from .models import FeedItem

Source = Callable[[Any], Any]


def _attr(name: str) -> Source:
    def get(entry):
        return entry.get(name)

    return get


def _first_link_href(entry) -> str | None:
    links = entry.get("links") or []
    alternates = [link for link in links if link.get("rel", "alternate") == "alternate"]
    for link in alternates + [link for link in links if link not in alternates]:
        if link.get("rel") == "enclosure":
            continue
        href = link.get("href")
        if href:
            return href
    return None


def _first_content_value(entry) -> str | None:
    for content in entry.get("content") or []:
        value = content.get("value")
        if value:
            return value
    return None


def _first_media_url(entry) -> str | None:
    for media in entry.get("media_content") or []:
        url = media.get("url")
        if url:
            return url
    return None


def _first_enclosure_url(entry) -> str | None:
    for enclosure in entry.get("enclosures") or []:
        url = enclosure.get("href") or enclosure.get("url")
        if url:
            return url
    return None


FIELD_SOURCES: dict[str, tuple[Source, ...]] = {
    "title": (_attr("title"),),
    "link": (_attr("link"), _first_link_href),
    "guid": (_attr("id"), _attr("guid")),
    "published": (_attr("published"), _attr("updated")),
    "summary": (_attr("summary"), _attr("description")),
    "body": (_first_content_value,),
    "media": (_first_media_url, _first_enclosure_url),
}


def resolve_field(entry, field_name: str) -> str:
    """Return the first non-empty value among a field's sources, else ``""``."""
    for source in FIELD_SOURCES[field_name]:
        try:
            value = source(entry)
        except (AttributeError, KeyError, TypeError, ValueError):
            continue
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_published(value: str) -> datetime | None:
    """Parse an RSS/Atom date string; naive values are taken as UTC."""
    if not value:
        return None
    try:
        published = date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if published.tzinfo is None:
        published = published.replace(tzinfo=UTC)
    return published


class FeedParser:
    """Turns raw feed text into FeedItem records."""

    def __init__(self, execution_id: str | None = None):
        self.logger = create_execution_logger("parser", execution_id)

    def parse(self, text: str, feed_url: str = "") -> Iterator[FeedItem]:
        """Yield one FeedItem per RSS ``<item>`` or Atom ``<entry>``.

        Items without a guid or link are yielded too; callers decide how to
        account for them. A document with neither container yields nothing.
        """
        # A stream keeps feedparser from treating the text as a URL or path.
        # Body HTML is stored as published, so no sanitizing or URI rewriting.
        feed = feedparser.parse(
            io.BytesIO(text.encode("utf-8")),
            sanitize_html=False,
            resolve_relative_uris=False,
        )

        if feed.bozo and hasattr(feed, "bozo_exception"):
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {feed.bozo_exception}",
                feed_url=feed_url,
                bozo_exception=str(feed.bozo_exception),
            )

        self.logger.info(
            "Parsed feed document",
            feed_url=feed_url,
            feed_version=feed.get("version") or "unknown",
            total_entries=len(feed.entries),
        )

        for entry in feed.entries:
            yield self.normalize_entry(entry)

    def normalize_entry(self, entry) -> FeedItem:
        """Map one parsed entry onto a FeedItem using FIELD_SOURCES."""
        summary = resolve_field(entry, "summary")
        return FeedItem(
            title=resolve_field(entry, "title"),
            link=resolve_field(entry, "link"),
            guid=resolve_field(entry, "guid"),
            published_at=parse_published(resolve_field(entry, "published")),
            summary=summary,
            body_html=resolve_field(entry, "body") or summary,
            media_url=resolve_field(entry, "media") or None,
        )
