"""
RSS 2.0 / iTunes feed generation.

generate_feed is a pure function of the feed configuration and its
episodes; it performs no storage or network access.
"""

import re
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Iterable, Optional

from lxml import etree

from .models import Episode, Feed, get_mime_type, to_utc

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
NSMAP = {"itunes": ITUNES_NS, "content": CONTENT_NS}

# Characters XML 1.0 does not allow anywhere in a document
XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _itunes(tag: str) -> str:
    return f"{{{ITUNES_NS}}}{tag}"


def xml_safe(text: str) -> str:
    """Drop characters that cannot appear in an XML document."""
    return XML_ILLEGAL.sub("", text)


def _add(
    parent: etree._Element,
    tag: str,
    text: Optional[str] = None,
    attrs: Optional[Dict[str, str]] = None,
) -> etree._Element:
    safe_attrs = {key: xml_safe(value) for key, value in (attrs or {}).items()}
    element = etree.SubElement(parent, tag, safe_attrs)
    if text is not None:
        element.text = xml_safe(text)
    return element


def format_rfc822(value: datetime) -> str:
    """RFC 822 date as used by RSS, e.g. 'Mon, 15 Jan 2024 10:30:00 GMT'."""
    return format_datetime(to_utc(value), usegmt=True)


def format_duration(seconds: int) -> str:
    """Format a duration as HH:MM:SS (hours may exceed 24)."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def feed_link(feed: Feed, base_url: str) -> str:
    """URL of a feed's RSS document."""
    return f"{base_url.rstrip('/')}/{feed.id}/feed.xml"


def image_url(feed: Feed, base_url: str) -> str:
    """URL of a feed's icon, versioned for cache busting."""
    url = f"{base_url.rstrip('/')}/{feed.id}/icon.png"
    if feed.image_version:
        return f"{url}?v={feed.image_version}"
    return url


def _write_episode(
    channel: etree._Element, episode: Episode, feed: Feed, base_url: str
) -> None:
    item = _add(channel, "item")
    _add(item, "title", episode.title)
    _add(item, "description", episode.description or "")
    _add(item, "pubDate", format_rfc822(episode.published_date))
    _add(item, "guid", episode.id, {"isPermaLink": "false"})
    _add(
        item,
        "enclosure",
        attrs={
            "url": episode.get_audio_url(base_url),
            "length": str(episode.file_size),
            "type": get_mime_type(episode.file_name),
        },
    )
    _add(item, _itunes("author"), feed.author)
    _add(item, _itunes("summary"), episode.description or "")
    _add(item, _itunes("explicit"), "false")
    if episode.duration_seconds > 0:
        _add(item, _itunes("duration"), format_duration(episode.duration_seconds))


def generate_feed(
    feed: Feed,
    episodes: Iterable[Episode],
    base_url: str,
    now: Optional[datetime] = None,
) -> str:
    """Render a feed and its episodes (newest first) as an RSS document."""
    now = now or datetime.now(timezone.utc)
    link = feed_link(feed, base_url)

    rss = etree.Element("rss", nsmap=NSMAP)
    rss.set("version", "2.0")
    channel = _add(rss, "channel")

    _add(channel, "title", feed.title)
    _add(channel, "description", feed.description or "")
    _add(channel, "link", link)
    _add(channel, "language", feed.language)
    _add(channel, "lastBuildDate", format_rfc822(now))

    _add(channel, _itunes("author"), feed.author)
    _add(channel, _itunes("summary"), feed.description or "")
    owner = _add(channel, _itunes("owner"))
    _add(owner, _itunes("name"), feed.author)
    if feed.email:
        _add(owner, _itunes("email"), feed.email)
    if feed.category:
        _add(channel, _itunes("category"), attrs={"text": feed.category})
    _add(channel, _itunes("explicit"), "false")

    if feed.image_url:
        url = image_url(feed, base_url)
        _add(channel, _itunes("image"), attrs={"href": url})
        image = _add(channel, "image")
        _add(image, "url", url)
        _add(image, "title", feed.title)
        _add(image, "link", link)

    for episode in sorted(episodes, key=lambda e: e.published_date, reverse=True):
        _write_episode(channel, episode, feed, base_url)

    return etree.tostring(
        rss, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")
