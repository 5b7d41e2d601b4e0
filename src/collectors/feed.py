"""
RSS/Atom feed collector.

Fetches a feed over HTTP, detects its flavor, and normalizes the newest
entries into MarketInfo records. Handles:
- RSS 2.0 and Atom (detected by the Atom namespace on the root element)
- HTML stripping and entity unescaping of titles and summaries
- Publish dates in RFC 822 or ISO-8601, falling back to ingestion time

Entry identity is a hash of title + link, so re-reading an unchanged feed
reproduces the same record ids.
"""

import calendar
import html
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import feedparser
from bs4 import BeautifulSoup
from pydantic import ValidationError

from src.collectors.base import BaseCollector, ValidationResult
from src.collectors.config import CollectorsConfig
from src.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig
from src.ingestion.schemas import MarketInfo, RawInfo
from src.sources.schemas import CollectorType, RssConfig, SourceConfig

logger = logging.getLogger(__name__)

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"

_ATOM_ROOT = re.compile(
    r"<feed\b[^>]*\bxmlns(?::\w+)?\s*=\s*[\"']" + re.escape(ATOM_NAMESPACE) + r"[\"']",
    re.IGNORECASE,
)

_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml"


def detect_feed_format(document: str) -> str:
    """Return 'atom' when the root <feed> declares the Atom namespace, else 'rss'."""
    return "atom" if _ATOM_ROOT.search(document) else "rss"


def clean_html(text: str | None) -> str:
    """Strip markup, unescape entities and collapse whitespace."""
    if not text:
        return ""

    soup = BeautifulSoup(text, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()

    cleaned = html.unescape(soup.get_text(separator=" "))
    return " ".join(cleaned.split())


def parse_entry_date(entry: dict[str, Any]) -> datetime | None:
    """Parse the publish date of a feed entry, or None if nothing parses."""
    for field in ("published", "updated", "created"):
        raw = entry.get(field)
        if raw:
            try:
                parsed = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed

        # feedparser normalizes both RFC 822 and ISO-8601 into UTC struct_time
        struct = entry.get(f"{field}_parsed")
        if struct:
            try:
                return datetime.fromtimestamp(calendar.timegm(struct), tz=timezone.utc)
            except (OverflowError, ValueError):
                continue

    return None


def _entry_categories(entry: dict[str, Any]) -> list[str]:
    terms = []
    for tag in entry.get("tags") or []:
        term = tag.get("term") if isinstance(tag, dict) else None
        if term:
            terms.append(term.strip())
    return terms


class FeedCollector(BaseCollector):
    """Collector for `rss` sources (RSS 2.0 and Atom)."""

    def __init__(self, config: CollectorsConfig | None = None):
        self._config = config or CollectorsConfig()

    @property
    def collector_type(self) -> CollectorType:
        return CollectorType.RSS

    def validate_config(self, config: Any) -> ValidationResult:
        try:
            cfg = config if isinstance(config, RssConfig) else RssConfig.model_validate(config)
        except ValidationError as e:
            return ValidationResult.from_errors(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            )

        errors: list[str] = []

        if not cfg.url:
            errors.append("Feed URL is required")
        elif not cfg.url.startswith(("http://", "https://")):
            errors.append("Feed URL must start with http:// or https://")

        if not 1 <= cfg.max_items <= 100:
            errors.append("max_items must be between 1 and 100")

        return ValidationResult.from_errors(errors)

    def _client(self, cfg: RssConfig, retry: RetryConfig, timeout: float) -> HTTPClient:
        return HTTPClient(
            retry,
            timeout=timeout,
            headers={
                "User-Agent": cfg.user_agent or self._config.user_agent,
                "Accept": _ACCEPT,
            },
        )

    async def _fetch_document(self, cfg: RssConfig) -> str:
        retry = RetryConfig(
            max_attempts=self._config.max_attempts,
            base_delay=self._config.retry_base_delay,
            max_rate_limit_wait=self._config.max_rate_limit_wait,
        )
        async with self._client(cfg, retry, cfg.timeout_seconds) as client:
            response = await client.get(cfg.url)
        return response.text

    async def _collect(self, source: SourceConfig) -> tuple[list[RawInfo], int]:
        cfg = source.collector_config
        assert isinstance(cfg, RssConfig)

        document = await self._fetch_document(cfg)
        feed_format = detect_feed_format(document)

        parsed = feedparser.parse(document)
        if parsed.bozo and not parsed.entries:
            raise ValueError(f"Unparsable feed: {parsed.get('bozo_exception')}")

        collected_at = datetime.now(timezone.utc)

        items: list[RawInfo] = []
        for entry in parsed.entries:
            if len(items) >= cfg.max_items:
                break
            item = self._transform(source, cfg, entry, feed_format, collected_at)
            if item is not None:
                items.append(item)

        logger.debug(
            f"Parsed {feed_format} feed for {source.id}: "
            f"{len(parsed.entries)} entries, kept {len(items)}"
        )
        return items, len(parsed.entries)

    def _transform(
        self,
        source: SourceConfig,
        cfg: RssConfig,
        entry: dict[str, Any],
        feed_format: str,
        collected_at: datetime,
    ) -> MarketInfo | None:
        """Convert a feed entry to MarketInfo; None for entries without a title."""
        title = clean_html(entry.get("title"))
        if not title:
            return None

        link = entry.get("link") or None

        description = entry.get("summary") or entry.get("description") or ""
        if not description and entry.get("content"):
            description = entry["content"][0].get("value", "")
        content = clean_html(description)

        published = parse_entry_date(entry)
        author = entry.get("author") or None
        categories = _entry_categories(entry)

        tags = list(categories[:1])
        if cfg.category and cfg.category not in tags:
            tags.append(cfg.category)

        raw = {
            "title": title,
            "link": link,
            "description": content,
            "pub_date": entry.get("published") or entry.get("updated"),
            "author": author,
            "category": categories[0] if categories else None,
            "format": feed_format,
        }

        return MarketInfo(
            id=MarketInfo.build_id(source.source_id, title, link),
            source=source.source_id,
            raw_data=raw,
            title=title,
            content=content,
            url=link,
            author=author,
            published_at=published or collected_at,
            tags=tags,
            language=cfg.language or "en",
            content_hash=MarketInfo.hash_for(title, link),
            collected_at=collected_at,
            expires_at=MarketInfo.default_expiry(collected_at),
        )

    async def test_connection(self, source: SourceConfig) -> ValidationResult:
        cfg = source.collector_config
        validation = self.validate_config(cfg)
        if not validation.valid:
            return validation

        try:
            async with self._client(
                cfg, RetryConfig(max_attempts=1), self._config.probe_timeout_seconds
            ) as client:
                response = await client.get(cfg.url)
        except HTTPClientError as e:
            return ValidationResult(valid=False, errors=[str(e)])

        parsed = feedparser.parse(response.text)
        if not parsed.entries:
            return ValidationResult(valid=False, errors=["Feed returned no entries"])

        logger.info(f"Connection test for {source.id} found {len(parsed.entries)} entries")
        return ValidationResult(valid=True)
