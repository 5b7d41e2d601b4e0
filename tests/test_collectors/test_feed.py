"""Tests for the RSS/Atom feed collector."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from src.collectors.feed import (
    FeedCollector,
    clean_html,
    detect_feed_format,
    parse_entry_date,
)
from src.ingestion.schemas import MarketInfo
from src.sources.schemas import create_source_config

FEED_URL = "https://news.example.com/rss"

RSS_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Crypto News</title>
    <item>
      <title>Bitcoin ETF sees &amp;quot;record&amp;quot; inflows</title>
      <link>https://news.example.com/btc-etf</link>
      <description>&lt;p&gt;Spot &lt;b&gt;ETF&lt;/b&gt; products took in $1B.&lt;/p&gt;</description>
      <pubDate>Mon, 06 Jan 2025 14:30:00 GMT</pubDate>
      <category>Markets</category>
      <category>Bitcoin</category>
    </item>
    <item>
      <title>Ethereum devs schedule upgrade</title>
      <link>https://news.example.com/eth-upgrade</link>
      <description>Core developers agreed on a date.</description>
      <pubDate>not a date</pubDate>
    </item>
    <item>
      <title></title>
      <link>https://news.example.com/untitled</link>
    </item>
  </channel>
</rss>
"""

ATOM_DOCUMENT = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Protocol Blog</title>
  <entry>
    <title>Mainnet launch</title>
    <link href="https://blog.example.com/mainnet"/>
    <id>urn:uuid:1</id>
    <updated>2025-02-01T10:00:00Z</updated>
    <summary>We are live.</summary>
    <author><name>Core Team</name></author>
  </entry>
</feed>
"""


@pytest.fixture
def collector(collectors_config) -> FeedCollector:
    return FeedCollector(collectors_config)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("src.ingestion.http_client.asyncio.sleep", new_callable=AsyncMock):
        yield


class TestHelpers:
    def test_detects_atom_namespace(self):
        assert detect_feed_format(ATOM_DOCUMENT) == "atom"
        assert detect_feed_format(RSS_DOCUMENT) == "rss"

    def test_feed_without_atom_namespace_is_rss(self):
        assert detect_feed_format("<feed><entry/></feed>") == "rss"

    def test_clean_html(self):
        text = "<div>Hello&nbsp;<b>world</b><script>alert(1)</script></div>\n\n  again"
        assert clean_html(text) == "Hello world again"

    def test_clean_html_unescapes_entities(self):
        assert clean_html("Fish &amp; Chips") == "Fish & Chips"

    def test_clean_html_empty(self):
        assert clean_html(None) == ""

    def test_rfc822_date(self):
        parsed = parse_entry_date({"published": "Mon, 06 Jan 2025 14:30:00 GMT"})
        assert parsed == datetime(2025, 1, 6, 14, 30, tzinfo=timezone.utc)

    def test_unparseable_date(self):
        assert parse_entry_date({"published": "soon"}) is None

    def test_no_date(self):
        assert parse_entry_date({}) is None


class TestCollect:
    @pytest.mark.asyncio
    @respx.mock
    async def test_rss_entries_become_market_info(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_DOCUMENT))

        result = await collector.collect(rss_source)

        assert result.success
        assert result.stats.total_fetched == 3
        assert len(result.items) == 2

        first = result.items[0]
        assert isinstance(first, MarketInfo)
        assert first.title == 'Bitcoin ETF sees "record" inflows'
        assert first.content == "Spot ETF products took in $1B."
        assert first.url == "https://news.example.com/btc-etf"
        assert first.published_at == datetime(2025, 1, 6, 14, 30, tzinfo=timezone.utc)
        assert first.tags == ["Markets", "news"]
        assert first.raw_data["format"] == "rss"
        assert first.id == MarketInfo.build_id("rss:example", first.title, first.url)
        assert first.id.startswith("example-")

    @pytest.mark.asyncio
    @respx.mock
    async def test_bad_date_falls_back_to_collection_time(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_DOCUMENT))

        result = await collector.collect(rss_source)

        second = result.items[1]
        assert second.published_at == second.collected_at

    @pytest.mark.asyncio
    @respx.mock
    async def test_same_feed_gives_same_ids(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_DOCUMENT))

        first = await collector.collect(rss_source)
        second = await collector.collect(rss_source)

        assert [i.id for i in first.items] == [i.id for i in second.items]

    @pytest.mark.asyncio
    @respx.mock
    async def test_atom_feed(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=ATOM_DOCUMENT))

        result = await collector.collect(rss_source)

        assert result.success
        entry = result.items[0]
        assert entry.title == "Mainnet launch"
        assert entry.url == "https://blog.example.com/mainnet"
        assert entry.author == "Core Team"
        assert entry.content == "We are live."
        assert entry.published_at == datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc)
        assert entry.raw_data["format"] == "atom"

    @pytest.mark.asyncio
    @respx.mock
    async def test_max_items(self, collector):
        source = create_source_config(
            type="market_info",
            source_id="rss:example",
            name="Example News",
            collector_type="rss",
            collector_config={"url": FEED_URL, "max_items": 1},
        )
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_DOCUMENT))

        result = await collector.collect(source)

        assert len(result.items) == 1
        assert result.items[0].tags == ["Markets"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_failure_is_reported(self, collector, rss_source):
        route = respx.get(FEED_URL).mock(return_value=httpx.Response(502))

        result = await collector.collect(rss_source)

        assert not result.success
        assert "502" in result.error
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_unparsable_document(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text="<rss><channel><item>"))

        result = await collector.collect(rss_source)

        assert not result.success or result.items == []


class TestValidateConfig:
    def test_valid(self, collector, rss_source):
        assert collector.validate_config(rss_source.collector_config).valid

    def test_missing_url(self, collector):
        result = collector.validate_config({"url": ""})
        assert result.errors == ["Feed URL is required"]

    def test_max_items_bounds(self, collector):
        result = collector.validate_config({"url": FEED_URL, "max_items": 500})
        assert "max_items must be between 1 and 100" in result.errors


class TestConnection:
    @pytest.mark.asyncio
    @respx.mock
    async def test_feed_with_entries(self, collector, rss_source):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_DOCUMENT))
        assert (await collector.test_connection(rss_source)).valid

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_feed(self, collector, rss_source):
        respx.get(FEED_URL).mock(
            return_value=httpx.Response(200, text="<rss><channel></channel></rss>")
        )

        result = await collector.test_connection(rss_source)

        assert not result.valid
        assert result.errors == ["Feed returned no entries"]
