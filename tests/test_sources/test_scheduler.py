"""Tests for due-source selection."""

from datetime import datetime, timedelta, timezone

from src.sources.scheduler import due_sources, is_due

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _source(sample_source, **changes):
    return sample_source.model_copy(update=changes)


class TestIsDue:
    def test_never_run_is_due(self, sample_source):
        assert is_due(sample_source, NOW)

    def test_disabled_never_due(self, sample_source):
        assert not is_due(_source(sample_source, enabled=False), NOW)

    def test_within_interval_not_due(self, sample_source):
        source = _source(sample_source, last_collected_at=NOW - timedelta(minutes=14))
        assert not is_due(source, NOW)

    def test_interval_elapsed_is_due(self, sample_source):
        source = _source(sample_source, last_collected_at=NOW - timedelta(minutes=15))
        assert is_due(source, NOW)


class TestDueSources:
    def test_ordered_by_priority(self, sample_source):
        low = _source(sample_source, source_id="rss:low", priority=50)
        high = _source(sample_source, source_id="rss:high", priority=1)
        recent = _source(
            sample_source,
            source_id="rss:recent",
            priority=0,
            last_collected_at=NOW - timedelta(minutes=1),
        )

        result = due_sources([low, recent, high], NOW)

        assert [s.source_id for s in result] == ["rss:high", "rss:low"]

    def test_ties_keep_input_order(self, sample_source):
        a = _source(sample_source, source_id="rss:a")
        b = _source(sample_source, source_id="rss:b")

        assert [s.source_id for s in due_sources([b, a], NOW)] == ["rss:b", "rss:a"]

    def test_empty(self):
        assert due_sources([], NOW) == []
