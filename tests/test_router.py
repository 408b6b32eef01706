"""Tests for ExtractionRouter ordering, failover and retry behaviour."""

from unittest.mock import AsyncMock, patch

import pytest

from src.core.extractors import (
    AllExtractorsFailedError,
    AudioDownloadError,
    InvalidURLError,
    MetadataFetchError,
    NoAudioFormatError,
)
from conftest import FakeExtractor


def with_rate(extractor, rate):
    extractor.health.success_rate = rate
    return extractor


class TestOrdering:
    def test_sorted_by_success_rate(self, make_router, video_url):
        low = with_rate(FakeExtractor(name="low"), 0.2)
        high = with_rate(FakeExtractor(name="high"), 0.9)
        mid = with_rate(FakeExtractor(name="mid"), 0.6)
        router = make_router(low, high, mid)

        names = [e.name for e in router.get_sorted_extractors(video_url)]
        assert names == ["high", "mid", "low"]

    def test_ties_keep_registration_order(self, make_router, video_url):
        first = FakeExtractor(name="first")
        second = FakeExtractor(name="second")
        third = FakeExtractor(name="third")
        router = make_router(first, second, third)

        for _ in range(3):
            names = [e.name for e in router.get_sorted_extractors(video_url)]
            assert names == ["first", "second", "third"]

    def test_incapable_extractors_are_skipped(self, make_router, video_url):
        router = make_router(FakeExtractor(name="no", valid=False), FakeExtractor(name="yes"))
        assert [e.name for e in router.get_sorted_extractors(video_url)] == ["yes"]


class TestURLValidation:
    def test_valid_when_any_extractor_accepts(self, make_router, video_url):
        router = make_router(FakeExtractor(valid=False), FakeExtractor(valid=True))
        assert router.is_valid_url(video_url) is True

    def test_non_youtube_host(self, make_router):
        router = make_router(FakeExtractor())
        assert router.is_valid_url("https://vimeo.com/76979871") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["extract", "get_video_info", "get_audio_url", "download_audio_as_buffer"])
    async def test_invalid_url_fails_fast(self, make_router, operation):
        a, b = FakeExtractor(name="a"), FakeExtractor(name="b")
        router = make_router(a, b)

        with pytest.raises(InvalidURLError):
            await getattr(router, operation)("https://vimeo.com/76979871")

        assert a.total_calls == 0
        assert b.total_calls == 0
        assert a.health.total_attempts == 0


class TestExtract:
    @pytest.mark.asyncio
    async def test_falls_back_to_next_extractor(self, make_router, video_url):
        broken = FakeExtractor(name="broken", metadata_error=MetadataFetchError("Sign in to confirm you're not a bot"))
        working = FakeExtractor(name="working")
        router = make_router(broken, working)

        result = await router.extract(video_url)

        assert result.success is True
        assert result.extractor_used == "working"
        assert result.video_info.title == "working video"
        assert broken.health.total_attempts == 1
        assert broken.health.success_count == 0
        assert working.health.success_count == 1

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self, make_router, video_url):
        first, second = FakeExtractor(name="first"), FakeExtractor(name="second")
        router = make_router(first, second)

        await router.get_video_info(video_url)

        assert second.total_calls == 0
        assert second.health.total_attempts == 0

    @pytest.mark.asyncio
    async def test_all_failed_reports_last_error(self, make_router, video_url):
        router = make_router(
            FakeExtractor(name="a", metadata_error=MetadataFetchError("first problem")),
            FakeExtractor(name="b", metadata_error=MetadataFetchError("Video unavailable")),
        )

        with pytest.raises(AllExtractorsFailedError) as exc_info:
            await router.extract(video_url)

        assert "Video unavailable" in str(exc_info.value)
        assert "Video unavailable" in str(exc_info.value.last_error)

    @pytest.mark.asyncio
    async def test_order_is_fixed_for_the_request(self, make_router, video_url):
        # After "b" fails its rate drops below "a"'s, but "a" still runs second
        a = with_rate(FakeExtractor(name="a"), 0.7)
        b = with_rate(FakeExtractor(name="b", metadata_error=MetadataFetchError("boom")), 0.9)
        order = []
        for extractor in (a, b):
            original = extractor.fetch_metadata

            async def tracked(url, _extractor=extractor, _original=original):
                order.append(_extractor.name)
                return await _original(url)
            extractor.fetch_metadata = tracked

        router = make_router(a, b)
        result = await router.extract(video_url)

        assert order == ["b", "a"]
        assert result.extractor_used == "a"


class TestGetAudioURL:
    @pytest.mark.asyncio
    async def test_records_each_outcome_once(self, make_router, video_url):
        broken = FakeExtractor(name="broken", audio_url_error=NoAudioFormatError("No suitable audio formats available"))
        working = FakeExtractor(name="working", audio_url="https://cdn.example.com/best.m4a")
        unused = FakeExtractor(name="unused")
        router = make_router(broken, working, unused)

        audio_url = await router.get_audio_url(video_url)

        assert audio_url == "https://cdn.example.com/best.m4a"
        assert broken.health.total_attempts == 1
        assert broken.health.success_count == 0
        assert working.health.total_attempts == 1
        assert working.health.success_count == 1
        assert unused.total_calls == 0

    @pytest.mark.asyncio
    async def test_empty_url_counts_as_failure(self, make_router, video_url):
        router = make_router(FakeExtractor(name="empty", audio_url=""))

        with pytest.raises(AllExtractorsFailedError) as exc_info:
            await router.get_audio_url(video_url)

        assert "empty audio URL" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_only_resolves_url(self, make_router, video_url):
        extractor = FakeExtractor()
        router = make_router(extractor)

        await router.get_audio_url(video_url)

        assert extractor.calls == {"metadata": 0, "audio_url": 1, "download": 0}


class TestDownloadAudio:
    @pytest.mark.asyncio
    async def test_retries_with_exponential_backoff(self, make_router, video_url):
        first = FakeExtractor(name="first", download_error=AudioDownloadError("HTTP 403"))
        second = FakeExtractor(name="second", audio=b"ogg-bytes")
        router = make_router(first, second, max_retries=2, retry_base_delay=1.0)

        with patch("src.core.extractors.router.asyncio.sleep", new_callable=AsyncMock) as sleep:
            audio = await router.download_audio_as_buffer(video_url)

        assert audio == b"ogg-bytes"
        assert first.calls["download"] == 3
        assert first.health.total_attempts == 3
        assert first.health.success_count == 0
        assert second.health.success_count == 1
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_does_not_fetch_metadata(self, make_router, video_url):
        extractor = FakeExtractor()
        router = make_router(extractor)

        await router.download_audio_as_buffer(video_url)

        assert extractor.calls == {"metadata": 0, "audio_url": 0, "download": 1}

    @pytest.mark.asyncio
    async def test_empty_buffer_falls_back(self, make_router, video_url):
        empty = FakeExtractor(name="empty", audio=b"")
        working = FakeExtractor(name="working", audio=b"data")
        router = make_router(empty, working, max_retries=0)

        assert await router.download_audio_as_buffer(video_url) == b"data"
        assert empty.health.total_attempts == 1
        assert empty.health.success_count == 0

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, make_router, video_url):
        slow = FakeExtractor(name="slow", download_delay=5, download_timeout=0.05)
        fast = FakeExtractor(name="fast", audio=b"data")
        router = make_router(slow, fast, max_retries=0)

        assert await router.download_audio_as_buffer(video_url) == b"data"
        assert slow.health.total_attempts == 1
        assert slow.health.success_count == 0

    @pytest.mark.asyncio
    async def test_all_failed_after_every_retry(self, make_router, video_url):
        a = FakeExtractor(name="a", download_error=AudioDownloadError("first"))
        b = FakeExtractor(name="b", download_error=AudioDownloadError("throttled"))
        router = make_router(a, b, max_retries=1)

        with pytest.raises(AllExtractorsFailedError) as exc_info:
            await router.download_audio_as_buffer(video_url)

        assert "throttled" in str(exc_info.value)
        assert a.calls["download"] == 2
        assert b.calls["download"] == 2

    @pytest.mark.asyncio
    async def test_success_on_retry(self, make_router, video_url):
        extractor = FakeExtractor(name="flaky", audio=b"data")
        outcomes = [AudioDownloadError("reset"), b"data"]

        async def flaky(url):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        extractor._download_audio = flaky

        router = make_router(extractor)
        assert await router.download_audio_as_buffer(video_url) == b"data"
        assert extractor.health.total_attempts == 2
        assert extractor.health.success_count == 1


class TestHealth:
    @pytest.mark.asyncio
    async def test_perform_health_check_never_raises(self, make_router, video_url):
        broken = FakeExtractor(name="broken", metadata_error=MetadataFetchError("down"))
        working = FakeExtractor(name="working")
        router = make_router(broken, working)

        await router.perform_health_check(video_url)

        assert broken.calls["metadata"] == 1
        assert working.calls["metadata"] == 1
        assert router.last_health_check is not None

    @pytest.mark.asyncio
    async def test_perform_health_check_skips_incapable(self, make_router):
        extractor = FakeExtractor(valid=False)
        router = make_router(extractor)

        await router.perform_health_check()

        assert extractor.total_calls == 0

    def test_health_summary(self, make_router):
        a = with_rate(FakeExtractor(name="a"), 0.4)
        b = with_rate(FakeExtractor(name="b"), 0.8)
        c = with_rate(FakeExtractor(name="c"), 0.8)
        router = make_router(a, b, c)

        summary = router.get_health_summary()

        assert summary["total_extractors"] == 3
        assert summary["best_extractor"]["name"] == "b"
        assert summary["overall_success_rate"] == pytest.approx(2.0 / 3)
        assert summary["last_health_check"] is None
        assert [e["name"] for e in summary["extractors"]] == ["a", "b", "c"]

    def test_health_summary_without_extractors(self, make_router):
        summary = make_router().get_health_summary()
        assert summary["best_extractor"] is None
        assert summary["overall_success_rate"] == 0.0

    def test_extractor_health_returns_snapshots(self, make_router):
        extractor = FakeExtractor(name="a")
        router = make_router(extractor)

        snapshot = router.get_extractor_health()[0]
        extractor.health.record_success()

        assert snapshot.total_attempts == 0
