"""
BETSYNC - External Odds Sync Unit Tests
Cache-first sync, write-through, fallback and fetch ordering.
"""

import asyncio

import pytest

from app.core.exceptions import NotFoundError, UpstreamNetworkError, UpstreamUnavailableError
from app.services.odds.external_sync import ExternalOddsSync

from conftest import make_event, make_score

# Test configuration
pytestmark = pytest.mark.unit


@pytest.fixture
def sync(games_cache, provider, clock) -> ExternalOddsSync:
    return ExternalOddsSync(games_cache, provider, clock=clock)


class TestSyncSport:
    """Test the cache-first sport sync."""

    @pytest.mark.asyncio
    async def test_fresh_fetch_writes_through(self, sync, provider, games_cache):
        provider.odds["basketball_nba"] = [make_event("evt-1"), make_event("evt-2")]

        result = await sync.sync_sport("basketball")

        assert not result.from_cache
        assert not result.is_stale
        assert result.age_seconds == 0.0
        assert [g["id"] for g in result.games] == ["evt-1", "evt-2"]
        assert sorted(provider.odds_calls) == ["odds:basketball_nba", "odds:basketball_ncaab"]
        assert await games_cache.get_game("evt-1") is not None
        assert (await games_cache.get_listing("basketball")).data == result.games

    @pytest.mark.asyncio
    async def test_second_sync_is_a_cache_hit(self, sync, provider, clock):
        """Back-to-back syncs return identical odds and skip the provider."""
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        first = await sync.sync_sport("basketball")
        calls = len(provider.odds_calls)

        clock.advance(3)
        second = await sync.sync_sport("basketball")

        assert second.from_cache
        assert second.games == first.games
        assert second.age_seconds == pytest.approx(3)
        assert len(provider.odds_calls) == calls

    @pytest.mark.asyncio
    async def test_expired_listing_is_refetched(self, sync, provider, clock):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await sync.sync_sport("basketball")

        clock.advance(31)
        provider.odds["basketball_nba"] = [make_event("evt-1", moneyline=(-130, 170))]
        result = await sync.sync_sport("basketball")

        assert not result.from_cache
        assert result.games[0]["odds"]["moneyline"] == {"home": -130, "away": 170}
        assert result.games[0]["movement"]["moneyline.home"] == {"direction": "down", "previous": -110}
        assert len(result.changes) == 2

    @pytest.mark.asyncio
    async def test_force_honours_min_sync_interval(self, sync, provider, clock):
        """A forced sync still will not hit the provider twice within the minimum interval."""
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await sync.sync_sport("basketball")
        calls = len(provider.odds_calls)

        clock.advance(2)
        throttled = await sync.sync_sport("basketball", force=True)
        assert throttled.from_cache
        assert len(provider.odds_calls) == calls

        clock.advance(4)
        forced = await sync.sync_sport("basketball", force=True)
        assert not forced.from_cache
        assert len(provider.odds_calls) > calls

    @pytest.mark.asyncio
    async def test_upstream_failure_falls_back_to_cache(self, sync, provider, clock, games_cache):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await sync.sync_sport("basketball")
        cached_listing = await games_cache.get_listing("basketball")

        clock.advance(40)
        provider.errors["basketball_nba"] = UpstreamNetworkError("timeout")
        provider.errors["basketball_ncaab"] = UpstreamNetworkError("timeout")
        result = await sync.sync_sport("basketball")

        assert result.from_cache
        assert result.is_stale
        assert result.age_seconds == pytest.approx(40)
        assert [g["id"] for g in result.games] == ["evt-1"]
        # Cache left untouched on failure
        assert (await games_cache.get_listing("basketball")).fetched_at == cached_listing.fetched_at

    @pytest.mark.asyncio
    async def test_upstream_failure_without_cache_raises(self, sync, provider):
        provider.errors["basketball_nba"] = UpstreamNetworkError("timeout")
        provider.errors["basketball_ncaab"] = UpstreamNetworkError("timeout")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await sync.sync_sport("basketball")

        assert exc_info.value.retryable
        assert exc_info.value.details["cause"] == "upstream_network_error"

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successful_keys(self, sync, provider):
        provider.errors["basketball_nba"] = UpstreamNetworkError("timeout")
        provider.odds["basketball_ncaab"] = [make_event("evt-9", sport_key="basketball_ncaab")]

        result = await sync.sync_sport("basketball")

        assert not result.from_cache
        assert [g["id"] for g in result.games] == ["evt-9"]

    @pytest.mark.asyncio
    async def test_unknown_sport(self, sync):
        with pytest.raises(NotFoundError):
            await sync.sync_sport("curling")

    @pytest.mark.asyncio
    async def test_scores_merged_into_games(self, sync, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1"), make_event("evt-2")]
        provider.scores["basketball_nba"] = [
            make_score("evt-1", 110, 101, completed=True),
            make_score("evt-2", 30, 28),
        ]

        result = await sync.sync_sport("basketball")
        statuses = {g["id"]: g["status"] for g in result.games}

        assert statuses == {"evt-1": "finished", "evt-2": "live"}
        assert result.has_live_games

    @pytest.mark.asyncio
    async def test_live_listing_uses_live_ttl(self, sync, provider, clock):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        provider.scores["basketball_nba"] = [make_score("evt-1", 30, 28)]
        await sync.sync_sport("basketball")

        clock.advance(11)
        result = await sync.sync_sport("basketball")
        assert not result.from_cache


class TestFetchOrdering:
    """Test that out-of-order fetches cannot regress the cache."""

    @pytest.mark.asyncio
    async def test_slow_earlier_fetch_does_not_overwrite_later_one(self, sync, provider, clock, games_cache):
        """Fetch A starts first but finishes last; the cache keeps fetch B."""
        provider.odds["basketball_nba"] = [make_event("evt-1", moneyline=(-110, 150))]
        provider.delays["basketball_nba"] = 0.2
        slow = asyncio.create_task(sync.sync_sport("basketball"))
        await asyncio.sleep(0.05)

        provider.delays.clear()
        provider.odds["basketball_nba"] = [make_event("evt-1", moneyline=(-140, 120))]
        clock.advance(10)
        await sync.sync_sport("basketball")

        await slow

        entry = await games_cache.peek_game("evt-1")
        assert entry.data["odds"]["moneyline"] == {"home": -140, "away": 120}
        listing = await games_cache.get_listing("basketball")
        assert listing.data[0]["odds"]["moneyline"] == {"home": -140, "away": 120}

    @pytest.mark.asyncio
    async def test_concurrent_syncs_are_safe(self, sync, provider, games_cache):
        provider.odds["basketball_nba"] = [make_event("evt-1")]

        results = await asyncio.gather(*(sync.sync_sport("basketball") for _ in range(3)))

        assert all(r.games[0]["id"] == "evt-1" for r in results)
        assert (await games_cache.get_game("evt-1"))["odds"]["moneyline"] == {"home": -110, "away": 150}


class TestFeaturedAndSports:
    """Test featured listing and provider sports."""

    @pytest.mark.asyncio
    async def test_featured_is_limited(self, sync, provider, games_cache):
        provider.odds["basketball_nba"] = [make_event(f"evt-{i:02d}") for i in range(15)]

        result = await sync.sync_featured()

        assert len(result.games) == 12
        assert result.to_dict()["sport"] == "featured"
        assert (await games_cache.get_listing(None)) is not None

    @pytest.mark.asyncio
    async def test_available_sports_are_cached(self, sync, provider):
        provider.sports = [{"key": "basketball_nba", "active": True}]

        assert await sync.fetch_available_sports() == provider.sports
        assert await sync.fetch_available_sports() == provider.sports
        assert provider.calls.count("sports") == 1

    @pytest.mark.asyncio
    async def test_available_sports_failure(self, sync, provider):
        provider.errors["sports"] = UpstreamNetworkError("timeout")
        with pytest.raises(UpstreamUnavailableError):
            await sync.fetch_available_sports()

    def test_supported_sports(self, sync):
        assert "basketball" in sync.get_supported_sports()
        assert "golf" in sync.get_supported_sports()
