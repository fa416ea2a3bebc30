"""
BETSYNC - API Integration Tests
End-to-end HTTP behaviour with the cache, provider and store swapped for test doubles.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.dependencies import (
    get_database,
    get_fraud_service,
    get_games_cache,
    get_notifier,
    get_odds_provider,
)
from app.core.database import DatabaseManager
from app.core.exceptions import UpstreamNetworkError
from app.core.security import security_manager
from app.main import app

from conftest import make_event, make_game, seed_account

# Test configuration
pytestmark = pytest.mark.integration

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
async def client(games_cache, provider, db, fraud_checker, notifier):
    app.dependency_overrides[get_games_cache] = lambda: games_cache
    app.dependency_overrides[get_odds_provider] = lambda: provider
    app.dependency_overrides[get_database] = lambda: db
    app.dependency_overrides[get_fraud_service] = lambda: fraud_checker
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {security_manager.create_access_token('user-1')}"}


def slip(odds_home: int = -110, odds_away: int = 150, bet_type: str = "parlay", stake: float = 50):
    return {
        "bet_type": bet_type,
        "total_stake": stake,
        "selections": [
            {"game_id": "g1", "market": "moneyline", "selection": "home", "odds": odds_home},
            {"game_id": "g2", "market": "moneyline", "selection": "home", "odds": odds_away},
        ],
    }


@pytest.fixture
async def open_games(games_cache, clock):
    await games_cache.put_game(make_game("g1", clock()), ttl=30)
    await games_cache.put_game(make_game("g2", clock(), moneyline={"home": 150, "away": -170}), ttl=30)


class TestOddsEndpoints:
    """Test odds reads."""

    @pytest.mark.asyncio
    async def test_sport_odds_then_cache_hit(self, client, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1")]

        first = await client.get("/api/v1/odds/sport/basketball")
        second = await client.get("/api/v1/odds/sport/basketball")

        assert first.status_code == 200
        body = first.json()
        assert body["sport"] == "basketball"
        assert body["from_cache"] is False
        assert body["db_persisted"] is True
        assert body["games"][0]["odds"]["moneyline"] == {"home": -110, "away": 150}
        assert second.json()["from_cache"] is True
        assert second.json()["games"] == body["games"]

    @pytest.mark.asyncio
    async def test_unknown_sport(self, client):
        response = await client.get("/api/v1/odds/sport/curling")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_upstream_down_without_cache(self, client, provider):
        provider.errors["basketball_nba"] = UpstreamNetworkError("timeout")
        provider.errors["basketball_ncaab"] = UpstreamNetworkError("timeout")

        response = await client.get("/api/v1/odds/sport/basketball")

        assert response.status_code == 503
        assert response.json()["error"] == "upstream_unavailable"
        assert response.json()["retryable"] is True

    @pytest.mark.asyncio
    async def test_featured(self, client, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1")]

        response = await client.get("/api/v1/odds/featured")

        assert response.status_code == 200
        assert response.json()["sport"] == "featured"
        assert len(response.json()["games"]) == 1

    @pytest.mark.asyncio
    async def test_supported_and_available_sports(self, client, provider):
        provider.sports = [{"key": "basketball_nba", "active": True}]

        supported = await client.get("/api/v1/odds/sports")
        available = await client.get("/api/v1/odds/sports/available")

        assert "basketball" in supported.json()["sports"]
        assert available.json()["sports"] == provider.sports

    @pytest.mark.asyncio
    async def test_single_game(self, client, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await client.get("/api/v1/odds/sport/basketball")

        response = await client.get("/api/v1/odds/evt-1")

        assert response.status_code == 200
        assert response.json()["source"] == "cache"
        assert response.json()["game"]["id"] == "evt-1"

    @pytest.mark.asyncio
    async def test_single_game_not_found(self, client):
        response = await client.get("/api/v1/odds/nope")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_live_tracking(self, client, provider, games_cache, clock):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await client.get("/api/v1/odds/sport/basketball")
        clock.advance(6)

        response = await client.post("/api/v1/odds/live/evt-1")

        assert response.status_code == 200
        assert response.json()["game_id"] == "evt-1"
        assert await games_cache.is_live("evt-1")


class TestSyncTrigger:
    """Test the scheduler-facing sync endpoint."""

    @pytest.mark.asyncio
    async def test_requires_cron_secret(self, client):
        assert (await client.post("/api/v1/odds/sync")).status_code == 401
        bad = await client.post("/api/v1/odds/sync", headers={"Authorization": "Bearer nope"})
        assert bad.status_code == 401

    @pytest.mark.asyncio
    async def test_single_sport(self, client, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1")]

        response = await client.post("/api/v1/odds/sync", params={"sport": "basketball"}, headers=CRON_HEADERS)

        assert response.status_code == 200
        assert response.json()["results"]["basketball"]["games"] == 1

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_fresh_listing(self, client, provider, clock):
        provider.odds["basketball_nba"] = [make_event("evt-1")]
        await client.get("/api/v1/odds/sport/basketball")
        clock.advance(6)
        calls = len(provider.odds_calls)

        response = await client.post(
            "/api/v1/odds/sync",
            params={"sport": "basketball", "force_refresh": "true"},
            headers=CRON_HEADERS,
        )

        assert response.json()["results"]["basketball"]["from_cache"] is False
        assert len(provider.odds_calls) > calls

    @pytest.mark.asyncio
    async def test_all_sports(self, client, provider):
        provider.odds["basketball_nba"] = [make_event("evt-1")]

        response = await client.post("/api/v1/odds/sync", headers=CRON_HEADERS)

        results = response.json()["results"]
        assert "featured" in results
        assert results["basketball"]["games"] == 1


class TestValidateSlip:
    """Test bet slip validation."""

    @pytest.mark.asyncio
    async def test_drifted_leg(self, client, open_games):
        body = {"selections": slip(odds_away=130)["selections"]}

        response = await client.post("/api/v1/odds/validate", json=body)

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["invalid_count"] == 1
        assert response.json()["results"][1]["current_odds"] == 150

    @pytest.mark.asyncio
    async def test_empty_slip(self, client):
        response = await client.post("/api/v1/odds/validate", json={"selections": []})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestPlaceBet:
    """Test bet placement over HTTP."""

    @pytest.mark.asyncio
    async def test_parlay(self, client, db, open_games, auth_headers, notifier):
        await seed_account(db, "user-1", 500)

        response = await client.post("/api/v1/bets", json=slip(), headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["combined_odds"] == 377
        assert body["potential_payout"] == 238.5
        assert body["balance_after"] == 450.0
        assert body["status"] == "pending"
        assert len(notifier.events) == 1

    @pytest.mark.asyncio
    async def test_requires_session(self, client, open_games):
        response = await client.post("/api/v1/bets", json=slip())

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_odds_changed(self, client, db, open_games, auth_headers):
        await seed_account(db, "user-1", 500)

        response = await client.post("/api/v1/bets", json=slip(odds_away=130), headers=auth_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "odds_changed"
        assert body["results"][1]["current_odds"] == 150

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, client, db, open_games, auth_headers):
        await seed_account(db, "user-1", 10)

        response = await client.post("/api/v1/bets", json=slip(), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_parlay_needs_two_legs(self, client, open_games, auth_headers):
        body = slip()
        body["selections"] = body["selections"][:1]

        response = await client.post("/api/v1/bets", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_unknown_market_rejected_by_schema(self, client, auth_headers):
        body = slip()
        body["selections"][0]["market"] = "prop"

        response = await client.post("/api/v1/bets", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestOperationalEndpoints:
    """Test health and metrics."""

    @pytest.mark.asyncio
    async def test_health_with_store_up(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["components"]["database"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_with_store_down(self, client, tmp_path):
        broken = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}")
        app.dependency_overrides[get_database] = lambda: broken

        try:
            response = await client.get("/health")
        finally:
            await broken.close()

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.get("/health")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "betsync_" in response.text

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200

    def test_bet_errors_documented(self):
        responses = app.openapi()["paths"]["/api/v1/bets"]["post"]["responses"]
        assert responses["409"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
        assert "503" in responses
