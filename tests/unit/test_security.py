"""
BETSYNC - Security and Configuration Unit Tests
"""

import pydantic
import pytest

from app.core.config import Settings, settings
from app.core.security import SecurityManager

# Test configuration
pytestmark = pytest.mark.unit


class TestSecurityManager:
    """Test JWT and cron secret checks."""

    def test_access_token_round_trip(self):
        manager = SecurityManager(jwt_secret="unit-test-secret-with-plenty-of-length")

        payload = manager.decode_token(manager.create_access_token("user-1"))

        assert payload["sub"] == "user-1"
        assert payload["token_type"] == "access"

    def test_token_signed_with_other_secret_is_rejected(self):
        issuer = SecurityManager(jwt_secret="issuer-secret-with-plenty-of-length-xx")
        verifier = SecurityManager(jwt_secret="verifier-secret-with-plenty-of-length")

        assert verifier.decode_token(issuer.create_access_token("user-1")) is None

    def test_expired_token_is_rejected(self):
        manager = SecurityManager(jwt_secret="unit-test-secret-with-plenty-of-length", access_token_expire=-1)

        assert manager.decode_token(manager.create_access_token("user-1")) is None

    def test_garbage_token_is_rejected(self):
        assert SecurityManager().decode_token("not-a-jwt") is None

    def test_cron_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        manager = SecurityManager()

        assert manager.verify_cron_secret("Bearer s3cret")
        assert not manager.verify_cron_secret("Bearer wrong")
        assert not manager.verify_cron_secret("s3cret")
        assert not manager.verify_cron_secret(None)

    def test_unset_cron_secret_outside_production(self, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "")
        assert SecurityManager().verify_cron_secret(None)


class TestSettings:
    """Test configuration validation and helpers."""

    def test_live_drift_cannot_exceed_pregame(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(MAX_ODDS_DRIFT=10, MAX_ODDS_DRIFT_LIVE=15)

    def test_drift_must_be_positive(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(MAX_ODDS_DRIFT_LIVE=0)

    def test_database_url_scheme(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(DATABASE_URL="mysql://localhost/betsync")

    def test_drift_ceilings(self):
        assert settings.get_drift_ceiling(is_live=False) == 15
        assert settings.get_drift_ceiling(is_live=True) == 10

    def test_live_listing_ttl_is_tighter(self):
        assert settings.get_sport_cache_ttl("basketball") == 30
        assert settings.get_sport_cache_ttl("basketball", has_live_games=True) == 10

    def test_stale_thresholds(self):
        assert settings.get_stale_threshold("basketball") == 60
        assert settings.get_stale_threshold("basketball", has_live_games=True) == 15

    def test_sport_key_mapping(self):
        assert settings.get_sport_info("basketball_nba") == {"id": "basketball", "name": "NBA"}
        assert settings.get_sport_info("cricket_ipl")["id"] == "other"
