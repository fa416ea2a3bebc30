"""
BETSYNC - Fraud Check Unit Tests
"""

import json

import httpx
import pytest

from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError
from app.services.betting.fraud import (
    FraudCheckResult,
    HttpFraudChecker,
    RiskLevel,
    StakeLimitFraudCheck,
    get_fraud_checker,
)

# Test configuration
pytestmark = pytest.mark.unit


class TestStakeLimitFraudCheck:
    """Test the built-in stake tiers."""

    @pytest.mark.asyncio
    async def test_small_stake_is_low_risk(self):
        result = await StakeLimitFraudCheck(high_risk_stake=2500).check("user-1", 100, {})

        assert result.allowed
        assert result.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_half_threshold_is_medium_risk(self):
        result = await StakeLimitFraudCheck(high_risk_stake=2500).check("user-1", 1250, {})

        assert result.allowed
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.action == "monitor"

    @pytest.mark.asyncio
    async def test_large_stake_is_flagged_not_blocked(self):
        result = await StakeLimitFraudCheck(high_risk_stake=2500).check("user-1", 2500, {})

        assert result.allowed
        assert result.is_high_risk
        assert result.risk_score == 70.0


class TestFraudCheckResult:
    """Test decoding the collaborator response."""

    def test_camel_case_payload(self):
        result = FraudCheckResult.from_dict({"allowed": True, "riskLevel": "MEDIUM", "riskScore": 42})

        assert result.allowed
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.risk_score == 42.0

    def test_critical_collapses_to_high(self):
        result = FraudCheckResult.from_dict({"allowed": False, "risk_level": "critical"})

        assert not result.allowed
        assert result.is_high_risk
        assert result.to_dict()["risk_level"] == "high"

    def test_missing_allowed_is_a_block(self):
        assert not FraudCheckResult.from_dict({}).allowed


class TestHttpFraudChecker:
    """Test the remote fraud client."""

    @pytest.mark.asyncio
    async def test_posts_wager_and_decodes_decision(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"allowed": False, "riskLevel": "high", "message": "velocity"})

        checker = HttpFraudChecker(url="https://fraud.test/check", transport=httpx.MockTransport(handler))
        result = await checker.check("user-1", 250.0, {"bet_type": "parlay"})

        assert seen == [{"userId": "user-1", "amount": 250.0, "context": {"bet_type": "parlay"}}]
        assert not result.allowed
        assert result.message == "velocity"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        checker = HttpFraudChecker(
            url="https://fraud.test/check",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(UpstreamUnavailableError):
            await checker.check("user-1", 10.0, {})


class TestFactory:
    """Test collaborator selection."""

    def test_builtin_without_url(self, monkeypatch):
        monkeypatch.setattr(settings, "FRAUD_CHECK_URL", "")
        assert isinstance(get_fraud_checker(), StakeLimitFraudCheck)

    def test_http_with_url(self, monkeypatch):
        monkeypatch.setattr(settings, "FRAUD_CHECK_URL", "https://fraud.test/check")
        checker = get_fraud_checker()

        assert isinstance(checker, HttpFraudChecker)
        assert checker.url == "https://fraud.test/check"
