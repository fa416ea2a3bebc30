"""
BETSYNC - Fraud Check Collaborator

Settlement only consumes a pass/fail decision with a risk tier. The remote
client posts to FRAUD_CHECK_URL; without one configured the built-in
stake-limit check is used.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class FraudCheckResult:
    """Decision returned by the fraud collaborator"""
    allowed: bool
    risk_level: RiskLevel = RiskLevel.LOW
    risk_score: float = 0.0
    action: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_high_risk(self) -> bool:
        return self.risk_level == RiskLevel.HIGH

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FraudCheckResult":
        level = str(data.get("riskLevel", data.get("risk_level", "low"))).lower()
        try:
            risk_level = RiskLevel(level)
        except ValueError:
            # Tiers beyond "high" (e.g. "critical") collapse into high
            risk_level = RiskLevel.HIGH
        return cls(
            allowed=bool(data.get("allowed", False)),
            risk_level=risk_level,
            risk_score=float(data.get("riskScore", data.get("risk_score", 0)) or 0),
            action=data.get("action"),
            message=data.get("message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "risk_level": self.risk_level.value,
            "risk_score": self.risk_score,
            "action": self.action,
            "message": self.message,
        }


class FraudChecker(ABC):
    """Fraud collaborator interface"""

    @abstractmethod
    async def check(self, user_id: str, amount: float, context: Dict[str, Any]) -> FraudCheckResult:
        """Return an allow/deny decision for a wager"""


class StakeLimitFraudCheck(FraudChecker):
    """Built-in gate: large stakes are flagged high risk but never blocked"""

    def __init__(self, high_risk_stake: Optional[float] = None):
        self.high_risk_stake = high_risk_stake or settings.FRAUD_HIGH_RISK_STAKE

    async def check(self, user_id: str, amount: float, context: Dict[str, Any]) -> FraudCheckResult:
        ratio = amount / self.high_risk_stake
        score = round(min(100.0, ratio * 70), 1)

        if amount >= self.high_risk_stake:
            return FraudCheckResult(
                allowed=True,
                risk_level=RiskLevel.HIGH,
                risk_score=score,
                action="verify",
                message="Large stake flagged for review",
            )
        if ratio >= 0.5:
            return FraudCheckResult(allowed=True, risk_level=RiskLevel.MEDIUM, risk_score=score, action="monitor")
        return FraudCheckResult(allowed=True, risk_level=RiskLevel.LOW, risk_score=score)


class HttpFraudChecker(FraudChecker):
    """Remote fraud service reached over HTTP"""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.FRAUD_CHECK_URL
        self.timeout = timeout or settings.FRAUD_CHECK_TIMEOUT
        self._transport = transport

    async def check(self, user_id: str, amount: float, context: Dict[str, Any]) -> FraudCheckResult:
        payload = {"userId": user_id, "amount": amount, "context": context}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Fraud check failed for user {user_id}: {e}")
            raise UpstreamUnavailableError("Risk check is temporarily unavailable") from e

        return FraudCheckResult.from_dict(data)


def get_fraud_checker() -> FraudChecker:
    if settings.FRAUD_CHECK_URL:
        return HttpFraudChecker()
    return StakeLimitFraudCheck()
