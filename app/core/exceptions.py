"""
BETSYNC - Error Taxonomy
Typed errors raised by the sync, validation and settlement services and
mapped onto HTTP responses by the API layer.
"""

from typing import Any, Dict, List, Optional


class BetSyncError(Exception):
    """Base error carrying an HTTP status and structured details"""

    status_code: int = 500
    error_code: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error_code, "message": self.message}
        body.update(self.details)
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(BetSyncError):
    """Malformed input, rejected before any I/O"""
    status_code = 400
    error_code = "validation_error"


class UnauthorizedError(BetSyncError):
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(BetSyncError):
    """Unknown game or selection"""
    status_code = 404
    error_code = "not_found"


class OddsRejectedError(BetSyncError):
    """Base for rejections that carry per-leg validation results"""

    def __init__(self, message: str, results: Optional[List[Dict[str, Any]]] = None):
        self.results = results or []
        super().__init__(message, {"results": self.results})

    @property
    def invalid_legs(self) -> List[Dict[str, Any]]:
        return [r for r in self.results if not r.get("valid")]


class StaleOddsError(OddsRejectedError):
    """Odds drifted beyond tolerance; carries current odds for re-acceptance"""
    status_code = 409
    error_code = "odds_changed"


class GameClosedError(OddsRejectedError):
    status_code = 409
    error_code = "game_closed"


class SelectionNotFoundError(OddsRejectedError, NotFoundError):
    """A bet leg references a game or market the feed no longer has"""
    status_code = 404
    error_code = "not_found"


class FraudBlockedError(BetSyncError):
    status_code = 403
    error_code = "fraud_blocked"

    def __init__(self, message: str = "Transaction blocked", risk_level: str = "high"):
        super().__init__(message, {"risk_level": risk_level})
        self.risk_level = risk_level


class InsufficientFundsError(BetSyncError):
    status_code = 400
    error_code = "insufficient_funds"

    def __init__(self, available: float, requested: float):
        super().__init__(
            "Insufficient funds",
            {"available_balance": round(available, 2), "requested": round(requested, 2)},
        )
        self.available = available
        self.requested = requested


# =============================================================================
# UPSTREAM PROVIDER ERRORS
# =============================================================================

class UpstreamError(BetSyncError):
    """Base for odds provider failures"""
    status_code = 502
    error_code = "upstream_error"


class UpstreamNetworkError(UpstreamError):
    """Connection failure or timeout talking to the provider"""
    error_code = "upstream_network_error"
    retryable = True


class UpstreamRateLimitedError(UpstreamError):
    status_code = 429
    error_code = "upstream_rate_limited"

    def __init__(self, message: str = "Odds provider rate limit exceeded", retry_after: Optional[int] = None):
        super().__init__(message, {"retry_after": retry_after} if retry_after else None)
        self.retry_after = retry_after


class UpstreamMalformedResponseError(UpstreamError):
    error_code = "upstream_malformed_response"


class UpstreamUnavailableError(BetSyncError):
    """Provider fetch failed and no cached data could be served"""
    status_code = 503
    error_code = "upstream_unavailable"
    retryable = True


class PersistenceError(BetSyncError):
    """Transactional store write failed; storage detail stays in the logs"""
    status_code = 500
    error_code = "persistence_error"
    retryable = True

    def __init__(self, message: str = "The request could not be completed, please retry"):
        super().__init__(message)
