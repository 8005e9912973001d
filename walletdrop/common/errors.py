"""Typed failures raised across the provisioning pipeline."""


class WalletAlreadyExistsError(Exception):
    """A wallet is already recorded for this external user id."""

    code = "WALLET_ALREADY_EXISTS"

    def __init__(self, external_user_id: str) -> None:
        super().__init__(f"wallet already exists for user {external_user_id}")
        self.external_user_id = external_user_id


class QuotaExceededError(Exception):
    """A per-actor or global provisioning ceiling was hit."""

    def __init__(self, scope: str, limit: int) -> None:
        super().__init__(f"{scope} quota of {limit} exceeded")
        self.scope = scope
        self.limit = limit


class LedgerTransientError(Exception):
    """Ledger account creation failed; operator intervention is required."""

    def __init__(self, message: str, reason: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.reason = reason


class MessagingError(Exception):
    """Outbound send was rejected or timed out."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidClaimToken(Exception):
    """Claim token is malformed, forged, or expired."""

    def __init__(self) -> None:
        super().__init__("invalid or expired token")


class ExpiredClaimToken(InvalidClaimToken):
    """Authentic claim token whose expiry instant has passed."""
