"""Claim link resolution."""

from walletdrop.common.envelope import SecretEnvelope
from walletdrop.common.errors import ExpiredClaimToken, InvalidClaimToken
from walletdrop.common.logging import logger, user_id_ctx
from walletdrop.common.metrics import claim_requests_total
from walletdrop.services.claim.schemas import ClaimResponse
from walletdrop.services.wallets.service import WalletService


class ClaimService:
    """Opens claim tokens and records the first access per wallet."""

    def __init__(self, envelope: SecretEnvelope, wallets: WalletService, service_name: str = "walletdrop") -> None:
        self.envelope = envelope
        self.wallets = wallets
        self.service_name = service_name

    def reveal(self, token: str) -> ClaimResponse:
        """Return the sealed credentials; raises `ExpiredClaimToken` or `InvalidClaimToken`."""

        try:
            payload = self.envelope.open(token)
        except ExpiredClaimToken:
            claim_requests_total.labels(service=self.service_name, result="expired").inc()
            logger.info("expired claim token presented")
            raise
        except InvalidClaimToken:
            claim_requests_total.labels(service=self.service_name, result="invalid").inc()
            logger.warning("invalid claim token presented")
            raise

        user_id_ctx.set(payload.external_user_id)
        self.wallets.mark_claim_accessed(payload.external_user_id)
        claim_requests_total.labels(service=self.service_name, result="ok").inc()
        logger.info("claim link opened handle=%s", payload.handle)
        return ClaimResponse(
            handle=payload.handle,
            account_id=payload.account_id,
            account_alias=payload.account_alias,
            public_key=payload.public_key,
            private_key=payload.private_key,
            recovery_password=payload.recovery_password,
            expires_at=payload.expires_at,
        )
