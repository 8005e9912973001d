"""Central environment-driven settings shared by the bot and the claim API.

Each process loads this once at startup. Behavior is controlled by
environment variables (see `.env.example`).
"""

from datetime import datetime

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "walletdrop"
    log_level: str = "INFO"
    database_url: str
    redis_url: str | None = None
    encryption_key: str
    claim_token_secret: str | None = None
    claim_domain: str = "claim.example.com"
    claim_token_ttl_seconds: int = 3600
    twitter_api_base_url: str = "https://api.twitter.com"
    twitter_bearer_token: str | None = None
    twitter_bot_user_id: str | None = None
    ledger_gateway_url: str | None = None
    ledger_api_key: str | None = None
    mirror_node_url: str = "https://mainnet-public.mirrornode.hedera.com"
    ledger_timeout_seconds: float = 15.0
    messaging_timeout_seconds: float = 15.0
    max_wallets_per_user: int = 1
    max_wallets_per_day: int = 1000
    rate_limit_window_seconds: int = 86400
    dm_per_minute: int = 30
    poll_interval_seconds: float = 30.0
    lookback_seconds: int = 120
    freshness_window_seconds: int = 600
    follow_up_delay_seconds: float = 300.0
    processed_retention_days: int = 7
    event_time: datetime | None = None
    airdrop_amount: int = 100
    balance_refresh_minutes: int = 15
    campaign_batch_size: int = 50
    campaign_message_delay_seconds: float = 1.0
    campaign_batch_pause_seconds: float = 30.0
    metrics_port: int = 9100
    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def envelope_secret(self) -> str:
        """Secret used for claim tokens; falls back to the at-rest key."""

        return self.claim_token_secret or self.encryption_key


settings = CommonSettings()
