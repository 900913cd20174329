from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SEASON = 1


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SONEIUM_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Upstream whitelist
    calculator_url: str = "https://portal.soneium.org/api/profile/calculator"
    tx_per_season_url: str = "https://portal.soneium.org/api/profile/tx-per-season"
    bonus_url: str = "https://portal.soneium.org/api/profile/bonus-dapp"
    portal_base_url: str = "https://portal.soneium.org/api"

    # Seasons
    default_season: int = Field(default=DEFAULT_SEASON, ge=0)
    tx_default_season: int | None = Field(default=None, ge=0)

    # Outbound HTTP
    user_agent: str = Field(default="Soneium-Proxy/1.0", min_length=1)
    http_timeout_s: float = Field(default=15.0, gt=0)
    connect_timeout_s: float = Field(default=5.0, gt=0)

    # Relay
    cache_s_maxage: int = Field(default=60, ge=0)
    cache_stale_while_revalidate: int = Field(default=300, ge=0)
    expose_target_header: bool = True
    disconnect_poll_s: float = Field(default=0.1, gt=0)

    log_level: str = "INFO"

    def effective_tx_season(self) -> int:
        if self.tx_default_season is not None:
            return self.tx_default_season
        return self.default_season

    def cache_control(self) -> str:
        return (
            f"s-maxage={self.cache_s_maxage}, "
            f"stale-while-revalidate={self.cache_stale_while_revalidate}"
        )


settings = Settings()
