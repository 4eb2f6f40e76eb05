from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # DB
    database_url: str = Field(
        default="sqlite+pysqlite:///./duel_ledger.db",
        validation_alias="DATABASE_URL",
    )
    db_echo: bool = False

    # game api
    ncfa: str | None = Field(default=None, repr=False, validation_alias="NCFA")
    own_player_id: str | None = None
    site_base_url: str = "https://www.geoguessr.com"
    game_server_base_url: str = "https://game-server.geoguessr.com"
    http_timeout_s: float = 30.0

    # geo
    reverse_geocode_url: str = "https://api.bigdatacloud.net/data/reverse-geocode-client"
    country_boundaries_urls: list[str] = [
        "https://raw.githubusercontent.com/datasets/geo-countries/master/data/countries.geojson",
        "https://cdn.jsdelivr.net/gh/datasets/geo-countries@master/data/countries.geojson",
    ]

    # detail ingestion
    detail_concurrency: int = 4
    missing_retry_days: int = 7
    enrichment_retry_days: int = 30

    store_raw_payloads: bool = True
    log_level: str = "INFO"

    # -----------------------------
    # Required-key helpers
    # -----------------------------

    def require_ncfa(self) -> str:
        if not self.ncfa:
            raise RuntimeError(
                "NCFA is not set. Copy the _ncfa cookie value into the environment or .env file."
            )
        return self.ncfa


settings = Settings()
