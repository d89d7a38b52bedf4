from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Ward Waste Pickup"
    env: str = "dev"
    mongo_uri: str = Field("mongodb://localhost:27017", validation_alias="MONGO_URI")
    mongo_db: str = Field("wastepickup", validation_alias="MONGO_DB")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
        ],
        validation_alias="CORS_ORIGINS",
    )

    # shift routes start here when the collector's live position is unknown
    depot_lat: float = Field(26.1445, validation_alias="DEPOT_LAT")
    depot_lng: float = Field(91.7362, validation_alias="DEPOT_LNG")

    claim_retry_limit: int = Field(5, validation_alias="CLAIM_RETRY_LIMIT")

    @property
    def depot(self) -> dict:
        return {"lat": self.depot_lat, "lng": self.depot_lng}


@lru_cache
def get_settings() -> Settings:
    return Settings()
