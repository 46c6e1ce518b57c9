from typing import List, Optional
from zoneinfo import ZoneInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Route Optimization Engine
    ROUTE_ENGINE_BASE_URL: str = "http://localhost:8001"
    ROUTE_ENGINE_API_KEY: Optional[str] = None
    ROUTE_ENGINE_TIMEOUT_SECONDS: float = 30.0
    TRAFFIC_CHECK_TIMEOUT_SECONDS: float = 10.0

    # Traffic-triggered reoptimization
    TRAFFIC_REOPTIMIZE_THRESHOLD: float = 1.5
    TRAFFIC_REOPTIMIZE_COOLDOWN_MINUTES: int = 10  # 0 disables the cooldown

    # "Today" for status reads is evaluated in this zone
    DELIVERY_TIMEZONE: str = "Asia/Kolkata"
    HUB_STOP_NAME: str = "Return to Hub"

    @property
    def delivery_tz(self) -> ZoneInfo:
        return ZoneInfo(self.DELIVERY_TIMEZONE)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
