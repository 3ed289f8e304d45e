import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Property cache (durable store + per-process memo)
    PROPERTY_CACHE_DAYS: int = int(os.getenv("PROPERTY_CACHE_DAYS", "30"))
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "sqlite")    # sqlite | redis
    CACHE_DB_PATH: str = os.getenv("CACHE_DB_PATH", "./property_cache.sqlite3")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    MEMO_TTL_SECONDS: int = int(os.getenv("MEMO_TTL_SECONDS", "300"))
    MEMO_MAXSIZE: int = int(os.getenv("MEMO_MAXSIZE", "1024"))

    # Data providers, tried in this order
    RENTCAST_API_KEY: str | None = os.getenv("RENTCAST_API_KEY")
    RENTCAST_BASE_URL: str = os.getenv("RENTCAST_BASE_URL", "https://api.rentcast.io/v1")
    ATTOM_API_KEY: str | None = os.getenv("ATTOM_API_KEY")
    ATTOM_BASE_URL: str = os.getenv("ATTOM_BASE_URL", "https://api.attomdata.com/property/v4")
    PROVIDER_TIMEOUT_SECONDS: float = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))

    # Security
    API_KEY: str | None = os.getenv("API_KEY")

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
