from pydantic import BaseModel
import os

class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./vehicles.db")
    pricing_base_url: str = os.getenv("PRICING_BASE_URL", "http://localhost:8082")
    pricing_timeout: float = float(os.getenv("PRICING_TIMEOUT", "3.0"))
    pricing_max_attempts: int = int(os.getenv("PRICING_MAX_ATTEMPTS", "2"))
    pricing_backoff_base: float = float(os.getenv("PRICING_BACKOFF_BASE", "0.2"))
    enrichment_timeout: float = float(os.getenv("ENRICHMENT_TIMEOUT", "5.0"))
    pricing_concurrency: int = int(os.getenv("PRICING_CONCURRENCY", "10"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str | None = os.getenv("LOG_FILE")

settings = Settings()
