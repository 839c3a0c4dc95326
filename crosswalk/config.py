import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    log_level: str = os.getenv("CROSSWALK_LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # Optional JSON file overriding brand families / price bands / type keywords
    heuristics_file: str = os.getenv("CROSSWALK_HEURISTICS_FILE", "")

    # Collaborators (existing mappings, research) are awaited with this timeout
    collaborator_timeout_seconds: float = float(os.getenv("CROSSWALK_COLLABORATOR_TIMEOUT", "2.0"))
    batch_concurrency: int = int(os.getenv("CROSSWALK_BATCH_CONCURRENCY", "1"))

    # Input validation
    min_competitor_price: float = 0.0
    max_competitor_price: float = 50000.0

    # Strategy confidences
    confidence_exact_sku: float = 0.98
    confidence_exact_model: float = 0.90
    confidence_exact_model_unverified: float = 0.75

    # Confidence labels
    confidence_high: float = 0.85
    confidence_medium: float = 0.65
    confidence_low: float = 0.45

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
