# listing_ai/config/settings.py

"""Central configuration for the listing_ai pipeline."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the listing_ai pipeline."""

    # --- Inference Service ---
    GEMINI_API_KEY: str = (
        os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or ""
    )
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-pro")
    GEMINI_API_BASE: str = (
        "https://generativelanguage.googleapis.com/v1beta"
    )
    INFERENCE_TIMEOUT: float = 120.0    # Seconds per inference call
    SYNTHESIS_THINKING_BUDGET: int = 16000
    HEALTH_TIMEOUT: int = 10            # Seconds for the health probe
    HEALTH_SLOW_MS: float = 5000.0

    # --- Image intake ---
    MIN_IMAGES: int = 1
    MAX_IMAGES: int = 5
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024
    ALLOWED_MEDIA_TYPES: list[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/heic",
    ]

    # --- Consensus ---
    CONSENSUS_MIN_SOURCES: int = 3      # Distinct corroborating platforms
    CONSENSUS_MAX_ITERATIONS: int = 3   # Aggregator calls per resolution
    DIMENSION_TOLERANCE: float = 0.15   # Relative, per measurement

    # --- Marketplaces ---
    MARKETPLACE_PLATFORMS: list[str] = [
        "Amazon.in",
        "Flipkart.com",
        "Meesho.com",
        "Ajio.com",
        "Myntra.com",
        "Shein.in",
    ]
    # Added to the search instruction from the second round on
    EXTENDED_PLATFORMS: list[str] = [
        "Nykaa Fashion",
        "Tata CLiQ",
        "Snapdeal",
        "the brand's own web store",
    ]

    # --- Listing defaults ---
    DEFAULT_SHIPPING_DAYS: str = "3-5 Days"

    # --- Logging ---
    # Per-logger levels applied by setup_logging; the root stays at DEBUG
    LOGGER_LEVELS: dict[str, str] = {
        "listing_ai.inference": os.getenv(
            "LISTING_AI_INFERENCE_LOG_LEVEL", "INFO"
        ),
        "listing_ai.orchestrator": os.getenv(
            "LISTING_AI_ORCHESTRATOR_LOG_LEVEL", "DEBUG"
        ),
    }

    # --- HTTP ---
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
        "Content-Type": "application/json",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    RESULTS_DIR: Path = BASE_DIR / "results"
    LOGS_DIR: Path = BASE_DIR / "logs"
