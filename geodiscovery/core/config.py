# Configuration for the discovery service: geocoder access, timeouts,
# radius policy defaults and session cookie settings.

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Dict, List, Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Dorpsplein Discovery"
    VERSION: str = "0.2.0"
    BRIEF_DESCRIPTION: str = "Geo-aware discovery of local listings and people: location resolution, distance annotation, radius policy and ranking."

    ENV: str = Field("development", description="Application environment (e.g., production, development)")

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = Field(None, description="Force JSON (true) or console (false) output; defaults by ENV")

    # --- Geocoder (Google Maps Geocoding API) ---
    GOOGLE_MAPS_API_KEY: Optional[str] = Field(None, description="Google Maps Geocoding API key")
    GEOCODER_URL: str = Field(
        "https://maps.googleapis.com/maps/api/geocode/json",
        description="Geocoding endpoint"
    )
    GEOCODER_REGION: str = Field("nl", description="Region bias passed to the geocoder")
    # Hard bound on a single lookup, no retries
    GEOCODER_TIMEOUT: float = 8.0

    # Device position lookups (seconds)
    GPS_TIMEOUT: float = 30.0

    # --- Geocode cache ---
    GEOCODE_CACHE_MAX_ENTRIES: int = Field(500, description="Upper bound on cached addresses per process")

    # --- Radius policy ---
    DEFAULT_COUNTRY_CODE: str = "NL"
    # 0 = unlimited
    CATEGORY_RADIUS_KM: Dict[str, float] = Field(
        default_factory=lambda: {
            "CHEFF": 25.0,
            "GROWN": 50.0,
            "DESIGNER": 0.0,
            "all": 10.0,
        },
        description="Default search radius per category"
    )
    UNLIMITED_RADIUS_COUNTRIES: List[str] = Field(
        default_factory=lambda: [
            "CW", "AW", "SX", "BQ", "JM", "TT", "BB", "BS", "CU", "DO",
            "HT", "PR", "VI", "VG", "AG", "DM", "GD", "KN", "LC", "VC",
            "SR",
        ],
        description="Caribbean territories and Suriname, where the radius is never enforced"
    )

    # --- Sessions ---
    SESSION_COOKIE_NAME: str = "gd_session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 30

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
