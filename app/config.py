"""
Configuration settings for Chimeo Backend
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Server Configuration
    APP_NAME: str = "Chimeo Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Firebase Configuration
    FIREBASE_CREDENTIALS_PATH: str = "./firebase-credentials.json"
    # Support for raw JSON credentials (env var)
    FIREBASE_CREDENTIALS_JSON: str = ""
    FIREBASE_STORAGE_BUCKET: str = ""
    FIREBASE_EMULATOR_HOST: str = ""
    DEV_MODE: bool = False

    # CORS Configuration - Allow all localhost ports in development
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001,http://localhost:5173"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Convert comma-separated origins to list"""
        origins = [origin.strip()
                   for origin in self.ALLOWED_ORIGINS.split(",")]
        if self.DEBUG:
            localhost_ports = [3000, 3001, 5173, 5000, 4200]
            for port in localhost_ports:
                origin = f"http://localhost:{port}"
                if origin not in origins:
                    origins.append(origin)
            for port in localhost_ports:
                origin = f"http://127.0.0.1:{port}"
                if origin not in origins:
                    origins.append(origin)
        return origins

    # Geocoding (Nominatim-compatible search endpoint)
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/search"
    GEOCODER_USER_AGENT: str = "chimeo-backend/1.0"
    GEOCODER_TIMEOUT_SECONDS: float = 10.0
    # Used when an approved organization's address cannot be geocoded (Denton, TX)
    DEFAULT_LATITUDE: float = 33.2148
    DEFAULT_LONGITUDE: float = -97.1331

    # Alerts & fan-out
    ALERT_EXPIRY_DAYS: int = 14
    FANOUT_CONCURRENCY: int = 20
    ORGANIZATION_CACHE_TTL_SECONDS: int = 300

    # Scheduled alerts
    SCHEDULED_ALERTS_ENABLED: bool = True
    SCHEDULED_ALERT_INTERVAL_MINUTES: int = 5

    model_config = {"env_file": ".env",
                    "case_sensitive": True, "extra": "allow"}


# Global settings instance
settings = Settings()
