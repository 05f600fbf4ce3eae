import os
from typing import List


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    try:
        v = int(os.getenv(name, "") or default)
    except ValueError:
        v = default
    return max(lo, min(v, hi))


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        # Remote inventory backend (the system of record for categories, suppliers, supermarkets).
        self.inventory_api_url = (
            os.getenv("INVENTORY_API_URL", "").strip() or "https://inventory-backend-pfr3.onrender.com"
        ).rstrip("/")
        self.inventory_api_timeout_s = _env_int("INVENTORY_API_TIMEOUT_S", 30, lo=1, hi=300)
        self.inventory_api_max_retries = _env_int("INVENTORY_API_MAX_RETRIES", 3, lo=0, hi=10)
        self.mapping_cache_ttl_s = _env_int("MAPPING_CACHE_TTL_S", 300, lo=1, hi=86400)
        # Placeholders used when an import references a supermarket that doesn't exist yet.
        self.auto_create_default_address = (
            os.getenv("AUTO_CREATE_DEFAULT_ADDRESS", "").strip() or "Address not provided"
        )
        self.auto_create_default_phone = os.getenv("AUTO_CREATE_DEFAULT_PHONE", "").strip() or "000-000-0000"
        self.auto_create_email_domain = os.getenv("AUTO_CREATE_EMAIL_DOMAIN", "").strip() or "default.com"
        self.import_max_mb = _env_int("IMPORT_MAX_MB", 10, lo=1, hi=100)
        # Comma-separated list of allowed CORS origins for browser clients.
        # Default keeps local dev working out of the box.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )

settings = Settings()
