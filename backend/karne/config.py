import os
from typing import List

class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def _int(self, name: str, default: int) -> int:
        raw = (os.getenv(name) or "").strip()
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            return default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        self.db_url = os.getenv('DATABASE_URL', 'postgresql://localhost/karne')
        # Comma-separated list of allowed CORS origins for the Karné/Suppliers views.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:3000", "http://127.0.0.1:3000"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        # Tenant defaults; each tenant can override them in `tenant_settings`.
        self.default_payment_methods = [
            m.upper() for m in self._split_csv(os.getenv("KARNE_DEFAULT_METHODS", ""), default=["CASH", "CARD", "KARNE"])
        ]
        self.loyalty_points_per_visit = max(self._int("KARNE_LOYALTY_POINTS", 10), 0)

settings = Settings()
