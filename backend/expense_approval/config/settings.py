"""Application Settings - Central Configuration"""
import json
from functools import lru_cache
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "expense_approval_dev"

    # Bearer tokens (HS256 shared secret)
    jwt_secret: str = "change-me-in-production-with-a-long-random-secret"
    jwt_algorithm: str = "HS256"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Currency - rates are units of currency per 1 USD
    base_currency: str = "USD"
    exchange_rates: str = (
        '{"USD": 1.0, "EUR": 0.85, "GBP": 0.73, "INR": 83.0, "JPY": 110.0, '
        '"CAD": 1.25, "AUD": 1.35, "CHF": 0.92, "CNY": 6.45, "SGD": 1.35}'
    )

    # Approval chain tiers (compared against converted amount)
    manager_only_max_amount: float = 100.0
    finance_max_amount: float = 1000.0

    # Conditional rule defaults
    default_percentage_threshold: int = 60
    default_amount_threshold: float = 1000.0
    rule_catalog_path: Optional[str] = None

    # Approver identities - role -> approver id, optional per-company overrides
    default_approver_ids: str = (
        '{"MANAGER": "USR-manager0001", "FINANCE": "USR-finance0001", '
        '"DIRECTOR": "USR-director001", "CFO": "USR-cfo00000001", "ADMIN": "USR-admin0000001"}'
    )
    company_approver_overrides: str = "{}"

    # Re-running start approval on an expense that already has a chain
    # rebuilds the chain when True, raises INVALID_STATE when False
    allow_approval_restart: bool = True

    # Exports
    export_max_rows: int = 10000

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def exchange_rates_map(self) -> Dict[str, float]:
        """Parse exchange rates JSON to dict"""
        return {code.upper(): float(rate) for code, rate in json.loads(self.exchange_rates).items()}

    @property
    def default_approver_ids_map(self) -> Dict[str, str]:
        """Parse default approver ids JSON to dict"""
        return json.loads(self.default_approver_ids)

    @property
    def company_approver_overrides_map(self) -> Dict[str, Dict[str, str]]:
        """Parse per-company approver overrides JSON to dict"""
        return json.loads(self.company_approver_overrides)

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
