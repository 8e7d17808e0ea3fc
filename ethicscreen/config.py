"""Configuration settings for the EthicScreen screening engine."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    data_dir: Path = base_dir / "data"
    db_path: Path = data_dir / "ethicscreen.db"

    # HTTP Client Settings
    user_agent: str = "EthicScreen/1.0 (+contact@example.com)"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0

    # Financial data fallback
    financial_lookup_enabled: bool = True
    financial_api_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"

    # Store Settings
    contract_lookback_days: int = 730
    persist_results: bool = True

    # Request defaults
    default_max_depth: int = 2

    # Database URL
    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    class Config:
        env_prefix = "ETHICSCREEN_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

# Ensure data directory exists
settings.data_dir.mkdir(parents=True, exist_ok=True)
