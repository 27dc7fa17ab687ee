"""
Configuration management module.

Handles loading configuration from environment variables and a local .env
file. All values are read once and treated as immutable for a run.
"""

import os
from typing import Optional
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .exceptions import ConfigurationError

load_dotenv()  # Load environment variables from .env file


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _env_lower(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip().lower()


@dataclass
class DatabaseConfig:
    """Document store connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "tokenledger.db"
    user: str = "postgres"
    password: str = ""
    dialect: str = "sqlite"  # sqlite, postgresql, mysql

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Load database config from environment variables."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "tokenledger.db"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", ""),
            dialect=os.getenv("DB_DIALECT", "sqlite"),
        )

    def url(self) -> str:
        """Build the SQLAlchemy connection URL."""
        if self.dialect == "sqlite":
            return f"sqlite:///{self.database}"
        if self.dialect == "postgresql":
            return (
                f"postgresql://{self.user}:{self.password}"
                f"@{self.host}:{self.port}/{self.database}"
            )
        if self.dialect == "mysql":
            return (
                f"mysql+pymysql://{self.user}:{self.password}"
                f"@{self.host}:{self.port}/{self.database}"
            )
        raise ConfigurationError(f"Unsupported database dialect: {self.dialect}")


@dataclass
class AssetConfig:
    """The single on-chain asset being tracked."""

    token_address: str = field(default_factory=lambda: _env_lower("TOKEN_ADDRESS"))
    pair_address: str = field(default_factory=lambda: _env_lower("PAIR_ADDRESS"))
    chain: str = field(default_factory=lambda: _env_lower("CHAIN", "ethereum"))
    slug: str = field(default_factory=lambda: _env_lower("ASSET_SLUG", "zypto"))

    def __post_init__(self):
        self.token_address = self.token_address.lower()
        self.pair_address = self.pair_address.lower()

    @property
    def daily_collection(self) -> str:
        return f"{self.slug}_prices_daily"

    @property
    def hourly_collection(self) -> str:
        return f"{self.slug}_prices_hourly"

    def require_token(self) -> str:
        if not self.token_address:
            raise ConfigurationError("Token address not configured. Set TOKEN_ADDRESS.")
        return self.token_address

    def require_pair(self) -> str:
        if not self.pair_address:
            raise ConfigurationError("Pair address not configured. Set PAIR_ADDRESS.")
        return self.pair_address


@dataclass
class ProviderConfig:
    """Base configuration for data providers."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None


@dataclass
class CoinGeckoConfig(ProviderConfig):
    """CoinGecko configuration. Demo and Pro keys use different hosts and headers."""

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("COINGECKO_API_KEY"))
    is_pro: bool = field(default_factory=lambda: _env_bool("COINGECKO_IS_PRO"))
    base_url: Optional[str] = field(default_factory=lambda: os.getenv("COINGECKO_BASE"))

    def __post_init__(self):
        if not self.base_url:
            self.base_url = (
                "https://pro-api.coingecko.com" if self.is_pro else "https://api.coingecko.com"
            )


@dataclass
class GeckoTerminalConfig(ProviderConfig):
    """GeckoTerminal configuration."""

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("GECKOTERMINAL_API_KEY"))
    network: str = field(default_factory=lambda: os.getenv("GT_NETWORK", "eth"))
    base_url: Optional[str] = "https://api.geckoterminal.com/api/v2"


@dataclass
class TheGraphConfig(ProviderConfig):
    """The Graph configuration for the Uniswap subgraphs."""

    api_key: Optional[str] = field(default_factory=lambda: os.getenv("THEGRAPH_API_KEY"))
    v3_subgraph_id: Optional[str] = field(default_factory=lambda: os.getenv("UNIV3_SUBGRAPH_ID"))
    v2_url: str = field(
        default_factory=lambda: os.getenv(
            "UNIV2_SUBGRAPH_URL",
            "https://api.thegraph.com/subgraphs/name/uniswap/uniswap-v2",
        )
    )
    gateway_url: str = "https://gateway.thegraph.com/api"

    def v3_url(self) -> str:
        if not self.api_key or not self.v3_subgraph_id:
            raise ConfigurationError(
                "Uniswap v3 requires THEGRAPH_API_KEY and UNIV3_SUBGRAPH_ID."
            )
        return f"{self.gateway_url}/{self.api_key}/subgraphs/id/{self.v3_subgraph_id}"


@dataclass
class DexScreenerConfig(ProviderConfig):
    """DexScreener configuration (no API key required)."""

    base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("DEXSCREENER_BASE", "https://api.dexscreener.com")
    )


@dataclass
class IngestConfig:
    """Paging, retry and batching limits for one run."""

    safety_cap: int = field(default_factory=lambda: int(os.getenv("SAFETY_CAP", "20000")))
    batch_size: int = field(default_factory=lambda: int(os.getenv("BATCH_SIZE", "450")))
    max_attempts: int = field(default_factory=lambda: int(os.getenv("MAX_ATTEMPTS", "5")))
    base_delay: float = field(default_factory=lambda: float(os.getenv("BASE_DELAY", "1.0")))
    max_delay: float = field(default_factory=lambda: float(os.getenv("MAX_DELAY", "30.0")))
    page_delay: float = field(default_factory=lambda: float(os.getenv("PAGE_DELAY", "0.25")))
    max_runtime: Optional[float] = field(
        default_factory=lambda: float(os.environ["MAX_RUNTIME"]) if os.getenv("MAX_RUNTIME") else None
    )
    http_timeout: float = field(default_factory=lambda: float(os.getenv("HTTP_TIMEOUT", "15")))

    def __post_init__(self):
        if self.safety_cap <= 0:
            raise ConfigurationError("SAFETY_CAP must be positive")
        if self.batch_size <= 0:
            raise ConfigurationError("BATCH_SIZE must be positive")
        if self.max_attempts < 1:
            raise ConfigurationError("MAX_ATTEMPTS must be at least 1")


@dataclass
class Config:
    """
    Main configuration class.

    Loads all configuration from environment variables with sensible defaults.
    """

    database: DatabaseConfig = field(default_factory=DatabaseConfig.from_env)
    asset: AssetConfig = field(default_factory=AssetConfig)
    coingecko: CoinGeckoConfig = field(default_factory=CoinGeckoConfig)
    geckoterminal: GeckoTerminalConfig = field(default_factory=GeckoTerminalConfig)
    thegraph: TheGraphConfig = field(default_factory=TheGraphConfig)
    dexscreener: DexScreenerConfig = field(default_factory=DexScreenerConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config
