"""
Configuration management using Pydantic Settings.

Settings are loaded once at startup with ``load_settings()`` and passed
explicitly into every component; nothing reads configuration at call sites.
"""

from dataclasses import dataclass
from typing import Optional, List, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey


LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"

# Wrapped BTC (Wormhole) on mainnet; devnet falls back to wrapped SOL
WBTC_MINT_MAINNET = "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh"
WBTC_MINT_DEVNET = SOL_MINT

# Upper bound of transfer + account-creation instruction pairs that fit in one transaction
MAX_TRANSFERS_PER_TX = 10


@dataclass(frozen=True)
class SnapshotPolicy:
    """Eligibility and weighting rules for holder snapshots."""
    min_holder_balance: int = 0
    max_holder_balance: Optional[int] = None
    weighting: str = "linear"
    excluded_holders: frozenset = frozenset()


@dataclass(frozen=True)
class DistributionPolicy:
    """Batching and retry rules for payouts."""
    batch_size: int = 5
    max_attempts: int = 3
    retry_base_delay: float = 2.0
    batch_delay: float = 0.5
    dry_run: bool = False


@dataclass(frozen=True)
class SwapPolicy:
    """Swap guard rails."""
    input_mint: str = SOL_MINT
    output_mint: str = WBTC_MINT_MAINNET
    slippage_bps: int = 100
    min_output_bps: int = 9900
    dry_run: bool = False


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = "Holder Rewards Bot"
    app_version: str = "0.1.0"
    environment: str = "development"

    # Solana
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    network: Literal["mainnet-beta", "devnet"] = "mainnet-beta"
    solana_commitment: str = "confirmed"
    rpc_timeout: int = 30

    # Wallets
    payer_secret_key: str = Field(default="", repr=False)

    # Token addresses
    token_mint_address: str
    reward_mint_address: Optional[str] = None

    # External services
    helius_api_key: str = Field(default="", repr=False)
    holder_index_url: Optional[str] = None
    jupiter_api_url: str = "https://lite-api.jup.ag/swap/v1"
    http_timeout: int = 30

    # Database
    database_url: str = "sqlite:///data/holder_rewards.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_echo: bool = False

    # Safety parameters (SOL)
    min_sol_balance: float = 0.05
    swap_threshold: float = 0.1
    slippage_bps: int = 100
    min_output_bps: int = 9900

    # Distribution parameters (raw token units)
    min_holder_balance: int = 1_000_000
    max_holder_balance: Optional[int] = None
    distribution_weighting: Literal["linear", "sqrt"] = "linear"
    excluded_holders: List[str] = []

    # Payout execution
    payout_batch_size: int = 5
    max_retries: int = 3
    retry_base_delay: float = 2.0
    batch_delay: float = 0.5

    # Holder index pagination
    holder_page_size: int = 1000
    holder_page_delay: float = 0.1

    # Scheduling
    cycle_interval_seconds: int = 900
    resume_interrupted_on_start: bool = False

    # Flags
    dry_run: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError("Log format must be 'json' or 'console'")
        return v

    @field_validator("token_mint_address", "reward_mint_address")
    @classmethod
    def validate_public_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            Pubkey.from_string(v)
        except ValueError:
            raise ValueError(f"Invalid public key: {v}")
        return v

    @field_validator("excluded_holders")
    @classmethod
    def validate_excluded_holders(cls, v: List[str]) -> List[str]:
        for address in v:
            try:
                Pubkey.from_string(address)
            except ValueError:
                raise ValueError(f"Invalid excluded holder address: {address}")
        return v

    @field_validator("slippage_bps", "min_output_bps")
    @classmethod
    def validate_bps(cls, v: int) -> int:
        if not 0 <= v <= 10_000:
            raise ValueError("Basis points must be between 0 and 10000")
        return v

    @field_validator("payout_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= MAX_TRANSFERS_PER_TX:
            raise ValueError(f"Payout batch size must be between 1 and {MAX_TRANSFERS_PER_TX}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_retries must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_holder_bounds(self) -> "Settings":
        if self.min_holder_balance < 0:
            raise ValueError("min_holder_balance must not be negative")
        if self.max_holder_balance is not None and self.max_holder_balance < self.min_holder_balance:
            raise ValueError("max_holder_balance must not be below min_holder_balance")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def reward_mint(self) -> str:
        """Mint of the asset paid out to holders."""
        if self.reward_mint_address:
            return self.reward_mint_address
        return WBTC_MINT_DEVNET if self.network == "devnet" else WBTC_MINT_MAINNET

    @property
    def helius_rpc_url(self) -> str:
        """Endpoint used for DAS token account enumeration."""
        if self.holder_index_url:
            return self.holder_index_url
        cluster = "devnet" if self.network == "devnet" else "mainnet"
        return f"https://{cluster}.helius-rpc.com/?api-key={self.helius_api_key}"

    @property
    def min_sol_balance_lamports(self) -> int:
        return int(self.min_sol_balance * LAMPORTS_PER_SOL)

    @property
    def swap_threshold_lamports(self) -> int:
        return int(self.swap_threshold * LAMPORTS_PER_SOL)

    def snapshot_policy(self) -> SnapshotPolicy:
        return SnapshotPolicy(
            min_holder_balance=self.min_holder_balance,
            max_holder_balance=self.max_holder_balance,
            weighting=self.distribution_weighting,
            excluded_holders=frozenset(self.excluded_holders),
        )

    def distribution_policy(self) -> DistributionPolicy:
        return DistributionPolicy(
            batch_size=self.payout_batch_size,
            max_attempts=self.max_retries,
            retry_base_delay=self.retry_base_delay,
            batch_delay=self.batch_delay,
            dry_run=self.dry_run,
        )

    def swap_policy(self) -> SwapPolicy:
        return SwapPolicy(
            input_mint=SOL_MINT,
            output_mint=self.reward_mint,
            slippage_bps=self.slippage_bps,
            min_output_bps=self.min_output_bps,
            dry_run=self.dry_run,
        )


def load_settings(**overrides) -> Settings:
    """Build the immutable settings object, wrapping validation failures."""
    from pydantic import ValidationError as PydanticValidationError

    from .exceptions import ConfigurationError

    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            {"errors": [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]}
        ) from e


class DatabaseConfig:
    """Database-specific configuration."""

    @staticmethod
    def get_database_url(url: str) -> str:
        """Get database URL with the async driver for its backend."""
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @staticmethod
    def get_engine_config(settings: Settings) -> dict:
        """Get SQLAlchemy engine configuration."""
        if DatabaseConfig.get_database_url(settings.database_url).startswith("sqlite"):
            return {}
        return {
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }


class SolanaConfig:
    """Solana-specific configuration."""

    @staticmethod
    def get_rpc_config(settings: Settings) -> dict:
        """Get Solana RPC client configuration."""
        return {
            "endpoint": settings.rpc_url,
            "commitment": settings.solana_commitment,
            "timeout": settings.rpc_timeout,
        }
