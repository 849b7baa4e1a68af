"""
Test settings validation and derived policies.
"""

import pytest

from holder_rewards.core.config import (
    SOL_MINT,
    WBTC_MINT_MAINNET,
    DatabaseConfig,
    load_settings,
)
from holder_rewards.core.exceptions import ConfigurationError


TOKEN_MINT = "11111111111111111111111111111111"


def settings(**overrides):
    return load_settings(_env_file=None, token_mint_address=TOKEN_MINT, **overrides)


def test_defaults():
    config = settings()

    assert config.reward_mint == WBTC_MINT_MAINNET
    assert config.min_sol_balance_lamports == 50_000_000
    assert config.swap_threshold_lamports == 100_000_000
    assert config.cycle_interval_seconds == 900
    assert config.log_level == "INFO"


def test_devnet_reward_mint_defaults_to_wrapped_sol():
    assert settings(network="devnet").reward_mint == SOL_MINT


def test_explicit_reward_mint_wins():
    assert settings(network="devnet", reward_mint_address=WBTC_MINT_MAINNET).reward_mint == WBTC_MINT_MAINNET


def test_holder_index_url():
    assert settings(helius_api_key="key").helius_rpc_url == "https://mainnet.helius-rpc.com/?api-key=key"
    assert settings(holder_index_url="http://localhost:8899").helius_rpc_url == "http://localhost:8899"


def test_policies():
    config = settings(
        payout_batch_size=8,
        max_retries=4,
        distribution_weighting="sqrt",
        max_holder_balance=5_000_000,
        excluded_holders=[SOL_MINT],
        dry_run=True,
    )

    distribution = config.distribution_policy()
    assert distribution.batch_size == 8
    assert distribution.max_attempts == 4
    assert distribution.dry_run

    snapshot = config.snapshot_policy()
    assert snapshot.weighting == "sqrt"
    assert snapshot.min_holder_balance == 1_000_000
    assert snapshot.max_holder_balance == 5_000_000
    assert SOL_MINT in snapshot.excluded_holders

    swap = config.swap_policy()
    assert swap.input_mint == SOL_MINT
    assert swap.output_mint == WBTC_MINT_MAINNET
    assert swap.min_output_bps == 9900


@pytest.mark.parametrize("overrides", [
    {"token_mint_address": "not-a-key"},
    {"environment": "moon"},
    {"log_level": "LOUD"},
    {"log_format": "xml"},
    {"slippage_bps": 10_001},
    {"payout_batch_size": 0},
    {"payout_batch_size": 11},
    {"max_retries": 0},
    {"min_holder_balance": 10, "max_holder_balance": 5},
    {"excluded_holders": ["nope"]},
])
def test_invalid_settings(overrides):
    values = {"token_mint_address": TOKEN_MINT, **overrides}

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(_env_file=None, **values)

    assert exc_info.value.code == "CONFIGURATION_ERROR"
    assert exc_info.value.details["errors"]


def test_settings_are_frozen():
    config = settings()

    with pytest.raises(Exception):
        config.dry_run = True


def test_database_url_drivers():
    assert DatabaseConfig.get_database_url("sqlite:///data/x.db") == "sqlite+aiosqlite:///data/x.db"
    assert DatabaseConfig.get_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert DatabaseConfig.get_database_url("postgresql+asyncpg://h/db") == "postgresql+asyncpg://h/db"


def test_sqlite_engine_has_no_pool_settings():
    assert DatabaseConfig.get_engine_config(settings()) == {}
    assert DatabaseConfig.get_engine_config(settings(database_url="postgresql://h/db"))["pool_size"] == 5
