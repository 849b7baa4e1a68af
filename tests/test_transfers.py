"""
Test reward transfer preparation and payer key loading.
"""

import json

import base58
import pytest
from solders.keypair import Keypair
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from holder_rewards.core.config import WBTC_MINT_MAINNET
from holder_rewards.core.exceptions import ConfigurationError, InvalidDestinationError
from holder_rewards.services.transfers import RewardTransferExecutor
from holder_rewards.services.wallet_service import load_keypair


class FakeWallet:
    def __init__(self, existing=()):
        self.keypair = Keypair()
        self.existing = set(existing)
        self.submitted = []

    @property
    def pubkey(self):
        return self.keypair.pubkey()

    async def account_exists(self, address):
        return address in self.existing

    async def send_instructions(self, instructions):
        self.submitted.append(list(instructions))
        return "transfer-signature"


@pytest.mark.asyncio
async def test_invalid_destination():
    executor = RewardTransferExecutor(FakeWallet(), WBTC_MINT_MAINNET)

    with pytest.raises(InvalidDestinationError) as exc_info:
        await executor.prepare_transfer("not-a-wallet", 10)

    assert exc_info.value.details["destination"] == "not-a-wallet"


@pytest.mark.asyncio
async def test_missing_token_account_is_created_first():
    owner = Keypair().pubkey()
    executor = RewardTransferExecutor(FakeWallet(), WBTC_MINT_MAINNET)

    instructions = await executor.prepare_transfer(str(owner), 10)

    assert [ix.program_id for ix in instructions] == [ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID]


@pytest.mark.asyncio
async def test_existing_token_account_only_transfers():
    owner = Keypair().pubkey()
    wallet = FakeWallet()
    executor = RewardTransferExecutor(wallet, WBTC_MINT_MAINNET)
    wallet.existing.add(get_associated_token_address(owner, executor.reward_mint))

    instructions = await executor.prepare_transfer(str(owner), 10)

    assert len(instructions) == 1
    assert instructions[0].program_id == TOKEN_PROGRAM_ID
    destination = get_associated_token_address(owner, executor.reward_mint)
    assert destination in [meta.pubkey for meta in instructions[0].accounts]


@pytest.mark.asyncio
async def test_submit_sends_one_transaction():
    wallet = FakeWallet()
    executor = RewardTransferExecutor(wallet, WBTC_MINT_MAINNET)

    signature = await executor.submit(["ix1", "ix2"])

    assert signature == "transfer-signature"
    assert wallet.submitted == [["ix1", "ix2"]]


def test_load_keypair_base58():
    keypair = Keypair()

    assert load_keypair(base58.b58encode(bytes(keypair)).decode()).pubkey() == keypair.pubkey()


def test_load_keypair_json_array():
    keypair = Keypair()

    assert load_keypair(json.dumps(list(bytes(keypair)))).pubkey() == keypair.pubkey()


@pytest.mark.parametrize("secret", ["", "   ", "abc"])
def test_load_keypair_rejects_bad_secrets(secret):
    with pytest.raises(ConfigurationError):
        load_keypair(secret)
