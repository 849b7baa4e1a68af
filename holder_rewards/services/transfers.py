"""
Reward token transfers from the payer wallet to holder wallets.
"""

from typing import List, Sequence

import structlog
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)

from holder_rewards.core.exceptions import InvalidDestinationError

from .wallet_service import WalletService


logger = structlog.get_logger(__name__)


class RewardTransferExecutor:
    """
    SPL token transfer primitive for payouts.

    Each prepared transfer pays into the destination's associated token
    account, creating it first when missing, so one submitted batch either
    lands in full or not at all.
    """

    def __init__(self, wallet: WalletService, reward_mint: str):
        self.wallet = wallet
        self.reward_mint = Pubkey.from_string(reward_mint)
        self.source = get_associated_token_address(wallet.pubkey, self.reward_mint)
        self.logger = logger.bind(service="reward_transfers", mint=reward_mint)

    async def prepare_transfer(self, destination: str, amount: int) -> List[Instruction]:
        try:
            owner = Pubkey.from_string(destination)
        except ValueError as e:
            raise InvalidDestinationError(destination, f"not a valid public key ({e})")

        token_account = get_associated_token_address(owner, self.reward_mint)
        instructions: List[Instruction] = []

        if not await self.wallet.account_exists(token_account):
            self.logger.debug("Destination token account missing", destination=destination)
            instructions.append(
                create_associated_token_account(
                    payer=self.wallet.pubkey,
                    owner=owner,
                    mint=self.reward_mint
                )
            )

        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=self.source,
                    dest=token_account,
                    owner=self.wallet.pubkey,
                    amount=amount,
                )
            )
        )
        return instructions

    async def submit(self, instructions: Sequence[Instruction]) -> str:
        return await self.wallet.send_instructions(instructions)
