"""
Payer wallet service.
Wraps the Solana RPC client with the payer keypair: balances, token accounts
and signed transaction submission with confirmation.
"""

import json
from typing import List, Sequence

import base58
import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.instructions import create_associated_token_account, get_associated_token_address

from holder_rewards.core.config import Settings, SolanaConfig
from holder_rewards.core.exceptions import ConfigurationError, SolanaRPCError, TransactionFailedError


logger = structlog.get_logger(__name__)


def load_keypair(secret: str) -> Keypair:
    """Parse a payer secret given as base58 or as a JSON byte array."""
    secret = secret.strip()
    if not secret:
        raise ConfigurationError("PAYER_SECRET_KEY is not set")

    try:
        if secret.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_bytes(base58.b58decode(secret))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid payer secret key: {e}") from e


class WalletService:
    """The payer wallet and the RPC connection it signs through."""

    def __init__(
        self,
        client: AsyncClient,
        keypair: Keypair,
        min_sol_balance: int = 0,
        commitment: str = "confirmed"
    ):
        self.client = client
        self.keypair = keypair
        self.min_sol_balance = min_sol_balance
        self.commitment = Commitment(commitment)
        self.logger = logger.bind(service="wallet", pubkey=str(keypair.pubkey()))

    @classmethod
    def from_settings(cls, settings: Settings) -> "WalletService":
        rpc_config = SolanaConfig.get_rpc_config(settings)
        client = AsyncClient(
            endpoint=rpc_config["endpoint"],
            commitment=Commitment(rpc_config["commitment"]),
            timeout=rpc_config["timeout"]
        )
        return cls(
            client=client,
            keypair=load_keypair(settings.payer_secret_key),
            min_sol_balance=settings.min_sol_balance_lamports,
            commitment=rpc_config["commitment"],
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the RPC client connection."""
        await self.client.close()

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def get_balance(self) -> int:
        """Native balance of the payer in lamports."""
        try:
            response = await self.client.get_balance(self.pubkey)
            return response.value
        except Exception as e:
            self.logger.error("Failed to get balance", error=str(e))
            raise SolanaRPCError(f"Failed to get balance: {e}")

    async def get_distributable_balance(self) -> int:
        """Native balance above the fee reserve, never negative."""
        balance = await self.get_balance()
        return max(balance - self.min_sol_balance, 0)

    async def get_token_balance(self, mint: str) -> int:
        """Payer balance of ``mint`` in base units; a missing account counts as zero."""
        token_account = get_associated_token_address(self.pubkey, Pubkey.from_string(mint))
        try:
            response = await self.client.get_token_account_balance(token_account)
        except RPCException:
            return 0
        except Exception as e:
            self.logger.error("Failed to get token balance", mint=mint, error=str(e))
            raise SolanaRPCError(f"Failed to get token balance: {e}")
        return int(response.value.amount)

    async def account_exists(self, address: Pubkey) -> bool:
        try:
            response = await self.client.get_account_info(address)
        except Exception as e:
            raise SolanaRPCError(f"Failed to get account info for {address}: {e}")
        return response.value is not None

    async def ensure_token_account(self, mint: str) -> Pubkey:
        """Create the payer's associated token account for ``mint`` if missing."""
        mint_pubkey = Pubkey.from_string(mint)
        token_account = get_associated_token_address(self.pubkey, mint_pubkey)

        if not await self.account_exists(token_account):
            self.logger.info("Creating payer token account", mint=mint, token_account=str(token_account))
            await self.send_instructions([
                create_associated_token_account(payer=self.pubkey, owner=self.pubkey, mint=mint_pubkey)
            ])

        return token_account

    async def send_instructions(self, instructions: Sequence[Instruction]) -> str:
        """Compile, sign, send and confirm ``instructions`` as one transaction."""
        try:
            blockhash = await self.client.get_latest_blockhash()
        except Exception as e:
            raise SolanaRPCError(f"Failed to get latest blockhash: {e}")

        message = MessageV0.try_compile(
            self.pubkey,
            list(instructions),
            [],
            blockhash.value.blockhash
        )
        return await self.send_transaction(VersionedTransaction(message, [self.keypair]))

    async def send_transaction(self, transaction: VersionedTransaction) -> str:
        """Send an already signed transaction and wait for confirmation."""
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        try:
            response = await self.client.send_transaction(transaction, opts=opts)
        except Exception as e:
            self.logger.error("Failed to send transaction", error=str(e))
            raise SolanaRPCError(f"Failed to send transaction: {e}")

        signature = str(response.value)
        await self.confirm(signature)
        return signature

    def sign(self, transaction: VersionedTransaction) -> VersionedTransaction:
        """Re-sign an externally built transaction with the payer keypair."""
        return VersionedTransaction(transaction.message, [self.keypair])

    async def confirm(self, signature: str) -> None:
        try:
            confirmation = await self.client.confirm_transaction(
                Signature.from_string(signature),
                commitment=self.commitment
            )
        except Exception as e:
            self.logger.error("Failed to confirm transaction", signature=signature, error=str(e))
            raise SolanaRPCError(f"Failed to confirm transaction {signature}: {e}", {"signature": signature})

        statuses: List = confirmation.value
        if statuses and statuses[0] is not None and statuses[0].err:
            raise TransactionFailedError(signature, statuses[0].err)

        self.logger.debug("Transaction confirmed", signature=signature)
