"""
Swap service - converts the native balance into the reward token through
the Jupiter swap API.
"""

import asyncio
import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog
from pydantic import ValidationError as PydanticValidationError
from solders.transaction import VersionedTransaction

from holder_rewards.core.config import Settings, SwapPolicy
from holder_rewards.core.exceptions import HolderRewardsException, SwapError
from holder_rewards.schemas.swap import SwapQuote, SwapTransactionResponse

from .wallet_service import WalletService


logger = structlog.get_logger(__name__)


DRY_RUN_REFERENCE = "DRY_RUN"


@dataclass
class SwapResult:
    """Settled swap: base units in, base units out."""
    input_amount: int
    output_amount: int
    tx_reference: str


class SwapService:
    """Quote and execute exact-input swaps."""

    def __init__(
        self,
        wallet: WalletService,
        policy: SwapPolicy,
        api_url: str = "https://lite-api.jup.ag/swap/v1",
        timeout: int = 30
    ):
        self.wallet = wallet
        self.policy = policy
        self.api_url = api_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logger.bind(service="swap", output_mint=policy.output_mint)

    @classmethod
    def from_settings(cls, settings: Settings, wallet: WalletService) -> "SwapService":
        return cls(
            wallet=wallet,
            policy=settings.swap_policy(),
            api_url=settings.jupiter_api_url,
            timeout=settings.http_timeout,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.api_url}/{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, **kwargs) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise SwapError(
                            f"Swap API error: {response.status} {response.reason}",
                            {"status": response.status, "body": body[:500]}
                        )
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SwapError(f"Swap API request failed: {e}") from e

    async def quote(self, amount: int) -> SwapQuote:
        """Quote swapping exactly ``amount`` base units of the input mint."""
        params = {
            "inputMint": self.policy.input_mint,
            "outputMint": self.policy.output_mint,
            "amount": str(amount),
            "slippageBps": str(self.policy.slippage_bps),
            "onlyDirectRoutes": "false",
        }

        self.logger.info("Fetching swap quote", amount=amount)
        data = await self._request("GET", "quote", params=params)

        try:
            quote = SwapQuote.model_validate(data)
        except PydanticValidationError as e:
            raise SwapError(f"Malformed swap quote: {e}") from e

        self.logger.info(
            "Quote received",
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
            other_amount_threshold=quote.other_amount_threshold,
            price_impact_pct=quote.price_impact_pct,
            route=quote.route
        )
        return quote

    def check_quote(self, quote: SwapQuote) -> None:
        """Refuse quotes whose worst-case output falls below the configured floor."""
        minimum = quote.out_amount * self.policy.min_output_bps // 10_000
        if quote.other_amount_threshold < minimum:
            raise SwapError(
                "Quote worst-case output below minimum",
                {
                    "out_amount": quote.out_amount,
                    "other_amount_threshold": quote.other_amount_threshold,
                    "minimum": minimum,
                    "min_output_bps": self.policy.min_output_bps,
                }
            )

    async def execute(self, quote: SwapQuote) -> SwapResult:
        """Execute ``quote`` and report the amount actually received."""
        self.check_quote(quote)

        if self.policy.dry_run:
            self.logger.info("DRY RUN: skipping swap execution", out_amount=quote.out_amount)
            return SwapResult(quote.in_amount, quote.out_amount, DRY_RUN_REFERENCE)

        try:
            await self.wallet.ensure_token_account(self.policy.output_mint)
            balance_before = await self.wallet.get_token_balance(self.policy.output_mint)

            data = await self._request(
                "POST",
                "swap",
                json={
                    "quoteResponse": quote.to_payload(),
                    "userPublicKey": str(self.wallet.pubkey),
                    "wrapAndUnwrapSol": True,
                    "dynamicComputeUnitLimit": True,
                    "dynamicSlippage": True,
                }
            )
            swap_tx = SwapTransactionResponse.model_validate(data)
            transaction = VersionedTransaction.from_bytes(base64.b64decode(swap_tx.swap_transaction))

            self.logger.info("Executing swap transaction")
            signature = await self.wallet.send_transaction(self.wallet.sign(transaction))

        except SwapError:
            raise
        except (HolderRewardsException, PydanticValidationError, ValueError) as e:
            self.logger.error("Swap failed", error=str(e))
            raise SwapError(f"Swap failed: {e}") from e

        try:
            output_amount = await self.wallet.get_token_balance(self.policy.output_mint) - balance_before
        except HolderRewardsException as e:
            self.logger.warning("Could not read balance after swap", signature=signature, error=str(e))
            output_amount = 0

        if output_amount <= 0:
            # balance not visible yet at this commitment
            self.logger.warning("Swap output not observed, using quoted amount", signature=signature)
            output_amount = quote.out_amount

        self.logger.info(
            "Swap completed",
            signature=signature,
            input_amount=quote.in_amount,
            quoted_output=quote.out_amount,
            output_amount=output_amount
        )
        return SwapResult(quote.in_amount, output_amount, signature)

    async def swap(self, amount: int, quote: Optional[SwapQuote] = None) -> SwapResult:
        """Quote then execute in one step."""
        return await self.execute(quote or await self.quote(amount))
