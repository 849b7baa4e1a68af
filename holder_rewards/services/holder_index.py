"""
Holder index client - enumerates token accounts for a mint via the Helius
DAS ``getTokenAccounts`` JSON-RPC method.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp
import structlog
from pydantic import ValidationError as PydanticValidationError

from holder_rewards.core.config import Settings
from holder_rewards.core.exceptions import HolderIndexError
from holder_rewards.schemas.holders import TokenAccount, TokenAccountPage, TokenAccountsResponse


logger = structlog.get_logger(__name__)


class HolderIndexClient:
    """
    Paginated enumeration of every account holding a mint.

    Pagination is all-or-nothing: any failing page aborts the whole listing
    with ``HolderIndexError`` so callers never act on a partial holder set.
    """

    def __init__(
        self,
        url: str,
        mint: str,
        page_size: int = 1000,
        page_delay: float = 0.1,
        timeout: int = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.url = url
        self.mint = mint
        self.page_size = page_size
        self.page_delay = page_delay
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._sleep = sleep
        self.logger = logger.bind(service="holder_index")

    @classmethod
    def from_settings(cls, settings: Settings) -> "HolderIndexClient":
        return cls(
            url=settings.helius_rpc_url,
            mint=settings.token_mint_address,
            page_size=settings.holder_page_size,
            page_delay=settings.holder_page_delay,
            timeout=settings.http_timeout,
        )

    def build_request(self, cursor: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"mint": self.mint, "limit": self.page_size}
        if cursor:
            params["cursor"] = cursor
        return {
            "jsonrpc": "2.0",
            "id": "holder-rewards",
            "method": "getTokenAccounts",
            "params": params,
        }

    @staticmethod
    def parse_response(data: Any) -> TokenAccountPage:
        """Validate a raw JSON-RPC response into a typed page."""
        try:
            response = TokenAccountsResponse.model_validate(data)
        except PydanticValidationError as e:
            raise HolderIndexError(f"Malformed holder index response: {e}") from e

        if response.error is not None:
            raise HolderIndexError(
                f"Holder index error: {response.error.message}",
                {"code": response.error.code}
            )

        return response.result or TokenAccountPage()

    async def fetch_page(self, session: aiohttp.ClientSession, cursor: Optional[str] = None) -> TokenAccountPage:
        """Fetch and validate a single page."""
        try:
            async with session.post(self.url, json=self.build_request(cursor)) as response:
                if response.status != 200:
                    raise HolderIndexError(
                        f"Holder index HTTP error: {response.status} {response.reason}",
                        {"status": response.status}
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise HolderIndexError(f"Holder index request failed: {e}") from e

        return self.parse_response(data)

    async def fetch_all(self) -> List[TokenAccount]:
        """Drain pagination and return every token account for the mint."""
        accounts: List[TokenAccount] = []
        cursor: Optional[str] = None
        pages = 0

        self.logger.info("Fetching token accounts", mint=self.mint)

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            while True:
                page = await self.fetch_page(session, cursor)
                pages += 1
                accounts.extend(page.accounts)

                self.logger.debug(
                    "Fetched holder page",
                    page=pages,
                    accounts_fetched=len(accounts),
                    has_more=bool(page.cursor)
                )

                # An empty page ends pagination even if a cursor came back
                if not page.cursor or not page.accounts:
                    break

                cursor = page.cursor
                await self._sleep(self.page_delay)

        self.logger.info("Finished fetching token accounts", total_accounts=len(accounts), pages=pages)
        return accounts
