"""
Pydantic schemas for holder index (Helius DAS) payloads.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenAccount(BaseModel):
    """One token account holding the tracked mint."""
    model_config = ConfigDict(extra="ignore")

    address: str
    owner: str
    amount: int = Field(ge=0, description="Raw balance in smallest units")
    decimals: int = 0


class TokenAccountPage(BaseModel):
    """One page of ``getTokenAccounts`` results."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    accounts: List[TokenAccount] = Field(default_factory=list, alias="token_accounts")
    cursor: Optional[str] = None
    total: Optional[int] = None


class RpcError(BaseModel):
    code: Optional[int] = None
    message: str = "unknown error"


class TokenAccountsResponse(BaseModel):
    """JSON-RPC envelope around a token account page."""
    model_config = ConfigDict(extra="ignore")

    result: Optional[TokenAccountPage] = None
    error: Optional[RpcError] = None
