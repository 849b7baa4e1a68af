"""
Typed schemas for external service payloads.
"""

from .holders import TokenAccount, TokenAccountPage, TokenAccountsResponse
from .swap import SwapQuote, SwapTransactionResponse

__all__ = [
    "TokenAccount",
    "TokenAccountPage",
    "TokenAccountsResponse",
    "SwapQuote",
    "SwapTransactionResponse",
]
