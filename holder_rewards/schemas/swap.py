"""
Pydantic schemas for swap aggregator (Jupiter) payloads.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SwapInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None


class RoutePlanStep(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    swap_info: Optional[SwapInfo] = Field(default=None, alias="swapInfo")
    percent: Optional[int] = None


class SwapQuote(BaseModel):
    """
    Quote for swapping an exact input amount.

    Unknown fields are preserved because the whole quote is posted back to
    the aggregator when building the swap transaction.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: int = Field(alias="inAmount", gt=0)
    out_amount: int = Field(alias="outAmount", ge=0)
    other_amount_threshold: int = Field(alias="otherAmountThreshold", ge=0)
    slippage_bps: int = Field(default=0, alias="slippageBps")
    price_impact_pct: Optional[str] = Field(default=None, alias="priceImpactPct")
    route_plan: List[RoutePlanStep] = Field(default_factory=list, alias="routePlan")

    @property
    def route(self) -> str:
        """Human readable route, e.g. ``Raydium -> Orca``."""
        labels = [step.swap_info.label for step in self.route_plan if step.swap_info and step.swap_info.label]
        return " -> ".join(labels)

    def to_payload(self) -> Dict[str, Any]:
        """Quote in the aggregator's wire format, amounts as strings."""
        payload = self.model_dump(by_alias=True, exclude_unset=True)
        for key in ("inAmount", "outAmount", "otherAmountThreshold"):
            payload[key] = str(payload[key])
        return payload


class SwapTransactionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    swap_transaction: str = Field(alias="swapTransaction")
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")
