from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DexBoost(BaseModel):
    """One entry of DexScreener's ``token-boosts/latest/v1`` feed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chain_id: str = Field(..., alias="chainId", min_length=1)
    token_address: str = Field(..., alias="tokenAddress", min_length=1)
    amount: float = Field(0.0, ge=0)
    total_amount: float = Field(0.0, alias="totalAmount", ge=0)
    url: Optional[str] = None
    description: Optional[str] = None

    @field_validator("url", "description", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class PumpTokenCreation(BaseModel):
    """A pump.fun ``create`` instruction as reported by Bitquery."""

    mint_address: str = Field(..., min_length=1)
    symbol: Optional[str] = None
    name: Optional[str] = None
    created_at: datetime
    creator: Optional[str] = None
    supply: Optional[float] = None
    uri: Optional[str] = None

    @field_validator("symbol", "name", "uri", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_update(cls, update: Dict[str, Any]) -> "PumpTokenCreation":
        """Flatten one ``TokenSupplyUpdates`` GraphQL node."""
        supply_update = update.get("TokenSupplyUpdate") or {}
        currency = supply_update.get("Currency") or {}
        return cls(
            mint_address=currency.get("MintAddress") or "",
            symbol=currency.get("Symbol"),
            name=currency.get("Name"),
            created_at=(update.get("Block") or {}).get("Time"),
            creator=(update.get("Transaction") or {}).get("Signer"),
            supply=supply_update.get("PostBalance"),
            uri=currency.get("Uri"),
        )
