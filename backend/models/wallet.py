from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.clock import utcnow


class WalletHolding(BaseModel):
    """Balance of one SPL token mint, summed over all of the owner's accounts"""

    model_config = ConfigDict(frozen=True)

    mint: str
    symbol: str = "UNKNOWN"
    balance: float
    decimals: int = 0
    owner: str
    account_count: int = 1


class WalletBalance(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    native_balance: float  # SOL
    holdings: list[WalletHolding] = []
    source: str = "rpc"
    endpoint: Optional[str] = None
    fetched_at: datetime = Field(default_factory=utcnow)
    stale: bool = False

    @property
    def token_count(self) -> int:
        return len(self.holdings)

    def holding_for(self, mint: str) -> Optional[WalletHolding]:
        for holding in self.holdings:
            if holding.mint == mint:
                return holding
        return None


class TransactionSummary(BaseModel):
    """One row of a wallet's enhanced transaction history"""

    model_config = ConfigDict(frozen=True)

    signature: str
    type: str = "UNKNOWN"
    timestamp: Optional[int] = None
    description: str = "Transaction"
    fee: int = 0
    fee_payer: Optional[str] = None

    @classmethod
    def from_helius(cls, data: dict) -> "TransactionSummary":
        return cls(
            signature=data.get("signature", ""),
            type=data.get("type") or "UNKNOWN",
            timestamp=data.get("timestamp"),
            description=data.get("description") or "Transaction",
            fee=data.get("fee") or 0,
            fee_payer=data.get("feePayer"),
        )


class ParsedTransaction(TransactionSummary):
    source: str = "UNKNOWN"
    instructions: list[dict] = []
    token_transfers: list[dict] = []
    native_transfers: list[dict] = []
    account_data: list[dict] = []

    @classmethod
    def from_helius(cls, data: dict) -> "ParsedTransaction":
        summary = TransactionSummary.from_helius(data)
        return cls(
            **summary.model_dump(),
            source=data.get("source") or "UNKNOWN",
            instructions=data.get("instructions") or [],
            token_transfers=data.get("tokenTransfers") or [],
            native_transfers=data.get("nativeTransfers") or [],
            account_data=data.get("accountData") or [],
        )
