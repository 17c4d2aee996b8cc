"""
Backtested trading signal contract.

Signals are produced by the external backtesting pipeline and stored with
display-oriented field names ("Signal Generation Date", "Final P&L", ...).
They are decoded into this typed record once, when read from the store, and
never mutated afterwards.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contracts.base import DocumentId, UTCDateTime


class BacktestSignal(BaseModel):
    """A timestamped backtested trade outcome with a percentage return"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: DocumentId = Field(..., alias="_id", description="Signal document id")
    source_account: str = Field(
        ..., alias="Twitter Account", description="Influencer account that posted"
    )
    generated_at: UTCDateTime = Field(
        ..., alias="Signal Generation Date", description="Signal generation time"
    )
    final_pnl: str | None = Field(
        None, alias="Final P&L", description="Final P&L percentage, e.g. '12.34%'"
    )
    backtest_done: bool = Field(
        False, alias="backtesting_done", description="Backtest has completed"
    )

    # Informational only, shown in debug logs
    token_mentioned: str | None = Field(None, alias="Token Mentioned")
    best_strategy: str | None = Field(None, alias="Best Strategy")

    @field_validator("final_pnl", mode="before")
    @classmethod
    def validate_final_pnl(cls, v: object) -> str | None:
        """Keep the raw P&L text; numbers are rendered as strings"""
        if v is None:
            return None
        if isinstance(v, int | float) and not isinstance(v, bool):
            return f"{v}%"
        return str(v)

    def describe(self) -> dict[str, str | datetime | None]:
        """Compact form for debug logging"""
        return {
            "id": self.id,
            "account": self.source_account,
            "date": self.generated_at,
            "pnl": self.final_pnl,
            "token": self.token_mentioned,
            "strategy": self.best_strategy,
        }
