from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReimbursementTransaction(BaseModel):
    """Reimbursement expense to be matched against calendar events."""

    model_config = ConfigDict(frozen=True)

    transaction_id: Optional[str] = None
    purchased_at: date
    usd_amount: Decimal = Field(default=Decimal("0"), ge=0)
    memo: str = ""
    location_name: Optional[str] = None
    department_name: Optional[str] = None
    budget_name: Optional[str] = None
    user_email: str
    platform: str = "brex"
    raw_data: Dict[str, Any] = {}

    @field_validator("memo", mode="before")
    @classmethod
    def _coalesce_memo(cls, value: Any) -> str:
        return "" if value is None else str(value)
