from typing import Optional

from pydantic import BaseModel


class ParsedReceipt(BaseModel):
    """Fields extracted from a receipt image; any may be missing."""

    amount: Optional[float] = None
    currency: Optional[str] = None
    amount_usd: Optional[float] = None
    merchant: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD as read from the receipt
    description: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class ReceiptParseResult(BaseModel):
    success: bool
    data: Optional[ParsedReceipt] = None
    error: Optional[str] = None
