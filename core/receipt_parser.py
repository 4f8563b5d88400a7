import asyncio
import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from fuzzywuzzy import fuzz, process

from core.gemini_client import GeminiAPIError, GeminiClient, strip_code_fences
from models.receipt import ParsedReceipt, ReceiptParseResult

logger = logging.getLogger(__name__)

EXCHANGE_RATE_API_BASE = "https://api.exchangerate-api.com/v4/latest"
MAX_RECEIPT_BYTES = 5 * 1024 * 1024
DEFAULT_CATEGORIES = ["Office Supplies", "Travel", "Meals", "Equipment", "Other"]

RECEIPT_PROMPT = """
Analyze this receipt image and extract the following information in JSON format:
{{
  "amount": <total amount as number>,
  "currency": "<3-letter currency code like USD, EUR, VND, etc>",
  "merchant": "<merchant/store name>",
  "date": "<date in YYYY-MM-DD format>",
  "description": "<brief description of items/service>",
  "category": "<one of: {categories}>"
}}

For the currency field, identify the currency from symbols, text, or context:
- Look for currency symbols: $, €, ¥, £, ₹, ₫, etc.
- Look for currency codes: USD, EUR, JPY, GBP, INR, VND, etc.
- Use country context (Vietnamese receipt = VND, Japanese = JPY, etc.)

For the category field, classify the purchase into one of these categories:
- Office Supplies: pens, paper, office equipment, supplies
- Travel: gas, flights, hotels, transportation, parking
- Meals: restaurants, food, groceries, coffee, snacks
- Equipment: tools, computers, furniture, machinery
- Other: anything that doesn't fit the above categories

If any information is not clearly visible or cannot be determined, use null for that field.
Only return the JSON, no additional text.
"""


def validate_receipt_file(content_type: Optional[str], size: int,
                          max_bytes: int = MAX_RECEIPT_BYTES) -> Tuple[bool, Optional[str]]:
    """Check that an upload is an image no larger than the size limit."""
    if not content_type or not content_type.startswith("image/"):
        return False, "File must be an image"
    if size > max_bytes:
        return False, f"File too large (max {max_bytes // (1024 * 1024)}MB)"
    return True, None


class ReceiptParser:
    """Extracts receipt fields with a vision model and converts totals to USD."""

    def __init__(self, config: Dict[str, Any], client: Optional[GeminiClient] = None):
        receipt_config = config.get("receipts", {})
        self.client = client or GeminiClient(config)
        self.max_bytes = receipt_config.get("max_file_size_bytes", MAX_RECEIPT_BYTES)
        self.categories: List[str] = receipt_config.get("categories", DEFAULT_CATEGORIES)
        self.category_threshold = receipt_config.get("category_match_threshold", 70)
        self.rate_api_base = receipt_config.get("exchange_rate_api", EXCHANGE_RATE_API_BASE)

    def normalize_category(self, category: Optional[str]) -> Optional[str]:
        """Snap a model-provided category onto the configured list."""
        if not category:
            return None
        best = process.extractOne(category, self.categories, scorer=fuzz.token_set_ratio)
        if best and best[1] >= self.category_threshold:
            return best[0]
        return "Other" if "Other" in self.categories else None

    async def convert_to_usd(self, amount: float, currency: str) -> Optional[float]:
        """Convert an amount with the public rate API; None when unavailable."""
        if currency.lower() == "usd":
            return amount

        url = f"{self.rate_api_base}/{currency.upper()}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=15)) as response:
                    if response.status != 200:
                        logger.warning(f"Rate API returned status {response.status} for {currency}")
                        return None
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Currency conversion error: {e}")
            return None

        rate = (data.get("rates") or {}).get("USD")
        if rate is None:
            return None
        return round(amount * rate, 2)

    async def _to_receipt(self, reply: str) -> ParsedReceipt:
        parsed = json.loads(strip_code_fences(reply))
        if not isinstance(parsed, dict):
            raise ValueError("Receipt reply is not a JSON object")

        amount = float(parsed["amount"]) if parsed.get("amount") is not None else None
        currency = parsed.get("currency") or "USD"

        amount_usd = None
        if amount:
            logger.info(f"Converting {amount} {currency} to USD...")
            amount_usd = await self.convert_to_usd(amount, currency)

        return ParsedReceipt(
            amount=amount,
            currency=currency,
            # Fall back to the original amount if conversion fails
            amount_usd=amount_usd if amount_usd is not None else amount,
            merchant=parsed.get("merchant") or None,
            date=parsed.get("date") or None,
            description=parsed.get("description") or None,
            category=self.normalize_category(parsed.get("category")),
        )

    async def parse_receipt_bytes(self, image: bytes, content_type: str) -> ParsedReceipt:
        """Run the vision model on an image; failures yield an empty receipt."""
        prompt = RECEIPT_PROMPT.format(categories=", ".join(self.categories))
        try:
            reply = await self.client.generate(prompt, image=image, mime_type=content_type)
        except (GeminiAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error parsing receipt with Gemini: {e}")
            return ParsedReceipt()

        logger.debug(f"Gemini response: {reply}")
        try:
            return await self._to_receipt(reply)
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"Error parsing Gemini response: {e}; raw response: {reply}")
            return ParsedReceipt()

    async def parse_receipt(self, receipt_path: str) -> ReceiptParseResult:
        """Validate and parse a receipt image file."""
        path = Path(receipt_path)
        if not path.exists():
            return ReceiptParseResult(success=False, error=f"File not found: {receipt_path}")

        content_type, _ = mimetypes.guess_type(path.name)
        is_valid, error = validate_receipt_file(content_type, path.stat().st_size, self.max_bytes)
        if not is_valid:
            return ReceiptParseResult(success=False, error=error)

        data = await self.parse_receipt_bytes(path.read_bytes(), content_type)
        return ReceiptParseResult(success=True, data=data)
