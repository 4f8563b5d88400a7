import aiohttp
import asyncio
import os
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from importers.base_importer import BaseTransactionImporter, email_from_name
from models.transaction import ReimbursementTransaction

BREX_API_BASE = "https://platform.brexapis.com/v1"

EXPAND_FIELDS = ["merchant", "location", "department", "receipts.download_uris", "user", "budget", "payment"]


class BrexAPIError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def build_expense_query_params(cursor: Optional[str] = None,
                               limit: Optional[int] = None,
                               purchased_at_start: Optional[str] = None,
                               purchased_at_end: Optional[str] = None) -> List[Tuple[str, str]]:
    """Query parameters for the expenses endpoint, always restricted to reimbursements."""
    params = []
    if cursor:
        params.append(('cursor', cursor))
    if limit:
        params.append(('limit', str(limit)))
    if purchased_at_start:
        params.append(('purchased_at_start', f"{purchased_at_start}T00:00:00.000"))
    if purchased_at_end:
        params.append(('purchased_at_end', f"{purchased_at_end}T23:59:59.999"))

    params.append(('expense_type[]', 'REIMBURSEMENT'))
    for field in EXPAND_FIELDS:
        params.append(('expand[]', field))
    return params


def budget_owner_name(budget_name: Optional[str]) -> Optional[str]:
    """Budget names look like "Jane Doe's Reimbursements"; keep the part after "'s" if present."""
    if not budget_name:
        return None
    if "'s" in budget_name:
        after = budget_name.split("'s", 1)[1].strip()
        return after or budget_name
    return budget_name


def expense_to_transaction(expense: Dict[str, Any], email_domain: str) -> ReimbursementTransaction:
    """Convert an expanded Brex expense into a reimbursement transaction."""
    budget_name = budget_owner_name((expense.get('budget') or {}).get('name'))
    user_email = email_from_name(budget_name, email_domain) if budget_name else None

    date_str = expense.get('purchased_at') or expense.get('updated_at')
    if not date_str:
        raise ValueError(f"Expense {expense.get('id')} has no purchase date")
    purchased_at = datetime.fromisoformat(date_str.split('T')[0]).date()

    # Brex amounts are in cents
    usd_amount = (expense.get('usd_equivalent_amount') or {}).get('amount')
    amount = Decimal(str(usd_amount)) / 100 if usd_amount else Decimal("0")

    return ReimbursementTransaction(
        transaction_id=str(expense.get('id', '')),
        purchased_at=purchased_at,
        usd_amount=abs(amount),
        memo=expense.get('memo') or "",
        location_name=(expense.get('location') or {}).get('name'),
        department_name=(expense.get('department') or {}).get('name'),
        budget_name=budget_name,
        user_email=user_email or "",
        platform="brex",
        raw_data=expense,
    )


class BrexImporter(BaseTransactionImporter):
    """Brex reimbursement expenses API importer."""

    def __init__(self, config: Dict[str, Any], enricher,
                 purchased_at_start: Optional[str] = None,
                 purchased_at_end: Optional[str] = None):
        super().__init__(config, enricher)
        brex_config = config.get("brex", {})
        self.base_url = brex_config.get("base_url", BREX_API_BASE)
        self.page_limit = brex_config.get("page_limit", 100)
        self.timeout = aiohttp.ClientTimeout(total=brex_config.get("timeout_seconds", 30))
        self.purchased_at_start = purchased_at_start
        self.purchased_at_end = purchased_at_end
        self.api_token = os.getenv("BREX_API_TOKEN")

    def _get_platform_name(self) -> str:
        return "brex"

    @property
    def source_identifier(self) -> str:
        return f"{self.base_url}/expenses?purchased_at={self.purchased_at_start or ''}..{self.purchased_at_end or ''}"

    def _headers(self) -> Dict[str, str]:
        if not self.api_token:
            raise BrexAPIError("Brex API token is not configured")
        return {
            'Authorization': f'Bearer {self.api_token}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'Expense-Calendar-Matcher/1.0',
        }

    async def _request(self, session: aiohttp.ClientSession, params: List[Tuple[str, str]]) -> Dict[str, Any]:
        url = f"{self.base_url}/expenses"
        self.logger.info(f"Brex API request: {url}")
        async with session.get(url, headers=self._headers(), params=params) as response:
            if response.status != 200:
                error_text = await response.text()
                self.logger.error(f"Brex API error response: {error_text}")
                raise BrexAPIError(f"Brex API error: {response.status} {response.reason} - {error_text}",
                                   response.status)
            return await response.json()

    async def fetch_page(self, session: aiohttp.ClientSession, cursor: Optional[str] = None,
                         limit: Optional[int] = None) -> Dict[str, Any]:
        params = build_expense_query_params(
            cursor=cursor,
            limit=limit or self.page_limit,
            purchased_at_start=self.purchased_at_start,
            purchased_at_end=self.purchased_at_end,
        )
        return await self._request(session, params)

    async def fetch_all_expenses(self) -> List[Dict[str, Any]]:
        """Follow next_cursor until every page has been read."""
        expenses: List[Dict[str, Any]] = []
        cursor = None
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            while True:
                page = await self.fetch_page(session, cursor)
                expenses.extend(page.get('items', []))
                cursor = page.get('next_cursor')
                if not cursor:
                    break
        return expenses

    async def _test_api_connection(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                await self.fetch_page(session, limit=1)
            return True
        except (BrexAPIError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Brex API validation error: {e}")
            return False

    def validate_source(self, source_path: str = None) -> bool:
        """Validate API credentials and connectivity."""
        if not self.api_token:
            self.logger.error("BREX_API_TOKEN is not set")
            return False
        return asyncio.run(self._test_api_connection())

    def extract_transactions(self, source_path: str = None) -> List[ReimbursementTransaction]:
        """Extract reimbursement transactions from the Brex API."""
        expenses = asyncio.run(self.fetch_all_expenses())
        transactions = []

        for expense in expenses:
            if expense.get('expense_type') != 'REIMBURSEMENT':
                continue
            try:
                transactions.append(expense_to_transaction(expense, self.email_domain))
            except (ValueError, TypeError, ArithmeticError) as e:
                # Log error but continue processing
                self.logger.warning(f"Error processing Brex expense {expense.get('id', 'unknown')}: {e}")
                continue

        return transactions
