import pandas as pd
from typing import Dict, List
from pathlib import Path
from datetime import datetime
from decimal import Decimal, InvalidOperation

from tqdm import tqdm

from importers.base_importer import BaseTransactionImporter, email_from_name
from models.transaction import ReimbursementTransaction

REQUIRED_COLUMNS = ['date', 'employee', 'team', 'amount', 'description', 'category']

DATE_FORMATS = ['%Y-%m-%d', '%m/%d/%Y', '%d/%m/%Y']


def parse_date(value: str):
    """Parse a date cell trying the supported formats in order."""
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Could not parse date '{value}'")


class ReimbursementCsvImporter(BaseTransactionImporter):
    """Reimbursement CSV upload importer."""

    def _get_platform_name(self) -> str:
        return "reimbursement_csv"

    def _column_map(self, columns) -> Dict[str, str]:
        """Map required column names to the file's actual headers (case-insensitive)."""
        normalized = {str(col).strip().lower(): col for col in columns}
        return {col: normalized[col] for col in REQUIRED_COLUMNS if col in normalized}

    def validate_source(self, source_path: str) -> bool:
        """Validate reimbursement CSV file."""
        path = Path(source_path)
        if not path.exists():
            return False

        if path.suffix.lower() not in ['.csv']:
            return False

        try:
            df = pd.read_csv(source_path, nrows=1)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            self.logger.error(f"Could not read CSV header: {e}")
            return False

        missing = [col for col in REQUIRED_COLUMNS if col not in self._column_map(df.columns)]
        if missing:
            self.logger.error(f"Missing required columns: {', '.join(missing)}")
            return False
        return True

    def extract_transactions(self, source_path: str) -> List[ReimbursementTransaction]:
        """Extract transactions from reimbursement CSV."""
        df = pd.read_csv(source_path, dtype=str, keep_default_na=False)
        columns = self._column_map(df.columns)
        transactions = []

        for idx, row in tqdm(df.iterrows(), total=len(df), desc="Processing reimbursement rows", unit="row"):
            row_number = idx + 2  # header is line 1
            try:
                amount_str = str(row[columns['amount']]).replace('$', '').replace(',', '').strip()
                try:
                    amount = Decimal(amount_str)
                except InvalidOperation:
                    self.logger.warning(f"Invalid amount in row {row_number}: {amount_str}")
                    continue

                date_str = str(row[columns['date']]).strip()
                if not date_str:
                    continue
                purchased_at = parse_date(date_str)

                employee = str(row[columns['employee']]).strip()
                team = str(row[columns['team']]).strip()

                transaction = ReimbursementTransaction(
                    transaction_id=f"row-{idx + 1}",
                    purchased_at=purchased_at,
                    usd_amount=abs(amount),
                    memo=str(row[columns['description']]).strip(),
                    department_name=team or None,
                    budget_name=employee or None,
                    user_email=email_from_name(employee, self.email_domain) or "",
                    platform=self.platform,
                    raw_data=row.to_dict(),
                )

                transactions.append(transaction)

            except ValueError as e:
                self.logger.warning(f"Error parsing row {row_number}: {e}")
                continue

        return transactions
