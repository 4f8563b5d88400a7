from pathlib import Path
from typing import List

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import PatternFill, Font
from openpyxl.utils.dataframe import dataframe_to_rows
from openpyxl.utils import get_column_letter

from models.enrichment_report import EnrichmentReport
from models.enriched_transaction import EnrichedTransaction

TRANSACTION_COLUMNS = [
    "Matched", "Transaction ID", "Purchased At", "User Email", "Department", "Location",
    "USD Amount", "Memo", "Calendar Event", "Event Calendar", "Confidence", "Reasoning",
]


class EnrichmentExcelReport:
    """Creates Excel reports for calendar enrichment runs with matched/unmatched highlighting."""

    def export_excel_report(self, report: EnrichmentReport, output_path: str) -> str:
        """
        Export an enrichment report to Excel with a transactions sheet and a summary sheet.

        Args:
            report: Enrichment report with enriched transactions
            output_path: Path to save Excel file

        Returns:
            Path to created Excel file
        """
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        wb = Workbook()

        self._create_transactions_sheet(wb, report.transactions)
        self._create_summary_sheet(wb, report)

        wb.save(output_file)
        return str(output_file)

    def _transactions_frame(self, transactions: List[EnrichedTransaction]) -> pd.DataFrame:
        rows = []
        for transaction in transactions:
            event = transaction.calendar_event
            rows.append([
                'Matched' if transaction.is_matched else 'Unmatched',
                transaction.transaction_id or '',
                transaction.purchased_at.isoformat(),
                transaction.user_email,
                transaction.department_name or '',
                transaction.location_name or '',
                float(transaction.usd_amount),
                transaction.memo,
                event.display() if event else '',
                event.calendar_source if event else '',
                transaction.calendar_match_confidence or '',
                transaction.calendar_match_reasoning or '',
            ])
        return pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)

    def _create_transactions_sheet(self, wb: Workbook, transactions: List[EnrichedTransaction]):
        """Create the reimbursements sheet with matched/unmatched highlighting."""
        if 'Sheet' in wb.sheetnames:
            wb.remove(wb['Sheet'])
        ws = wb.create_sheet("Reimbursements", 0)

        for row in dataframe_to_rows(self._transactions_frame(transactions), index=False, header=True):
            ws.append(row)

        self._format_sheet_headers(ws)
        self._apply_matched_coloring(ws)

    def _create_summary_sheet(self, wb: Workbook, report: EnrichmentReport):
        """Create summary sheet with totals and confidence distribution."""
        ws = wb.create_sheet("Summary")
        ws.append(["Metric", "Value"])

        ws.append(["Run ID", report.run_id])
        ws.append(["Platform", report.platform])
        ws.append(["Source", report.source_identifier])
        ws.append(["Run Date", report.run_date.strftime('%Y-%m-%d %H:%M:%S')])
        ws.append(["Total Transactions", report.total_transactions])
        ws.append(["Matched", report.matched_transactions])
        ws.append(["Unmatched", report.unmatched_transactions])
        ws.append(["Match Rate", f"{report.match_rate * 100:.1f}%"])
        for level, count in report.confidence_distribution.items():
            ws.append([f"Confidence: {level}", count])
        ws.append(["Processing Time (s)", round(report.processing_time, 2)])

        self._format_sheet_headers(ws)

    def _format_sheet_headers(self, ws):
        """Apply formatting to sheet headers."""
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")  # Blue
        header_font = Font(bold=True, color="FFFFFF")  # White text

        for col in range(1, ws.max_column + 1):
            cell = ws.cell(row=1, column=col)
            cell.fill = header_fill
            cell.font = header_font

            column_letter = get_column_letter(col)
            ws.column_dimensions[column_letter].auto_size = True

    def _apply_matched_coloring(self, ws):
        """Colour the Matched column green or red."""
        matched_fill = PatternFill(start_color="90EE90", end_color="90EE90", fill_type="solid")  # Light green
        unmatched_fill = PatternFill(start_color="FFB6C1", end_color="FFB6C1", fill_type="solid")  # Light red

        for row in range(2, ws.max_row + 1):
            cell = ws.cell(row=row, column=1)
            cell.fill = matched_fill if cell.value == 'Matched' else unmatched_fill
