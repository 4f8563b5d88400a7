#!/usr/bin/env python3
"""
Reimbursement CSV Calendar Enrichment Runner

Processes the reimbursement CSV configured in calendar_config.yaml under
data.reimbursement_csv_file_path, or the path given as the first argument.
"""

import sys
import json
import os
import yaml
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
load_dotenv(project_root / "config" / ".env")

from core.ai_event_matcher import GeminiEventMatcher
from core.calendar_enricher import CalendarEnricher
from core.calendar_event_source import CalendarEventFetcher, GoogleCalendarEventSource
from core.gemini_client import GeminiClient
from core.match_config import MatchingConfig
from exporters.enrichment_excel_report import EnrichmentExcelReport
from importers.reimbursement_csv_importer import ReimbursementCsvImporter


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def export_enrichment_report(report, output_config: dict) -> Path:
    """Export enrichment report to JSON."""
    output_base = Path(output_config.get('output_base', 'output'))
    reports_dir = output_base / output_config.get('reports_subdir', 'enrichment_reports')
    reports_dir.mkdir(parents=True, exist_ok=True)

    report_file = reports_dir / f"{report.run_id}.json"
    with open(report_file, 'w') as f:
        json.dump(report.model_dump(mode='json'), f, indent=2, default=str)

    return report_file


def main():
    config = load_config(project_root / 'config' / 'calendar_config.yaml')

    csv_file = sys.argv[1] if len(sys.argv) > 1 else config.get('data', {}).get('reimbursement_csv_file_path')
    if not csv_file:
        print("Error: reimbursement_csv_file_path not found in config")
        sys.exit(1)

    if not Path(csv_file).exists():
        print(f"Error: Reimbursement CSV file not found: {csv_file}")
        sys.exit(1)

    print(f"Processing reimbursements from: {csv_file}")

    try:
        matching_config = MatchingConfig.from_config(config)
        source = GoogleCalendarEventSource(os.getenv('GOOGLE_CALENDAR_ACCESS_TOKEN', ''), config)
        ai_matcher = GeminiEventMatcher(GeminiClient(config)) if matching_config.use_ai_matcher else None
        enricher = CalendarEnricher(CalendarEventFetcher(source, matching_config), matching_config,
                                    ai_matcher=ai_matcher)

        importer = ReimbursementCsvImporter(config, enricher)
        report = importer.enrich_transactions(csv_file)

        report_file = export_enrichment_report(report, config['paths'])
        print(f"Report saved to: {report_file}")

        excel_dir = Path(config['paths'].get('output_base', 'output')) / config['paths'].get('excel_subdir', 'excel_reports')
        excel_file = EnrichmentExcelReport().export_excel_report(report, str(excel_dir / f"{report.run_id}.xlsx"))
        print(f"Excel report saved to: {excel_file}")

        print(f"\n🎯 CSV Enrichment Complete")
        print(f"   Total transactions: {report.total_transactions}")
        print(f"   Matched: {report.matched_transactions}")
        print(f"   Unmatched: {report.unmatched_transactions}")
        print(f"   Processing time: {report.processing_time:.2f}s")

        print(f"\n📊 Confidence Distribution:")
        for level, count in report.confidence_distribution.items():
            print(f"   {level.capitalize()}: {count}")

    except Exception as e:
        print(f"❌ Enrichment failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
