#!/usr/bin/env python3
"""
Brex Reimbursement Calendar Enrichment Runner

Fetches Brex reimbursement expenses for an optional purchase date range and
matches each one to the payer's calendar events.

Usage: python run_brex_enrichment.py [purchased_at_start] [purchased_at_end]
Dates are YYYY-MM-DD.
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
from importers.brex_importer import BrexAPIError, BrexImporter


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


def build_enricher(config: dict) -> CalendarEnricher:
    """Wire the Google Calendar source, the fetcher and the matchers."""
    matching_config = MatchingConfig.from_config(config)
    source = GoogleCalendarEventSource(os.getenv('GOOGLE_CALENDAR_ACCESS_TOKEN', ''), config)
    fetcher = CalendarEventFetcher(source, matching_config)
    ai_matcher = GeminiEventMatcher(GeminiClient(config)) if matching_config.use_ai_matcher else None
    return CalendarEnricher(fetcher, matching_config, ai_matcher=ai_matcher)


def print_report_summary(report):
    print(f"\n🎯 Calendar Enrichment Complete")
    print(f"   Total transactions: {report.total_transactions}")
    print(f"   Matched: {report.matched_transactions}")
    print(f"   Unmatched: {report.unmatched_transactions}")
    print(f"   Match rate: {report.match_rate * 100:.1f}%")
    print(f"   Processing time: {report.processing_time:.2f}s")

    print(f"\n📊 Confidence Distribution:")
    for level, count in report.confidence_distribution.items():
        print(f"   {level.capitalize()}: {count}")


def main():
    if len(sys.argv) > 3:
        print("Usage: python run_brex_enrichment.py [purchased_at_start] [purchased_at_end]")
        sys.exit(1)

    purchased_at_start = sys.argv[1] if len(sys.argv) > 1 else None
    purchased_at_end = sys.argv[2] if len(sys.argv) > 2 else None

    try:
        config = load_config(project_root / 'config' / 'calendar_config.yaml')

        enricher = build_enricher(config)
        importer = BrexImporter(config, enricher, purchased_at_start, purchased_at_end)

        print(f"Fetching Brex reimbursements ({purchased_at_start or 'any'} to {purchased_at_end or 'any'})...")
        report = importer.enrich_transactions(importer.source_identifier)

        report_file = export_enrichment_report(report, config['paths'])
        print(f"Report saved to: {report_file}")

        excel_dir = Path(config['paths'].get('output_base', 'output')) / config['paths'].get('excel_subdir', 'excel_reports')
        excel_file = EnrichmentExcelReport().export_excel_report(report, str(excel_dir / f"{report.run_id}.xlsx"))
        print(f"Excel report saved to: {excel_file}")

        print_report_summary(report)

    except KeyboardInterrupt:
        print("\n\n❌ Enrichment cancelled by user")
        sys.exit(1)
    except BrexAPIError as e:
        print(f"❌ Brex API failure ({e.status}): {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Enrichment failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
