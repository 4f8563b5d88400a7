from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from models.transaction import ReimbursementTransaction
from models.enrichment_report import EnrichmentReport
from core.calendar_enricher import CalendarEnricher
import asyncio
import time
import logging
import json
import re
from datetime import datetime
from pathlib import Path


def email_from_name(name: str, domain: str) -> Optional[str]:
    """Derive a mailbox from a person or budget name ("Jane Doe" -> "janedoe@domain")."""
    if not name:
        return None
    if "@" in name:
        return name.strip().lower()
    username = re.sub(r"\s+", "", name).lower()
    return f"{username}@{domain}" if username else None


class BaseTransactionImporter(ABC):
    """Abstract base class for reimbursement transaction feeds."""

    def __init__(self, config: Dict[str, Any], enricher: CalendarEnricher):
        self.config = config
        self.enricher = enricher
        self.platform = self._get_platform_name()
        self.logger = self._setup_logging()

    def _setup_logging(self) -> logging.Logger:
        """Setup logging for this importer."""
        logger = logging.getLogger(f"{self.platform}_importer")
        logger.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        logger.handlers.clear()

        # Create logs directory if it doesn't exist
        logs_dir = Path(self.config.get("paths", {}).get("logs_dir", "logs"))
        logs_dir.mkdir(parents=True, exist_ok=True)

        # Create file handler for this run
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = logs_dir / f"{self.platform}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(formatter)

        logger.addHandler(file_handler)

        # Matching traces from the core modules go to the same run log
        core_logger = logging.getLogger("core")
        core_logger.setLevel(logging.INFO)
        for handler in list(core_logger.handlers):
            if isinstance(handler, logging.FileHandler):
                core_logger.removeHandler(handler)
                handler.close()
        core_logger.addHandler(file_handler)

        return logger

    @property
    def email_domain(self) -> str:
        return self.config.get("brex", {}).get("email_domain", "anduintransact.com")

    @abstractmethod
    def _get_platform_name(self) -> str:
        """Return platform name for this importer."""
        pass

    @abstractmethod
    def validate_source(self, source_path: str) -> bool:
        """Validate input source."""
        pass

    @abstractmethod
    def extract_transactions(self, source_path: str) -> List[ReimbursementTransaction]:
        """Extract transactions from source."""
        pass

    def enrich_transactions(self, source_path: str) -> EnrichmentReport:
        """Main enrichment workflow with comprehensive logging."""
        start_time = time.time()
        run_timestamp = datetime.now()

        run_id = f"{self.platform}_{run_timestamp.strftime('%Y%m%d_%H%M%S')}"

        self.logger.info(f"Starting enrichment run: {run_id}")
        self.logger.info(f"Source: {source_path}")
        self.logger.info(f"Platform: {self.platform}")

        try:
            self.logger.info("Validating source...")
            if not self.validate_source(source_path):
                error_msg = f"Invalid source: {source_path}"
                self.logger.error(error_msg)
                raise ValueError(error_msg)
            self.logger.info("Source validation successful")

            self.logger.info("Extracting transactions...")
            extraction_start = time.time()
            transactions = self.extract_transactions(source_path)
            extraction_time = time.time() - extraction_start

            self.logger.info(f"Extracted {len(transactions)} transactions in {extraction_time:.2f}s")

            self.logger.info("Starting calendar matching...")
            matching_start = time.time()
            enriched = asyncio.run(self.enricher.enrich_all(transactions, progress=True))
            matching_time = time.time() - matching_start

            self.logger.info(f"Completed matching in {matching_time:.2f}s")

            processing_time = time.time() - start_time

            report = EnrichmentReport.from_enriched(
                run_id=run_id,
                platform=self.platform,
                source_identifier=str(source_path),
                transactions=enriched,
                processing_time=processing_time
            )

            self._log_statistics(report, extraction_time, matching_time)

            self.logger.info(f"Enrichment completed successfully: {run_id}")

            return report

        except Exception as e:
            self.logger.error(f"Enrichment failed: {str(e)}", exc_info=True)
            raise

    def _log_statistics(self, report: EnrichmentReport, extraction_time: float, matching_time: float):
        """Log detailed statistics about the enrichment run."""
        stats = {
            "run_id": report.run_id,
            "platform": report.platform,
            "run_date": report.run_date.isoformat(),
            "source": report.source_identifier,
            "total_transactions": report.total_transactions,
            "matched_transactions": report.matched_transactions,
            "unmatched_transactions": report.unmatched_transactions,
            "match_rate": report.match_rate,
            "confidence_distribution": report.confidence_distribution,
            "timing": {
                "total_processing_time": report.processing_time,
                "extraction_time": extraction_time,
                "matching_time": matching_time,
                "transactions_per_second": report.total_transactions / report.processing_time if report.processing_time > 0 else 0
            }
        }

        self.logger.info("STATISTICS: " + json.dumps(stats, indent=2))
