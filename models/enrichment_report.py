from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel

from models.enriched_transaction import EnrichedTransaction


class EnrichmentReport(BaseModel):
    """Report containing calendar enrichment results for one run."""

    run_id: str
    platform: str
    run_date: datetime
    source_identifier: str  # file path or API query
    total_transactions: int
    matched_transactions: int
    unmatched_transactions: int
    confidence_distribution: Dict[str, int]  # high/medium/low/none counts
    processing_time: float
    transactions: List[EnrichedTransaction]

    @property
    def match_rate(self) -> float:
        if self.total_transactions == 0:
            return 0.0
        return self.matched_transactions / self.total_transactions

    @classmethod
    def from_enriched(cls,
                      run_id: str,
                      platform: str,
                      source_identifier: str,
                      transactions: List[EnrichedTransaction],
                      processing_time: float) -> "EnrichmentReport":
        """Create report from enriched transactions."""

        total = len(transactions)
        matched = sum(1 for t in transactions if t.is_matched)

        confidence_dist = {"high": 0, "medium": 0, "low": 0, "none": 0}
        for transaction in transactions:
            confidence_dist[transaction.calendar_match_confidence or "none"] += 1

        return cls(
            run_id=run_id,
            platform=platform,
            run_date=datetime.now(),
            source_identifier=source_identifier,
            total_transactions=total,
            matched_transactions=matched,
            unmatched_transactions=total - matched,
            confidence_distribution=confidence_dist,
            processing_time=processing_time,
            transactions=transactions
        )
