"""
Analysis pipeline: fetched reviews -> chunked LLM scoring -> graded product record
"""

import logging
from datetime import datetime
from typing import Optional

from config.settings import ChunkingConfig, SETTINGS
from data.models import AnalysisStatus, ProductAnalysisState
from data.state_store import ProductStateStore
from scoring.chunking import ContextAwareChunker
from scoring.errors import ChunkFailureCeilingExceeded
from scoring.grading import complete_without_reviews
from scoring.metrics import calculate_final_metrics
from scoring.review_analyzer import ReviewAnalyzer

logger = logging.getLogger(__name__)

LLM_SERVICE_NAME = "OpenAI Service"


class AnalysisPipeline:
    """Scores a fetched product and writes the result through the state store"""

    def __init__(self, store: ProductStateStore, analyzer: Optional[ReviewAnalyzer] = None,
                 chunking_config: Optional[ChunkingConfig] = None, alert_policy=None,
                 chunker: Optional[ContextAwareChunker] = None):
        self.store = store
        self.analyzer = analyzer or ReviewAnalyzer()
        self.config = chunking_config or ChunkingConfig()
        self.alert_policy = alert_policy
        self.chunker = chunker or ContextAwareChunker()

    def analyze(self, state: ProductAnalysisState) -> ProductAnalysisState:
        """
        Run analysis for one product.

        Completed records are returned as-is. Reviews without text or a
        rating are dropped before chunking.

        Raises:
            ChunkFailureCeilingExceeded: after marking the record failed
        """
        pid, country = state.product_id, state.country
        current = self.store.get(pid, country) or state
        if current.status is AnalysisStatus.COMPLETED:
            logger.info(f"{pid}/{country} already completed; skipping analysis")
            return current

        scorable = [r for r in current.reviews if r.is_scorable()]
        skipped = len(current.reviews) - len(scorable)
        if skipped:
            logger.info(f"Excluding {skipped} reviews without text or rating from scoring")

        if not scorable:
            return complete_without_reviews(self.store, current)

        self.store.transition(pid, country, AnalysisStatus.PROCESSING, failure_reason=None)

        chunk_size = self.config.chunk_size
        if len(scorable) <= SETTINGS['chunking_threshold']:
            chunk_size = len(scorable)

        try:
            aggregate = self.chunker.process(
                scorable,
                chunk_size,
                self.analyzer.analyze_chunk,
                max_failure_rate=self.config.max_failure_rate,
                delay_ms=self.config.delay_ms,
                max_workers=self.config.max_workers,
                chunk_timeout=self.config.chunk_timeout,
            )
        except ChunkFailureCeilingExceeded as e:
            reason = f"Review analysis failed: {e}"
            self.store.transition(pid, country, AnalysisStatus.FAILED, failure_reason=reason)
            if self.alert_policy is not None:
                self.alert_policy.record_failure(
                    LLM_SERVICE_NAME, "API_ERROR", str(e),
                    {'product_id': pid, 'country': country, 'failed_chunks': e.failed, 'total_chunks': e.total},
                )
            raise

        self.store.transition(
            pid, country, AnalysisStatus.ANALYZED,
            analysis_result=aggregate,
            confidence=aggregate['confidence'],
            fake_examples=aggregate['fake_examples'],
            key_patterns=aggregate['key_patterns'],
            product_insights=aggregate.get('product_insights'),
        )
        if self.alert_policy is not None:
            self.alert_policy.record_recovery(LLM_SERVICE_NAME, "API_ERROR")

        analyzed = self.store.get(pid, country)
        metrics = calculate_final_metrics(analyzed, aggregate)
        now = datetime.now()
        self.store.transition(
            pid, country, AnalysisStatus.COMPLETED,
            fake_percentage=metrics['fake_percentage'],
            grade=metrics['grade'],
            explanation=metrics['explanation'],
            amazon_rating=metrics['amazon_rating'],
            adjusted_rating=metrics['adjusted_rating'],
            first_analyzed_at=analyzed.first_analyzed_at or now,
            last_analyzed_at=now,
        )
        logger.info(
            f"Completed {pid}/{country}: grade {metrics['grade']}, "
            f"{metrics['fake_percentage']}% fake across {metrics['total_reviews']} reviews"
        )
        return self.store.get(pid, country)
