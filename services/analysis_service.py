"""
Review analysis service
Entry point tying acquisition, scoring and alerting together for one product
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from config.settings import AcquisitionConfig, ChunkingConfig, LLMConfig, SETTINGS
from data.models import AnalysisStatus, ProductAnalysisState
from data.state_store import ProductStateStore
from ingestion.adapters.factory import AdapterFactory
from ingestion.errors import AcquisitionError, AllAdaptersFailedError
from ingestion.orchestrator import AcquisitionOrchestrator
from monitoring.alerts import AlertEscalationPolicy
from monitoring.health import operational_snapshot
from monitoring.notifiers import default_notifier
from scoring.errors import ChunkFailureCeilingExceeded
from scoring.pipeline import AnalysisPipeline
from scoring.review_analyzer import ReviewAnalyzer
from utils.background import BackgroundTaskRunner
from utils.cache import build_cache

logger = logging.getLogger(__name__)

ACQUISITION_SERVICE_NAME = "Review Acquisition"
FETCH_FAILURE_REASON = "Unable to fetch reviews from any source"

# Statuses from which a fetched product can go straight to scoring
READY_FOR_ANALYSIS = (AnalysisStatus.FETCHED, AnalysisStatus.PENDING_ANALYSIS, AnalysisStatus.ANALYZED)


def public_status(state: Optional[ProductAnalysisState]) -> str:
    """Collapse the internal lifecycle into what callers are shown"""
    if state is None:
        return 'processing'
    if state.status is AnalysisStatus.COMPLETED:
        return 'completed'
    if state.status is AnalysisStatus.FAILED:
        return 'failed'
    return 'processing'


class ReviewAnalysisService:
    """Fetches and scores a product, surfacing only processing/completed/failed"""

    def __init__(self, store: ProductStateStore, orchestrator: AcquisitionOrchestrator,
                 pipeline: AnalysisPipeline, alert_policy: Optional[AlertEscalationPolicy] = None,
                 runner: Optional[BackgroundTaskRunner] = None, factory: Optional[AdapterFactory] = None):
        self.store = store
        self.orchestrator = orchestrator
        self.pipeline = pipeline
        self.alert_policy = alert_policy
        self.runner = runner
        self.factory = factory

    def submit_for_analysis(self, product_id: str, country: str = 'us', *,
                            in_background: bool = False) -> ProductAnalysisState:
        """
        Acquire and analyze one product.

        A completed record is returned unchanged. When acquisition hands the
        work to a background chain, the in-flight record is returned at once
        and the chain calls analyze_existing when reviews arrive.
        """
        existing = self.store.get(product_id, country)
        if existing is not None and existing.status is AnalysisStatus.COMPLETED:
            logger.info(f"{product_id}/{country} already analyzed (grade {existing.grade})")
            return existing

        try:
            state = self.orchestrator.acquire(product_id, country, in_background=in_background)
        except AllAdaptersFailedError as e:
            return self._fail_acquisition(product_id, country, e)

        if state.status not in READY_FOR_ANALYSIS:
            logger.info(f"{product_id}/{country} is {state.status.value}; analysis continues in the background")
            return state

        return self._analyze(state)

    def analyze_existing(self, product_id: str, country: str = 'us') -> Optional[ProductAnalysisState]:
        """Score reviews that are already stored (background chains land here)"""
        state = self.store.get(product_id, country)
        if state is None:
            logger.warning(f"No stored reviews for {product_id}/{country}")
            return None
        if state.status is AnalysisStatus.COMPLETED:
            return state
        return self._analyze(state)

    def handle_background_failure(self, service: str, error_type: str, error: Exception) -> None:
        if self.alert_policy is not None:
            self.alert_policy.record_failure(service, error_type, str(error), {'background': True})

    def enrich_metadata(self, product_id: str, country: str = 'us') -> None:
        """Fill in product title and image from the product page"""
        if self.factory is None:
            return
        adapter = self.factory.create('direct')
        if not adapter.is_available():
            logger.debug("Metadata enrichment skipped: no session cookies configured")
            return
        try:
            metadata = adapter.fetch_product_metadata(product_id, country)
        except AcquisitionError as e:
            logger.warning(f"Metadata enrichment failed for {product_id}: {e}")
            return
        if not metadata.get('title'):
            return
        state = self.store.get(product_id, country)
        if state is None:
            return
        self.store.update(
            product_id, country,
            product_title=metadata['title'],
            product_image_url=metadata.get('image') or state.product_image_url,
            description=state.description or metadata.get('description', ''),
            have_product_data=bool(metadata.get('image') or state.product_image_url),
        )

    def health(self) -> Dict[str, Any]:
        factory = self.factory
        return operational_snapshot(
            credential_pool=factory.credential_pool if factory else None,
            route_selector=factory.route_selector if factory else None,
            alert_policy=self.alert_policy,
            llm_client=getattr(getattr(self.pipeline, 'analyzer', None), 'client', None),
        )

    def shutdown(self, wait: bool = True) -> None:
        if self.runner is not None:
            self.runner.shutdown(wait=wait)

    def _analyze(self, state: ProductAnalysisState) -> ProductAnalysisState:
        self.store.transition(state.product_id, state.country, AnalysisStatus.PENDING_ANALYSIS)
        try:
            return self.pipeline.analyze(self.store.get(state.product_id, state.country))
        except ChunkFailureCeilingExceeded as e:
            logger.error(f"Analysis failed for {state.product_id}/{state.country}: {e}")
            return self.store.get(state.product_id, state.country)

    def _fail_acquisition(self, product_id: str, country: str, error: AllAdaptersFailedError) -> ProductAnalysisState:
        logger.error(str(error))
        self.store.get_or_create(product_id, country)
        self.store.transition(product_id, country, AnalysisStatus.FAILED, failure_reason=FETCH_FAILURE_REASON)
        if self.alert_policy is not None:
            self.alert_policy.record_failure(
                ACQUISITION_SERVICE_NAME, error.error_type, str(error),
                {'product_id': product_id, 'country': country, 'failures': error.failures},
            )
        return self.store.get(product_id, country)


def build_default_service(review_service: Optional[str] = None, chunk_size: Optional[int] = None,
                          max_workers: Optional[int] = None,
                          model: Optional[str] = None) -> ReviewAnalysisService:
    """Wire a service from environment configuration"""
    cache = build_cache()
    store = ProductStateStore()
    runner = BackgroundTaskRunner(max_workers=SETTINGS['background_workers'])
    alert_policy = AlertEscalationPolicy(cache=cache, notifier=default_notifier())

    acquisition_config = AcquisitionConfig()
    if review_service:
        acquisition_config = replace(acquisition_config, review_service=review_service)

    chunking_config = ChunkingConfig()
    if chunk_size:
        chunking_config = replace(chunking_config, chunk_size=chunk_size)
    if max_workers:
        chunking_config = replace(chunking_config, max_workers=max_workers)

    llm_config = LLMConfig()
    if model:
        llm_config = replace(llm_config, model=model)

    factory = AdapterFactory(store=store, acquisition_config=acquisition_config, runner=runner, cache=cache)
    pipeline = AnalysisPipeline(store, ReviewAnalyzer(llm_config=llm_config), chunking_config, alert_policy)
    orchestrator = AcquisitionOrchestrator([], alert_policy=alert_policy, runner=runner)
    service = ReviewAnalysisService(store, orchestrator, pipeline, alert_policy, runner, factory)

    # Callbacks must exist before the managed-job adapter is built
    factory.after_persist = lambda state: service.analyze_existing(state.product_id, state.country)
    factory.on_background_failure = service.handle_background_failure
    orchestrator.adapters = factory.create_in_priority()
    orchestrator.metadata_enricher = service.enrich_metadata

    logger.info(f"Review analysis service ready with adapters: "
                f"{', '.join(a.service_name for a in orchestrator.adapters)}")
    return service
