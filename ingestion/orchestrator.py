"""
Acquisition orchestrator
Tries review adapters in priority order and reports every failure
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from data.models import AnalysisStatus, ProductAnalysisState
from ingestion.adapters.base import ReviewSourceAdapter
from ingestion.errors import AcquisitionError, AllAdaptersFailedError
from utils.background import BackgroundTaskRunner

logger = logging.getLogger(__name__)


class AcquisitionState(Enum):
    NOT_FETCHED = "not_fetched"
    FETCHING = "fetching"
    FETCHED = "fetched"
    FAILED_ALL_VARIANTS = "failed_all_variants"


class AcquisitionOrchestrator:
    """
    Runs adapters in order until one succeeds.

    Retries are the adapters' business; the orchestrator only falls through
    to the next adapter and tells the alert policy what went wrong. The
    acquisition state is kept per (product_id, country), so concurrent
    acquisitions of different products do not overwrite each other.
    """

    def __init__(self, adapters: List[ReviewSourceAdapter], alert_policy=None,
                 runner: Optional[BackgroundTaskRunner] = None,
                 metadata_enricher: Optional[Callable[[str, str], None]] = None):
        self.adapters = list(adapters)
        self.alert_policy = alert_policy
        self.runner = runner
        self.metadata_enricher = metadata_enricher
        self._states: Dict[Tuple[str, str], AcquisitionState] = {}
        self._lock = threading.Lock()

    def acquisition_state(self, product_id: str, country: str = 'us') -> AcquisitionState:
        with self._lock:
            return self._states.get((product_id, country.lower()), AcquisitionState.NOT_FETCHED)

    def _set_state(self, product_id: str, country: str, state: AcquisitionState) -> None:
        with self._lock:
            self._states[(product_id, country.lower())] = state

    def acquire(self, product_id: str, country: str = 'us', *, in_background: bool = False) -> ProductAnalysisState:
        self._set_state(product_id, country, AcquisitionState.FETCHING)
        failures: List[str] = []

        for adapter in self.adapters:
            if not adapter.is_available():
                logger.debug(f"Skipping unconfigured adapter {adapter.service_name}")
                continue

            logger.info(f"Fetching reviews for {product_id}/{country} via {adapter.service_name}")
            try:
                state = adapter.fetch_and_persist(product_id, country, in_background=in_background)
            except AcquisitionError as e:
                failures.append(f"{adapter.service_name}: {e}")
                logger.warning(f"{adapter.service_name} failed for {product_id} ({e.error_type}): {e}")
                self._report_failure(adapter.service_name, e.error_type, str(e), product_id)
                continue

            self._report_recovery(adapter.service_name)
            self._set_state(product_id, country, AcquisitionState.FETCHED)

            # A pending placeholder means the adapter continues in the background
            if state.status is AnalysisStatus.FETCHED and not state.have_product_data:
                self._schedule_enrichment(product_id, country)
            return state

        self._set_state(product_id, country, AcquisitionState.FAILED_ALL_VARIANTS)
        if not failures:
            failures.append("no review adapters are configured")
        raise AllAdaptersFailedError(product_id, failures)

    def _schedule_enrichment(self, product_id: str, country: str) -> None:
        if self.metadata_enricher is None or self.runner is None:
            return
        logger.info(f"Product metadata incomplete for {product_id}, scheduling enrichment")
        self.runner.submit(self.metadata_enricher, product_id, country)

    def _report_failure(self, service: str, error_type: str, message: str, product_id: str) -> None:
        if self.alert_policy is None:
            return
        self.alert_policy.record_failure(service, error_type, message, {'product_id': product_id})

    def _report_recovery(self, service: str) -> None:
        if self.alert_policy is None:
            return
        self.alert_policy.record_recovery(service)
