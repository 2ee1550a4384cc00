"""
Managed-job review adapter (BrightData datasets API)

Submits a scrape job for the product URL, polls its progress endpoint with a
hard attempt cap, then downloads the snapshot. In async mode the polling runs
as a background chain and the caller gets a placeholder record immediately.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from config.settings import APIConfig, AcquisitionConfig
from data.models import AnalysisStatus, ProductAnalysisState, ReviewBatch
from data.state_store import ProductStateStore
from ingestion.adapters.base import ReviewSourceAdapter
from ingestion.errors import AcquisitionError, AdapterUnavailableError
from ingestion.normalizer import ReviewNormalizer
from utils.background import BackgroundTaskRunner
from utils.helpers import parse_int

logger = logging.getLogger(__name__)

SNAPSHOT_RETRIES = 3
SNAPSHOT_RETRY_DELAY = 30
MAX_CONCURRENT_JOBS = 90


class ManagedJobAdapter(ReviewSourceAdapter):
    """Review source backed by a remote scrape-job API"""

    service_name = "BrightData Web Scraper"

    def __init__(self, api_config: Optional[APIConfig] = None,
                 acquisition_config: Optional[AcquisitionConfig] = None,
                 store: Optional[ProductStateStore] = None,
                 runner: Optional[BackgroundTaskRunner] = None,
                 after_persist: Optional[Callable[[ProductAnalysisState], Any]] = None,
                 on_background_failure: Optional[Callable[[str, str, Exception], Any]] = None):
        super().__init__(store)
        api_config = api_config or APIConfig()
        self.config = acquisition_config or AcquisitionConfig()
        self.api_token = api_config.brightdata_api_token
        self.dataset_id = api_config.brightdata_dataset_id
        self.base_url = api_config.brightdata_base_url.rstrip('/')
        self.poll_interval = self.config.poll_interval
        self.max_attempts = self.config.max_poll_attempts
        self.timeout = self.config.request_timeout
        self.runner = runner
        self.after_persist = after_persist
        self.on_background_failure = on_background_failure

    def is_available(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.api_token}",
            'Content-Type': 'application/json',
        }

    def fetch_reviews(self, product_id: str, country: str = 'us') -> ReviewBatch:
        if not self.api_token:
            raise AdapterUnavailableError("BrightData API token not configured")
        self.validate_product_id(product_id)

        product_url = self.product_url(product_id, country)
        logger.info(f"Starting managed scrape job for {product_id} ({country})")

        job_id = self.trigger_job(product_url)
        results = self.poll_for_results(job_id, product_id)
        batch = self.transform_results(results)
        logger.info(f"Managed scrape job {job_id} returned {len(batch.reviews)} reviews for {product_id}")
        return batch

    def trigger_job(self, product_url: str) -> str:
        if not self.can_create_job():
            raise AcquisitionError("Concurrent scrape job limit reached", error_type="JOB_TRIGGER_FAILED")

        params = {
            'dataset_id': self.dataset_id,
            'include_errors': 'true',
            'limit_multiple_results': self.config.max_reviews,
        }
        try:
            response = requests.post(f"{self.base_url}/trigger", params=params, headers=self._headers(),
                                     json=[{'url': product_url}], timeout=self.timeout)
        except requests.RequestException as e:
            raise AcquisitionError(f"Job trigger request failed: {e}", error_type="JOB_TRIGGER_FAILED") from e

        if response.status_code != 200:
            raise AcquisitionError(f"Job trigger returned HTTP {response.status_code}: {response.text[:200]}",
                                   error_type="JOB_TRIGGER_FAILED")
        try:
            data = response.json()
        except ValueError:
            data = None
        job_id = data.get('snapshot_id') if isinstance(data, dict) else None
        if not job_id:
            raise AcquisitionError("Job trigger response had no snapshot_id", error_type="JOB_TRIGGER_FAILED")

        logger.info(f"Triggered scrape job {job_id} for {product_url}")
        return job_id

    def can_create_job(self) -> bool:
        """Check running jobs against the account limit; allow creation if the check itself fails"""
        try:
            response = requests.get(f"{self.base_url}/snapshots", headers=self._headers(),
                                    params={'dataset_id': self.dataset_id, 'status': 'running'},
                                    timeout=self.timeout)
            if response.status_code != 200:
                return True
            running = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not check running scrape jobs, allowing creation: {e}")
            return True
        count = len(running) if isinstance(running, list) else 0
        logger.debug(f"Running scrape jobs: {count}/{MAX_CONCURRENT_JOBS}")
        return count < MAX_CONCURRENT_JOBS

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        response = requests.get(f"{self.base_url}/progress/{job_id}", headers=self._headers(),
                                timeout=self.timeout)
        if response.status_code != 200:
            return {'status': 'unknown', 'records': 0}
        progress = response.json()
        return progress if isinstance(progress, dict) else {'status': 'unknown', 'records': 0}

    def poll_for_results(self, job_id: str, product_id: str) -> List[Dict[str, Any]]:
        """Poll until ready, failed, or the attempt cap is hit; never polls forever"""
        last_progress: Dict[str, Any] = {}
        for attempt in range(1, self.max_attempts + 1):
            try:
                last_progress = self.get_progress(job_id)
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Progress check {attempt}/{self.max_attempts} for job {job_id} failed: {e}")
                last_progress = {}
            status = last_progress.get('status', 'unknown')
            logger.debug(f"Job {job_id} poll {attempt}/{self.max_attempts}: {status} "
                         f"({last_progress.get('records', 0)} rows)")

            if status == 'ready':
                return self.fetch_snapshot(job_id)
            if status in ('failed', 'error'):
                raise AcquisitionError(f"Scrape job {job_id} ended with status {status}",
                                       error_type="SCRAPING_FAILED")
            if attempt < self.max_attempts:
                time.sleep(self.poll_interval)

        logger.error(f"Job {job_id} for {product_id} did not finish after {self.max_attempts} polls; "
                     f"last status {last_progress.get('status', 'unknown')}, "
                     f"{last_progress.get('records', 0)} rows")
        self.cancel_job(job_id)
        raise AcquisitionError(f"Polling timed out for job {job_id}", error_type="POLLING_TIMEOUT")

    def fetch_snapshot(self, job_id: str) -> List[Dict[str, Any]]:
        for attempt in range(1, SNAPSHOT_RETRIES + 1):
            try:
                response = requests.get(f"{self.base_url}/snapshot/{job_id}", headers=self._headers(),
                                        params={'format': 'json'}, timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"Snapshot download attempt {attempt} for {job_id} failed: {e}")
                if attempt == SNAPSHOT_RETRIES:
                    raise AcquisitionError(f"Snapshot download failed: {e}") from e
                time.sleep(SNAPSHOT_RETRY_DELAY)
                continue

            if response.status_code == 200:
                try:
                    data = response.json()
                except ValueError as e:
                    raise AcquisitionError(f"Snapshot {job_id} body is not JSON: {response.text[:200]}",
                                           error_type="INVALID_RESPONSE") from e
                if not isinstance(data, list):
                    raise AcquisitionError(f"Snapshot {job_id} returned {type(data).__name__}, expected rows",
                                           error_type="INVALID_RESPONSE")
                return [row for row in data if isinstance(row, dict)]
            if response.status_code == 202:
                logger.info(f"Snapshot {job_id} still building (attempt {attempt}/{SNAPSHOT_RETRIES})")
                if attempt < SNAPSHOT_RETRIES:
                    time.sleep(SNAPSHOT_RETRY_DELAY)
                continue
            raise AcquisitionError(f"Snapshot download returned HTTP {response.status_code}")

        raise AcquisitionError(f"Snapshot {job_id} was not ready after {SNAPSHOT_RETRIES} attempts",
                               error_type="POLLING_TIMEOUT")

    def cancel_job(self, job_id: str) -> bool:
        try:
            response = requests.post(f"{self.base_url}/snapshot/{job_id}/cancel",
                                     headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Cancelling job {job_id} failed: {e}")
            return False
        cancelled = response.status_code == 200 and response.text.strip() == 'OK'
        logger.info(f"Cancel job {job_id}: {'ok' if cancelled else response.status_code}")
        return cancelled

    def transform_results(self, results: List[Dict[str, Any]]) -> ReviewBatch:
        """Map job rows to canonical reviews; product fields come from the first row carrying them"""
        raw_reviews = []
        product_name = ''
        product_image_url = ''
        total_reviews = 0

        for item in results:
            if not product_name and item.get('product_name'):
                product_name = item['product_name']
                total_reviews = parse_int(item.get('product_rating_count'))
                product_image_url = item.get('product_image_url') or ''

            if not (item.get('review_text') and item.get('review_id')):
                continue
            raw_reviews.append({
                'id': item['review_id'],
                'rating': item.get('rating'),
                'review_title': item.get('review_header') or '',
                'review_text': item['review_text'],
                'author': item.get('author_name') or 'Anonymous',
                'date': item.get('review_posted_date') or None,
                'verified_purchase': bool(item.get('is_verified', False)),
                'helpful_count': item.get('helpful_count') or 0,
                'is_vine': bool(item.get('is_amazon_vine', False)),
                'images': item.get('review_images') if isinstance(item.get('review_images'), list) else [],
                'videos': item.get('videos') if isinstance(item.get('videos'), list) else [],
            })

        reviews = ReviewNormalizer(source='brightdata').normalize(raw_reviews)
        return ReviewBatch(
            reviews=reviews,
            total_reviews=total_reviews or len(reviews),
            product_name=product_name,
            product_image_url=product_image_url,
            source=self.service_name,
        )

    def fetch_and_persist(self, product_id: str, country: str = 'us', *,
                          in_background: bool = False) -> ProductAnalysisState:
        """
        Synchronous unless async mode is on and we are not already inside a
        background run; then a placeholder is returned and polling continues
        on the background runner.
        """
        if self.config.async_enabled and self.runner is not None and not in_background:
            return self._dispatch_background(product_id, country)
        return super().fetch_and_persist(product_id, country, in_background=in_background)

    def _dispatch_background(self, product_id: str, country: str) -> ProductAnalysisState:
        self.validate_product_id(product_id)
        placeholder = self.store.get_or_create(product_id, country)
        logger.info(f"Queued background scrape chain for {product_id}/{country}")

        def fetch():
            return self.fetch_reviews(product_id, country)

        def persist(batch: ReviewBatch):
            return self.persist_batch(product_id, country, batch)

        def finish(state: ProductAnalysisState):
            if self.after_persist is not None:
                return self.after_persist(state)
            return state

        self.runner.submit_chain(self._guarded(fetch, product_id, country), persist, finish)
        return placeholder

    def _guarded(self, fn: Callable[[], ReviewBatch], product_id: str, country: str) -> Callable[[], ReviewBatch]:
        def run():
            try:
                return fn()
            except AcquisitionError as e:
                self.store.update(product_id, country, status=AnalysisStatus.FAILED, failure_reason=str(e))
                if self.on_background_failure is not None:
                    self.on_background_failure(self.service_name, e.error_type, e)
                raise
        run.__name__ = 'fetch_reviews'
        return run
