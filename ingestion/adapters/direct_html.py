"""
Direct-HTML review adapter

Fetches the product page and successive review-listing pages with a rotating
session cookie and egress route. Soft-blocks (429/503 or block markers in the
body) rotate the route and retry a bounded number of times.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config.settings import SETTINGS, AcquisitionConfig
from data.models import Credential, ReviewBatch, Route
from data.state_store import ProductStateStore
from ingestion.adapters.base import ReviewSourceAdapter
from ingestion.credential_pool import CredentialPool
from ingestion.errors import AcquisitionError, AdapterUnavailableError, BlockedError
from ingestion.fetch_config import (
    contains_captcha,
    get_adapter_config,
    get_random_delay,
    get_realistic_headers,
    get_retry_config,
    is_blocked_response,
    marketplace_base_url,
)
from ingestion.normalizer import ReviewNormalizer
from ingestion.review_parser import (
    extract_description,
    extract_product_image,
    extract_product_title,
    extract_total_review_count,
    parse_reviews_html,
)
from ingestion.route_selector import RouteSelector

logger = logging.getLogger(__name__)

REVIEW_URL_PATTERNS = [
    "/product-reviews/{product_id}",
    "/gp/product/{product_id}/reviews",
    "/dp/product-reviews/{product_id}",
]
MIN_REVIEW_PAGE_BYTES = 1000


@dataclass
class _FetchContext:
    session: requests.Session
    credential: Optional[Credential]
    route: Route


class DirectHTMLAdapter(ReviewSourceAdapter):
    """Scrapes review listing pages over plain HTTP"""

    service_name = "Amazon Direct Scraping"
    adapter_key = "direct"

    def __init__(self, credential_pool: CredentialPool, route_selector: RouteSelector,
                 acquisition_config: Optional[AcquisitionConfig] = None,
                 store: Optional[ProductStateStore] = None):
        super().__init__(store)
        self.credential_pool = credential_pool
        self.route_selector = route_selector
        self.config = acquisition_config or AcquisitionConfig()
        fetch_config = get_adapter_config(self.adapter_key)
        self.max_retries = fetch_config['max_retries']
        self.timeout = self.config.request_timeout or fetch_config['timeout']

    def is_available(self) -> bool:
        return len(self.credential_pool) > 0

    def _open_context(self) -> _FetchContext:
        if len(self.credential_pool) == 0:
            raise AdapterUnavailableError("No session cookies configured for direct scraping")
        credential = self.credential_pool.next()
        route = self.route_selector.select()
        session = requests.Session()
        session.cookies.update(credential.to_cookie_dict())
        self._apply_route(session, route)
        logger.debug(f"Direct scraping with {credential.name} via {route.name}")
        return _FetchContext(session=session, credential=credential, route=route)

    @staticmethod
    def _apply_route(session: requests.Session, route: Route) -> None:
        session.proxies.clear()
        proxies = route.proxies()
        if proxies:
            session.proxies.update(proxies)

    def _rotate(self, ctx: _FetchContext, reason: str) -> None:
        self.route_selector.report_failure(ctx.route, reason)
        ctx.route = self.route_selector.select()
        self._apply_route(ctx.session, ctx.route)

    def _cool_credential(self, ctx: _FetchContext, reason: str) -> None:
        if ctx.credential is not None:
            self.credential_pool.mark_unhealthy(ctx.credential.index, reason,
                                                SETTINGS['credential_cooldown_minutes'])

    def _switch_credential(self, ctx: _FetchContext) -> None:
        ctx.credential = self.credential_pool.next()
        ctx.session.cookies.clear()
        ctx.session.cookies.update(ctx.credential.to_cookie_dict())

    def request(self, ctx: _FetchContext, url: str, params: Optional[Dict[str, Any]] = None,
                referer: Optional[str] = None) -> requests.Response:
        """GET with soft-block detection; rotates route and retries up to max_retries"""
        last_error = ""
        blocked = False
        for attempt in range(1, self.max_retries + 1):
            try:
                response = ctx.session.get(url, params=params, headers=get_realistic_headers(referer),
                                           timeout=self.timeout)
            except requests.RequestException as e:
                last_error = str(e)
                logger.warning(f"Request to {url} failed (attempt {attempt}/{self.max_retries}): {e}")
                self._rotate(ctx, last_error)
                time.sleep(get_retry_config(self.adapter_key)['base_backoff'] * attempt)
                continue

            captcha = contains_captcha(response.text)
            if captcha or is_blocked_response(response.status_code, response.text):
                blocked = True
                last_error = f"soft-block (HTTP {response.status_code})"
                logger.warning(f"Blocked on {url} (attempt {attempt}/{self.max_retries}), rotating session")
                if captcha:
                    self._cool_credential(ctx, "CAPTCHA detected")
                    self._switch_credential(ctx)
                self._rotate(ctx, last_error)
                time.sleep(get_retry_config(self.adapter_key, response.status_code)['base_backoff'] * attempt)
                continue

            self.route_selector.report_success(ctx.route)
            return response

        if blocked:
            self._cool_credential(ctx, f"Hard block after {self.max_retries} attempts")
            raise BlockedError(f"Still blocked after {self.max_retries} attempts: {url}")
        raise AcquisitionError(f"Request failed after {self.max_retries} attempts: {last_error}")

    def fetch_reviews(self, product_id: str, country: str = 'us') -> ReviewBatch:
        self.validate_product_id(product_id)
        ctx = self._open_context()
        base_url = marketplace_base_url(country)
        try:
            product = self.scrape_product_page(ctx, product_id, base_url)
            raw_reviews = self.scrape_review_pages(ctx, product_id, base_url)
        finally:
            ctx.session.close()

        reviews = ReviewNormalizer(source='direct').normalize(raw_reviews)[:self.config.max_reviews]
        logger.info(f"Direct scraping collected {len(reviews)} reviews for {product_id}")
        return ReviewBatch(
            reviews=reviews,
            description=product.get('description', ''),
            total_reviews=product.get('total_reviews') or len(reviews),
            product_name=product.get('title', ''),
            product_image_url=product.get('image', ''),
            source=self.service_name,
        )

    def fetch_product_metadata(self, product_id: str, country: str = 'us') -> Dict[str, Any]:
        """Title, image, description and review count from the product page alone"""
        self.validate_product_id(product_id)
        ctx = self._open_context()
        try:
            return self.scrape_product_page(ctx, product_id, marketplace_base_url(country))
        finally:
            ctx.session.close()

    def scrape_product_page(self, ctx: _FetchContext, product_id: str, base_url: str) -> Dict[str, Any]:
        """Product metadata is best-effort; only a persistent block aborts the fetch"""
        url = f"{base_url}/dp/{product_id}"
        try:
            response = self.request(ctx, url, referer=f"{base_url}/")
        except BlockedError:
            raise
        except AcquisitionError as e:
            logger.warning(f"Product page for {product_id} unavailable: {e}")
            return {}
        if response.status_code != 200:
            logger.warning(f"Product page for {product_id} returned HTTP {response.status_code}")
            return {}
        html = response.text
        return {
            'title': extract_product_title(html),
            'image': extract_product_image(html),
            'description': extract_description(html),
            'total_reviews': extract_total_review_count(html),
        }

    def find_review_url(self, ctx: _FetchContext, product_id: str, base_url: str) -> Optional[str]:
        for pattern in REVIEW_URL_PATTERNS:
            url = base_url + pattern.format(product_id=product_id)
            response = self.request(ctx, url, referer=f"{base_url}/dp/{product_id}")
            if response.status_code == 200 and len(response.text) > MIN_REVIEW_PAGE_BYTES:
                return url
            logger.debug(f"Review URL candidate {url} rejected (HTTP {response.status_code}, "
                         f"{len(response.text)} bytes)")
        return None

    def scrape_review_pages(self, ctx: _FetchContext, product_id: str, base_url: str) -> List[Dict[str, Any]]:
        review_url = self.find_review_url(ctx, product_id, base_url)
        if review_url is None:
            raise AcquisitionError(f"No working review URL for {product_id}")

        collected: List[Dict[str, Any]] = []
        for page in range(1, self.config.max_pages + 1):
            response = self.request(ctx, review_url, params={'pageNumber': page, 'sortBy': 'recent'},
                                    referer=review_url)
            if response.status_code != 200:
                logger.info(f"Review page {page} for {product_id} returned HTTP {response.status_code}, stopping")
                break

            page_reviews = parse_reviews_html(response.text)
            if not page_reviews:
                logger.info(f"No reviews parsed on page {page} for {product_id}, stopping")
                break
            collected.extend(page_reviews)

            if len(collected) >= self.config.max_reviews:
                break
            if page < self.config.max_pages:
                time.sleep(get_random_delay(self.adapter_key))

        return collected
