"""
Endpoint-replay ("AJAX bypass") review adapter

Two phases: bootstrap a session by loading review page 1 and reading the
embedded state object (pagination endpoint + CSRF token), then replay the
internal pagination endpoint directly for later pages. Anything unexpected
falls back to plain direct-HTML scraping.
"""

import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from config.settings import SETTINGS
from data.models import ReviewBatch
from ingestion.adapters.direct_html import DirectHTMLAdapter, _FetchContext
from ingestion.errors import BlockedError
from ingestion.fetch_config import (
    contains_captcha,
    get_ajax_headers,
    get_random_delay,
    get_realistic_headers,
    is_login_redirect,
    marketplace_base_url,
)
from ingestion.normalizer import ReviewNormalizer
from ingestion.review_parser import (
    extract_cr_state,
    extract_description,
    extract_total_review_count,
    parse_reviews_html,
)

logger = logging.getLogger(__name__)

AJAX_PAGE_SIZE = 10


class CaptchaDetected(BlockedError):
    """CAPTCHA content in an otherwise successful response"""


class EndpointReplayAdapter(DirectHTMLAdapter):
    """Replays the marketplace's own review pagination endpoint"""

    service_name = "Amazon AJAX Scraping"
    adapter_key = "ajax"

    def fetch_reviews(self, product_id: str, country: str = 'us') -> ReviewBatch:
        self.validate_product_id(product_id)
        ctx = self._open_context()
        base_url = marketplace_base_url(country)

        try:
            session_data = self.bootstrap(ctx, product_id, base_url)
            if session_data is None:
                logger.info(f"AJAX bootstrap incomplete for {product_id}, falling back to direct scraping")
                return self.fallback(product_id, country)

            raw_reviews = list(session_data['page1_reviews'])
            for page in range(2, self.config.max_pages + 1):
                if len(raw_reviews) >= self.config.max_reviews:
                    break
                time.sleep(get_random_delay(self.adapter_key))
                page_reviews = self.fetch_ajax_page(ctx, product_id, page, session_data)
                if not page_reviews:
                    break
                raw_reviews.extend(page_reviews)
        except CaptchaDetected:
            logger.warning(f"CAPTCHA during AJAX flow for {product_id}, falling back to direct scraping")
            return self.fallback(product_id, country)
        finally:
            ctx.session.close()

        reviews = ReviewNormalizer(source='ajax').normalize(raw_reviews)[:self.config.max_reviews]
        logger.info(f"AJAX replay collected {len(reviews)} reviews for {product_id}")
        return ReviewBatch(
            reviews=reviews,
            description=session_data['description'],
            total_reviews=session_data['total_reviews'] or len(reviews),
            source=self.service_name,
        )

    def fallback(self, product_id: str, country: str) -> ReviewBatch:
        return super().fetch_reviews(product_id, country)

    def bootstrap(self, ctx: _FetchContext, product_id: str, base_url: str) -> Optional[Dict[str, Any]]:
        """
        Load review page 1 and extract the pagination endpoint and token.

        Returns None when the blob is missing (caller falls back). A login
        redirect is a hard block and raises BlockedError.
        """
        url = f"{base_url}/product-reviews/{product_id}"
        try:
            response = ctx.session.get(url, params={'ie': 'UTF8', 'reviewerType': 'all_reviews'},
                                       headers=get_realistic_headers(referer=f"{base_url}/dp/{product_id}"),
                                       timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"AJAX bootstrap request failed for {product_id}: {e}")
            self.route_selector.report_failure(ctx.route, str(e))
            return None

        if response.status_code != 200:
            logger.info(f"AJAX bootstrap for {product_id} returned HTTP {response.status_code}")
            return None

        html = response.text
        self._check_response(ctx, html, url)

        if is_login_redirect(response.url, html):
            if ctx.credential is not None:
                self.credential_pool.mark_unhealthy(ctx.credential.index, "Login redirect detected",
                                                    SETTINGS['login_redirect_cooldown_minutes'])
            raise BlockedError(f"Session redirected to sign-in for {product_id}", error_type="SESSION_EXPIRED")

        state = extract_cr_state(html)
        if not state or not state.get('reviewsAjaxUrl') or not state.get('reviewsCsrfToken'):
            logger.info(f"Review state object missing for {product_id} "
                        f"(found={state is not None})")
            return None

        self.route_selector.report_success(ctx.route)
        return {
            'ajax_url': urljoin(base_url + '/', state['reviewsAjaxUrl']),
            'csrf_token': state['reviewsCsrfToken'],
            'referer': response.url or url,
            'page1_reviews': parse_reviews_html(html),
            'description': extract_description(html),
            'total_reviews': extract_total_review_count(html),
        }

    def fetch_ajax_page(self, ctx: _FetchContext, product_id: str, page: int,
                        session_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """POST one page to the pagination endpoint; empty list ends pagination"""
        form = {
            'asin': product_id,
            'pageNumber': page,
            'reviewerType': 'all_reviews',
            'sortBy': 'recent',
            'scope': 'reviewsAjax',
            'pageSize': AJAX_PAGE_SIZE,
        }
        headers = get_ajax_headers(session_data['referer'], session_data['csrf_token'])
        try:
            response = ctx.session.post(session_data['ajax_url'], data=form, headers=headers,
                                        timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"AJAX page {page} for {product_id} failed: {e}")
            return []

        if response.status_code != 200:
            logger.info(f"AJAX page {page} for {product_id} returned HTTP {response.status_code}")
            return []

        self._check_response(ctx, response.text, session_data['ajax_url'])

        try:
            payload = response.json()
        except ValueError:
            return parse_reviews_html(response.text)

        if isinstance(payload, dict) and payload.get('html'):
            return parse_reviews_html(payload['html'])
        if isinstance(payload, dict) and isinstance(payload.get('reviews'), list):
            return [self._from_json_review(r) for r in payload['reviews'] if isinstance(r, dict)]
        return []

    @staticmethod
    def _from_json_review(review: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'id': review.get('id', ''),
            'review_text': review.get('text', ''),
            'rating': review.get('rating'),
            'author': review.get('author', ''),
            'review_title': review.get('title', ''),
            'date': review.get('date'),
            'verified_purchase': bool(review.get('verified', False)),
        }

    def _check_response(self, ctx: _FetchContext, html: str, url: str) -> None:
        if not contains_captcha(html):
            return
        logger.warning(f"CAPTCHA detected at {url} ({len(html)} bytes) using "
                       f"{ctx.credential.name if ctx.credential else 'no session'} via {ctx.route.name}")
        if ctx.credential is not None:
            self.credential_pool.mark_unhealthy(ctx.credential.index, "CAPTCHA detected",
                                                SETTINGS['credential_cooldown_minutes'])
        self._rotate(ctx, "CAPTCHA detected")
        raise CaptchaDetected(f"CAPTCHA detected at {url}")
