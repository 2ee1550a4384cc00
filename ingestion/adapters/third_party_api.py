"""
Third-party review API adapter (Unwrangle)

Cheapest to maintain, most expensive per call. Product existence is checked
cheaply before any paid request is made.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from config.settings import APIConfig
from data.models import ReviewBatch
from data.state_store import ProductStateStore
from ingestion.adapters.base import ReviewSourceAdapter
from ingestion.errors import AcquisitionError, AdapterUnavailableError, BlockedError
from ingestion.fetch_config import get_realistic_headers
from ingestion.normalizer import ReviewNormalizer
from utils.helpers import parse_int

logger = logging.getLogger(__name__)

API_URL = "https://data.unwrangle.com/api/getter/"

# (timeout seconds, max pages) per attempt
ATTEMPTS = [(30, 5), (45, 10)]


class ThirdPartyAPIAdapter(ReviewSourceAdapter):
    """Delegates review fetching to a paid scraping API"""

    service_name = "Unwrangle API"

    def __init__(self, api_config: Optional[APIConfig] = None, store: Optional[ProductStateStore] = None,
                 check_product_page: bool = False):
        super().__init__(store)
        api_config = api_config or APIConfig()
        self.api_key = api_config.unwrangle_api_key
        self.cookie = api_config.unwrangle_amazon_cookie
        self.check_product_page = check_product_page

    def is_available(self) -> bool:
        return bool(self.api_key)

    def product_exists(self, product_id: str, country: str = 'us') -> bool:
        """
        Lightweight existence check: id format, plus an optional HEAD of the
        product page. A failed HEAD request is treated as inconclusive (True).
        """
        self.validate_product_id(product_id)
        if not self.check_product_page:
            return True
        url = self.product_url(product_id, country)
        try:
            response = requests.head(url, headers=get_realistic_headers(), timeout=10, allow_redirects=True)
        except requests.RequestException as e:
            logger.debug(f"Existence check for {product_id} inconclusive: {e}")
            return True
        return response.status_code != 404

    def fetch_reviews(self, product_id: str, country: str = 'us') -> ReviewBatch:
        if not self.api_key:
            raise AdapterUnavailableError("UNWRANGLE_API_KEY not configured")
        if not self.product_exists(product_id, country):
            raise AcquisitionError(f"Product {product_id} not found", error_type="PRODUCT_NOT_FOUND")

        last_error = ""
        for attempt, (timeout, max_pages) in enumerate(ATTEMPTS, start=1):
            params = {
                'platform': 'amazon_reviews',
                'asin': product_id,
                'country_code': country.lower(),
                'max_pages': max_pages,
                'api_key': self.api_key,
            }
            if self.cookie:
                params['cookie'] = self.cookie

            logger.info(f"Review API attempt {attempt}/{len(ATTEMPTS)} for {product_id} "
                        f"(timeout {timeout}s, {max_pages} pages)")
            try:
                response = requests.get(API_URL, params=params, timeout=timeout)
            except requests.RequestException as e:
                last_error = str(e)
                logger.warning(f"Review API attempt {attempt} failed: {e}")
                continue

            try:
                data = response.json()
            except ValueError:
                last_error = f"HTTP {response.status_code}, non-JSON body"
                logger.warning(f"Review API attempt {attempt} returned {last_error}")
                continue
            if not isinstance(data, dict):
                last_error = f"HTTP {response.status_code}, unexpected {type(data).__name__} body"
                logger.warning(f"Review API attempt {attempt} returned {last_error}")
                continue

            if data.get('error_code') == 'AMAZON_SIGNIN_REQUIRED':
                raise BlockedError("Review API cookie expired (sign-in required)", error_type="SESSION_EXPIRED")

            if response.status_code == 200 and data.get('success'):
                return self.transform_response(data)

            last_error = data.get('message') or data.get('error') or f"HTTP {response.status_code}"
            logger.warning(f"Review API attempt {attempt} unsuccessful: {last_error}")

        raise AcquisitionError(f"Review API failed for {product_id}: {last_error}", error_type="API_ERROR")

    def transform_response(self, data: Dict[str, Any]) -> ReviewBatch:
        raw_reviews: List[Dict[str, Any]] = []
        for item in data.get('reviews') or []:
            if not isinstance(item, dict):
                continue
            raw_reviews.append({
                'id': item.get('id', ''),
                'rating': item.get('rating'),
                'review_title': item.get('review_title', ''),
                'review_text': item.get('review_text', ''),
                'author': item.get('author_name', ''),
                'date': item.get('date'),
                'verified_purchase': bool((item.get('meta_data') or {}).get('verified_purchase', False)),
                'helpful_count': (item.get('meta_data') or {}).get('helpful_votes', 0),
                'is_vine': bool((item.get('meta_data') or {}).get('is_vine_voice', False)),
            })
        reviews = ReviewNormalizer(source='unwrangle').normalize(raw_reviews)
        return ReviewBatch(
            reviews=reviews,
            description=data.get('description') or '',
            total_reviews=parse_int(data.get('total_results')) or len(reviews),
            source=self.service_name,
        )
