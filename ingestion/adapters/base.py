"""
Common interface for review source adapters
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from data.models import AnalysisStatus, ProductAnalysisState, ReviewBatch
from data.state_store import ProductStateStore
from ingestion.errors import AcquisitionError
from ingestion.fetch_config import marketplace_base_url
from utils.helpers import is_valid_product_id

logger = logging.getLogger(__name__)


class ReviewSourceAdapter(ABC):
    """
    One strategy for obtaining a product's reviews.

    Subclasses implement fetch_reviews; fetch_and_persist writes the result
    through the state store so status rules apply uniformly.
    """

    service_name = "Review Source"

    def __init__(self, store: Optional[ProductStateStore] = None):
        self.store = store if store is not None else ProductStateStore()

    @abstractmethod
    def fetch_reviews(self, product_id: str, country: str = 'us') -> ReviewBatch:
        """Fetch reviews, product description and total count"""

    def is_available(self) -> bool:
        return True

    def fetch_and_persist(self, product_id: str, country: str = 'us', *,
                          in_background: bool = False) -> ProductAnalysisState:
        batch = self.fetch_reviews(product_id, country)
        return self.persist_batch(product_id, country, batch)

    def persist_batch(self, product_id: str, country: str, batch: ReviewBatch) -> ProductAnalysisState:
        self.store.get_or_create(product_id, country)
        written = self.store.update(
            product_id, country,
            status=AnalysisStatus.FETCHED,
            reviews=batch.reviews,
            description=batch.description,
            total_reviews_on_source=batch.total_reviews,
            product_title=batch.product_name,
            product_image_url=batch.product_image_url,
            have_product_data=batch.has_product_metadata,
            source=batch.source or self.service_name,
            last_analyzed_at=datetime.now(),
        )
        if written:
            logger.info(f"{self.service_name}: stored {len(batch.reviews)} reviews for {product_id}/{country}")
        return self.store.get(product_id, country)

    @staticmethod
    def validate_product_id(product_id: str) -> None:
        if not is_valid_product_id(product_id):
            raise AcquisitionError(f"Invalid product id format: {product_id!r}", error_type="INVALID_PRODUCT")

    @staticmethod
    def product_url(product_id: str, country: str = 'us') -> str:
        return f"{marketplace_base_url(country)}/dp/{product_id}"
