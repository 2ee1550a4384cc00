"""
Review normalizer
Turns adapter-specific raw review dicts into canonical ReviewRecords
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional, Set

from data.models import ReviewRecord
from utils.helpers import normalize_text, parse_int

logger = logging.getLogger(__name__)


class ReviewNormalizer:
    """Cleans, coerces and deduplicates raw reviews"""

    def __init__(self, source: str = ""):
        self.source = source
        self.seen_hashes: Set[str] = set()

    def normalize(self, raw_reviews: List[Dict[str, Any]]) -> List[ReviewRecord]:
        """
        Normalize a list of raw review dicts.

        Records without body text are dropped here; a missing or out-of-range
        rating is kept as None so the scoring stage can exclude it.
        """
        records = []
        for position, raw in enumerate(raw_reviews):
            record = self._to_record(raw, position)
            if record is None:
                continue
            key = self._content_hash(record.text)
            if key in self.seen_hashes:
                continue
            self.seen_hashes.add(key)
            records.append(record)

        dropped = len(raw_reviews) - len(records)
        if dropped:
            logger.debug(f"Normalizer ({self.source}) dropped {dropped} empty or duplicate reviews")
        return records

    def _to_record(self, raw: Dict[str, Any], position: int) -> Optional[ReviewRecord]:
        text = (raw.get('review_text') or raw.get('text') or '').strip()
        if not text:
            return None

        review_id = str(raw.get('id') or raw.get('review_id') or '')
        if not review_id:
            review_id = f"{self.source or 'review'}_{position + 1}_{self._content_hash(text)[:8]}"

        return ReviewRecord(
            id=review_id,
            rating=self._coerce_rating(raw.get('rating')),
            text=text,
            title=(raw.get('review_title') or raw.get('title') or '').strip(),
            author=(raw.get('author') or raw.get('reviewer_name') or '').strip(),
            verified_purchase=bool(raw.get('verified_purchase', False)),
            date=raw.get('date') or raw.get('review_date') or None,
            helpful_count=parse_int(raw.get('helpful_count'), 0),
            images=list(raw.get('images') or []),
            videos=list(raw.get('videos') or []),
            is_vine=bool(raw.get('is_vine', False)),
        )

    @staticmethod
    def _coerce_rating(value: Any):
        if value is None or value == '':
            return None
        try:
            rating = int(round(float(value)))
        except (TypeError, ValueError):
            return None
        return rating if 1 <= rating <= 5 else None

    @staticmethod
    def _content_hash(text: str) -> str:
        return hashlib.md5(normalize_text(text).encode('utf-8')).hexdigest()
