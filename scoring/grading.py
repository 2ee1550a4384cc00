"""
Letter grades for fake-review percentages
"""

import logging
from datetime import datetime
from typing import Optional

from config.settings import SETTINGS
from data.models import AnalysisStatus, ProductAnalysisState

logger = logging.getLogger(__name__)

UNANALYZABLE_GRADE = 'U'
UNANALYZABLE_EXPLANATION = "Unable to analyze reviews at this time."

GRADE_DESCRIPTIONS = {
    'A': 'Excellent - Very few fake reviews detected',
    'B': 'Good - Low fake review percentage',
    'C': 'Fair - Moderate fake review concerns',
    'D': 'Poor - High fake review percentage',
    'F': 'Failing - Majority of reviews appear fake',
    UNANALYZABLE_GRADE: 'Unanalyzable - No reviews available for analysis',
}


def calculate_grade(fake_percentage: float) -> str:
    """Monotonic step function: <=8 A, <=20 B, <=40 C, <=65 D, else F"""
    thresholds = SETTINGS['grade_thresholds']
    for grade in ('A', 'B', 'C', 'D'):
        if fake_percentage <= thresholds[grade]:
            return grade
    return 'F'


def grade_description(grade: str) -> str:
    return GRADE_DESCRIPTIONS.get(grade, 'Unknown grade')


def complete_without_reviews(store, state: ProductAnalysisState) -> Optional[ProductAnalysisState]:
    """
    Finish a product that has nothing to score.

    The unanalyzable grade is the only grade assigned without an LLM
    fake percentage.
    """
    logger.info(f"No scorable reviews for {state.product_id}/{state.country}; completing as unanalyzable")
    now = datetime.now()
    store.transition(
        state.product_id,
        state.country,
        AnalysisStatus.COMPLETED,
        grade=UNANALYZABLE_GRADE,
        fake_percentage=0.0,
        explanation=UNANALYZABLE_EXPLANATION,
        amazon_rating=0.0,
        adjusted_rating=0.0,
        first_analyzed_at=state.first_analyzed_at or now,
        last_analyzed_at=now,
    )
    return store.get(state.product_id, state.country)
