"""
Final product metrics derived from the aggregate analysis
"""

from typing import Any, Dict, List

from data.models import ProductAnalysisState, ReviewRecord
from scoring.grading import calculate_grade


def calculate_average_rating(reviews: List[ReviewRecord]) -> float:
    ratings = [r.rating for r in reviews if r.rating is not None]
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 2)


def calculate_adjusted_rating(average_rating: float, fake_percentage: float) -> float:
    """Discount the average rating by half the fake share, never below 50% of it"""
    factor = max(0.5, 1 - fake_percentage / 200)
    return round(average_rating * factor, 1)


def build_explanation(aggregate: Dict[str, Any], total_reviews: int, fake_count: int) -> str:
    explanation = aggregate.get('explanation') or (
        f"Analysis of {total_reviews} reviews found {fake_count} potentially inauthentic reviews "
        f"({aggregate.get('fake_percentage', 0)}%)."
    )
    insights = aggregate.get('product_insights')
    if insights:
        explanation = f"{explanation}\n\nProduct insights: {insights}"
    return explanation


def calculate_final_metrics(state: ProductAnalysisState, aggregate: Dict[str, Any]) -> Dict[str, Any]:
    fake_percentage = float(aggregate['fake_percentage'])
    total_reviews = len(state.reviews)
    fake_count = round(fake_percentage / 100 * total_reviews)
    average = calculate_average_rating(state.reviews)

    return {
        'fake_percentage': fake_percentage,
        'grade': calculate_grade(fake_percentage),
        'explanation': build_explanation(aggregate, total_reviews, fake_count),
        'amazon_rating': average,
        'adjusted_rating': calculate_adjusted_rating(average, fake_percentage),
        'total_reviews': total_reviews,
        'fake_count': fake_count,
    }
