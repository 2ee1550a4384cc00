"""
Aggregation of per-chunk LLM results into a single product verdict
"""

import json
import logging
import math
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 3
MAX_PATTERNS = 5
MAX_INSIGHTS = 2
MIN_INSIGHT_LENGTH = 20

# Phrases used to decide whether two chunk explanations make the same point
KEY_CONCEPT_PATTERNS = [
    re.compile(r'(\d+%?\s*(?:fake|genuine|suspicious|positive|negative|reviews?))', re.IGNORECASE),
    re.compile(r'(high|low|moderate|extreme)\s+(?:concentration|percentage|ratings?)', re.IGNORECASE),
    re.compile(r'(verified|unverified)\s+purchase', re.IGNORECASE),
    re.compile(r'(5-star|4-star|3-star|2-star|1-star)\s+ratings?', re.IGNORECASE),
    re.compile(r'review\s+(manipulation|authenticity|patterns?)', re.IGNORECASE),
    re.compile(r'(linguistic|content|metadata)\s+patterns?', re.IGNORECASE),
]

SENTENCE_SPLIT = re.compile(r'[.!?]+')


def standard_deviation(values: List[float]) -> float:
    """Population standard deviation; 0 for fewer than two values"""
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def classify_consistency(std_dev: float) -> str:
    if std_dev < 10:
        return 'high'
    if std_dev < 20:
        return 'medium'
    return 'low'


def dedupe_examples(examples: List[Any]) -> List[Any]:
    """Drop examples repeating the same text and reason"""
    seen = set()
    unique = []
    for example in examples:
        if isinstance(example, dict):
            key = f"{example.get('text', '')}|{example.get('reason', '')}"
        else:
            key = str(example)
        if key not in seen:
            seen.add(key)
            unique.append(example)
    return unique


def dedupe_patterns(patterns: List[Any]) -> List[Any]:
    seen = set()
    unique = []
    for pattern in patterns:
        if isinstance(pattern, (dict, list)):
            key = json.dumps(pattern, sort_keys=True, default=str)
        else:
            key = str(pattern)
        if key not in seen:
            seen.add(key)
            unique.append(pattern)
    return unique


def extract_key_concepts(sentence: str) -> List[str]:
    concepts = []
    for pattern in KEY_CONCEPT_PATTERNS:
        for match in pattern.finditer(sentence):
            concept = match.group(0).lower()
            if concept not in concepts:
                concepts.append(concept)
    return concepts


def extract_unique_insights(explanations: List[str], limit: int = MAX_INSIGHTS) -> List[str]:
    """
    Pick sentences from chunk explanations that introduce a concept no
    earlier pick mentioned. Sentences without any recognizable concept are skipped.
    """
    insights: List[str] = []
    seen_concepts: List[str] = []

    for explanation in explanations:
        for sentence in SENTENCE_SPLIT.split(explanation or ''):
            sentence = sentence.strip()
            if len(sentence) < MIN_INSIGHT_LENGTH:
                continue
            concepts = extract_key_concepts(sentence)
            if not concepts or any(c in seen_concepts for c in concepts):
                continue
            insights.append(sentence + '.')
            seen_concepts.extend(concepts)
            if len(insights) >= limit:
                return insights
    return insights


def synthesize_explanation(global_context: Dict[str, Any], fake_percentage: float,
                           confidence: str, explanations: List[str], chunk_count: int = 0) -> str:
    total_reviews = global_context.get('total_reviews', 0)
    explanation = (
        f"Analysis of {total_reviews} reviews across {chunk_count or len(explanations)} chunks. "
        f"Weighted fake percentage: {round(fake_percentage, 1)}%. "
        f"Chunk consistency: {confidence}. "
    )

    patterns = global_context.get('suspicious_patterns') or []
    if patterns:
        explanation += f"Global patterns: {patterns[0]}. "
    else:
        explanation += (
            f"No red flags in the rating distribution "
            f"({global_context.get('five_star_percentage', 0)}% 5-star). "
        )

    insights = extract_unique_insights(explanations)
    if insights:
        insight = insights[0]
        if not insight.endswith(('.', '!', '?')):
            insight += '.'
        explanation += insight

    return explanation.strip()


def aggregate_chunk_results(chunk_results: List[Dict[str, Any]], global_context: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combine successful chunk results.

    fake_percentage is weighted by each chunk's review_count; confidence
    comes from how much the chunks disagree.
    """
    if not chunk_results:
        raise ValueError("No chunk results to aggregate")

    total_reviews = sum(int(c.get('review_count') or 0) for c in chunk_results)
    percentages = [max(0.0, min(100.0, float(c.get('fake_percentage') or 0))) for c in chunk_results]

    if total_reviews > 0:
        weighted = sum(
            pct * int(c.get('review_count') or 0) / total_reviews
            for pct, c in zip(percentages, chunk_results)
        )
    else:
        weighted = sum(percentages) / len(percentages)

    examples: List[Any] = []
    patterns: List[Any] = []
    explanations: List[str] = []
    for chunk in chunk_results:
        examples.extend(chunk.get('fake_examples') or [])
        patterns.extend(chunk.get('key_patterns') or [])
        if chunk.get('explanation'):
            explanations.append(chunk['explanation'])

    std_dev = standard_deviation(percentages)
    confidence = classify_consistency(std_dev)
    logger.debug(f"Aggregated {len(chunk_results)} chunks: weighted={weighted:.2f} std_dev={std_dev:.2f}")

    insights = [c['product_insights'] for c in chunk_results if c.get('product_insights')]

    return {
        'fake_percentage': round(weighted, 1),
        'confidence': confidence,
        'explanation': synthesize_explanation(global_context, weighted, confidence, explanations, len(chunk_results)),
        'fake_examples': dedupe_examples(examples)[:MAX_EXAMPLES],
        'key_patterns': dedupe_patterns(patterns)[:MAX_PATTERNS],
        'product_insights': insights[0] if insights else None,
        'chunk_consistency': confidence,
        'chunks_processed': len(chunk_results),
        'global_context': global_context,
    }
