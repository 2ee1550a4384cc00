"""
Prompt construction for review authenticity analysis
"""

from typing import Any, Dict, List

from data.models import ReviewRecord
from utils.helpers import truncate_text

# Characters of review text sent per review, by provider
PROVIDER_TEXT_LIMITS = {
    'openai': 400,
    'anthropic': 400,
    'deepseek': 300,
}
DEFAULT_TEXT_LIMIT = 300

SYSTEM_MESSAGE = (
    "You are an expert marketplace review authenticity analyst. "
    "Your goal is ACCURACY, not finding fakes. Most reviews are genuine. "
    "Score 0-100 where 0=definitely genuine, 100=definitely fake. "
    "Weight genuine signals strongly: verified purchases, detailed experiences, specific product knowledge, "
    "balanced perspectives (mentioning pros AND cons). "
    "High ratings for quality products are NORMAL. Default to genuine when uncertain. "
    "Always respond in English with a single JSON object and nothing else."
)

CORE_INSTRUCTIONS = """Analyze reviews for authenticity on a 0-100 scale (0=definitely genuine, 100=definitely fake).

IMPORTANT: Be ACCURATE and BALANCED. Most reviews on established products are genuine. High ratings for quality products are NORMAL, not suspicious.

STRONG GENUINE SIGNALS (reduce score):
- Verified purchase: strong authenticity indicator
- Detailed personal experience: specific scenarios, comparisons to alternatives
- Specific product knowledge: technical details, feature-specific feedback
- Balanced perspective: mentions both pros AND cons
- Constructive criticism: specific complaints or suggestions

FAKE SIGNALS (increase score):
- Generic praise only: 'Great product!' with no specifics
- Marketing language: reads like ad copy
- Repetitive patterns: same phrases across multiple reviews
- No personal context: no indication of actual product use

Each review line is: ID|V(erified) or U(nverified)|rating★|text"""

RESPONSE_FORMAT = """Respond with JSON:
{
  "fake_percentage": <number 0-100>,
  "confidence": <"high"|"medium"|"low">,
  "explanation": "<2-4 sentence BALANCED analysis>",
  "fake_examples": [{"review_number": <1-based index>, "text": "<brief excerpt>", "reason": "<why it appears fake>"}],
  "key_patterns": ["<pattern1>", "<pattern2>"],
  "product_insights": "<2-3 sentences based on genuine reviews>"
}

If most reviews show genuine characteristics, fake_percentage should be LOW (under 30).
Do NOT penalize products simply for having many positive reviews."""


def text_limit(provider: str) -> int:
    return PROVIDER_TEXT_LIMITS.get(provider, DEFAULT_TEXT_LIMIT)


def format_reviews(reviews: List[ReviewRecord], max_text_length: int = DEFAULT_TEXT_LIMIT) -> str:
    """Compact one-line-per-review listing: ID|V/U|rating★|text"""
    lines = []
    for review in reviews:
        verified = 'V' if review.verified_purchase else 'U'
        rating = review.rating if review.rating is not None else '?'
        text = truncate_text(review.text, max_text_length).replace('\n', ' ')
        lines.append(f"{review.id}|{verified}|{rating}★|{text}")
    return "\n".join(lines)


def build_review_analysis_prompt(reviews: List[ReviewRecord], context_header: str = "",
                                 provider: str = 'openai') -> Dict[str, Any]:
    """
    Build the system and user messages for one chunk.

    Args:
        reviews: Reviews in this chunk
        context_header: Corpus-level context line, placed first in the user message
        provider: Provider key, controls per-review text length

    Returns:
        Dict with 'system' and 'user' strings
    """
    parts = []
    if context_header:
        parts.append(context_header)
    parts.append(CORE_INSTRUCTIONS)
    parts.append(format_reviews(reviews, text_limit(provider)))
    parts.append(RESPONSE_FORMAT)
    return {'system': SYSTEM_MESSAGE, 'user': "\n\n".join(parts)}
