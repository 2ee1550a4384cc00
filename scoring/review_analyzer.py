"""
Per-chunk LLM review analysis
Builds the prompt, calls the chat client and validates the recovered JSON
"""

import logging
from typing import Any, Dict, List, Optional

from config.settings import LLMConfig, SETTINGS
from data.models import ReviewRecord
from scoring.chunking import context_header
from scoring.errors import InvalidAnalysisResponse
from scoring.json_recovery import recover_json
from scoring.llm_client import ChatClient, parse_provider_list
from scoring.prompts import build_review_analysis_prompt

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('fake_percentage', 'confidence', 'explanation')


def optimized_max_tokens(review_count: int, ceiling: Optional[int] = None) -> int:
    """Token budget for an aggregate response: at least 2500, never above the provider ceiling"""
    ceiling = ceiling or SETTINGS['max_llm_tokens']
    base = min(3000, review_count * 15)
    buffer = min(2000, review_count * 8)
    return min(ceiling, max(2500, base + buffer))


def extract_aggregate(payload: Any) -> Dict[str, Any]:
    """Accept a bare aggregate object or one wrapped in {'results': {...}}"""
    if isinstance(payload, dict):
        if 'fake_percentage' in payload:
            return payload
        results = payload.get('results')
        if isinstance(results, dict) and 'fake_percentage' in results:
            return results
    raise InvalidAnalysisResponse(
        "Response is missing required fields (fake_percentage, confidence, explanation)")


class ReviewAnalyzer:
    """Scores one chunk of reviews with the LLM"""

    def __init__(self, client: Optional[ChatClient] = None, llm_config: Optional[LLMConfig] = None):
        self.config = llm_config or LLMConfig()
        if client is None:
            fallback = parse_provider_list(self.config.fallback_order) if self.config.auto_fallback else []
            client = ChatClient(default_model=self.config.model, temperature=self.config.temperature,
                                fallback_order=fallback)
        self.client = client

    @property
    def provider_name(self) -> str:
        return f"{self.client.detect_provider(self.config.model).value}-{self.config.model}"

    def analyze_chunk(self, chunk: List[ReviewRecord], context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Analyze one chunk. context carries the corpus statistics and chunk position.

        Returns a chunk result with fake_percentage, confidence, explanation,
        fake_examples, key_patterns and review_count.
        """
        if not chunk:
            return {}

        provider = self.client.detect_provider(self.config.model).value
        prompt = build_review_analysis_prompt(chunk, context_header(context), provider)
        max_tokens = optimized_max_tokens(len(chunk), min(SETTINGS['max_llm_tokens'], max(self.config.max_tokens, 2500)))

        chunk_label = f"{context.get('chunk_number', 1)}/{context.get('total_chunks', 1)}"
        logger.info(f"Analyzing chunk {chunk_label} ({len(chunk)} reviews, max_tokens={max_tokens})")

        raw = self.client.complete(prompt['system'], prompt['user'], max_tokens=max_tokens, model=self.config.model)
        logger.debug(f"Raw LLM response for chunk {chunk_label}: {raw[:1000]}")

        result = extract_aggregate(recover_json(raw))
        missing = [f for f in REQUIRED_FIELDS if f not in result]
        if missing:
            raise InvalidAnalysisResponse(f"Response missing fields: {', '.join(missing)}")

        try:
            fake_percentage = float(result['fake_percentage'])
        except (TypeError, ValueError) as e:
            raise InvalidAnalysisResponse(f"fake_percentage is not numeric: {result['fake_percentage']!r}") from e

        return {
            'fake_percentage': max(0.0, min(100.0, fake_percentage)),
            'confidence': str(result['confidence']),
            'explanation': str(result['explanation']),
            'fake_examples': result.get('fake_examples') or [],
            'key_patterns': result.get('key_patterns') or [],
            'product_insights': result.get('product_insights') or '',
            'review_count': len(chunk),
            'analysis_provider': self.provider_name,
        }
