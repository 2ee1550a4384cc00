"""
Context-aware chunking for large review sets

Corpus statistics are computed once, up front, and passed to every chunk so
each LLM call judges its reviews against the product-wide pattern rather
than in isolation.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from data.models import ReviewRecord
from scoring.aggregation import aggregate_chunk_results
from scoring.errors import ChunkFailureCeilingExceeded

logger = logging.getLogger(__name__)

ChunkProcessor = Callable[[List[ReviewRecord], Dict[str, Any]], Dict[str, Any]]


def _pct(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def _month(date_value: Optional[str]) -> Optional[str]:
    if not date_value:
        return None
    for fmt in ('%Y-%m-%d', '%Y-%m-%dT%H:%M:%S', '%B %d, %Y', '%d %B %Y'):
        try:
            return datetime.strptime(date_value.strip(), fmt).strftime('%Y-%m')
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(date_value.replace('Z', '+00:00')).strftime('%Y-%m')
    except ValueError:
        return None


def detect_suspicious_patterns(stats: Dict[str, Any]) -> List[str]:
    patterns = []
    if stats['five_star_percentage'] > 85:
        patterns.append(f"Extremely high 5-star concentration ({stats['five_star_percentage']}%)")
    if stats['four_plus_percentage'] > 95:
        patterns.append(f"Overwhelming positive ratings ({stats['four_plus_percentage']}% are 4-5 stars)")
    if stats['verified_percentage'] < 30:
        patterns.append(f"Low verified purchase rate ({stats['verified_percentage']}%)")
    if stats['vine_percentage'] > 20:
        patterns.append(f"High Vine review concentration ({stats['vine_percentage']}%)")
    if stats['avg_text_length'] < 50:
        patterns.append(f"Unusually short reviews (avg {stats['avg_text_length']} chars)")
    if stats['total_reviews'] > 1000 and stats['five_star_percentage'] > 90:
        patterns.append("High-volume product with suspicious rating uniformity")
    return patterns


def context_summary(five_star_pct: float, verified_pct: float, vine_pct: float,
                    suspicious_patterns: List[str]) -> str:
    """Compact corpus summary, small enough to prepend to every chunk prompt"""
    summary = f"GLOBAL CONTEXT: {five_star_pct}% 5-star, {verified_pct}% verified, {vine_pct}% Vine. "
    if suspicious_patterns:
        summary += "ALERTS: " + "; ".join(suspicious_patterns[:2]) + ". "
    else:
        summary += "No major red flags detected. "
    return summary


def context_header(context: Dict[str, Any]) -> str:
    summary = context.get('context_summary')
    return f"CONTEXT: {summary}" if summary else ""


def extract_global_context(reviews: List[ReviewRecord]) -> Dict[str, Any]:
    """Single pass over the corpus, no external calls"""
    total = len(reviews)
    distribution: Dict[int, int] = {}
    verified = 0
    vine = 0
    months: Dict[str, int] = {}
    text_lengths = []

    for review in reviews:
        rating = review.rating or 0
        distribution[rating] = distribution.get(rating, 0) + 1
        if review.verified_purchase:
            verified += 1
        if review.is_vine:
            vine += 1
        month = _month(review.date)
        if month:
            months[month] = months.get(month, 0) + 1
        text_lengths.append(len(review.text or ''))

    stats = {
        'total_reviews': total,
        'five_star_percentage': _pct(distribution.get(5, 0), total),
        'four_plus_percentage': _pct(distribution.get(4, 0) + distribution.get(5, 0), total),
        'verified_percentage': _pct(verified, total),
        'vine_percentage': _pct(vine, total),
        'avg_text_length': round(sum(text_lengths) / len(text_lengths)) if text_lengths else 0,
    }
    patterns = detect_suspicious_patterns(stats)

    return {
        **stats,
        'rating_distribution': distribution,
        'date_patterns': months,
        'suspicious_patterns': patterns,
        'context_summary': context_summary(
            stats['five_star_percentage'], stats['verified_percentage'], stats['vine_percentage'], patterns
        ),
    }


def split_into_chunks(reviews: List[ReviewRecord], chunk_size: int) -> List[List[ReviewRecord]]:
    """Order-preserving split into ceil(N / chunk_size) chunks"""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [reviews[i:i + chunk_size] for i in range(0, len(reviews), chunk_size)]


class ContextAwareChunker:
    """Runs a chunk processor over a review set and aggregates the survivors"""

    def process(self, reviews: List[ReviewRecord], chunk_size: int, processor: ChunkProcessor, *,
                max_failure_rate: float = 0.5, delay_ms: int = 0, max_workers: int = 1,
                chunk_timeout: Optional[float] = None, fail_fast: bool = False) -> Dict[str, Any]:
        """
        Process reviews chunk by chunk.

        Args:
            reviews: Scorable reviews, in the order they should be chunked
            chunk_size: Reviews per chunk
            processor: Callable(chunk, context) returning a chunk result dict
            max_failure_rate: Fraction of chunks allowed to fail
            delay_ms: Pause between chunks when running sequentially
            max_workers: Above 1, chunks are dispatched concurrently
            chunk_timeout: Per-chunk budget in seconds; a late chunk counts as failed
            fail_fast: Re-raise the first chunk failure instead of tolerating it

        Returns:
            Aggregated result (see aggregate_chunk_results)

        Raises:
            ChunkFailureCeilingExceeded: if too many chunks failed or none succeeded
        """
        global_context = extract_global_context(reviews)
        chunks = split_into_chunks(reviews, chunk_size)
        total = len(chunks)
        logger.info(f"Context-aware chunking: {len(reviews)} reviews in {total} chunks of {chunk_size}")
        logger.info(f"Global context: {global_context['context_summary']}")

        contexts = [
            {
                **global_context,
                'chunk_number': i + 1,
                'total_chunks': total,
                'chunk_size': len(chunk),
                'chunk_start_index': i * chunk_size,
            }
            for i, chunk in enumerate(chunks)
        ]

        if max_workers > 1 and total > 1:
            outcomes = self._run_concurrent(chunks, contexts, processor, max_workers, chunk_timeout, fail_fast)
        else:
            outcomes = self._run_sequential(chunks, contexts, processor, delay_ms, fail_fast)

        successes = [result for _, result, error in outcomes if error is None]
        errors = [error for _, _, error in outcomes if error is not None]
        failed = len(errors)

        if failed > total * max_failure_rate or not successes:
            logger.error(f"Chunk failure ceiling exceeded: {failed}/{total} failed")
            raise ChunkFailureCeilingExceeded(failed, total, max_failure_rate, errors)

        if failed:
            logger.warning(f"{failed}/{total} chunks failed; aggregating {len(successes)} successful chunks")

        return aggregate_chunk_results(successes, global_context)

    def _call(self, processor: ChunkProcessor, chunk: List[ReviewRecord],
              context: Dict[str, Any]) -> Dict[str, Any]:
        result = processor(chunk, context)
        if not result:
            raise ValueError(f"Chunk {context['chunk_number']} returned an empty result")
        return result

    def _run_sequential(self, chunks, contexts, processor, delay_ms, fail_fast) -> List[Tuple[int, Any, Any]]:
        outcomes = []
        for i, (chunk, context) in enumerate(zip(chunks, contexts)):
            try:
                outcomes.append((i, self._call(processor, chunk, context), None))
                logger.info(f"Chunk {i + 1}/{len(chunks)} processed")
            except Exception as e:
                if fail_fast:
                    raise
                logger.warning(f"Chunk {i + 1}/{len(chunks)} failed: {e}")
                outcomes.append((i, None, str(e)))

            if delay_ms and i < len(chunks) - 1:
                time.sleep(delay_ms / 1000)
        return outcomes

    def _run_concurrent(self, chunks, contexts, processor, max_workers, chunk_timeout,
                        fail_fast) -> List[Tuple[int, Any, Any]]:
        outcomes: Dict[int, Tuple[int, Any, Any]] = {}
        deadline = None
        if chunk_timeout:
            # Every chunk gets chunk_timeout once it is scheduled
            deadline = chunk_timeout * math.ceil(len(chunks) / max_workers)

        executor = ThreadPoolExecutor(max_workers=min(max_workers, len(chunks)))
        try:
            futures = {
                executor.submit(self._call, processor, chunk, context): i
                for i, (chunk, context) in enumerate(zip(chunks, contexts))
            }
            try:
                for future in as_completed(futures, timeout=deadline):
                    i = futures[future]
                    try:
                        outcomes[i] = (i, future.result(), None)
                        logger.info(f"Chunk {i + 1}/{len(chunks)} processed")
                    except Exception as e:
                        if fail_fast:
                            raise
                        logger.warning(f"Chunk {i + 1}/{len(chunks)} failed: {e}")
                        outcomes[i] = (i, None, str(e))
            except FuturesTimeoutError:
                for future, i in futures.items():
                    if i not in outcomes:
                        future.cancel()
                        logger.warning(f"Chunk {i + 1}/{len(chunks)} timed out")
                        outcomes[i] = (i, None, "timeout")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return [outcomes[i] for i in sorted(outcomes)]
