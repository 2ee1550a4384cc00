import threading

import pytest

from data.models import ReviewRecord
from scoring.chunking import (
    ContextAwareChunker,
    context_header,
    detect_suspicious_patterns,
    extract_global_context,
    split_into_chunks,
)
from scoring.errors import ChunkFailureCeilingExceeded


def make_reviews(n, rating=5, verified=True, text="Solid kettle, boils quickly and looks nice on the counter."):
    return [
        ReviewRecord(id=f"R{i}", rating=rating, text=text, verified_purchase=verified, date='2024-03-15')
        for i in range(n)
    ]


def ok_result(chunk, pct=10.0):
    return {
        'fake_percentage': pct,
        'confidence': 'medium',
        'explanation': 'Mostly genuine reviews with verified purchase signals.',
        'fake_examples': [],
        'key_patterns': [],
        'review_count': len(chunk),
    }


def test_split_preserves_order_and_sizes():
    reviews = make_reviews(95)
    chunks = split_into_chunks(reviews, 25)
    assert [len(c) for c in chunks] == [25, 25, 25, 20]
    assert chunks[3][0].id == 'R75'
    with pytest.raises(ValueError):
        split_into_chunks(reviews, 0)


def test_global_context_statistics():
    reviews = make_reviews(8) + make_reviews(2, rating=2, verified=False)
    reviews[0].is_vine = True
    context = extract_global_context(reviews)

    assert context['total_reviews'] == 10
    assert context['five_star_percentage'] == 80.0
    assert context['verified_percentage'] == 80.0
    assert context['vine_percentage'] == 10.0
    assert context['rating_distribution'] == {5: 8, 2: 2}
    assert context['date_patterns'] == {'2024-03': 10}
    assert context['context_summary'].startswith('GLOBAL CONTEXT: 80.0% 5-star')
    assert context_header(context).startswith('CONTEXT: GLOBAL CONTEXT')


def test_suspicious_patterns_flagged():
    patterns = detect_suspicious_patterns({
        'total_reviews': 1500,
        'five_star_percentage': 92.0,
        'four_plus_percentage': 97.0,
        'verified_percentage': 20.0,
        'vine_percentage': 25.0,
        'avg_text_length': 30,
    })
    assert len(patterns) == 6
    assert patterns[0].startswith('Extremely high 5-star concentration')


def test_every_chunk_receives_context_and_position():
    seen = []

    def processor(chunk, context):
        seen.append((context['chunk_number'], context['total_chunks'], context['chunk_size'],
                     context['chunk_start_index'], context['five_star_percentage']))
        return ok_result(chunk)

    ContextAwareChunker().process(make_reviews(95), 25, processor)

    assert seen == [(1, 4, 25, 0, 100.0), (2, 4, 25, 25, 100.0), (3, 4, 25, 50, 100.0), (4, 4, 20, 75, 100.0)]


def test_failures_at_the_ceiling_are_tolerated():
    calls = {'n': 0}

    def processor(chunk, context):
        calls['n'] += 1
        if context['chunk_number'] in (2, 4):
            raise RuntimeError("rate limited")
        return ok_result(chunk, pct=20.0)

    result = ContextAwareChunker().process(make_reviews(95), 25, processor)

    assert calls['n'] == 4
    assert result['chunks_processed'] == 2
    assert result['fake_percentage'] == 20.0


def test_failures_above_the_ceiling_raise():
    def processor(chunk, context):
        if context['chunk_number'] != 1:
            raise RuntimeError("boom")
        return ok_result(chunk)

    with pytest.raises(ChunkFailureCeilingExceeded) as exc:
        ContextAwareChunker().process(make_reviews(95), 25, processor)

    assert (exc.value.failed, exc.value.total) == (3, 4)
    assert exc.value.errors == ['boom', 'boom', 'boom']


def test_empty_chunk_result_counts_as_failure():
    with pytest.raises(ChunkFailureCeilingExceeded):
        ContextAwareChunker().process(make_reviews(10), 10, lambda chunk, context: {})


def test_fail_fast_reraises():
    def processor(chunk, context):
        raise RuntimeError("first failure")

    with pytest.raises(RuntimeError):
        ContextAwareChunker().process(make_reviews(50), 25, processor, fail_fast=True)


def test_concurrent_processing_keeps_chunk_order():
    threads = set()

    def processor(chunk, context):
        threads.add(threading.current_thread().name)
        return ok_result(chunk, pct=float(context['chunk_number'] * 10))

    result = ContextAwareChunker().process(make_reviews(100), 25, processor, max_workers=4)

    # (10 + 20 + 30 + 40) / 4, equal chunk sizes
    assert result['fake_percentage'] == 25.0
    assert result['chunks_processed'] == 4
    assert all(name != threading.main_thread().name for name in threads)


def test_concurrent_chunk_timeout_marks_stragglers_failed():
    release = threading.Event()

    def processor(chunk, context):
        if context['chunk_number'] == 2:
            release.wait(5)
        return ok_result(chunk)

    try:
        result = ContextAwareChunker().process(make_reviews(50), 25, processor,
                                               max_workers=2, chunk_timeout=0.2)
    finally:
        release.set()

    assert result['chunks_processed'] == 1
