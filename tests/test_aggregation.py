import pytest

from scoring.aggregation import (
    aggregate_chunk_results,
    classify_consistency,
    dedupe_examples,
    extract_unique_insights,
    standard_deviation,
)

CONTEXT = {'total_reviews': 30, 'five_star_percentage': 60.0, 'suspicious_patterns': []}


def chunk(pct, count, **extra):
    result = {'fake_percentage': pct, 'confidence': 'medium', 'explanation': '', 'review_count': count}
    result.update(extra)
    return result


def test_weighted_fake_percentage():
    result = aggregate_chunk_results([chunk(10, 10), chunk(40, 20)], CONTEXT)
    assert result['fake_percentage'] == 30.0


def test_equal_weights_with_wide_spread():
    result = aggregate_chunk_results([chunk(0, 10), chunk(100, 10)], CONTEXT)
    assert result['fake_percentage'] == 50.0
    assert result['confidence'] == 'low'


@pytest.mark.parametrize('percentages, expected', [
    ([50, 50, 50], 'high'),
    ([35, 50, 65], 'medium'),
    ([10, 50, 90], 'low'),
])
def test_confidence_follows_chunk_spread(percentages, expected):
    result = aggregate_chunk_results([chunk(p, 10) for p in percentages], CONTEXT)
    assert result['confidence'] == expected
    assert result['chunk_consistency'] == expected


def test_standard_deviation_edges():
    assert standard_deviation([]) == 0.0
    assert standard_deviation([42.0]) == 0.0
    assert standard_deviation([10.0, 30.0]) == 10.0
    assert classify_consistency(9.99) == 'high'
    assert classify_consistency(10.0) == 'medium'
    assert classify_consistency(20.0) == 'low'


def test_examples_and_patterns_are_deduplicated_and_capped():
    repeated = {'review_number': 1, 'text': 'Best product ever!!!', 'reason': 'generic praise'}
    chunks = [
        chunk(20, 10, fake_examples=[repeated, {'text': 'Five stars', 'reason': 'no detail'}],
              key_patterns=['generic praise', 'burst of reviews']),
        chunk(20, 10, fake_examples=[dict(repeated, review_number=14), {'text': 'Love it', 'reason': 'short'},
                                     {'text': 'Perfect', 'reason': 'short'}],
              key_patterns=['generic praise', 'a', 'b', 'c', 'd']),
    ]
    result = aggregate_chunk_results(chunks, CONTEXT)

    assert len(result['fake_examples']) == 3
    assert [e['text'] for e in result['fake_examples']] == ['Best product ever!!!', 'Five stars', 'Love it']
    assert result['key_patterns'] == ['generic praise', 'burst of reviews', 'a', 'b', 'c']


def test_dedupe_examples_keeps_distinct_reasons():
    examples = [{'text': 'Great', 'reason': 'short'}, {'text': 'Great', 'reason': 'unverified'}]
    assert dedupe_examples(examples) == examples


def test_unique_insights_skip_repeated_concepts():
    explanations = [
        "About 20% fake reviews detected in this batch. Mostly fine otherwise.",
        "Roughly 20% fake reviews again here. Many unverified purchase reviews posted in one week.",
    ]
    insights = extract_unique_insights(explanations)
    assert insights == [
        "About 20% fake reviews detected in this batch.",
        "Many unverified purchase reviews posted in one week.",
    ]


def test_explanation_mentions_global_pattern():
    context = dict(CONTEXT, suspicious_patterns=['Extremely high 5-star concentration (91.0%)'])
    result = aggregate_chunk_results(
        [chunk(30, 15, explanation='Review manipulation suspected in several posts.'), chunk(30, 15)], context)

    assert result['explanation'].startswith('Analysis of 30 reviews across 2 chunks. Weighted fake percentage: 30.0%.')
    assert 'Global patterns: Extremely high 5-star concentration (91.0%).' in result['explanation']
    assert result['explanation'].endswith('Review manipulation suspected in several posts.')


def test_first_product_insight_is_kept():
    result = aggregate_chunk_results(
        [chunk(5, 10, product_insights=''), chunk(5, 10, product_insights='Buyers praise the lid.')], CONTEXT)
    assert result['product_insights'] == 'Buyers praise the lid.'


def test_empty_input_raises():
    with pytest.raises(ValueError):
        aggregate_chunk_results([], CONTEXT)
