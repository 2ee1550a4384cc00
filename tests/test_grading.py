import pytest

from data.models import AnalysisStatus, ProductAnalysisState, ReviewRecord
from data.state_store import ProductStateStore
from scoring.grading import calculate_grade, complete_without_reviews, grade_description
from scoring.metrics import (
    calculate_adjusted_rating,
    calculate_average_rating,
    calculate_final_metrics,
)


@pytest.mark.parametrize('fake_percentage, grade', [
    (0.0, 'A'),
    (8.0, 'A'),
    (8.1, 'B'),
    (20.0, 'B'),
    (20.1, 'C'),
    (40.0, 'C'),
    (65.0, 'D'),
    (65.1, 'F'),
    (100.0, 'F'),
])
def test_grade_boundaries(fake_percentage, grade):
    assert calculate_grade(fake_percentage) == grade


def test_grade_descriptions():
    assert grade_description('A').startswith('Excellent')
    assert grade_description('U').startswith('Unanalyzable')
    assert grade_description('Z') == 'Unknown grade'


@pytest.mark.parametrize('average, fake, expected', [
    (4.5, 0.0, 4.5),
    (4.0, 20.0, 3.6),
    (4.0, 100.0, 2.0),
    (5.0, 100.0, 2.5),
])
def test_adjusted_rating(average, fake, expected):
    assert calculate_adjusted_rating(average, fake) == expected


def test_average_rating_ignores_missing():
    reviews = [ReviewRecord(id='1', rating=5, text='a'), ReviewRecord(id='2', rating=4, text='b'),
               ReviewRecord(id='3', rating=None, text='c')]
    assert calculate_average_rating(reviews) == 4.5
    assert calculate_average_rating([]) == 0.0


def test_final_metrics():
    reviews = [ReviewRecord(id=str(i), rating=5 if i % 2 else 4, text='ok') for i in range(10)]
    state = ProductAnalysisState(product_id='B000TEST01', reviews=reviews)
    metrics = calculate_final_metrics(state, {
        'fake_percentage': 30.0,
        'explanation': 'Analysis of 10 reviews across 1 chunks.',
        'product_insights': 'Buyers like the handle.',
    })

    assert metrics['grade'] == 'C'
    assert metrics['fake_count'] == 3
    assert metrics['amazon_rating'] == 4.5
    assert metrics['adjusted_rating'] == 3.8
    assert metrics['explanation'].endswith('\n\nProduct insights: Buyers like the handle.')


def test_complete_without_reviews_assigns_unanalyzable_grade():
    store = ProductStateStore()
    store.transition('B000TEST01', 'us', AnalysisStatus.FETCHED)

    state = complete_without_reviews(store, store.get('B000TEST01', 'us'))

    assert state.status is AnalysisStatus.COMPLETED
    assert state.grade == 'U'
    assert state.fake_percentage == 0.0
    assert state.adjusted_rating == 0.0
    assert state.first_analyzed_at is not None
