from ingestion.normalizer import ReviewNormalizer
from ingestion.review_parser import (
    extract_cr_state,
    extract_description,
    extract_product_image,
    extract_product_title,
    extract_total_review_count,
    parse_rating,
    parse_reviews_html,
)

REVIEWS_HTML = """
<div id="cm_cr-review_list">
  <div data-hook="review" id="R1ABC">
    <span data-hook="review-author">Dana</span>
    <i data-hook="review-star-rating" class="a-icon a-icon-star a-star-5"><span>5.0 out of 5 stars</span></i>
    <a data-hook="review-title"><span>Great kettle</span></a>
    <span data-hook="review-date">Reviewed in the United States on March 3, 2024</span>
    <span data-hook="avp-badge">Verified Purchase</span>
    <span data-hook="review-body"><span>Boils fast and the handle stays cool.</span></span>
    <span data-hook="helpful-vote-statement">1,204 people found this helpful</span>
    <img data-hook="review-image-tile" src="https://img/r1.jpg">
  </div>
  <div data-hook="review" id="R2DEF">
    <i data-hook="review-star-rating" class="a-icon a-star-2"></i>
    <span data-hook="review-body"><span>Lid broke after a week.</span></span>
    <span class="a-color-success">Vine Customer Review of Free Product</span>
  </div>
  <div data-hook="review" id="R3EMPTY">
    <span data-hook="review-body"><span></span></span>
  </div>
</div>
"""

PRODUCT_HTML = """
<span id="productTitle">  Steel Electric Kettle 1.7L </span>
<img id="landingImage" src="https://img/main.jpg">
<div id="feature-bullets"><ul><li>Auto shut-off</li><li>BPA free</li></ul></div>
<span id="acrCustomerReviewText">2,345 customer reviews</span>
<span id="cr-state-object" data-state="{&quot;reviewsAjaxUrl&quot;:&quot;/hz/reviews-render/ajax&quot;,&quot;reviewsCsrfToken&quot;:&quot;tok&quot;}"></span>
"""


def test_parse_rating():
    assert parse_rating('4.0 out of 5 stars') == 4
    assert parse_rating('a-icon  3') == 3
    assert parse_rating('9 out of 5') is None
    assert parse_rating('') is None


def test_parse_reviews_html():
    reviews = parse_reviews_html(REVIEWS_HTML)

    assert [r['id'] for r in reviews] == ['R1ABC', 'R2DEF']
    first, second = reviews
    assert first['rating'] == 5
    assert first['review_title'] == 'Great kettle'
    assert first['author'] == 'Dana'
    assert first['verified_purchase'] is True
    assert first['helpful_count'] == 1204
    assert first['images'] == ['https://img/r1.jpg']
    assert second['rating'] == 2
    assert second['is_vine'] is True
    assert second['verified_purchase'] is False


def test_product_page_extraction():
    assert extract_product_title(PRODUCT_HTML) == 'Steel Electric Kettle 1.7L'
    assert extract_product_image(PRODUCT_HTML) == 'https://img/main.jpg'
    assert extract_description(PRODUCT_HTML) == 'Auto shut-off BPA free'
    assert extract_total_review_count(PRODUCT_HTML) == 2345
    assert extract_cr_state(PRODUCT_HTML) == {'reviewsAjaxUrl': '/hz/reviews-render/ajax', 'reviewsCsrfToken': 'tok'}


def test_missing_or_broken_state_object():
    assert extract_cr_state('<html></html>') is None
    assert extract_cr_state('<span id="cr-state-object" data-state="{broken"></span>') is None
    assert parse_reviews_html('') == []


def test_normalizer_drops_empty_and_duplicate_text():
    raw = [
        {'id': 'A', 'review_text': 'Works great', 'rating': '5'},
        {'id': 'B', 'review_text': '  works   GREAT ', 'rating': 4},
        {'id': 'C', 'review_text': '   ', 'rating': 3},
        {'review_text': 'No id here', 'rating': 9.0},
    ]
    records = ReviewNormalizer(source='unwrangle').normalize(raw)

    assert [r.text for r in records] == ['Works great', 'No id here']
    assert records[0].rating == 5
    assert records[1].rating is None
    assert records[1].id.startswith('unwrangle_4_')
