"""
HTML parsing for marketplace review listings and product pages
Shared by the direct-HTML and endpoint-replay adapters
"""

import html as html_module
import json
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from utils.helpers import parse_int

logger = logging.getLogger(__name__)

TOTAL_COUNT_PATTERN = re.compile(r'(\d+(?:,\d+)*)\s+(?:customer\s+)?reviews?', re.IGNORECASE)
RATING_PATTERN = re.compile(r'(\d+(?:\.\d+)?)')
CR_STATE_PATTERN = re.compile(
    r'<span[^>]*id="cr-state-object"[^>]*data-state="([^"]*)"', re.IGNORECASE)


def _text(node) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def parse_rating(text: str) -> Optional[int]:
    """'4.0 out of 5 stars' -> 4; class names like 'a-star-4' work too"""
    match = RATING_PATTERN.search(text or '')
    if not match:
        return None
    value = int(round(float(match.group(1))))
    return value if 1 <= value <= 5 else None


def parse_review_node(node) -> Dict[str, Any]:
    """Extract one review block into a raw review dict"""
    body = node.select_one('[data-hook="review-body"] span') or node.select_one('.review-text')
    rating_node = node.select_one('[data-hook="review-star-rating"]') or node.select_one('.review-rating')
    rating = None
    if rating_node is not None:
        classes = " ".join(rating_node.get('class') or [])
        rating = parse_rating(_text(rating_node)) or parse_rating(classes.replace('a-star-', ' '))

    helpful = node.select_one('[data-hook="helpful-vote-statement"]')
    images = [img.get('src') for img in node.select('[data-hook="review-image-tile"]') if img.get('src')]

    return {
        'id': node.get('id', ''),
        'review_text': _text(body),
        'rating': rating,
        'author': _text(node.select_one('[data-hook="review-author"]') or node.select_one('.review-byline .author')),
        'review_title': _text(node.select_one('[data-hook="review-title"]') or node.select_one('.review-title')),
        'date': _text(node.select_one('[data-hook="review-date"]') or node.select_one('.review-date')),
        'verified_purchase': node.select_one('[data-hook="avp-badge"]') is not None
        or node.select_one('.avp-badge') is not None,
        'is_vine': 'vine' in _text(node.select_one('.a-color-success')).lower(),
        'helpful_count': parse_int(_text(helpful), 0) if helpful is not None else 0,
        'images': images,
    }


def parse_reviews_html(html: str) -> List[Dict[str, Any]]:
    """Parse every [data-hook="review"] block; blocks without text are skipped"""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    reviews = []
    for node in soup.select('[data-hook="review"]'):
        review = parse_review_node(node)
        if review['review_text']:
            reviews.append(review)
    return reviews


def extract_description(html: str) -> str:
    soup = BeautifulSoup(html or '', "html.parser")
    node = soup.select_one('#feature-bullets ul') or soup.select_one('.product-description')
    return _text(node)


def extract_product_title(html: str) -> str:
    soup = BeautifulSoup(html or '', "html.parser")
    return _text(soup.select_one('#productTitle'))


def extract_product_image(html: str) -> str:
    soup = BeautifulSoup(html or '', "html.parser")
    img = soup.select_one('#landingImage') or soup.select_one('#imgBlkFront')
    return img.get('src', '') if img is not None else ''


def extract_total_review_count(html: str) -> int:
    match = TOTAL_COUNT_PATTERN.search(html or '')
    return int(match.group(1).replace(',', '')) if match else 0


def extract_cr_state(html: str) -> Optional[Dict[str, Any]]:
    """
    Pull the embedded review state object (pagination endpoint + CSRF token).
    Returns None when the blob is missing or not valid JSON.
    """
    match = CR_STATE_PATTERN.search(html or '')
    if not match:
        return None
    raw = html_module.unescape(match.group(1))
    try:
        state = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Review state object is not valid JSON: {e}")
        return None
    return state if isinstance(state, dict) else None
