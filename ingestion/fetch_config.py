"""
Fetch configuration for marketplace scraping.

Realistic browser headers, randomized inter-request delays, retry/backoff
settings and the text markers used to recognize blocked responses.
"""

import os
import random
from typing import Dict, Any, Optional


# Per-adapter pacing and retry caps
ADAPTER_CONFIGS = {
    "direct": {
        "min_delay": 0.5,
        "max_delay": 1.5,
        "timeout": 30,
        "max_retries": 3,
    },
    "ajax": {
        "min_delay": 1.0,
        "max_delay": 3.0,
        "timeout": 30,
        "max_retries": 3,
    },
}

DEFAULT_CONFIG = {
    "min_delay": 1.0,
    "max_delay": 2.5,
    "timeout": 30,
    "max_retries": 3,
}

# Marketplace domains by country code
COUNTRY_DOMAINS = {
    'us': 'amazon.com',
    'gb': 'amazon.co.uk',
    'uk': 'amazon.co.uk',
    'ca': 'amazon.ca',
    'de': 'amazon.de',
    'fr': 'amazon.fr',
    'it': 'amazon.it',
    'es': 'amazon.es',
    'jp': 'amazon.co.jp',
    'au': 'amazon.com.au',
    'mx': 'amazon.com.mx',
    'in': 'amazon.in',
    'sg': 'amazon.sg',
    'br': 'amazon.com.br',
    'nl': 'amazon.nl',
    'tr': 'amazon.com.tr',
    'ae': 'amazon.ae',
    'sa': 'amazon.sa',
    'se': 'amazon.se',
    'pl': 'amazon.pl',
    'eg': 'amazon.eg',
    'be': 'amazon.com.be',
}

# Substrings that mark a soft-blocked HTML page
BLOCK_INDICATORS = [
    'blocked',
    'robot check',
    'to discuss automated access',
]

CAPTCHA_INDICATORS = [
    'validatecaptcha',
    'opfcaptcha.amazon.com',
    'continue shopping',
    'csm-captcha-instrumentation',
    'click the button below to continue',
    'unusual traffic',
    'automated requests',
    'solve this puzzle',
    'enter the characters you see below',
    "sorry, we just need to make sure you're not a robot",
]

LOGIN_INDICATORS = [
    'ap/signin',
    '<title>amazon sign-in</title>',
    'amazon sign-in',
]

# Pool of realistic User-Agents to rotate through
USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
]


def country_domain(country: str) -> str:
    """Marketplace domain for a country code, amazon.com when unknown"""
    return COUNTRY_DOMAINS.get((country or 'us').lower(), 'amazon.com')


def marketplace_base_url(country: str) -> str:
    return f"https://www.{country_domain(country)}"


def get_adapter_config(adapter: str) -> Dict[str, Any]:
    return ADAPTER_CONFIGS.get(adapter, DEFAULT_CONFIG).copy()


def get_random_delay(adapter: str) -> float:
    """
    Get a randomized delay for the given adapter.

    Args:
        adapter: Adapter key ('direct', 'ajax')

    Returns:
        Random delay in seconds
    """
    config = get_adapter_config(adapter)
    min_delay = config.get('min_delay', 1.0)
    max_delay = config.get('max_delay', 2.5)

    if os.getenv('SCRAPER_RANDOMIZE_DELAYS', '1') == '1':
        return random.uniform(min_delay, max_delay)
    else:
        return (min_delay + max_delay) / 2


def get_realistic_headers(referer: Optional[str] = None) -> Dict[str, str]:
    """
    Get realistic browser headers.

    Args:
        referer: The referer URL to include (optional)

    Returns:
        Dictionary of HTTP headers
    """
    user_agent = os.getenv('SCRAPER_USER_AGENT')
    if not user_agent or 'bot' in user_agent.lower():
        user_agent = random.choice(USER_AGENTS)

    headers = {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Cache-Control": "max-age=0",
        "DNT": "1",
    }

    if referer:
        headers["Referer"] = referer
        headers["Sec-Fetch-Site"] = "same-origin"

    return headers


def get_ajax_headers(referer: str, csrf_token: str) -> Dict[str, str]:
    """Headers for replaying the internal review pagination endpoint"""
    headers = get_realistic_headers(referer=referer)
    headers.update({
        "Accept": "text/html,*/*",
        "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
        "X-Requested-With": "XMLHttpRequest",
        "X-CSRF-Token": csrf_token,
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
    })
    headers.pop("Upgrade-Insecure-Requests", None)
    headers.pop("Sec-Fetch-User", None)
    return headers


def get_retry_config(adapter: str, status_code: Optional[int] = None) -> Dict[str, Any]:
    """
    Get retry configuration for an adapter and response status.

    Args:
        adapter: Adapter key
        status_code: HTTP status code of the response (if available)

    Returns:
        Dictionary with retry configuration
    """
    config = get_adapter_config(adapter)
    base_backoff = float(os.getenv('SCRAPER_FETCH_BACKOFF', '1.0'))

    if status_code == 403:
        backoff_multiplier = 3.0
    elif status_code == 429:
        backoff_multiplier = 5.0
    elif status_code and 500 <= status_code < 600:
        backoff_multiplier = 2.0
    else:
        backoff_multiplier = 1.0

    return {
        'max_retries': config.get('max_retries', 3),
        'base_backoff': base_backoff * backoff_multiplier,
        'timeout': config.get('timeout', 30),
    }


def is_blocked_response(status_code: int, body: str) -> bool:
    """HTTP 429/503 or a block marker in the body"""
    if status_code in (429, 503):
        return True
    lowered = (body or '').lower()
    return any(marker in lowered for marker in BLOCK_INDICATORS)


def contains_captcha(body: str) -> bool:
    lowered = (body or '').lower()
    return any(marker in lowered for marker in CAPTCHA_INDICATORS)


def is_login_redirect(final_url: str, body: str) -> bool:
    if 'ap/signin' in (final_url or ''):
        return True
    lowered = (body or '').lower()
    return any(marker in lowered for marker in LOGIN_INDICATORS[1:])
