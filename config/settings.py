"""
Main configuration settings for the review authenticity pipeline
"""

import os
from typing import Dict, List, Any
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Load local .env file if present so os.getenv reads local secrets during dev
load_dotenv()


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


@dataclass
class APIConfig:
    """API credentials for review sources, LLM providers and paging"""
    # Managed scraping job API (BrightData datasets)
    brightdata_api_token: str = field(default_factory=lambda: os.getenv('BRIGHTDATA_SCRAPER_API', ''))
    brightdata_dataset_id: str = field(default_factory=lambda: os.getenv('BRIGHTDATA_DATASET_ID', 'gd_le8e811kzy4ggddlq'))
    brightdata_base_url: str = field(default_factory=lambda: os.getenv('BRIGHTDATA_BASE_URL', 'https://api.brightdata.com/datasets/v3'))

    # Paid third-party review API
    unwrangle_api_key: str = field(default_factory=lambda: os.getenv('UNWRANGLE_API_KEY', ''))
    unwrangle_amazon_cookie: str = field(default_factory=lambda: os.getenv('UNWRANGLE_AMAZON_COOKIE', ''))

    # LLM providers
    openai_api_key: str = field(default_factory=lambda: os.getenv('OPENAI_API_KEY', ''))
    anthropic_api_key: str = field(default_factory=lambda: os.getenv('ANTHROPIC_API_KEY', ''))
    deepseek_api_key: str = field(default_factory=lambda: os.getenv('DEEPSEEK_API_KEY', ''))

    # Pushover notification channel
    pushover_token: str = field(default_factory=lambda: os.getenv('PUSHOVER_TOKEN', ''))
    pushover_user: str = field(default_factory=lambda: os.getenv('PUSHOVER_USER', ''))


@dataclass
class AcquisitionConfig:
    """Review acquisition settings"""
    review_service: str = field(default_factory=lambda: os.getenv('AMAZON_REVIEW_SERVICE', 'brightdata'))
    adapter_priority: str = field(default_factory=lambda: os.getenv('REVIEW_ADAPTER_PRIORITY', ''))
    max_pages: int = field(default_factory=lambda: int(os.getenv('AMAZON_SCRAPING_MAX_PAGES', '10')))
    max_reviews: int = field(default_factory=lambda: int(os.getenv('AMAZON_SCRAPING_MAX_REVIEWS', '100')))
    poll_interval: float = field(default_factory=lambda: float(os.getenv('BRIGHTDATA_POLL_INTERVAL', '30')))
    max_poll_attempts: int = field(default_factory=lambda: int(os.getenv('BRIGHTDATA_MAX_ATTEMPTS', '40')))
    async_enabled: bool = field(default_factory=lambda: _env_bool('ANALYSIS_ASYNC_ENABLED'))
    request_timeout: int = field(default_factory=lambda: int(os.getenv('SCRAPER_REQUEST_TIMEOUT', '30')))


@dataclass
class ChunkingConfig:
    """Context-aware chunking settings"""
    chunk_size: int = field(default_factory=lambda: int(os.getenv('LLM_CHUNK_SIZE', '50')))
    max_failure_rate: float = field(default_factory=lambda: float(os.getenv('LLM_CHUNK_MAX_FAILURE_RATE', '0.5')))
    delay_ms: int = field(default_factory=lambda: int(os.getenv('LLM_CHUNK_DELAY_MS', '0')))
    max_workers: int = field(default_factory=lambda: int(os.getenv('LLM_MAX_CONCURRENT_REQUESTS', '4')))
    chunk_timeout: float = field(default_factory=lambda: float(os.getenv('LLM_CHUNK_TIMEOUT', '120')))


@dataclass
class LLMConfig:
    """Chat completion settings"""
    model: str = field(default_factory=lambda: os.getenv('LLM_MODEL', 'gpt-4o-mini'))
    max_tokens: int = field(default_factory=lambda: int(os.getenv('LLM_MAX_TOKENS', '4000')))
    temperature: float = field(default_factory=lambda: float(os.getenv('LLM_TEMPERATURE', '0.0')))
    # Providers tried, in order, when the model's own provider fails
    fallback_order: str = field(default_factory=lambda: os.getenv('LLM_FALLBACK_ORDER', 'deepseek,openai'))
    auto_fallback: bool = field(default_factory=lambda: _env_bool('LLM_AUTO_FALLBACK', 'true'))


# Global settings
SETTINGS = {
    'app_name': 'Review Authenticity Pipeline',
    'version': '1.0.0',
    'debug': os.getenv('DEBUG', 'False').lower() == 'true',

    # Grade thresholds: upper bound of fake percentage for each grade
    'grade_thresholds': {
        'A': 8.0,
        'B': 20.0,
        'C': 40.0,
        'D': 65.0,
    },

    # Credential pool
    'max_credentials': 10,
    'credential_cooldown_minutes': 30,
    'login_redirect_cooldown_minutes': 60,

    # Egress routes
    'route_failure_memory_seconds': 300,
    'route_max_failures': 3,
    'route_session_ttl_seconds': 600,

    # Chunking
    'chunking_threshold': 80,
    'max_llm_tokens': 8192,

    # Alerting: (failures, window minutes) per level, tightest first
    'alert_thresholds': {
        'P0': (10, 5),
        'P1': (5, 10),
        'P2': (3, 15),
        'P3': (1, 60),
    },
    'alert_throttle_minutes': {
        'P0': 5,
        'P1': 15,
        'P2': 60,
        'P3': 240,
    },
    'alert_recovery_suppression_minutes': 30,
    'failure_window_hours': 24,

    # Shared cache for health, throttles and failure windows; empty keeps it in-process
    'redis_url': os.getenv('REDIS_URL', ''),

    # Background tasks
    'background_workers': int(os.getenv('BACKGROUND_WORKERS', '2')),
}


def validate_config() -> List[str]:
    """Validate configuration and return any issues"""
    issues = []

    thresholds = [SETTINGS['grade_thresholds'][g] for g in ('A', 'B', 'C', 'D')]
    if any(b <= a for a, b in zip(thresholds, thresholds[1:])):
        issues.append("Grade thresholds must be strictly increasing")

    chunking = ChunkingConfig()
    if not 0.0 <= chunking.max_failure_rate <= 1.0:
        issues.append("Chunk failure-rate ceiling must be between 0 and 1")
    if chunking.chunk_size <= 0:
        issues.append("Chunk size must be positive")

    api = APIConfig()
    acquisition = AcquisitionConfig()
    service = acquisition.review_service.lower()
    if service in ('brightdata', 'bright-data', 'bd') and not api.brightdata_api_token:
        issues.append("BRIGHTDATA_SCRAPER_API is required for the managed-job review service")
    if service in ('unwrangle', 'api') and not api.unwrangle_api_key:
        issues.append("UNWRANGLE_API_KEY is required for the third-party review API")
    if service in ('scraping', 'direct', 'scrape', 'ajax') and not os.getenv('AMAZON_COOKIES_1'):
        issues.append("No session cookies configured (AMAZON_COOKIES_1..10)")

    if not (api.openai_api_key or api.anthropic_api_key or api.deepseek_api_key):
        issues.append("No LLM provider API key configured")

    return issues
