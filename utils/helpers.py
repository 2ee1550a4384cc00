"""
Helper utilities for the review pipeline
Common functions and utilities
"""

import uuid
import re
import logging
from datetime import datetime
from typing import Any, List
import json

from config.settings import SETTINGS

logger = logging.getLogger(__name__)

PRODUCT_ID_PATTERN = re.compile(r'^[A-Z0-9]{10}$')


def generate_run_id() -> str:
    """Generate unique run ID for pipeline execution"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = str(uuid.uuid4())[:8]
    return f"run_{timestamp}_{unique_id}"


def validate_config() -> List[str]:
    """Validate configuration settings and return any issues"""
    issues = []

    from config.settings import validate_config as settings_validate
    issues.extend(settings_validate())

    if SETTINGS['chunking_threshold'] <= 0:
        issues.append("Chunking threshold must be positive")

    if SETTINGS['max_credentials'] <= 0:
        issues.append("Max credentials must be positive")

    return issues


def is_valid_product_id(product_id: str) -> bool:
    """Marketplace product ids are 10 upper-case alphanumerics"""
    return bool(product_id) and bool(PRODUCT_ID_PATTERN.match(product_id))


def normalize_text(text: str) -> str:
    """Lower-case, collapse whitespace; used as a dedup key"""
    return re.sub(r'\s+', ' ', (text or '')).strip().lower()


def truncate_text(text: str, max_length: int) -> str:
    """Truncate text to max_length characters, stripping NUL/SUB bytes"""
    text = (text or '').replace('\0', '').replace('\x1a', '')
    return text[:max_length].strip()


def parse_int(value: Any, default: int = 0) -> int:
    """Parse '1,234 people found this helpful' style numbers"""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return int(value)
    match = re.search(r'\d[\d,]*', str(value))
    if not match:
        return default
    return int(match.group(0).replace(',', ''))


def save_json_safely(data: Any, file_path: str) -> bool:
    """Safely save data to JSON file with error handling"""
    try:
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        return True
    except OSError as e:
        logger.error(f"Error saving JSON file {file_path}: {e}")
        return False


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable format"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"
