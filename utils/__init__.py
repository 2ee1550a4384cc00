"""
Utility modules for the review pipeline
Shared helpers and common functions
"""

from .helpers import generate_run_id, validate_config
from .logging_config import setup_logging

__all__ = ['generate_run_id', 'validate_config', 'setup_logging']
