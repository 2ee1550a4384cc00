"""
Exceptions raised by review acquisition
"""

from typing import List, Optional


class AcquisitionError(Exception):
    """An adapter could not produce reviews. error_type feeds the alert policy."""

    error_type = "SCRAPING_FAILED"

    def __init__(self, message: str, error_type: Optional[str] = None):
        super().__init__(message)
        if error_type:
            self.error_type = error_type


class BlockedError(AcquisitionError):
    """Soft- or hard-block (CAPTCHA, login redirect, expired session)"""

    error_type = "BLOCKED"


class AdapterUnavailableError(AcquisitionError):
    """Adapter is missing configuration it needs (keys, cookies)"""

    error_type = "UNAVAILABLE"


class AllAdaptersFailedError(AcquisitionError):
    """Every configured adapter failed for one product"""

    error_type = "ALL_ADAPTERS_FAILED"

    def __init__(self, product_id: str, failures: List[str]):
        self.product_id = product_id
        self.failures = failures
        super().__init__(f"All review sources failed for {product_id}: " + "; ".join(failures))
